"""
Consultation form models.

Forms are a closed set: the F0 intake form plus the four health pillars.
"""
from enum import Enum
from datetime import datetime
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

class FormType(str, Enum):
    """
    Known consultation form types.
    """
    F0 = "F0"
    FUNCTION = "FUNCTION"
    FOOD = "FOOD"
    FLORA = "FLORA"
    FLOW = "FLOW"

class FormState(str, Enum):
    """
    Completion state of a form for one user.
    """
    NOT_STARTED = "not_started"
    PARTIAL = "partial"
    COMPLETE = "complete"

class FormAnswer(BaseModel):
    """
    A single answered question.
    """
    question_id: str
    question: Optional[str] = None
    answer: Union[bool, int, float, str, List[str]]

class ConsultationForm(BaseModel):
    """
    A submitted (or partially submitted) consultation form.
    """
    user_id: str
    form_type: FormType
    answers: List[FormAnswer] = Field(default_factory=list)
    completion_percent: int = Field(100, ge=0, le=100)
    submitted_at: Optional[datetime] = None
    status: str = Field("pending", pattern="^(pending|reviewed)$")

class FormStatus(BaseModel):
    """
    Derived completion status of one form type.
    """
    model_config = ConfigDict(frozen=True)

    state: FormState = FormState.NOT_STARTED
    last_updated_at: Optional[datetime] = None
    completion_percent: int = 0

class FormsStatus(BaseModel):
    """
    Completion status of every form type, keyed by field name.
    """
    model_config = ConfigDict(frozen=True)

    f0: FormStatus = FormStatus()
    function: FormStatus = FormStatus()
    food: FormStatus = FormStatus()
    flora: FormStatus = FormStatus()
    flow: FormStatus = FormStatus()

    def for_type(self, form_type: FormType) -> FormStatus:
        """Return the status for a given form type."""
        return getattr(self, form_type.value.lower())
