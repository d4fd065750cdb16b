"""
Notification model definitions.

A NotificationCandidate is what the rule engine produces; a Notification is
what the store returns once a candidate has been persisted.
"""
from enum import Enum
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

class NotificationType(str, Enum):
    """
    Kinds of notification a rule can emit.
    """
    ALERT = "alert"
    INSIGHT = "insight"
    CELEBRATION = "celebration"
    TIP = "tip"
    OPPORTUNITY = "opportunity"
    CONFIRMATION = "confirmation"

class NotificationAction(BaseModel):
    """
    A button attached to a notification, resolved by the UI.
    """
    model_config = ConfigDict(frozen=True)

    label: str
    value: str
    handler: str = Field(..., pattern="^(handlePeriodConfirmed|handlePeriodDelayed|handleOvulationDetected)$")

class NotificationMetadata(BaseModel):
    """
    Metadata stored with each notification.

    cooldown_days is the producing rule's cooldown; stores key the
    uniqueness bucket on it.
    """
    model_config = ConfigDict(frozen=True)

    rule_id: str
    cooldown_days: int = Field(0, ge=0)
    actions: List[NotificationAction] = Field(default_factory=list)

class NotificationCandidate(BaseModel):
    """
    A notification produced by a rule but not yet persisted.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    title: str
    message: str
    type: NotificationType
    priority: int = Field(..., ge=1, le=3)
    metadata: NotificationMetadata

    @property
    def rule_id(self) -> str:
        """Id of the rule that produced this candidate."""
        return self.metadata.rule_id

class Notification(NotificationCandidate):
    """
    A persisted notification.
    """
    id: str
    created_at: datetime
    is_read: bool = False
    deleted_at: Optional[datetime] = None
