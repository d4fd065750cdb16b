"""
User profile model definition for the FertyFit engine.
"""
from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    """
    Represents a user's fertility profile as captured by the F0 form.

    Cycle fields are optional: a profile without cycle_length or
    last_period_date is valid and the cycle services fall back to defaults.
    """
    user_id: str
    name: Optional[str] = None
    age: Optional[int] = Field(None, ge=0, le=120)
    weight: Optional[float] = Field(None, gt=0)
    height: Optional[float] = Field(None, gt=0)  # centimetres
    previous_weight: Optional[float] = Field(None, gt=0)
    cycle_length: Optional[int] = Field(None, ge=1, le=100)
    cycle_regularity: Optional[str] = Field(None, pattern="^(Regular|Irregular)$")
    last_period_date: Optional[date] = None
    period_history: List[date] = Field(default_factory=list)
    alcohol_consumption: Optional[str] = None
    smoker: Optional[str] = None
    supplements: Optional[str] = None
    time_trying_start_date: Optional[date] = None
    time_trying_initial_months: Optional[int] = Field(None, ge=0)
    method_start_date: Optional[date] = None

    @property
    def has_cycle_data(self) -> bool:
        """Check if both cycle length and last period date were provided."""
        return self.cycle_length is not None and self.last_period_date is not None
