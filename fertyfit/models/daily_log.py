"""
Daily log model definition for per-day biomarker and lifestyle tracking.
"""
from datetime import date
from typing import Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

class DailyLog(BaseModel):
    """
    Represents a single day of tracking for one user.

    There is at most one log per (user_id, date); saving a second log for the
    same date replaces the first. Logs are immutable and may be shared with
    a RuleContext.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    date: date
    cycle_day: Optional[int] = Field(None, ge=1, le=100)

    # Biomarkers
    bbt: Optional[float] = Field(None, ge=35, le=39)
    mucus: Optional[str] = Field(
        None, pattern="^(Seco|Pegajoso|Cremoso|Clara de huevo|Acuoso)$"
    )
    lh_test: Optional[str] = Field(None, pattern="^(Positivo|Negativo|No realizado)$")
    symptoms: Tuple[str, ...] = ()
    sex: bool = False

    # Lifestyle
    sleep_hours: Optional[float] = Field(None, ge=0, le=24)
    sleep_quality: Optional[int] = Field(None, ge=1, le=5)
    stress_level: Optional[int] = Field(None, ge=1, le=5)
    activity_minutes: Optional[int] = Field(None, ge=0)
    sun_minutes: Optional[int] = Field(None, ge=0)
    water_glasses: Optional[int] = Field(None, ge=0)
    veggie_servings: Optional[int] = Field(None, ge=0)
    alcohol: bool = False
    alcohol_units: Optional[float] = Field(None, ge=0)
