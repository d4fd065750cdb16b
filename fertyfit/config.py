"""
Engine configuration.

Values are read from environment variables once and cached, the same way the
DynamoDB client is created lazily on first use.
"""
import os
from typing import Optional
from pydantic import BaseModel, Field

DEFAULT_DAILY_NOTIFICATION_LIMIT = 5
DEFAULT_LUTEAL_PHASE_LENGTH = 14
DEFAULT_CYCLE_LENGTH = 28

class EngineSettings(BaseModel):
    """
    Tunable engine parameters.
    """
    daily_notification_limit: int = Field(DEFAULT_DAILY_NOTIFICATION_LIMIT, ge=0)
    luteal_phase_length: int = Field(DEFAULT_LUTEAL_PHASE_LENGTH, ge=1, le=30)
    default_cycle_length: int = Field(DEFAULT_CYCLE_LENGTH, ge=1, le=100)
    table_name: Optional[str] = None

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """
        Build settings from environment variables.

        Recognised variables: DAILY_NOTIFICATION_LIMIT, LUTEAL_PHASE_LENGTH,
        DEFAULT_CYCLE_LENGTH and TRACKER_TABLE_NAME. Unset variables keep
        their defaults.
        """
        return cls(
            daily_notification_limit=int(os.environ.get(
                "DAILY_NOTIFICATION_LIMIT", DEFAULT_DAILY_NOTIFICATION_LIMIT
            )),
            luteal_phase_length=int(os.environ.get(
                "LUTEAL_PHASE_LENGTH", DEFAULT_LUTEAL_PHASE_LENGTH
            )),
            default_cycle_length=int(os.environ.get(
                "DEFAULT_CYCLE_LENGTH", DEFAULT_CYCLE_LENGTH
            )),
            table_name=os.environ.get("TRACKER_TABLE_NAME"),
        )

# Singleton instance
_settings: Optional[EngineSettings] = None

def get_settings() -> EngineSettings:
    """Get or create the cached settings instance."""
    global _settings
    if _settings is None:
        _settings = EngineSettings.from_env()
    return _settings

def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
