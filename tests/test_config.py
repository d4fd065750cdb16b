"""
Tests for engine settings.
"""
import os
import pytest
from unittest.mock import patch
from pydantic import ValidationError

from fertyfit.config import EngineSettings, get_settings, reset_settings

@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings()
    yield
    reset_settings()

def test_defaults():
    settings = EngineSettings()

    assert settings.daily_notification_limit == 5
    assert settings.luteal_phase_length == 14
    assert settings.default_cycle_length == 28
    assert settings.table_name is None

def test_from_env():
    """Environment variables override the defaults."""
    env = {
        "DAILY_NOTIFICATION_LIMIT": "3",
        "LUTEAL_PHASE_LENGTH": "12",
        "TRACKER_TABLE_NAME": "TrackerTable",
    }
    with patch.dict(os.environ, env, clear=True):
        settings = EngineSettings.from_env()

    assert settings.daily_notification_limit == 3
    assert settings.luteal_phase_length == 12
    assert settings.default_cycle_length == 28
    assert settings.table_name == "TrackerTable"

def test_negative_limit_rejected():
    with patch.dict(os.environ, {"DAILY_NOTIFICATION_LIMIT": "-1"}, clear=True):
        with pytest.raises(ValidationError):
            EngineSettings.from_env()

def test_get_settings_is_cached():
    """Settings are read once until reset."""
    with patch.dict(os.environ, {"DAILY_NOTIFICATION_LIMIT": "2"}, clear=True):
        first = get_settings()
    with patch.dict(os.environ, {"DAILY_NOTIFICATION_LIMIT": "9"}, clear=True):
        assert get_settings() is first
        reset_settings()
        assert get_settings().daily_notification_limit == 9
