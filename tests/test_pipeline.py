"""
Tests for running a trigger end to end.
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import Mock

from fertyfit.config import EngineSettings
from fertyfit.models.daily_log import DailyLog
from fertyfit.models.rule import Trigger
from fertyfit.services.pipeline import NotificationPipeline
from fertyfit.services.store import InMemoryNotificationStore

from tests.conftest import FakeClock

@pytest.fixture
def pipeline(clock, store, settings):
    """Pipeline over the in-memory store."""
    return NotificationPipeline(store, settings=settings, clock=clock)

def test_profile_creation_welcomes_user(pipeline, sample_user):
    """F0_CREATE delivers the welcome notification."""
    result = pipeline.run(Trigger.F0_CREATE, sample_user, [])

    assert "WELCOME-1" in result.delivery.persisted_rule_ids

def test_daily_check_respects_limit(pipeline, store, user_without_cycle):
    """A daily check never delivers more than the configured limit."""
    result = pipeline.run(Trigger.DAILY_CHECK, user_without_cycle, [])

    assert len(result.delivery.persisted) <= 5
    assert len(store.list_for_user(user_without_cycle.user_id)) <= 5
    assert result.evaluation.errored == []

def test_ovulation_day_alert(pipeline, sample_user, consecutive_logs):
    """On ovulation day the peak fertility alert is delivered first."""
    clock = pipeline.clock
    clock.now = datetime(2024, 1, 14, 8, 0)
    logs = [log for log in consecutive_logs if log.date <= clock().date()]

    result = pipeline.run(Trigger.DAILY_CHECK, sample_user, logs)

    assert result.delivery.persisted_rule_ids[0] == "VF-2"

def test_weekly_summary_uses_history(pipeline, store, sample_user, consecutive_logs):
    """The weekly summary is not repeated within the week."""
    first = pipeline.run(Trigger.DAILY_CHECK, sample_user, consecutive_logs)
    assert "SUMMARY-WEEKLY-1" in first.delivery.persisted_rule_ids

    pipeline.clock.advance(days=3)
    second = pipeline.run(Trigger.DAILY_CHECK, sample_user, consecutive_logs)

    assert "SUMMARY-WEEKLY-1" not in second.evaluation.fired

def test_log_save_delivers_low_sleep_alert(pipeline, sample_user):
    """Saving a short-sleep log delivers D-1."""
    log = DailyLog(user_id="123", date=pipeline.clock().date(), sleep_hours=4)

    result = pipeline.run(Trigger.DAILY_LOG_SAVE, sample_user, [log])

    assert "D-1" in result.delivery.persisted_rule_ids

def test_backfilled_log_save_fires_log_rules(pipeline, sample_user):
    """A log saved for an earlier day still triggers the log rules."""
    yesterday = pipeline.clock().date() - timedelta(days=1)
    log = DailyLog(user_id="123", date=yesterday, sleep_hours=3)

    result = pipeline.run(Trigger.DAILY_LOG_SAVE, sample_user, [log])

    assert "D-1" in result.delivery.persisted_rule_ids

def test_saved_log_is_preferred_over_latest(pipeline, sample_user):
    """The saved log, not the newest stored one, drives the log rules."""
    today = DailyLog(user_id="123", date=pipeline.clock().date(), sleep_hours=8)
    backfill = DailyLog(user_id="123", date=today.date - timedelta(days=4), sleep_hours=4)

    result = pipeline.run(Trigger.DAILY_LOG_SAVE, sample_user, [today, backfill], saved_log=backfill)

    assert "D-1" in result.evaluation.fired

def test_summary_lookup_failure_does_not_break_pass(clock, sample_user):
    """History errors are contained to the rules that need them."""
    store = Mock()
    store.find_since.side_effect = RuntimeError("down")
    store.count_since.return_value = 0
    pipeline = NotificationPipeline(store, settings=EngineSettings(), clock=clock)

    result = pipeline.run(Trigger.DAILY_CHECK, sample_user, [])

    assert "SUMMARY-WEEKLY-1" in result.evaluation.skipped("cooldown_lookup_failed")

def test_custom_limit(sample_user):
    """The daily limit comes from the settings."""
    clock = FakeClock(datetime(2024, 1, 15, 9, 0))
    store = InMemoryNotificationStore(clock=clock)
    pipeline = NotificationPipeline(
        store, settings=EngineSettings(daily_notification_limit=1), clock=clock
    )

    result = pipeline.run(Trigger.DAILY_CHECK, sample_user, [])

    assert len(result.delivery.persisted) == 1
