"""
Tests for the Lambda handlers.
"""
import json
import pytest
from datetime import date, timedelta
from unittest.mock import Mock, patch

from fertyfit.config import EngineSettings
from fertyfit.handlers import evaluate, period
from fertyfit.services.pipeline import NotificationPipeline

def _event(body) -> dict:
    return {"body": json.dumps(body)}

@pytest.fixture
def pipeline(clock, store):
    """Pipeline over the in-memory store, installed as the handler's pipeline."""
    pipeline = NotificationPipeline(store, settings=EngineSettings(), clock=clock)
    with patch.object(evaluate, "get_pipeline", return_value=pipeline):
        yield pipeline

@pytest.fixture
def user_data(sample_user):
    """Patched data access for the evaluate handler."""
    with patch.object(evaluate, "get_user_profile", return_value=sample_user) as get_user, \
         patch.object(evaluate, "get_daily_logs", return_value=[]) as get_logs, \
         patch.object(evaluate, "get_consultation_forms", return_value=[]), \
         patch.object(evaluate, "get_lesson_progress", return_value=[]), \
         patch.object(evaluate, "upsert_daily_log") as upsert:
        yield Mock(get_user=get_user, get_logs=get_logs, upsert=upsert)

def test_daily_check(pipeline, user_data, lambda_context):
    """A daily check returns the delivered rule ids."""
    response = evaluate.handler(_event({"user_id": "123", "trigger": "DAILY_CHECK"}), lambda_context)

    assert response["statusCode"] == 200
    body = json.loads(response["body"])
    assert body["trigger"] == "DAILY_CHECK"
    assert body["delivered"]
    assert len(body["delivered"]) <= 5
    user_data.upsert.assert_not_called()

def test_daily_log_save_upserts_log_first(pipeline, user_data, lambda_context, clock):
    """The log is stored before the trigger runs."""
    log = {"date": clock().date().isoformat(), "sleep_hours": 4}
    user_data.get_logs.side_effect = lambda user_id: [user_data.upsert.call_args.args[0]]

    response = evaluate.handler(
        _event({"user_id": "123", "trigger": "DAILY_LOG_SAVE", "daily_log": log}),
        lambda_context
    )

    assert response["statusCode"] == 200
    saved = user_data.upsert.call_args.args[0]
    assert saved.user_id == "123"
    assert saved.sleep_hours == 4
    assert "D-1" in json.loads(response["body"])["delivered"]

def test_daily_log_save_for_earlier_day(pipeline, user_data, lambda_context, clock):
    """A backfilled log is evaluated as the saved log."""
    log = {"date": (clock().date() - timedelta(days=2)).isoformat(), "sleep_hours": 3}
    user_data.get_logs.side_effect = lambda user_id: [user_data.upsert.call_args.args[0]]

    response = evaluate.handler(
        _event({"user_id": "123", "trigger": "DAILY_LOG_SAVE", "daily_log": log}),
        lambda_context
    )

    assert response["statusCode"] == 200
    assert "D-1" in json.loads(response["body"])["delivered"]

def test_daily_log_save_requires_log(pipeline, user_data, lambda_context):
    """DAILY_LOG_SAVE without a log is a bad request."""
    response = evaluate.handler(_event({"user_id": "123", "trigger": "DAILY_LOG_SAVE"}), lambda_context)

    assert response["statusCode"] == 400

@pytest.mark.parametrize("body", [
    {"trigger": "DAILY_CHECK"},
    {"user_id": "123", "trigger": "SOMETHING_ELSE"},
    {"user_id": "123", "trigger": "DAILY_LOG_SAVE", "daily_log": {"date": "2024-01-15", "sleep_hours": 30}},
])
def test_invalid_requests(pipeline, user_data, lambda_context, body):
    """Malformed bodies return 400."""
    response = evaluate.handler(_event(body), lambda_context)

    assert response["statusCode"] == 400
    user_data.get_user.assert_not_called()

def test_invalid_json(pipeline, user_data, lambda_context):
    """A body that is not JSON returns 400."""
    response = evaluate.handler({"body": "not json"}, lambda_context)

    assert response["statusCode"] == 400

def test_unknown_user(pipeline, user_data, lambda_context):
    """Unknown users return 404."""
    user_data.get_user.return_value = None

    response = evaluate.handler(_event({"user_id": "999", "trigger": "DAILY_CHECK"}), lambda_context)

    assert response["statusCode"] == 404

def test_storage_failure_returns_500(pipeline, user_data, lambda_context):
    """Unexpected failures are logged and reported as 500."""
    user_data.get_user.side_effect = RuntimeError("table missing")

    response = evaluate.handler(_event({"user_id": "123", "trigger": "DAILY_CHECK"}), lambda_context)

    assert response["statusCode"] == 500

def test_period_confirmed(sample_user, lambda_context):
    """Confirming a period stores the new start date."""
    with patch.object(period, "get_user_profile", return_value=sample_user), \
         patch.object(period, "save_user_profile") as save:
        response = period.handler(
            _event({"user_id": "123", "handler": "handlePeriodConfirmed", "value": "2024-01-29"}),
            lambda_context
        )

    assert response["statusCode"] == 200
    saved = save.call_args.args[0]
    assert saved.last_period_date == date(2024, 1, 29)
    assert saved.period_history[0] == date(2024, 1, 29)

def test_period_delayed(sample_user, lambda_context):
    """Delaying a period lengthens the cycle."""
    with patch.object(period, "get_user_profile", return_value=sample_user), \
         patch.object(period, "save_user_profile") as save:
        response = period.handler(
            _event({"user_id": "123", "handler": "handlePeriodDelayed", "value": "3"}),
            lambda_context
        )

    assert response["statusCode"] == 200
    assert save.call_args.args[0].cycle_length == 31
    assert json.loads(response["body"])["cycle_length"] == 31

@pytest.mark.parametrize("body", [
    {"user_id": "123", "handler": "handleOvulationDetected", "value": "today"},
    {"user_id": "123", "handler": "handlePeriodDelayed", "value": "0"},
    {"user_id": "123", "handler": "handlePeriodConfirmed", "value": "yesterday"},
])
def test_period_invalid_actions(sample_user, lambda_context, body):
    """Unknown handlers and invalid values return 400."""
    with patch.object(period, "get_user_profile", return_value=sample_user), \
         patch.object(period, "save_user_profile") as save:
        response = period.handler(_event(body), lambda_context)

    assert response["statusCode"] == 400
    save.assert_not_called()
