"""
Lambda handler running a notification trigger for one user.
"""
from typing import Dict, List, Optional
import json

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import BaseModel, Field, ValidationError

from fertyfit.config import get_settings
from fertyfit.models.course import CourseModule
from fertyfit.models.daily_log import DailyLog
from fertyfit.models.rule import Trigger
from fertyfit.services.pipeline import NotificationPipeline
from fertyfit.services.user_data import (
    get_consultation_forms,
    get_daily_logs,
    get_lesson_progress,
    get_user_profile,
    upsert_daily_log,
)
from fertyfit.utils.dynamo import DynamoNotificationStore

logger = Logger()
tracer = Tracer()

# Lazily created so importing the module needs no AWS configuration
_pipeline = None

def get_pipeline() -> NotificationPipeline:
    """Get or create the notification pipeline."""
    global _pipeline
    if _pipeline is None:
        _pipeline = NotificationPipeline(DynamoNotificationStore(), settings=get_settings())
    return _pipeline

class EvaluateRequest(BaseModel):
    """Trigger evaluation request model."""
    user_id: str = Field(..., min_length=1)
    trigger: Trigger
    daily_log: Optional[Dict] = None
    course_modules: List[CourseModule] = Field(default_factory=list)

def _response(status_code: int, body: Dict) -> Dict:
    return {
        "statusCode": status_code,
        "body": json.dumps(body)
    }

@logger.inject_lambda_context
@tracer.capture_lambda_handler
def handler(event: Dict, context: LambdaContext) -> Dict:
    """
    Handle a trigger evaluation request.

    Args:
        event: API Gateway Lambda proxy event with a JSON body
            {user_id, trigger, daily_log?, course_modules?}
        context: Lambda context

    Returns:
        API Gateway Lambda proxy response
    """
    try:
        request = EvaluateRequest(**json.loads(event.get("body") or "{}"))
        log = None
        if request.daily_log is not None:
            log = DailyLog(**{**request.daily_log, "user_id": request.user_id})
    except (ValidationError, ValueError, TypeError) as e:
        logger.warning("Invalid evaluation request", extra={
            "error": str(e),
            "error_type": e.__class__.__name__
        })
        return _response(400, {"error": "Invalid request"})

    if request.trigger == Trigger.DAILY_LOG_SAVE and log is None:
        return _response(400, {"error": "daily_log is required for DAILY_LOG_SAVE"})

    logger.append_keys(user_id=request.user_id, trigger=request.trigger.value)

    try:
        user = get_user_profile(request.user_id)
        if user is None:
            return _response(404, {"error": "User not found"})

        if log is not None:
            upsert_daily_log(log)

        result = get_pipeline().run(
            request.trigger,
            user,
            get_daily_logs(request.user_id),
            request.course_modules,
            forms=get_consultation_forms(request.user_id),
            progress=get_lesson_progress(request.user_id),
            saved_log=log
        )

        return _response(200, {
            "user_id": request.user_id,
            "trigger": request.trigger.value,
            "delivered": result.delivery.persisted_rule_ids,
            "dropped": [c.rule_id for c in result.delivery.dropped],
            "errored": result.evaluation.errored
        })

    except Exception as e:
        logger.exception("Error evaluating trigger")
        return _response(500, {"error": str(e)})
