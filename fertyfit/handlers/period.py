"""
Lambda handler for period notification actions.

CYCLE-1 and PM-2 notifications carry two buttons: "handlePeriodConfirmed"
records a new period start, "handlePeriodDelayed" extends the current cycle.
"""
from typing import Dict
from datetime import date
import json

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import BaseModel, Field, ValidationError

from fertyfit.config import get_settings
from fertyfit.services.cycle import confirm_period, delay_period
from fertyfit.services.user_data import get_user_profile, save_user_profile

logger = Logger()
tracer = Tracer()

class PeriodActionRequest(BaseModel):
    """Period action request model."""
    user_id: str = Field(..., min_length=1)
    handler: str = Field(..., pattern="^(handlePeriodConfirmed|handlePeriodDelayed)$")
    value: str

@logger.inject_lambda_context
@tracer.capture_lambda_handler
def handler(event: Dict, context: LambdaContext) -> Dict:
    """
    Apply a period action to the user's profile.

    The value is "today" or an ISO date for handlePeriodConfirmed, and a
    number of days for handlePeriodDelayed.

    Args:
        event: API Gateway Lambda proxy event
        context: Lambda context

    Returns:
        API Gateway Lambda proxy response with the updated cycle fields
    """
    try:
        request = PeriodActionRequest(**json.loads(event.get("body") or "{}"))
    except (ValidationError, ValueError, TypeError) as e:
        logger.warning("Invalid period action", extra={
            "error": str(e),
            "error_type": e.__class__.__name__
        })
        return {"statusCode": 400, "body": json.dumps({"error": "Invalid request"})}

    try:
        user = get_user_profile(request.user_id)
        if user is None:
            return {"statusCode": 404, "body": json.dumps({"error": "User not found"})}

        try:
            if request.handler == "handlePeriodConfirmed":
                period_date = date.today() if request.value == "today" else date.fromisoformat(request.value)
                updated = confirm_period(user, period_date)
            else:
                updated = delay_period(
                    user, int(request.value), get_settings().default_cycle_length
                )
        except ValueError as e:
            return {"statusCode": 400, "body": json.dumps({"error": str(e)})}

        save_user_profile(updated)

        logger.info("Applied period action", extra={
            "user_id": request.user_id,
            "action": request.handler,
            "cycle_length": updated.cycle_length
        })
        return {
            "statusCode": 200,
            "body": json.dumps({
                "user_id": updated.user_id,
                "cycle_length": updated.cycle_length,
                "last_period_date": updated.last_period_date.isoformat() if updated.last_period_date else None
            })
        }

    except Exception as e:
        logger.exception("Error applying period action")
        return {"statusCode": 500, "body": json.dumps({"error": str(e)})}
