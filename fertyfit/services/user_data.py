"""
Service module for loading and saving a user's tracking data.

Reads and writes go through the shared DynamoDB client. Every record lives
in the user's partition (see fertyfit.utils.dynamo for the key layout).

Typical usage:
    user = get_user_profile(user_id)
    logs = get_daily_logs(user_id)
    upsert_daily_log(DailyLog(user_id=user_id, date=date.today(), sleep_hours=7))
"""
from typing import List, Optional
from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key

from fertyfit.models.course import LessonProgress
from fertyfit.models.daily_log import DailyLog
from fertyfit.models.form import ConsultationForm
from fertyfit.models.profile import UserProfile
from fertyfit.utils.dynamo import (
    DynamoDBClient,
    create_log_sk,
    create_pk,
    from_item,
    get_dynamo,
    to_item,
)

logger = Logger()

PROFILE_SK = "PROFILE"

def _query_prefix(dynamo: DynamoDBClient, user_id: str, prefix: str) -> List[dict]:
    return dynamo.query_items(
        partition_key="PK",
        partition_value=create_pk(user_id),
        sort_key_condition=Key("SK").begins_with(prefix)
    )

def get_user_profile(user_id: str, dynamo: Optional[DynamoDBClient] = None) -> Optional[UserProfile]:
    """
    Load a user's profile.

    Args:
        user_id: User identifier
        dynamo: Optional client, defaults to get_dynamo()

    Returns:
        UserProfile if the user is registered, None otherwise
    """
    dynamo = dynamo or get_dynamo()
    item = dynamo.get_item({"PK": create_pk(user_id), "SK": PROFILE_SK})
    if not item:
        return None
    return UserProfile(**from_item(item))

def save_user_profile(user: UserProfile, dynamo: Optional[DynamoDBClient] = None) -> None:
    """Store a user's profile, replacing the previous version."""
    dynamo = dynamo or get_dynamo()
    dynamo.put_item({
        "PK": create_pk(user.user_id),
        "SK": PROFILE_SK,
        **to_item(user)
    })
    logger.info("Saved user profile", extra={"user_id": user.user_id})

def get_daily_logs(user_id: str, dynamo: Optional[DynamoDBClient] = None) -> List[DailyLog]:
    """Load every daily log of a user, oldest first."""
    dynamo = dynamo or get_dynamo()
    items = _query_prefix(dynamo, user_id, "LOG#")
    return [DailyLog(**from_item(item)) for item in items]

def upsert_daily_log(log: DailyLog, dynamo: Optional[DynamoDBClient] = None) -> None:
    """
    Store a daily log.

    The sort key is derived from the log date, so saving a second log for
    the same user and date replaces the first.
    """
    dynamo = dynamo or get_dynamo()
    dynamo.put_item({
        "PK": create_pk(log.user_id),
        "SK": create_log_sk(log.date),
        **to_item(log)
    })
    logger.info("Saved daily log", extra={
        "user_id": log.user_id,
        "date": log.date.isoformat()
    })

def get_consultation_forms(user_id: str, dynamo: Optional[DynamoDBClient] = None) -> List[ConsultationForm]:
    """Load every consultation form submitted by a user."""
    dynamo = dynamo or get_dynamo()
    items = _query_prefix(dynamo, user_id, "FORM#")
    return [ConsultationForm(**from_item(item)) for item in items]

def get_lesson_progress(user_id: str, dynamo: Optional[DynamoDBClient] = None) -> List[LessonProgress]:
    """Load the lessons a user has completed."""
    dynamo = dynamo or get_dynamo()
    items = _query_prefix(dynamo, user_id, "PROGRESS#")
    return [LessonProgress(**from_item(item)) for item in items]
