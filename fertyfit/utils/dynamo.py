"""
DynamoDB utility functions for data access.

Single-table layout, partitioned per user:

    PK=USER#{user_id}  SK=PROFILE                         user profile
    PK=USER#{user_id}  SK=LOG#{date}                      daily log (upsert per date)
    PK=USER#{user_id}  SK=FORM#{form_type}#{submitted}    consultation form
    PK=USER#{user_id}  SK=PROGRESS#{lesson_id}            completed lesson
    PK=USER#{user_id}  SK=NOTIF#{created_at}#{id}         notification
    PK=USER#{user_id}  SK=RULE#{rule_id}#{created_at}#{id} notification, per-rule copy
    PK=USER#{user_id}  SK=COOLDOWN#{rule_id}#{bucket}     cooldown marker

Cooldown markers carry a ttl (epoch seconds) so expired buckets are
removed by the table.
"""
import os
import json
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
from datetime import date, datetime, timedelta
import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from aws_lambda_powertools import Logger
from pydantic import BaseModel

from fertyfit.models.notification import Notification, NotificationCandidate
from fertyfit.services.exceptions import (
    CooldownLookupError,
    DuplicateNotificationError,
    NotificationStoreError,
    QuotaCountError,
)
from fertyfit.services.store import build_notification, cooldown_bucket

logger = Logger()

# Singleton instance
_dynamo_instance = None

def get_dynamo() -> 'DynamoDBClient':
    """
    Get or create singleton DynamoDB client instance.

    This is the only way to access DynamoDB in this project. Never
    instantiate DynamoDBClient directly outside of tests.

    Example:
        dynamo = get_dynamo()
        item = dynamo.get_item({"PK": create_pk("123"), "SK": "PROFILE"})

    Returns:
        DynamoDBClient: Singleton instance of DynamoDB client

    Raises:
        EnvironmentError: If TRACKER_TABLE_NAME environment variable is not set
    """
    global _dynamo_instance
    if _dynamo_instance is None:
        try:
            table_name = os.environ['TRACKER_TABLE_NAME']
        except KeyError:
            raise EnvironmentError(
                "TRACKER_TABLE_NAME environment variable not set. "
                "This variable must be set to the DynamoDB table name."
            )
        _dynamo_instance = DynamoDBClient(table_name)
    return _dynamo_instance

class DynamoDBClient:
    """Client for interacting with DynamoDB table."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)

    def put_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """
        Put a single item into the table.

        Args:
            item: Dictionary containing item attributes

        Returns:
            Response from DynamoDB
        """
        return self.table.put_item(Item=item)

    def transact_put_items(self, puts: List[Tuple[Dict[str, Any], Optional[str]]]) -> Dict[str, Any]:
        """
        Put several items in one all-or-nothing transaction.

        Args:
            puts: (item, condition expression or None) pairs

        Returns:
            Response from DynamoDB

        Raises:
            botocore.exceptions.ClientError: TransactionCanceledException if
                any condition fails; no item is written in that case
        """
        transact_items = []
        for item, condition in puts:
            put = {"TableName": self.table_name, "Item": item}
            if condition is not None:
                put["ConditionExpression"] = condition
            transact_items.append({"Put": put})
        return self.dynamodb.meta.client.transact_write_items(TransactItems=transact_items)

    def get_item(self, key: Dict[str, str]) -> Optional[Dict[str, Any]]:
        """
        Get a single item from the table.

        Args:
            key: Dictionary containing partition key and sort key

        Returns:
            Item if found, None otherwise
        """
        response = self.table.get_item(Key=key)
        return response.get('Item')

    def query_items(
        self,
        partition_key: str,
        partition_value: str,
        sort_key_condition: Optional[Key] = None
    ) -> List[Dict[str, Any]]:
        """
        Query items using partition key and optional sort key condition.

        Follows LastEvaluatedKey so callers always receive every page.

        Args:
            partition_key: Name of partition key
            partition_value: Value of partition key
            sort_key_condition: Optional sort key condition

        Returns:
            List of matching items
        """
        key_condition = Key(partition_key).eq(partition_value)
        if sort_key_condition:
            key_condition = key_condition & sort_key_condition

        kwargs = {"KeyConditionExpression": key_condition}
        items: List[Dict[str, Any]] = []
        while True:
            response = self.table.query(**kwargs)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key


    def query_latest(
        self,
        partition_key: str,
        partition_value: str,
        sort_key_condition: Key
    ) -> Optional[Dict[str, Any]]:
        """
        Return the item with the highest sort key matching the condition.

        Args:
            partition_key: Name of partition key
            partition_value: Value of partition key
            sort_key_condition: Sort key condition

        Returns:
            Item if found, None otherwise
        """
        response = self.table.query(
            KeyConditionExpression=Key(partition_key).eq(partition_value) & sort_key_condition,
            ScanIndexForward=False,
            Limit=1
        )
        items = response.get('Items', [])
        return items[0] if items else None

    def count_items(
        self,
        partition_key: str,
        partition_value: str,
        sort_key_condition: Key
    ) -> int:
        """
        Count items matching a key condition without reading them.

        Args:
            partition_key: Name of partition key
            partition_value: Value of partition key
            sort_key_condition: Sort key condition

        Returns:
            Number of matching items across all pages
        """
        kwargs = {
            "KeyConditionExpression": Key(partition_key).eq(partition_value) & sort_key_condition,
            "Select": "COUNT",
        }
        count = 0
        while True:
            response = self.table.query(**kwargs)
            count += response.get('Count', 0)
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return count
            kwargs["ExclusiveStartKey"] = last_key

def create_pk(user_id: str) -> str:
    """Create partition key from user ID."""
    return f"USER#{user_id}"

def create_log_sk(log_date: date) -> str:
    """Create sort key for a daily log; one item per calendar date."""
    return f"LOG#{log_date.isoformat()}"

def create_form_sk(form_type: str, submitted_at: Optional[datetime]) -> str:
    """Create sort key for a consultation form submission."""
    stamp = submitted_at.isoformat() if submitted_at else "DRAFT"
    return f"FORM#{form_type}#{stamp}"

def create_progress_sk(lesson_id: str) -> str:
    """Create sort key for a completed lesson."""
    return f"PROGRESS#{lesson_id}"

def create_notification_sk(created_at: datetime, notification_id: str) -> str:
    """
    Create sort key for a notification.

    The ISO timestamp prefix keeps notifications ordered by creation time,
    so time-range lookups are sort key range queries.

    Args:
        created_at: Creation timestamp
        notification_id: Notification identifier

    Returns:
        Sort key in format "NOTIF#{created_at}#{notification_id}"
    """
    return f"NOTIF#{created_at.isoformat()}#{notification_id}"

def create_cooldown_sk(rule_id: str, bucket: int) -> str:
    """
    Create sort key for a cooldown marker.

    Writing the marker conditionally enforces at most one notification per
    (user, rule, cooldown bucket).

    Args:
        rule_id: Rule identifier
        bucket: Cooldown bucket from cooldown_bucket()

    Returns:
        Sort key in format "COOLDOWN#{rule_id}#{bucket}"
    """
    return f"COOLDOWN#{rule_id}#{bucket}"

def create_rule_history_sk(rule_id: str, created_at: datetime, notification_id: str) -> str:
    """
    Create sort key for a notification's per-rule history entry.

    Keeps one rule's notifications contiguous and ordered by time, so the
    latest firing since a timestamp is a single-item range query.

    Args:
        rule_id: Rule identifier
        created_at: Creation timestamp
        notification_id: Notification identifier

    Returns:
        Sort key in format "RULE#{rule_id}#{created_at}#{notification_id}"
    """
    return f"RULE#{rule_id}#{created_at.isoformat()}#{notification_id}"

def to_item(model: BaseModel) -> Dict[str, Any]:
    """Dump a model into DynamoDB-compatible attributes (floats as Decimal)."""
    return json.loads(model.model_dump_json(exclude_none=True), parse_float=Decimal)

def from_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Strip key attributes and convert Decimals back to int/float."""
    data = {k: v for k, v in item.items() if k not in ("PK", "SK", "ttl")}
    return json.loads(json.dumps(data, default=_decimal_default))

def _decimal_default(value):
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Object of type {value.__class__.__name__} is not JSON serializable")

def _is_condition_failure(error: ClientError) -> bool:
    if error.response.get("Error", {}).get("Code") != "TransactionCanceledException":
        return False
    reasons = error.response.get("CancellationReasons") or []
    return any(reason.get("Code") == "ConditionalCheckFailed" for reason in reasons if reason)

class DynamoNotificationStore:
    """
    Notification store backed by the tracker table.

    Each notification is written as a NOTIF# item (quota counts) and a RULE#
    item (cooldown lookups). Rules with a cooldown also claim a COOLDOWN#
    marker in the same transaction; the marker expires through the table's
    ttl attribute once its cooldown has passed.

    Args:
        dynamo: DynamoDB client, defaults to get_dynamo()
        clock: Returns the current time, defaults to datetime.now
    """

    def __init__(
        self,
        dynamo: Optional[DynamoDBClient] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.dynamo = dynamo or get_dynamo()
        self.clock = clock or datetime.now

    def insert(self, candidate: NotificationCandidate, cooldown_days: int) -> Notification:
        """
        Persist a candidate and claim its cooldown bucket atomically.

        Either every item is written or none is, so a failed insert leaves
        the bucket free for the next pass.

        Raises:
            DuplicateNotificationError: If the bucket marker already exists
            NotificationStoreError: If the transaction fails for any other reason
        """
        created_at = self.clock()
        notification = build_notification(candidate, created_at)
        pk = create_pk(candidate.user_id)
        attributes = to_item(notification)

        puts = []
        bucket = cooldown_bucket(created_at, cooldown_days)
        if bucket is not None:
            expires_at = created_at + timedelta(days=cooldown_days)
            puts.append(({
                "PK": pk,
                "SK": create_cooldown_sk(candidate.rule_id, bucket),
                "notification_id": notification.id,
                "created_at": created_at.isoformat(),
                "ttl": int(expires_at.timestamp()),
            }, "attribute_not_exists(SK)"))
        puts.append(({
            "PK": pk,
            "SK": create_notification_sk(created_at, notification.id),
            **attributes
        }, None))
        puts.append(({
            "PK": pk,
            "SK": create_rule_history_sk(candidate.rule_id, created_at, notification.id),
            **attributes
        }, None))

        try:
            self.dynamo.transact_put_items(puts)
        except ClientError as e:
            if _is_condition_failure(e):
                raise DuplicateNotificationError(
                    f"Rule {candidate.rule_id} already fired in bucket {bucket}"
                ) from e
            raise NotificationStoreError(f"Failed to store notification: {str(e)}") from e
        except Exception as e:
            raise NotificationStoreError(f"Failed to store notification: {str(e)}") from e

        logger.info("Stored notification", extra={
            "user_id": candidate.user_id,
            "rule_id": candidate.rule_id,
            "notification_id": notification.id
        })
        return notification

    def find_since(self, user_id: str, rule_id: str, since: datetime) -> Optional[Notification]:
        """
        Return the latest notification for the rule created after since.

        Raises:
            CooldownLookupError: If the query fails
        """
        # "#~" sorts after every id, so entries created exactly at since are excluded
        lower = f"RULE#{rule_id}#{since.isoformat()}#~"
        upper = f"RULE#{rule_id}#~"
        try:
            item = self.dynamo.query_latest(
                partition_key="PK",
                partition_value=create_pk(user_id),
                sort_key_condition=Key("SK").between(lower, upper)
            )
        except Exception as e:
            raise CooldownLookupError(f"Failed to query notifications: {str(e)}") from e
        return Notification(**from_item(item)) if item else None

    def count_since(self, user_id: str, since: datetime) -> int:
        """
        Count the user's notifications created at or after since.

        Raises:
            QuotaCountError: If the query fails
        """
        try:
            return self.dynamo.count_items(
                partition_key="PK",
                partition_value=create_pk(user_id),
                sort_key_condition=Key("SK").between(f"NOTIF#{since.isoformat()}", "NOTIF#~")
            )
        except Exception as e:
            raise QuotaCountError(f"Failed to count notifications: {str(e)}") from e
