"""
Tests for DynamoDB persistence with a mocked table.
"""
import os
import uuid
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import Mock, patch
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from fertyfit.models.daily_log import DailyLog
from fertyfit.models.notification import NotificationCandidate, NotificationMetadata, NotificationType
from fertyfit.services import user_data
from fertyfit.services.exceptions import (
    CooldownLookupError,
    DuplicateNotificationError,
    NotificationStoreError,
    QuotaCountError,
)
from fertyfit.utils import dynamo as dynamo_module
from fertyfit.utils.dynamo import (
    DynamoDBClient,
    DynamoNotificationStore,
    create_cooldown_sk,
    create_log_sk,
    create_notification_sk,
    create_pk,
    create_rule_history_sk,
    from_item,
    get_dynamo,
    to_item,
)

def _candidate(rule_id: str = "HAB-SLEEP-1") -> NotificationCandidate:
    return NotificationCandidate(
        user_id="123",
        title="Tu descanso está bajando",
        message="Body",
        type=NotificationType.ALERT,
        priority=2,
        metadata=NotificationMetadata(rule_id=rule_id)
    )

def _client_error(code: str, operation: str = "TransactWriteItems", **response) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}, **response}, operation)

def _marker_taken() -> ClientError:
    return _client_error(
        "TransactionCanceledException",
        CancellationReasons=[{"Code": "ConditionalCheckFailed"}, {"Code": "None"}, {"Code": "None"}]
    )

class TransactionalTable:
    """All-or-nothing transactions over an in-memory item map."""

    def __init__(self):
        self.items = {}
        self.failures = []

    def transact_put_items(self, puts):
        if self.failures:
            raise self.failures.pop(0)
        for item, condition in puts:
            if condition == "attribute_not_exists(SK)" and (item["PK"], item["SK"]) in self.items:
                raise _marker_taken()
        for item, _ in puts:
            self.items[(item["PK"], item["SK"])] = item
        return {}

    def sort_keys(self):
        return sorted(sk for _, sk in self.items)

@pytest.fixture
def mock_dynamo():
    """Mocked DynamoDB client."""
    return Mock()

@pytest.fixture
def dynamo_store(mock_dynamo, clock):
    """DynamoNotificationStore over the mocked client."""
    return DynamoNotificationStore(dynamo=mock_dynamo, clock=clock)

def _written(mock_dynamo):
    return mock_dynamo.transact_put_items.call_args.args[0]

def test_key_helpers():
    """Sort keys follow the table layout."""
    assert create_pk("123") == "USER#123"
    assert create_log_sk(date(2024, 1, 15)) == "LOG#2024-01-15"
    assert create_cooldown_sk("IMC-1", 2819) == "COOLDOWN#IMC-1#2819"
    assert create_notification_sk(datetime(2024, 1, 15, 9, 0), "abc") == "NOTIF#2024-01-15T09:00:00#abc"
    assert create_rule_history_sk("D-1", datetime(2024, 1, 15, 9, 0), "abc") == "RULE#D-1#2024-01-15T09:00:00#abc"

def test_item_conversion_round_trips_numbers():
    """Floats become Decimal for DynamoDB and come back as numbers."""
    log = DailyLog(user_id="123", date=date(2024, 1, 15), sleep_hours=6.5, stress_level=3)

    item = to_item(log)
    assert item["sleep_hours"] == Decimal("6.5")
    assert "bbt" not in item

    restored = DailyLog(**from_item({"PK": "USER#123", "SK": "LOG#2024-01-15", **item}))
    assert restored == log

def test_insert_writes_one_transaction(dynamo_store, mock_dynamo, clock):
    """Marker, notification and rule history are written together."""
    notification = dynamo_store.insert(_candidate(), 7)

    assert mock_dynamo.transact_put_items.call_count == 1
    (marker, marker_condition), (stored, stored_condition), (history, history_condition) = _written(mock_dynamo)

    assert marker["SK"].startswith("COOLDOWN#HAB-SLEEP-1#")
    assert marker_condition == "attribute_not_exists(SK)"
    assert marker["notification_id"] == notification.id

    assert stored["SK"] == create_notification_sk(clock(), notification.id)
    assert stored["metadata"]["rule_id"] == "HAB-SLEEP-1"
    assert stored_condition is None

    assert history["SK"] == create_rule_history_sk("HAB-SLEEP-1", clock(), notification.id)
    assert history_condition is None

def test_cooldown_marker_expires(dynamo_store, mock_dynamo, clock):
    """Markers carry a ttl at created_at plus the cooldown."""
    dynamo_store.insert(_candidate(), 7)

    marker, _ = _written(mock_dynamo)[0]
    assert marker["ttl"] == int((clock() + timedelta(days=7)).timestamp())

def test_insert_without_cooldown_skips_marker(dynamo_store, mock_dynamo):
    """Rules without cooldown only write the notification and its history entry."""
    dynamo_store.insert(_candidate("D-1"), 0)

    sort_keys = [item["SK"] for item, _ in _written(mock_dynamo)]
    assert len(sort_keys) == 2
    assert sort_keys[0].startswith("NOTIF#")
    assert sort_keys[1].startswith("RULE#D-1#")

def test_insert_duplicate_bucket(dynamo_store, mock_dynamo):
    """A cancelled transaction on the marker condition is a duplicate."""
    mock_dynamo.transact_put_items.side_effect = _marker_taken()

    with pytest.raises(DuplicateNotificationError):
        dynamo_store.insert(_candidate(), 7)

def test_insert_other_errors(dynamo_store, mock_dynamo):
    """Other write failures raise NotificationStoreError."""
    mock_dynamo.transact_put_items.side_effect = _client_error(
        "TransactionCanceledException",
        CancellationReasons=[{"Code": "None"}, {"Code": "ThrottlingError"}, {"Code": "None"}]
    )

    with pytest.raises(NotificationStoreError) as exc_info:
        dynamo_store.insert(_candidate(), 7)
    assert not isinstance(exc_info.value, DuplicateNotificationError)

def test_failed_insert_leaves_bucket_free(clock):
    """A failed write stores nothing, so a retry in the same bucket succeeds."""
    table = TransactionalTable()
    table.failures.append(_client_error("InternalServerError"))
    store = DynamoNotificationStore(dynamo=table, clock=clock)

    with pytest.raises(NotificationStoreError):
        store.insert(_candidate(), 7)
    assert table.items == {}

    notification = store.insert(_candidate(), 7)

    sort_keys = table.sort_keys()
    assert len(sort_keys) == 3
    assert create_notification_sk(clock(), notification.id) in sort_keys

    clock.advance(hours=1)
    with pytest.raises(DuplicateNotificationError):
        store.insert(_candidate(), 7)
    assert len(table.items) == 3

def test_find_since_queries_rule_history(dynamo_store, mock_dynamo, clock):
    """The newest history entry of the rule after the bound is returned."""
    notification = dynamo_store.insert(_candidate(), 0)
    stored, _ = _written(mock_dynamo)[1]
    mock_dynamo.query_latest.return_value = stored
    since = clock() - timedelta(days=7)

    found = dynamo_store.find_since("123", "HAB-SLEEP-1", since)

    assert found.id == notification.id
    assert found.metadata.rule_id == "HAB-SLEEP-1"
    query = mock_dynamo.query_latest.call_args.kwargs
    assert query["partition_value"] == "USER#123"
    assert query["sort_key_condition"] == Key("SK").between(
        f"RULE#HAB-SLEEP-1#{since.isoformat()}#~", "RULE#HAB-SLEEP-1#~"
    )

def test_find_since_nothing_found(dynamo_store, mock_dynamo):
    mock_dynamo.query_latest.return_value = None

    assert dynamo_store.find_since("123", "D-1", datetime(2024, 1, 1)) is None

def test_rule_history_bounds_exclude_the_bound_and_other_rules():
    """Sort key order keeps the strict bound and separates rule ids sharing a prefix."""
    since = datetime(2024, 1, 15, 9, 0)
    lower = f"RULE#D-1#{since.isoformat()}#~"
    upper = "RULE#D-1#~"

    at_bound = create_rule_history_sk("D-1", since, str(uuid.uuid4()))
    after = create_rule_history_sk("D-1", since + timedelta(seconds=1), str(uuid.uuid4()))
    other_rule = create_rule_history_sk("D-10", since + timedelta(hours=1), str(uuid.uuid4()))

    assert not lower <= at_bound <= upper
    assert lower <= after <= upper
    assert not lower <= other_rule <= upper

def test_count_since_counts_on_the_server(dynamo_store, mock_dynamo):
    """Quota counts use a COUNT query over the notification range."""
    mock_dynamo.count_items.return_value = 4
    since = datetime(2024, 1, 15)

    assert dynamo_store.count_since("123", since) == 4

    query = mock_dynamo.count_items.call_args.kwargs
    assert query["partition_value"] == "USER#123"
    assert query["sort_key_condition"] == Key("SK").between("NOTIF#2024-01-15T00:00:00", "NOTIF#~")

def test_lookup_failures_are_typed(dynamo_store, mock_dynamo):
    """Query failures raise the errors the engine and sink expect."""
    mock_dynamo.query_latest.side_effect = Exception("timeout")
    mock_dynamo.count_items.side_effect = Exception("timeout")

    with pytest.raises(CooldownLookupError):
        dynamo_store.find_since("123", "HAB-SLEEP-1", datetime(2024, 1, 1))
    with pytest.raises(QuotaCountError):
        dynamo_store.count_since("123", datetime(2024, 1, 15))

def test_get_dynamo_requires_table_name():
    """get_dynamo fails clearly without TRACKER_TABLE_NAME."""
    with patch.dict(os.environ, {}, clear=True), \
         patch.object(dynamo_module, "_dynamo_instance", None):
        with pytest.raises(EnvironmentError):
            get_dynamo()

def test_query_items_follows_pages():
    """query_items returns items from every page."""
    with patch("fertyfit.utils.dynamo.boto3") as mock_boto3:
        table = mock_boto3.resource.return_value.Table.return_value
        table.query.side_effect = [
            {"Items": [{"SK": "LOG#1"}], "LastEvaluatedKey": {"SK": "LOG#1"}},
            {"Items": [{"SK": "LOG#2"}]},
        ]
        client = DynamoDBClient("TrackerTable")

        items = client.query_items("PK", "USER#123")

    assert [item["SK"] for item in items] == ["LOG#1", "LOG#2"]
    assert table.query.call_args_list[1].kwargs["ExclusiveStartKey"] == {"SK": "LOG#1"}

def test_upsert_daily_log_keys_by_date(mock_dynamo):
    """Daily logs are stored under one sort key per date."""
    log = DailyLog(user_id="123", date=date(2024, 1, 15), sleep_hours=7)

    user_data.upsert_daily_log(log, dynamo=mock_dynamo)

    item = mock_dynamo.put_item.call_args.args[0]
    assert item["PK"] == "USER#123"
    assert item["SK"] == "LOG#2024-01-15"

def test_get_user_profile(mock_dynamo):
    """Profiles are loaded from the PROFILE item."""
    mock_dynamo.get_item.return_value = None
    assert user_data.get_user_profile("123", dynamo=mock_dynamo) is None

    mock_dynamo.get_item.return_value = {
        "PK": "USER#123",
        "SK": "PROFILE",
        "user_id": "123",
        "age": Decimal("32"),
        "cycle_length": Decimal("28"),
        "last_period_date": "2024-01-01",
    }
    user = user_data.get_user_profile("123", dynamo=mock_dynamo)

    assert user.age == 32
    assert user.cycle_length == 28
    assert user.last_period_date == date(2024, 1, 1)

def test_count_items_follows_pages():
    """count_items asks for counts only and sums every page."""
    with patch("fertyfit.utils.dynamo.boto3") as mock_boto3:
        table = mock_boto3.resource.return_value.Table.return_value
        table.query.side_effect = [
            {"Count": 3, "LastEvaluatedKey": {"SK": "NOTIF#3"}},
            {"Count": 2},
        ]
        client = DynamoDBClient("TrackerTable")

        count = client.count_items("PK", "USER#123", Key("SK").begins_with("NOTIF#"))

    assert count == 5
    assert all(call.kwargs["Select"] == "COUNT" for call in table.query.call_args_list)
    assert table.query.call_args_list[1].kwargs["ExclusiveStartKey"] == {"SK": "NOTIF#3"}

def test_query_latest_reads_one_item_newest_first():
    with patch("fertyfit.utils.dynamo.boto3") as mock_boto3:
        table = mock_boto3.resource.return_value.Table.return_value
        table.query.return_value = {"Items": [{"SK": "RULE#D-1#2"}]}
        client = DynamoDBClient("TrackerTable")

        item = client.query_latest("PK", "USER#123", Key("SK").begins_with("RULE#D-1#"))

    assert item == {"SK": "RULE#D-1#2"}
    assert table.query.call_args.kwargs["ScanIndexForward"] is False
    assert table.query.call_args.kwargs["Limit"] == 1

def test_transact_put_items_conditions_per_item():
    """Each put names the table; only conditioned puts carry an expression."""
    with patch("fertyfit.utils.dynamo.boto3") as mock_boto3:
        resource = mock_boto3.resource.return_value
        client = DynamoDBClient("TrackerTable")

        client.transact_put_items([
            ({"PK": "USER#123", "SK": "COOLDOWN#IMC-1#1"}, "attribute_not_exists(SK)"),
            ({"PK": "USER#123", "SK": "NOTIF#1"}, None),
        ])

    resource.meta.client.transact_write_items.assert_called_once()
    marker, stored = resource.meta.client.transact_write_items.call_args.kwargs["TransactItems"]
    assert marker["Put"]["TableName"] == "TrackerTable"
    assert marker["Put"]["ConditionExpression"] == "attribute_not_exists(SK)"
    assert "ConditionExpression" not in stored["Put"]
