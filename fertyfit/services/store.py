"""
Notification store interface and in-memory implementation.

The rule engine only needs to look up a user's most recent notification for
a rule, and the sink only needs to count today's notifications and insert new
ones. Any persistence layer offering those three operations can back them;
DynamoNotificationStore in fertyfit.utils.dynamo is the production one.

Uniqueness:
    For rules with a cooldown, at most one notification per
    (user_id, rule_id, cooldown_bucket) may exist, so two concurrent passes
    for the same user cannot both persist the same rule inside one cooldown
    period. The losing insert raises DuplicateNotificationError.
"""
import uuid
from typing import Callable, List, Optional, Protocol, Set, Tuple
from datetime import date, datetime

from fertyfit.models.notification import Notification, NotificationCandidate
from fertyfit.services.exceptions import DuplicateNotificationError

Clock = Callable[[], datetime]

EPOCH = date(1970, 1, 1)

def cooldown_bucket(created_at: datetime, cooldown_days: int) -> Optional[int]:
    """
    Calculate the uniqueness bucket of a notification.

    Args:
        created_at: Creation timestamp
        cooldown_days: Cooldown of the rule that produced it

    Returns:
        floor(days since epoch / cooldown_days), None when the rule has no cooldown

    Example:
        >>> cooldown_bucket(datetime(2024, 1, 15, 9, 0), 14)
        1409
    """
    if cooldown_days <= 0:
        return None
    return (created_at.date() - EPOCH).days // cooldown_days

def build_notification(candidate: NotificationCandidate, created_at: datetime) -> Notification:
    """Turn a candidate into a persisted notification with a fresh id."""
    return Notification(
        **candidate.model_dump(),
        id=str(uuid.uuid4()),
        created_at=created_at,
    )

class NotificationStore(Protocol):
    """
    Persistence operations used by RuleEngine and NotificationSink.
    """

    def insert(self, candidate: NotificationCandidate, cooldown_days: int) -> Notification:
        """
        Persist a candidate.

        Raises:
            DuplicateNotificationError: If the rule already fired in this cooldown bucket
            NotificationStoreError: If the write fails
        """
        ...

    def find_since(self, user_id: str, rule_id: str, since: datetime) -> Optional[Notification]:
        """
        Return the latest notification for the rule created strictly after since.

        Raises:
            CooldownLookupError: If the history cannot be queried
        """
        ...

    def count_since(self, user_id: str, since: datetime) -> int:
        """
        Count the user's notifications created at or after since.

        Raises:
            QuotaCountError: If the count cannot be queried
        """
        ...

class InMemoryNotificationStore:
    """
    Notification store kept in process memory.

    Used by tests and local runs. Notifications are never removed.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or datetime.now
        self._notifications: List[Notification] = []
        self._buckets: Set[Tuple[str, str, int]] = set()

    def insert(self, candidate: NotificationCandidate, cooldown_days: int) -> Notification:
        created_at = self.clock()
        bucket = cooldown_bucket(created_at, cooldown_days)
        if bucket is not None:
            key = (candidate.user_id, candidate.rule_id, bucket)
            if key in self._buckets:
                raise DuplicateNotificationError(
                    f"Rule {candidate.rule_id} already fired for user "
                    f"{candidate.user_id} in bucket {bucket}"
                )
            self._buckets.add(key)

        notification = build_notification(candidate, created_at)
        self._notifications.append(notification)
        return notification

    def find_since(self, user_id: str, rule_id: str, since: datetime) -> Optional[Notification]:
        matches = [
            n for n in self._notifications
            if n.user_id == user_id and n.rule_id == rule_id and n.created_at > since
        ]
        return max(matches, key=lambda n: n.created_at, default=None)

    def count_since(self, user_id: str, since: datetime) -> int:
        return sum(
            1 for n in self._notifications
            if n.user_id == user_id and n.created_at >= since
        )

    def list_for_user(self, user_id: str) -> List[Notification]:
        """Return a user's notifications, oldest first."""
        return [n for n in self._notifications if n.user_id == user_id]
