"""
Notification delivery with a per-user daily quota.

The sink receives the ordered candidates of one evaluation pass and persists
as many of them as the user's remaining daily quota allows. Candidates beyond
the quota are dropped, never deferred.
"""
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Callable, List, Optional, Sequence
from aws_lambda_powertools import Logger

from fertyfit.models.notification import Notification, NotificationCandidate
from fertyfit.services.exceptions import DuplicateNotificationError
from fertyfit.services.store import NotificationStore
from fertyfit.utils.logging import log_exception

logger = Logger()

@dataclass
class DeliveryReport:
    """
    Outcome of one delivery.

    Attributes:
        persisted: Notifications written to the store, in candidate order
        dropped: Candidates not written (over quota or failed insert)
        duplicates: Candidates the store already held for the current cooldown bucket
    """
    persisted: List[Notification] = field(default_factory=list)
    dropped: List[NotificationCandidate] = field(default_factory=list)
    duplicates: List[NotificationCandidate] = field(default_factory=list)

    @property
    def persisted_rule_ids(self) -> List[str]:
        return [n.rule_id for n in self.persisted]

class NotificationSink:
    """
    Persists candidates subject to a daily per-user limit.

    Args:
        store: Notification store
        daily_limit: Maximum notifications per user per calendar day
        clock: Returns the current time, defaults to datetime.now
    """

    def __init__(
        self,
        store: NotificationStore,
        daily_limit: int,
        clock: Optional[Callable[[], datetime]] = None
    ):
        if daily_limit < 0:
            raise ValueError("daily_limit must not be negative")
        self.store = store
        self.daily_limit = daily_limit
        self.clock = clock or datetime.now

    def remaining_quota(self, user_id: str) -> int:
        """
        Calculate how many notifications the user may still receive today.

        Returns 0 when today's count cannot be read.
        """
        start_of_day = datetime.combine(self.clock().date(), time.min)
        try:
            sent_today = self.store.count_since(user_id, start_of_day)
        except Exception as e:
            logger.warning("Quota count failed, delivering nothing", extra={
                "user_id": user_id,
                "error": str(e),
                "error_type": e.__class__.__name__
            })
            return 0
        return max(0, self.daily_limit - sent_today)

    def deliver(self, user_id: str, candidates: Sequence[NotificationCandidate]) -> DeliveryReport:
        """
        Persist candidates in order until the daily quota is used up.

        Args:
            user_id: Recipient
            candidates: Candidates ordered by priority

        Returns:
            DeliveryReport with persisted, dropped and duplicate candidates
        """
        report = DeliveryReport()
        if not candidates:
            return report

        remaining = self.remaining_quota(user_id)

        for candidate in candidates:
            if remaining <= 0:
                report.dropped.append(candidate)
                continue

            try:
                notification = self.store.insert(candidate, candidate.metadata.cooldown_days)
            except DuplicateNotificationError:
                logger.info("Notification already delivered", extra={
                    "user_id": user_id,
                    "rule_id": candidate.rule_id
                })
                report.duplicates.append(candidate)
                continue
            except Exception as e:
                log_exception(
                    logger,
                    "Failed to persist notification",
                    exc_info=e,
                    extra={
                        "user_id": user_id,
                        "rule_id": candidate.rule_id
                    }
                )
                report.dropped.append(candidate)
                continue

            report.persisted.append(notification)
            remaining -= 1

        logger.info("Delivered notifications", extra={
            "user_id": user_id,
            "persisted": report.persisted_rule_ids,
            "dropped": [c.rule_id for c in report.dropped],
            "duplicates": [c.rule_id for c in report.duplicates]
        })
        return report
