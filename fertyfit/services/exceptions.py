"""
Service-level exceptions.

This module contains exceptions raised by the notification store and
recorded by the rule engine. None of them escape RuleEngine.evaluate or
NotificationSink.deliver; they are caught and turned into skip/drop outcomes.
"""

class NotificationEngineError(Exception):
    """Base exception for notification engine errors."""
    pass

class ConditionEvaluationError(NotificationEngineError):
    """Raised when a rule's condition or message builder fails."""

    def __init__(self, rule_id: str, cause: Exception):
        self.rule_id = rule_id
        self.cause = cause
        super().__init__(f"Rule {rule_id} failed: {cause.__class__.__name__}: {cause}")

class NotificationStoreError(NotificationEngineError):
    """Base exception for notification store failures."""
    pass

class CooldownLookupError(NotificationStoreError):
    """Raised when the notification history cannot be queried."""
    pass

class QuotaCountError(NotificationStoreError):
    """Raised when today's notification count cannot be queried."""
    pass

class DuplicateNotificationError(NotificationStoreError):
    """Raised when a notification for the same rule and cooldown bucket already exists."""
    pass
