"""
Rule evaluation service.

The engine walks the catalog rules registered for a trigger, evaluates each
condition against the RuleContext, applies cooldowns through the
notification store and returns the resulting candidates ordered by priority.

Every rule is evaluated in isolation: a condition that raises, a message
builder that raises or a history lookup that fails only affects that rule,
and the outcome is recorded in the EvaluationReport rather than propagated.

Typical usage:
    engine = RuleEngine(DEFAULT_CATALOG, store)
    report = engine.evaluate(Trigger.DAILY_LOG_SAVE, context)
    sink.deliver(context.user_id, report.candidates)
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Set, Union
from aws_lambda_powertools import Logger

from fertyfit.models.notification import NotificationCandidate, NotificationMetadata
from fertyfit.models.rule import Rule, RuleContext, Trigger
from fertyfit.services.catalog import RuleCatalog
from fertyfit.services.exceptions import ConditionEvaluationError, CooldownLookupError
from fertyfit.services.store import NotificationStore
from fertyfit.utils.logging import log_exception

logger = Logger()

SKIP_NO_CYCLE = "no_cycle_data"
SKIP_CONDITION_FALSE = "condition_false"
SKIP_COOLDOWN = "cooldown"
SKIP_COOLDOWN_LOOKUP_FAILED = "cooldown_lookup_failed"
SKIP_EXCLUSIVE_GROUP = "exclusive_group"

@dataclass(frozen=True)
class Fired:
    """The rule produced a candidate."""
    rule_id: str
    candidate: NotificationCandidate

@dataclass(frozen=True)
class Skipped:
    """The rule did not produce a candidate."""
    rule_id: str
    reason: str

@dataclass(frozen=True)
class Errored:
    """The rule's condition or message builder raised."""
    rule_id: str
    cause: ConditionEvaluationError

RuleResult = Union[Fired, Skipped, Errored]

@dataclass
class EvaluationReport:
    """
    Outcome of one evaluation pass.

    Attributes:
        trigger: Trigger that started the pass
        user_id: User evaluated
        results: One RuleResult per rule registered for the trigger, in catalog order
        candidates: Fired candidates, stable-sorted by ascending priority
    """
    trigger: Trigger
    user_id: str
    results: List[RuleResult] = field(default_factory=list)
    candidates: List[NotificationCandidate] = field(default_factory=list)

    @property
    def fired(self) -> List[str]:
        return [r.rule_id for r in self.results if isinstance(r, Fired)]

    @property
    def errored(self) -> List[str]:
        return [r.rule_id for r in self.results if isinstance(r, Errored)]

    def skipped(self, reason: Optional[str] = None) -> List[str]:
        """Ids of skipped rules, optionally filtered by reason."""
        return [
            r.rule_id for r in self.results
            if isinstance(r, Skipped) and (reason is None or r.reason == reason)
        ]

class RuleEngine:
    """
    Evaluates catalog rules for a trigger and context.

    Args:
        catalog: Rules to evaluate
        store: Notification history used for cooldown lookups
        clock: Returns the current time, defaults to datetime.now
    """

    def __init__(
        self,
        catalog: RuleCatalog,
        store: NotificationStore,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.catalog = catalog
        self.store = store
        self.clock = clock or datetime.now

    def evaluate(self, trigger: Trigger, context: RuleContext) -> EvaluationReport:
        """
        Evaluate every rule registered for the trigger.

        Args:
            trigger: Event that started the pass
            context: Snapshot for one user

        Returns:
            EvaluationReport with per-rule results and ordered candidates
        """
        report = EvaluationReport(trigger=trigger, user_id=context.user_id)
        now = self.clock()
        claimed_groups: Set[str] = set()
        fired: List[NotificationCandidate] = []

        for rule in self.catalog.rules_for(trigger):
            if rule.exclusive_group and rule.exclusive_group in claimed_groups:
                report.results.append(Skipped(rule.id, SKIP_EXCLUSIVE_GROUP))
                continue

            result = self._evaluate_rule(rule, context, now)
            report.results.append(result)

            if isinstance(result, Fired):
                fired.append(result.candidate)
                if rule.exclusive_group:
                    claimed_groups.add(rule.exclusive_group)

        report.candidates = sorted(fired, key=lambda c: c.priority)

        logger.info("Evaluated rules", extra={
            "user_id": context.user_id,
            "trigger": trigger.value,
            "evaluated": len(report.results),
            "fired": report.fired,
            "errored": report.errored
        })
        return report

    def evaluate_rules(self, trigger: Trigger, context: RuleContext) -> List[NotificationCandidate]:
        """Evaluate a trigger and return only the ordered candidates."""
        return self.evaluate(trigger, context).candidates

    def _evaluate_rule(self, rule: Rule, context: RuleContext, now: datetime) -> RuleResult:
        if rule.requires_cycle and not context.has_cycle:
            return Skipped(rule.id, SKIP_NO_CYCLE)

        try:
            matched = bool(rule.condition(context))
        except Exception as e:
            return self._errored(rule, context, e, "condition")

        if not matched:
            return Skipped(rule.id, SKIP_CONDITION_FALSE)

        if rule.cooldown_days > 0:
            reason = self._check_cooldown(rule, context.user_id, now)
            if reason:
                return Skipped(rule.id, reason)

        try:
            message = rule.message(context)
        except Exception as e:
            return self._errored(rule, context, e, "message")

        candidate = NotificationCandidate(
            user_id=context.user_id,
            title=message.title,
            message=message.message,
            type=rule.type,
            priority=rule.priority,
            metadata=NotificationMetadata(
                rule_id=rule.id,
                cooldown_days=rule.cooldown_days,
                actions=message.actions
            )
        )
        return Fired(rule.id, candidate)

    def _check_cooldown(self, rule: Rule, user_id: str, now: datetime) -> Optional[str]:
        """Return a skip reason if the rule is cooling down, None if it may fire."""
        since = now - timedelta(days=rule.cooldown_days)
        try:
            previous = self.store.find_since(user_id, rule.id, since)
        except Exception as e:
            # Unknown history never fires
            logger.warning("Cooldown lookup failed, skipping rule", extra={
                "user_id": user_id,
                "rule_id": rule.id,
                "error": str(e),
                "error_type": e.__class__.__name__,
                "cooldown_error": isinstance(e, CooldownLookupError)
            })
            return SKIP_COOLDOWN_LOOKUP_FAILED

        if previous is not None:
            logger.debug("Rule in cooldown", extra={
                "user_id": user_id,
                "rule_id": rule.id,
                "last_fired_at": previous.created_at.isoformat()
            })
            return SKIP_COOLDOWN
        return None

    def _errored(self, rule: Rule, context: RuleContext, error: Exception, stage: str) -> Errored:
        cause = ConditionEvaluationError(rule.id, error)
        log_exception(
            logger,
            "Rule evaluation failed",
            exc_info=error,
            extra={
                "user_id": context.user_id,
                "rule_id": rule.id,
                "stage": stage
            }
        )
        return Errored(rule.id, cause)
