"""
Service module running one trigger end to end.

A pass builds the RuleContext, evaluates the catalog and delivers the
resulting candidates:

    ContextBuilder -> RuleEngine -> NotificationSink

Typical usage:
    pipeline = NotificationPipeline(store)
    result = pipeline.run(Trigger.DAILY_CHECK, user, logs, course_modules)
    print(result.delivery.persisted_rule_ids)
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence
from aws_lambda_powertools import Logger

from fertyfit.config import EngineSettings, get_settings
from fertyfit.models.course import CourseModule, LessonProgress
from fertyfit.models.daily_log import DailyLog
from fertyfit.models.form import ConsultationForm
from fertyfit.models.profile import UserProfile
from fertyfit.models.rule import Trigger
from fertyfit.services.catalog import DEFAULT_CATALOG, RuleCatalog
from fertyfit.services.context import build_rule_context
from fertyfit.services.engine import EvaluationReport, RuleEngine
from fertyfit.services.sink import DeliveryReport, NotificationSink
from fertyfit.services.store import NotificationStore

logger = Logger()

WEEKLY_SUMMARY_RULE = "SUMMARY-WEEKLY-1"
MONTHLY_SUMMARY_RULE = "SUMMARY-MONTHLY-1"

# How far back the last summary timestamps are looked up
SUMMARY_LOOKBACK_DAYS = 365

@dataclass
class PipelineResult:
    """Evaluation and delivery outcome of one pass."""
    evaluation: EvaluationReport
    delivery: DeliveryReport

class NotificationPipeline:
    """
    Wires the context builder, rule engine and sink around one store.

    Args:
        store: Notification store shared by engine and sink
        catalog: Rules to evaluate, defaults to DEFAULT_CATALOG
        settings: Engine settings, defaults to environment settings
        clock: Returns the current time, defaults to datetime.now
    """

    def __init__(
        self,
        store: NotificationStore,
        catalog: RuleCatalog = DEFAULT_CATALOG,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock or datetime.now
        self.engine = RuleEngine(catalog, store, self.clock)
        self.sink = NotificationSink(store, self.settings.daily_notification_limit, self.clock)

    def _last_fired(self, user_id: str, rule_id: str) -> Optional[datetime]:
        since = self.clock() - timedelta(days=SUMMARY_LOOKBACK_DAYS)
        try:
            notification = self.store.find_since(user_id, rule_id, since)
        except Exception as e:
            logger.warning("Could not look up last summary", extra={
                "user_id": user_id,
                "rule_id": rule_id,
                "error": str(e),
                "error_type": e.__class__.__name__
            })
            return None
        return notification.created_at if notification else None

    def run(
        self,
        trigger: Trigger,
        user: UserProfile,
        logs: Sequence[DailyLog],
        course_modules: Sequence[CourseModule] = (),
        *,
        forms: Sequence[ConsultationForm] = (),
        progress: Sequence[LessonProgress] = (),
        saved_log: Optional[DailyLog] = None
    ) -> PipelineResult:
        """
        Run one trigger for one user.

        Args:
            trigger: Event that started the pass
            user: User profile
            logs: User's daily logs
            course_modules: Course modules for learning progress
            forms: User's consultation forms
            progress: User's completed lessons
            saved_log: Log that started a DAILY_LOG_SAVE pass, defaults to the
                most recent log in logs

        Returns:
            PipelineResult with the evaluation and delivery reports
        """
        if trigger == Trigger.DAILY_LOG_SAVE and saved_log is None:
            saved_log = max(logs, key=lambda log: log.date, default=None)

        context = build_rule_context(
            user,
            logs,
            course_modules,
            forms=forms,
            progress=progress,
            saved_log=saved_log,
            last_weekly_summary_at=self._last_fired(user.user_id, WEEKLY_SUMMARY_RULE),
            last_monthly_summary_at=self._last_fired(user.user_id, MONTHLY_SUMMARY_RULE),
            as_of=self.clock().date(),
            settings=self.settings
        )

        evaluation = self.engine.evaluate(trigger, context)
        delivery = self.sink.deliver(user.user_id, evaluation.candidates)
        return PipelineResult(evaluation=evaluation, delivery=delivery)
