"""
Rule and rule-context model definitions.

RuleContext is the read-only snapshot every rule condition and message
builder receives. Rule is the declarative record stored in a RuleCatalog.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, FrozenSet, Iterable, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from fertyfit.models.daily_log import DailyLog
from fertyfit.models.form import FormsStatus
from fertyfit.models.notification import NotificationAction, NotificationType

class Trigger(str, Enum):
    """
    Events that start a rule-evaluation pass.
    """
    F0_CREATE = "F0_CREATE"
    F0_UPDATE = "F0_UPDATE"
    DAILY_LOG_SAVE = "DAILY_LOG_SAVE"
    DAILY_CHECK = "DAILY_CHECK"
    PERIODIC = "DAILY_CHECK"  # alias of DAILY_CHECK
    LESSON_COMPLETED = "LESSON_COMPLETED"

class FertileWindow(BaseModel):
    """
    Fertile window expressed as 1-based cycle days (inclusive).
    """
    model_config = ConfigDict(frozen=True)

    inicio: int
    fin: int
    dia_ovulacion: int

    def contains(self, cycle_day: int) -> bool:
        """Check if a cycle day falls inside the window."""
        return self.inicio <= cycle_day <= self.fin

class WindowStats(BaseModel):
    """
    Aggregated lifestyle metrics over a trailing window of calendar days.
    """
    model_config = ConfigDict(frozen=True)

    days: int
    logged_days: int = 0
    avg_sleep_hours: Optional[float] = None
    avg_stress_level: Optional[float] = None
    alcohol_days: int = 0
    low_sleep_days: int = 0
    high_stress_days: int = 0
    avg_water_glasses: Optional[float] = None
    avg_veggie_servings: Optional[float] = None

class LearnProgress(BaseModel):
    """
    Learning progress across the course modules.
    """
    model_config = ConfigDict(frozen=True)

    total_lessons: int = 0
    completed_lessons: int = 0
    completion_ratio: float = 0.0
    days_since_last_learn: Optional[int] = None
    modules_started_not_completed: List[str] = Field(default_factory=list)

class RuleContext(BaseModel):
    """
    Immutable per-pass snapshot of everything a rule may read.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    as_of: date

    # Profile
    age: Optional[int] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    previous_weight: Optional[float] = None
    months_trying: Optional[int] = None

    # Cycle
    current_cycle_day: Optional[int] = None
    elapsed_cycle_day: Optional[int] = None  # days since last recorded period + 1, not wrapped
    cycle_length: Optional[int] = None
    using_default_cycle: bool = False
    fertile_window: Optional[FertileWindow] = None
    next_period_date: Optional[date] = None
    days_until_next_period: Optional[int] = None
    conception_probability: Optional[int] = None

    # Adherence
    latest_log: Optional[DailyLog] = None
    saved_log: Optional[DailyLog] = None  # log that started a DAILY_LOG_SAVE pass, any date
    days_since_last_daily_log: int = 999
    daily_log_streak: int = 0
    last_3_days: WindowStats = WindowStats(days=3)
    last_7_days: WindowStats = WindowStats(days=7)
    last_14_days: WindowStats = WindowStats(days=14)

    # Forms and learning
    forms_status: FormsStatus = FormsStatus()
    learn_progress: LearnProgress = LearnProgress()

    # Summaries
    last_weekly_summary_at: Optional[datetime] = None
    last_monthly_summary_at: Optional[datetime] = None

    @property
    def has_cycle(self) -> bool:
        """Check if cycle-dependent fields are populated."""
        return (
            self.current_cycle_day is not None
            and self.cycle_length is not None
            and self.fertile_window is not None
        )

class RuleMessage(BaseModel):
    """
    Title, body and optional actions produced by a rule's message builder.
    """
    model_config = ConfigDict(frozen=True)

    title: str
    message: str
    actions: List[NotificationAction] = Field(default_factory=list)

Condition = Callable[[RuleContext], bool]
MessageBuilder = Callable[[RuleContext], RuleMessage]

@dataclass(frozen=True)
class Rule:
    """
    Declarative notification rule.

    Attributes:
        id: Stable, globally unique rule id (stored as metadata.rule_id)
        triggers: Triggers that activate this rule
        type: Notification type emitted
        priority: 1 (most urgent) to 3
        cooldown_days: Minimum days between firings for one user, 0 = no cooldown
        condition: Pure predicate over the context
        message: Pure message builder over the context
        requires_cycle: Skip the rule when the context has no cycle data
        exclusive_group: At most one rule of a group fires per pass
    """
    id: str
    triggers: FrozenSet[Trigger]
    type: NotificationType
    priority: int
    cooldown_days: int
    condition: Condition = field(compare=False)
    message: MessageBuilder = field(compare=False)
    requires_cycle: bool = False
    exclusive_group: Optional[str] = None

    def __post_init__(self):
        triggers: Union[Trigger, Iterable[Trigger]] = self.triggers
        if isinstance(triggers, Trigger):
            triggers = (triggers,)
        object.__setattr__(self, "triggers", frozenset(triggers))
        if not self.id:
            raise ValueError("Rule id must not be empty")
        if not self.triggers:
            raise ValueError(f"Rule {self.id} has no triggers")
        if self.priority not in (1, 2, 3):
            raise ValueError(f"Rule {self.id} has invalid priority {self.priority}")
        if self.cooldown_days < 0:
            raise ValueError(f"Rule {self.id} has negative cooldown")

    def applies_to(self, trigger: Trigger) -> bool:
        """Check if this rule is activated by the given trigger."""
        return trigger in self.triggers
