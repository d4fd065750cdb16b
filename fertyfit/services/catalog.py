"""
Rule catalog for behavioural notifications.

A RuleCatalog is an immutable, ordered collection of Rule records. The
engine receives the catalog it should use, so tests can pass a minimal
catalog instead of DEFAULT_CATALOG.

Rules are grouped below by the trigger that activates them. Every condition
and message builder reads only from the RuleContext and has no side effects;
catalog order only matters as the tie-break between candidates of equal
priority and for exclusive groups.
"""
from typing import Iterable, Iterator, List, Optional, Tuple

from fertyfit.models.form import FormState, FormType
from fertyfit.models.notification import NotificationAction, NotificationType
from fertyfit.models.rule import Rule, RuleContext, RuleMessage, Trigger
from fertyfit.services.constants import (
    BMI_FERTILITY_IMPACT,
    DISCLAIMERS,
    FERTILITY_ADVANCED_AGE,
    FORM_REMINDER_ORDER,
    HIGH_STRESS_LEVEL,
    LOW_SLEEP_HOURS,
    MAX_STRESS_LEVEL,
    MESSAGES,
    MONTHS_TRYING_THRESHOLD_35_PLUS,
    MONTHS_TRYING_THRESHOLD_UNDER_35,
    NO_LOG_DAYS,
    STREAK_MILESTONES,
    VERY_LOW_SLEEP_HOURS,
)
from fertyfit.services.cycle import should_send_fertility_notifications
from fertyfit.services.utils import calculate_bmi

class RuleCatalog:
    """
    Immutable ordered collection of rules.

    Raises:
        ValueError: If two rules share an id
    """

    __slots__ = ("_rules",)

    def __init__(self, rules: Iterable[Rule]):
        rules = tuple(rules)
        seen = set()
        for rule in rules:
            if rule.id in seen:
                raise ValueError(f"Duplicate rule id: {rule.id}")
            seen.add(rule.id)
        object.__setattr__(self, "_rules", rules)

    def __setattr__(self, name, value):
        raise AttributeError("RuleCatalog is immutable")

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        return self.get(rule_id) is not None

    @property
    def rules(self) -> Tuple[Rule, ...]:
        """All rules in catalog order."""
        return self._rules

    def get(self, rule_id: str) -> Optional[Rule]:
        """Return the rule with the given id, or None."""
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def rules_for(self, trigger: Trigger) -> Tuple[Rule, ...]:
        """Return rules activated by a trigger, in catalog order."""
        return tuple(rule for rule in self._rules if rule.applies_to(trigger))

def _text(key: str, disclaimer: Optional[str] = None, actions: List[NotificationAction] = None, **values) -> RuleMessage:
    template = MESSAGES[key]
    message = template["message"].format(**values)
    if disclaimer:
        message = f"{message}\n\n{DISCLAIMERS[disclaimer]}"
    return RuleMessage(
        title=template["title"].format(**values),
        message=message,
        actions=actions or []
    )

def _static(key: str, disclaimer: Optional[str] = None):
    return lambda ctx: _text(key, disclaimer)

def _period_actions(days_late: int) -> List[NotificationAction]:
    return [
        NotificationAction(label="Sí, me vino", value="today", handler="handlePeriodConfirmed"),
        NotificationAction(label="No, aún no", value=str(days_late + 1), handler="handlePeriodDelayed"),
    ]

# ============================================================================
# Profile (F0) rules
# ============================================================================

def _cycle_data_missing(ctx: RuleContext) -> bool:
    return ctx.using_default_cycle or ctx.current_cycle_day is None

def _cycle_data_message(ctx: RuleContext) -> RuleMessage:
    return _text("F0-CYCLE-1", cycle_length=ctx.cycle_length or 28)

def _months_trying_exceeded(ctx: RuleContext) -> bool:
    if ctx.months_trying is None:
        return False
    threshold = (
        MONTHS_TRYING_THRESHOLD_35_PLUS
        if ctx.age is not None and ctx.age >= 35
        else MONTHS_TRYING_THRESHOLD_UNDER_35
    )
    return ctx.months_trying >= threshold

def _bmi_category_changed(ctx: RuleContext) -> bool:
    before = calculate_bmi(ctx.previous_weight, ctx.height)
    after = calculate_bmi(ctx.weight, ctx.height)
    if before is None or after is None:
        return False
    return before[1] != after[1]

def _bmi_message(ctx: RuleContext) -> RuleMessage:
    value, category = calculate_bmi(ctx.weight, ctx.height)
    key = {
        "Bajo peso": "IMC-1-LOW",
        "Normal": "IMC-1-NORMAL",
        "Sobrepeso": "IMC-1-OVER",
        "Obesidad": "IMC-1-OBESE",
    }[category]
    return _text(key, "imc", value=value, category=category, impact=BMI_FERTILITY_IMPACT[category])

PROFILE_RULES = [
    Rule(
        id="WELCOME-1",
        triggers=frozenset({Trigger.F0_CREATE}),
        type=NotificationType.CELEBRATION,
        priority=3,
        cooldown_days=365,
        condition=lambda ctx: True,
        message=_static("WELCOME-1"),
    ),
    Rule(
        id="F0-CYCLE-1",
        triggers=frozenset({Trigger.F0_CREATE, Trigger.F0_UPDATE}),
        type=NotificationType.TIP,
        priority=1,
        cooldown_days=7,
        condition=_cycle_data_missing,
        message=_cycle_data_message,
    ),
    Rule(
        id="F0-TRYING-1",
        triggers=frozenset({Trigger.F0_CREATE, Trigger.F0_UPDATE}),
        type=NotificationType.INSIGHT,
        priority=2,
        cooldown_days=90,
        condition=_months_trying_exceeded,
        message=lambda ctx: _text("F0-TRYING-1", "edad", months=ctx.months_trying),
    ),
    Rule(
        id="IMC-1",
        triggers=frozenset({Trigger.F0_UPDATE}),
        type=NotificationType.ALERT,
        priority=1,
        cooldown_days=7,
        condition=_bmi_category_changed,
        message=_bmi_message,
    ),
    Rule(
        id="EDAD-1",
        triggers=frozenset({Trigger.F0_CREATE, Trigger.F0_UPDATE, Trigger.DAILY_CHECK}),
        type=NotificationType.ALERT,
        priority=1,
        cooldown_days=365,
        condition=lambda ctx: ctx.age is not None and ctx.age >= 50,
        message=_static("EDAD-1", "edad"),
    ),
]

# ============================================================================
# Daily log rules (including 3- and 14-day windows)
# ============================================================================

def _very_low_sleep(ctx: RuleContext) -> bool:
    log = ctx.saved_log
    return (
        log is not None
        and log.sleep_hours is not None
        and log.sleep_hours < VERY_LOW_SLEEP_HOURS
    )

def _max_stress(ctx: RuleContext) -> bool:
    return ctx.saved_log is not None and ctx.saved_log.stress_level == MAX_STRESS_LEVEL

def _lh_positive(ctx: RuleContext) -> bool:
    return ctx.saved_log is not None and ctx.saved_log.lh_test == "Positivo"

def _fertile_mucus(ctx: RuleContext) -> bool:
    return ctx.saved_log is not None and ctx.saved_log.mucus == "Clara de huevo"

def _format_hours(hours: float) -> str:
    return f"{hours:g}"

LOG_RULES = [
    Rule(
        id="D-1",
        triggers=frozenset({Trigger.DAILY_LOG_SAVE}),
        type=NotificationType.ALERT,
        priority=2,
        cooldown_days=0,
        condition=_very_low_sleep,
        message=lambda ctx: _text("D-1", hours=_format_hours(ctx.saved_log.sleep_hours)),
    ),
    Rule(
        id="D-2",
        triggers=frozenset({Trigger.DAILY_LOG_SAVE}),
        type=NotificationType.TIP,
        priority=2,
        cooldown_days=0,
        condition=_max_stress,
        message=_static("D-2"),
    ),
    Rule(
        id="D-3",
        triggers=frozenset({Trigger.DAILY_LOG_SAVE}),
        type=NotificationType.OPPORTUNITY,
        priority=1,
        cooldown_days=2,
        condition=_lh_positive,
        message=_static("D-3", "ovulacion"),
        exclusive_group="FERTILE-SIGN",
    ),
    Rule(
        id="D-4",
        triggers=frozenset({Trigger.DAILY_LOG_SAVE}),
        type=NotificationType.OPPORTUNITY,
        priority=1,
        cooldown_days=3,
        condition=_fertile_mucus,
        message=_static("D-4", "ventana_fertil"),
        exclusive_group="FERTILE-SIGN",
    ),
    Rule(
        id="ENG-2",
        triggers=frozenset({Trigger.DAILY_LOG_SAVE}),
        type=NotificationType.CELEBRATION,
        priority=3,
        cooldown_days=0,
        condition=lambda ctx: ctx.saved_log is not None and ctx.daily_log_streak in STREAK_MILESTONES,
        message=lambda ctx: _text("ENG-2", streak=ctx.daily_log_streak),
    ),
    Rule(
        id="W3-SLEEP-1",
        triggers=frozenset({Trigger.DAILY_LOG_SAVE}),
        type=NotificationType.ALERT,
        priority=2,
        cooldown_days=3,
        condition=lambda ctx: ctx.last_3_days.low_sleep_days >= 3,
        message=_static("W3-SLEEP-1"),
    ),
    Rule(
        id="W3-STRESS-1",
        triggers=frozenset({Trigger.DAILY_LOG_SAVE}),
        type=NotificationType.ALERT,
        priority=2,
        cooldown_days=3,
        condition=lambda ctx: ctx.last_3_days.high_stress_days >= 3,
        message=_static("W3-STRESS-1"),
    ),
    Rule(
        id="W14-ALCOHOL-1",
        triggers=frozenset({Trigger.DAILY_LOG_SAVE}),
        type=NotificationType.TIP,
        priority=2,
        cooldown_days=14,
        condition=lambda ctx: ctx.last_14_days.alcohol_days >= 6,
        message=lambda ctx: _text("W14-ALCOHOL-1", days=ctx.last_14_days.alcohol_days),
    ),
    Rule(
        id="W14-STREAK-1",
        triggers=frozenset({Trigger.DAILY_LOG_SAVE}),
        type=NotificationType.CELEBRATION,
        priority=3,
        cooldown_days=14,
        condition=lambda ctx: ctx.last_14_days.logged_days >= 12,
        message=lambda ctx: _text("W14-STREAK-1", days=ctx.last_14_days.logged_days),
    ),
]

# ============================================================================
# Daily check: fertile window and period
# ============================================================================

def _fertility_tracking_enabled(ctx: RuleContext) -> bool:
    return not ctx.using_default_cycle and should_send_fertility_notifications(ctx.age)

def _is_advanced_age(ctx: RuleContext) -> bool:
    return ctx.age is not None and ctx.age >= FERTILITY_ADVANCED_AGE

def _days_late(ctx: RuleContext) -> int:
    return max(0, ctx.elapsed_cycle_day - ctx.cycle_length)

def _cycle_ended(ctx: RuleContext) -> bool:
    if ctx.elapsed_cycle_day is None:
        return False
    return ctx.cycle_length <= ctx.elapsed_cycle_day < 2 * ctx.cycle_length

def _cycle_ended_message(ctx: RuleContext) -> RuleMessage:
    days_late = _days_late(ctx)
    if days_late == 0:
        return _text("CYCLE-1", actions=_period_actions(0), cycle_length=ctx.cycle_length)
    return _text(
        "CYCLE-1-LATE",
        actions=_period_actions(days_late),
        cycle_length=ctx.cycle_length,
        days_late=days_late,
        plural="s" if days_late > 1 else "",
    )

CYCLE_RULES = [
    Rule(
        id="VF-1",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.OPPORTUNITY,
        priority=1,
        cooldown_days=0,
        requires_cycle=True,
        condition=lambda ctx: (
            _fertility_tracking_enabled(ctx)
            and ctx.current_cycle_day == ctx.fertile_window.inicio - 2
        ),
        message=lambda ctx: _text(
            "VF-1-ADVANCED" if _is_advanced_age(ctx) else "VF-1", "ventana_fertil"
        ),
    ),
    Rule(
        id="VF-2",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.OPPORTUNITY,
        priority=1,
        cooldown_days=0,
        requires_cycle=True,
        condition=lambda ctx: (
            _fertility_tracking_enabled(ctx)
            and ctx.current_cycle_day == ctx.fertile_window.dia_ovulacion
        ),
        message=lambda ctx: _text(
            "VF-2-ADVANCED" if _is_advanced_age(ctx) else "VF-2",
            "ovulacion",
            probability=ctx.conception_probability,
        ),
    ),
    Rule(
        id="VF-3",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.INSIGHT,
        priority=2,
        cooldown_days=0,
        requires_cycle=True,
        condition=lambda ctx: (
            _fertility_tracking_enabled(ctx)
            and ctx.current_cycle_day == ctx.fertile_window.fin + 1
        ),
        message=_static("VF-3", "ventana_fertil"),
    ),
    Rule(
        id="CYCLE-1",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.CONFIRMATION,
        priority=1,
        cooldown_days=0,
        requires_cycle=True,
        condition=_cycle_ended,
        message=_cycle_ended_message,
    ),
    Rule(
        id="PM-1",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.INSIGHT,
        priority=2,
        cooldown_days=0,
        requires_cycle=True,
        condition=lambda ctx: ctx.current_cycle_day == ctx.cycle_length - 2,
        message=lambda ctx: _text("PM-1", next_date=ctx.next_period_date.strftime("%d/%m")),
    ),
    Rule(
        id="PM-2",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.ALERT,
        priority=1,
        cooldown_days=0,
        requires_cycle=True,
        condition=lambda ctx: (
            ctx.elapsed_cycle_day is not None
            and ctx.elapsed_cycle_day == ctx.cycle_length + 5
        ),
        message=lambda ctx: _text("PM-2", actions=_period_actions(_days_late(ctx))),
    ),
]

# ============================================================================
# Daily check: forms (one reminder per pass)
# ============================================================================

_PILLAR_NAMES = {
    FormType.FUNCTION: "Function",
    FormType.FOOD: "Food",
    FormType.FLORA: "Flora",
    FormType.FLOW: "Flow",
}

def _form_rule(form_type: FormType, state: FormState) -> Rule:
    suffix = "PARTIAL" if state == FormState.PARTIAL else "NEW"
    if form_type == FormType.F0:
        message_key = f"FORM-F0-{suffix}"
    else:
        message_key = f"FORM-PILLAR-{suffix}"
    pillar = _PILLAR_NAMES.get(form_type, form_type.value)

    return Rule(
        id=f"FORM-{form_type.value}-{suffix}",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.TIP,
        priority=1,
        cooldown_days=7,
        condition=lambda ctx: ctx.forms_status.for_type(form_type).state == state,
        message=lambda ctx: _text(message_key, pillar=pillar),
        exclusive_group="FORMS",
    )

FORM_RULES = [
    _form_rule(FormType(form_type), FormState(state))
    for form_type, state in FORM_REMINDER_ORDER
]

# ============================================================================
# Daily check: adherence, 7-day habits, learning, summaries
# ============================================================================

def _stats_7(ctx: RuleContext):
    return ctx.last_7_days

def _inactive_message(ctx: RuleContext) -> RuleMessage:
    if ctx.days_since_last_daily_log >= NO_LOG_DAYS:
        return _text("ENG-1-NEVER")
    return _text("ENG-1", days=ctx.days_since_last_daily_log)

def _summary_due(last_sent, as_of, days: int) -> bool:
    if last_sent is None:
        return True
    return (as_of - last_sent.date()).days >= days

def _high_stress_week(ctx: RuleContext) -> bool:
    avg = _stats_7(ctx).avg_stress_level
    return avg is not None and avg >= HIGH_STRESS_LEVEL

def _low_sleep_week(ctx: RuleContext) -> bool:
    avg = _stats_7(ctx).avg_sleep_hours
    return avg is not None and avg < LOW_SLEEP_HOURS

HABIT_RULES = [
    Rule(
        id="ENG-1",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.ALERT,
        priority=2,
        cooldown_days=3,
        condition=lambda ctx: ctx.days_since_last_daily_log >= 3,
        message=_inactive_message,
    ),
    Rule(
        id="HAB-COMBO-1",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.ALERT,
        priority=1,
        cooldown_days=7,
        condition=lambda ctx: (
            _high_stress_week(ctx)
            and _low_sleep_week(ctx)
            and _stats_7(ctx).alcohol_days >= 3
        ),
        message=_static("HAB-COMBO-1"),
    ),
    Rule(
        id="HAB-STRESS-1",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.ALERT,
        priority=2,
        cooldown_days=7,
        condition=_high_stress_week,
        message=_static("HAB-STRESS-1"),
    ),
    Rule(
        id="HAB-SLEEP-1",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.ALERT,
        priority=2,
        cooldown_days=7,
        condition=_low_sleep_week,
        message=_static("HAB-SLEEP-1"),
    ),
    Rule(
        id="HAB-ALCOHOL-1",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.TIP,
        priority=2,
        cooldown_days=7,
        condition=lambda ctx: _stats_7(ctx).alcohol_days >= 4,
        message=_static("HAB-ALCOHOL-1"),
    ),
]

LEARN_RULES = [
    Rule(
        id="LEARN-1",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.TIP,
        priority=2,
        cooldown_days=7,
        condition=lambda ctx: (
            ctx.learn_progress.days_since_last_learn is not None
            and ctx.learn_progress.days_since_last_learn >= 7
            and bool(ctx.learn_progress.modules_started_not_completed)
        ),
        message=lambda ctx: _text(
            "LEARN-1", module=ctx.learn_progress.modules_started_not_completed[0]
        ),
    ),
    Rule(
        id="LEARN-2",
        triggers=frozenset({Trigger.LESSON_COMPLETED}),
        type=NotificationType.CELEBRATION,
        priority=3,
        cooldown_days=0,
        condition=lambda ctx: True,
        message=lambda ctx: _text(
            "LEARN-2", percent=round(ctx.learn_progress.completion_ratio * 100)
        ),
    ),
    Rule(
        id="LEARN-3",
        triggers=frozenset({Trigger.LESSON_COMPLETED}),
        type=NotificationType.CELEBRATION,
        priority=2,
        cooldown_days=365,
        condition=lambda ctx: (
            ctx.learn_progress.total_lessons > 0
            and ctx.learn_progress.completed_lessons == ctx.learn_progress.total_lessons
        ),
        message=_static("LEARN-3"),
    ),
]

SUMMARY_RULES = [
    Rule(
        id="SUMMARY-WEEKLY-1",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.INSIGHT,
        priority=2,
        cooldown_days=7,
        condition=lambda ctx: _summary_due(ctx.last_weekly_summary_at, ctx.as_of, 7),
        message=_static("SUMMARY-WEEKLY-1"),
    ),
    Rule(
        id="SUMMARY-MONTHLY-1",
        triggers=frozenset({Trigger.DAILY_CHECK}),
        type=NotificationType.INSIGHT,
        priority=2,
        cooldown_days=28,
        condition=lambda ctx: _summary_due(ctx.last_monthly_summary_at, ctx.as_of, 28),
        message=_static("SUMMARY-MONTHLY-1"),
    ),
]

DEFAULT_CATALOG = RuleCatalog(
    PROFILE_RULES
    + LOG_RULES
    + CYCLE_RULES
    + FORM_RULES
    + HABIT_RULES
    + LEARN_RULES
    + SUMMARY_RULES
)
