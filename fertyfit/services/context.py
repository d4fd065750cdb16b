"""
Service module for assembling rule contexts.

A RuleContext is built fresh for every trigger invocation from the user's
profile, daily logs, consultation forms and course progress. Building is
read-only: none of the inputs are modified.

Typical usage:
    context = build_rule_context(user, logs, course_modules, forms=forms, progress=progress)
    report = engine.evaluate(Trigger.DAILY_CHECK, context)
"""
from typing import Iterable, List, Optional, Sequence
from datetime import date, datetime
from aws_lambda_powertools import Logger

from fertyfit.config import EngineSettings, get_settings
from fertyfit.models.course import CourseModule, LessonProgress
from fertyfit.models.daily_log import DailyLog
from fertyfit.models.form import ConsultationForm, FormState, FormStatus, FormsStatus, FormType
from fertyfit.models.profile import UserProfile
from fertyfit.models.rule import LearnProgress, RuleContext
from fertyfit.services.cycle import calculate_months_trying, compute_cycle_snapshot
from fertyfit.services.utils import (
    calculate_daily_log_streak,
    calculate_days_since_last_log,
    calculate_window_stats,
    days_since,
    get_latest_log,
)

logger = Logger()

def calculate_f0_status(user: UserProfile) -> FormStatus:
    """
    Derive the F0 intake form status from the profile.

    F0 is complete when age, weight, height and last period date are all
    present, partial when some of them are, and not started otherwise.
    """
    required = [user.age, user.weight, user.height, user.last_period_date]
    present = sum(1 for value in required if value is not None)

    if present == len(required):
        return FormStatus(state=FormState.COMPLETE, completion_percent=100)
    if present:
        return FormStatus(
            state=FormState.PARTIAL,
            completion_percent=round(100 * present / len(required))
        )
    return FormStatus()

def calculate_form_status(forms: Iterable[ConsultationForm], form_type: FormType) -> FormStatus:
    """
    Derive the status of a pillar form from the submitted forms.

    The most recently submitted form of the type is used. A form without
    answers counts as not started.
    """
    matching = [form for form in forms if form.form_type == form_type]
    if not matching:
        return FormStatus()

    latest = max(matching, key=lambda form: form.submitted_at or datetime.min)
    if not latest.answers:
        return FormStatus(last_updated_at=latest.submitted_at)

    state = FormState.COMPLETE if latest.completion_percent >= 100 else FormState.PARTIAL
    return FormStatus(
        state=state,
        last_updated_at=latest.submitted_at,
        completion_percent=latest.completion_percent
    )

def calculate_forms_status(user: UserProfile, forms: Sequence[ConsultationForm]) -> FormsStatus:
    """Derive the status of every form type."""
    return FormsStatus(
        f0=calculate_f0_status(user),
        function=calculate_form_status(forms, FormType.FUNCTION),
        food=calculate_form_status(forms, FormType.FOOD),
        flora=calculate_form_status(forms, FormType.FLORA),
        flow=calculate_form_status(forms, FormType.FLOW),
    )

def calculate_learn_progress(
    course_modules: Sequence[CourseModule],
    progress: Sequence[LessonProgress],
    as_of: date
) -> LearnProgress:
    """
    Calculate learning progress across course modules.

    Args:
        course_modules: Course modules with their lessons
        progress: Completed lesson records for the user
        as_of: Reference date

    Returns:
        LearnProgress with completion ratio, recency and unfinished modules
    """
    completed_ids = {record.lesson_id for record in progress}
    lesson_ids = [lesson.id for module in course_modules for lesson in module.lessons]
    completed = sum(1 for lesson_id in lesson_ids if lesson_id in completed_ids)

    last_completed = max((record.completed_at for record in progress), default=None)

    unfinished: List[str] = []
    for module in sorted(course_modules, key=lambda m: m.order_index):
        module_ids = [lesson.id for lesson in module.lessons]
        started = any(lesson_id in completed_ids for lesson_id in module_ids)
        finished = all(lesson_id in completed_ids for lesson_id in module_ids)
        if started and not finished:
            unfinished.append(module.title)

    return LearnProgress(
        total_lessons=len(lesson_ids),
        completed_lessons=completed,
        completion_ratio=completed / len(lesson_ids) if lesson_ids else 0.0,
        days_since_last_learn=days_since(last_completed, as_of),
        modules_started_not_completed=unfinished,
    )

def build_rule_context(
    user: UserProfile,
    logs: Sequence[DailyLog],
    course_modules: Sequence[CourseModule] = (),
    *,
    forms: Sequence[ConsultationForm] = (),
    progress: Sequence[LessonProgress] = (),
    last_weekly_summary_at: Optional[datetime] = None,
    last_monthly_summary_at: Optional[datetime] = None,
    saved_log: Optional[DailyLog] = None,
    as_of: Optional[date] = None,
    settings: Optional[EngineSettings] = None
) -> RuleContext:
    """
    Build the immutable rule context for one evaluation pass.

    Cycle fields are only populated when the profile has a last period date.
    A missing cycle length is replaced by the configured default and
    flagged through using_default_cycle.

    Args:
        user: User profile
        logs: Daily logs (any order, may be sparse)
        course_modules: Course modules for learning progress
        forms: Submitted consultation forms
        progress: Completed lesson records
        last_weekly_summary_at: When the weekly summary last fired
        last_monthly_summary_at: When the monthly summary last fired
        saved_log: Log saved by the DAILY_LOG_SAVE that started this pass
        as_of: Reference date, defaults to today
        settings: Engine settings, defaults to environment settings

    Returns:
        RuleContext snapshot
    """
    if as_of is None:
        as_of = date.today()
    settings = settings or get_settings()
    logs = list(logs)

    snapshot = compute_cycle_snapshot(user, as_of, settings)
    cycle_fields = {}
    if snapshot.has_period_date:
        elapsed = (as_of - user.last_period_date).days
        cycle_fields = {
            "current_cycle_day": snapshot.cycle_day,
            "elapsed_cycle_day": elapsed + 1 if elapsed >= 0 else None,
            "cycle_length": snapshot.cycle_length,
            "fertile_window": snapshot.fertile_window,
            "next_period_date": snapshot.next_period.date,
            "days_until_next_period": snapshot.next_period.days_until,
            "conception_probability": snapshot.conception_probability,
        }

    context = RuleContext(
        user_id=user.user_id,
        as_of=as_of,
        age=user.age,
        weight=user.weight,
        height=user.height,
        previous_weight=user.previous_weight,
        months_trying=calculate_months_trying(
            user.time_trying_start_date, user.time_trying_initial_months, as_of
        ),
        using_default_cycle=snapshot.using_default,
        latest_log=get_latest_log(logs, as_of),
        saved_log=saved_log,
        days_since_last_daily_log=calculate_days_since_last_log(logs, as_of),
        daily_log_streak=calculate_daily_log_streak(logs, as_of),
        last_3_days=calculate_window_stats(logs, as_of, 3),
        last_7_days=calculate_window_stats(logs, as_of, 7),
        last_14_days=calculate_window_stats(logs, as_of, 14),
        forms_status=calculate_forms_status(user, forms),
        learn_progress=calculate_learn_progress(course_modules, progress, as_of),
        last_weekly_summary_at=last_weekly_summary_at,
        last_monthly_summary_at=last_monthly_summary_at,
        **cycle_fields,
    )

    logger.debug("Built rule context", extra={
        "user_id": user.user_id,
        "as_of": as_of.isoformat(),
        "cycle_day": context.current_cycle_day,
        "using_default_cycle": context.using_default_cycle,
        "log_count": len(logs)
    })
    return context
