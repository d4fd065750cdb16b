"""
Shared utility functions for context-building services.

These helpers aggregate daily logs by calendar date. Logs may arrive sparse
and in any order, so every calculation works on actual dates rather than
list positions.
"""
from typing import Dict, List, Optional, Tuple
from datetime import date, datetime, timedelta

from fertyfit.models.daily_log import DailyLog
from fertyfit.models.rule import WindowStats
from fertyfit.services.constants import (
    BMI_CATEGORIES,
    HIGH_STRESS_LEVEL,
    LOW_SLEEP_HOURS,
    NO_LOG_DAYS,
)

def logs_by_date(logs: List[DailyLog], as_of: Optional[date] = None) -> Dict[date, DailyLog]:
    """
    Index logs by calendar date.

    Args:
        logs: Daily logs in any order
        as_of: If given, logs dated after this day are ignored

    Returns:
        Dictionary mapping date to log; a later duplicate for the same date wins

    Example:
        >>> indexed = logs_by_date(logs, as_of=date(2024, 1, 15))
        >>> today_log = indexed.get(date(2024, 1, 15))
    """
    indexed: Dict[date, DailyLog] = {}
    for log in logs:
        if as_of is not None and log.date > as_of:
            continue
        indexed[log.date] = log
    return indexed

def get_latest_log(logs: List[DailyLog], as_of: date) -> Optional[DailyLog]:
    """Return the most recent log on or before as_of."""
    indexed = logs_by_date(logs, as_of)
    if not indexed:
        return None
    return indexed[max(indexed)]

def calculate_days_since_last_log(logs: List[DailyLog], as_of: date) -> int:
    """
    Calculate the calendar gap between as_of and the latest log.

    Args:
        logs: Daily logs in any order
        as_of: Reference date

    Returns:
        Days since the latest log (0 if logged today), NO_LOG_DAYS if never logged
    """
    latest = get_latest_log(logs, as_of)
    if latest is None:
        return NO_LOG_DAYS
    return (as_of - latest.date).days

def calculate_daily_log_streak(logs: List[DailyLog], as_of: date) -> int:
    """
    Count consecutive calendar days with a log.

    The streak ends at as_of, or at the day before when nothing has been
    logged yet today, so a streak is not reported as broken before the day
    is over. Any missing calendar day ends the streak.

    Args:
        logs: Daily logs in any order
        as_of: Reference date

    Returns:
        Length of the streak in days

    Example:
        >>> # logs on Jan 13, 14, 15 and Jan 10
        >>> calculate_daily_log_streak(logs, date(2024, 1, 15))
        3
    """
    logged_dates = set(logs_by_date(logs, as_of))
    if not logged_dates:
        return 0

    cursor = as_of if as_of in logged_dates else as_of - timedelta(days=1)
    streak = 0
    while cursor in logged_dates:
        streak += 1
        cursor -= timedelta(days=1)
    return streak

def _average(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None

def calculate_window_stats(logs: List[DailyLog], as_of: date, days: int) -> WindowStats:
    """
    Aggregate lifestyle metrics over the trailing window of calendar days.

    The window covers as_of and the (days - 1) days before it. Days without
    a log simply contribute nothing; the averages are taken over the logs
    that fall inside the window.

    Args:
        logs: Daily logs in any order
        as_of: Last day of the window
        days: Window size in calendar days

    Returns:
        WindowStats for the window
    """
    start = as_of - timedelta(days=days - 1)
    window_logs = [
        log for log_date, log in logs_by_date(logs, as_of).items()
        if log_date >= start
    ]

    sleep_values = [
        log.sleep_hours for log in window_logs
        if log.sleep_hours is not None and log.sleep_hours > 0
    ]
    stress_values = [log.stress_level for log in window_logs if log.stress_level is not None]
    water_values = [log.water_glasses for log in window_logs if log.water_glasses is not None]
    veggie_values = [log.veggie_servings for log in window_logs if log.veggie_servings is not None]

    return WindowStats(
        days=days,
        logged_days=len(window_logs),
        avg_sleep_hours=_average(sleep_values),
        avg_stress_level=_average(stress_values),
        alcohol_days=sum(1 for log in window_logs if log.alcohol),
        low_sleep_days=sum(1 for hours in sleep_values if hours < LOW_SLEEP_HOURS),
        high_stress_days=sum(1 for level in stress_values if level >= HIGH_STRESS_LEVEL),
        avg_water_glasses=_average(water_values),
        avg_veggie_servings=_average(veggie_values),
    )

def days_since(moment: Optional[datetime], as_of: date) -> Optional[int]:
    """Whole calendar days between a timestamp and as_of, None if no timestamp."""
    if moment is None:
        return None
    return (as_of - moment.date()).days

def calculate_bmi(weight: Optional[float], height_cm: Optional[float]) -> Optional[Tuple[float, str]]:
    """
    Calculate body mass index and its category.

    Args:
        weight: Weight in kilograms
        height_cm: Height in centimetres

    Returns:
        Tuple of (BMI rounded to one decimal, category), or None if data is missing

    Example:
        >>> calculate_bmi(60, 165)
        (22.0, 'Normal')
    """
    if not weight or not height_cm:
        return None
    height_m = height_cm / 100
    value = round(weight / (height_m * height_m), 1)
    for upper_bound, category in BMI_CATEGORIES:
        if value < upper_bound:
            return value, category
    return value, BMI_CATEGORIES[-1][1]
