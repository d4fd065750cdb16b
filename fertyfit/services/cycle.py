"""
Service module for menstrual cycle arithmetic.

This module provides the pure date calculations the rule engine is built on:
cycle day, fertile window, next period date and conception probability. It
also contains the profile adjustments applied when a user confirms or delays
a period.

None of the calculation functions raise on missing or invalid cycle data.
They fall back to documented defaults and report that through a
``using_default`` flag so callers can show non-committal guidance.

Typical usage:
    snapshot = compute_cycle_snapshot(profile, as_of=date.today())
    if snapshot.using_default:
        ...
    window = snapshot.fertile_window
"""
import math
from typing import List, Optional, Tuple
from datetime import date, timedelta
from statistics import mean
from pydantic import BaseModel, ConfigDict

from fertyfit.config import DEFAULT_CYCLE_LENGTH, DEFAULT_LUTEAL_PHASE_LENGTH, EngineSettings
from fertyfit.models.profile import UserProfile
from fertyfit.models.rule import FertileWindow
from fertyfit.services.constants import (
    CONCEPTION_PROBABILITY_BY_OFFSET,
    FERTILE_DAYS_BEFORE_OVULATION,
    FERTILITY_NOTIFICATION_MAX_AGE,
    MAX_CYCLE_LENGTH,
    MAX_PERIOD_HISTORY,
    PLAUSIBLE_AVERAGE_CYCLE_RANGE,
)

class NextPeriod(BaseModel):
    """
    Expected start of the next period.
    """
    model_config = ConfigDict(frozen=True)

    date: date
    days_until: int

class CycleSnapshot(BaseModel):
    """
    All cycle values for one user on one date.
    """
    model_config = ConfigDict(frozen=True)

    cycle_day: int
    cycle_length: int
    using_default: bool
    has_period_date: bool
    fertile_window: FertileWindow
    current_cycle_start: Optional[date] = None
    next_period: Optional[NextPeriod] = None
    days_until_ovulation: int
    conception_probability: int

def _is_valid_cycle_length(cycle_length) -> bool:
    return (
        isinstance(cycle_length, int)
        and not isinstance(cycle_length, bool)
        and 1 <= cycle_length <= MAX_CYCLE_LENGTH
    )

def resolve_cycle_length(
    cycle_length: Optional[int],
    default: int = DEFAULT_CYCLE_LENGTH
) -> Tuple[int, bool]:
    """
    Return the cycle length to use and whether it is a default.

    Args:
        cycle_length: Cycle length from the profile, possibly missing
        default: Length substituted when the profile value is missing or invalid

    Returns:
        Tuple of (cycle length, using_default flag)

    Example:
        >>> resolve_cycle_length(None)
        (28, True)
        >>> resolve_cycle_length(31)
        (31, False)
    """
    if _is_valid_cycle_length(cycle_length):
        return cycle_length, False
    return default, True

def compute_cycle_day(
    last_period_date: Optional[date],
    cycle_length: Optional[int],
    as_of: Optional[date] = None
) -> int:
    """
    Calculate the 1-based day of the current cycle.

    Elapsed whole days since the last period are reduced modulo the cycle
    length, so the result stays in [1, cycle_length] no matter how many
    cycles have passed since the last period was recorded.

    Args:
        last_period_date: First day of the last recorded period
        cycle_length: Cycle length in days
        as_of: Date to calculate for, defaults to today

    Returns:
        Cycle day, or 1 if inputs are missing/invalid or the period date is in the future

    Example:
        >>> compute_cycle_day(date(2024, 1, 1), 28, date(2024, 1, 15))
        15
    """
    if as_of is None:
        as_of = date.today()
    if last_period_date is None or not _is_valid_cycle_length(cycle_length):
        return 1
    if last_period_date > as_of:
        return 1

    elapsed = (as_of - last_period_date).days
    return (elapsed % cycle_length) + 1

def compute_fertile_window(
    cycle_length: Optional[int],
    luteal_phase_length: int = DEFAULT_LUTEAL_PHASE_LENGTH
) -> FertileWindow:
    """
    Calculate the fertile window for a cycle length.

    Ovulation is back-computed from the luteal phase length; the window spans
    the five days before ovulation through the day after, clamped to the
    cycle so that 1 <= inicio <= dia_ovulacion <= fin <= cycle_length.

    Args:
        cycle_length: Cycle length in days (default length used if invalid)
        luteal_phase_length: Assumed days between ovulation and next period

    Returns:
        FertileWindow with inicio, fin and dia_ovulacion

    Example:
        >>> window = compute_fertile_window(28)
        >>> (window.inicio, window.dia_ovulacion, window.fin)
        (9, 14, 15)
    """
    length, _ = resolve_cycle_length(cycle_length)
    luteal = max(0, luteal_phase_length)

    dia_ovulacion = max(1, length - luteal)
    inicio = max(1, dia_ovulacion - FERTILE_DAYS_BEFORE_OVULATION)
    fin = min(length, dia_ovulacion + 1)
    return FertileWindow(inicio=inicio, fin=fin, dia_ovulacion=dia_ovulacion)

def compute_current_cycle_start(
    last_period_date: Optional[date],
    cycle_length: Optional[int],
    as_of: Optional[date] = None
) -> Optional[date]:
    """
    Calculate the first day of the cycle that contains as_of.

    This differs from last_period_date when several cycles passed without
    the user recording a new period.

    Returns:
        Start date of the current cycle, or None if no period date is known
    """
    if as_of is None:
        as_of = date.today()
    if last_period_date is None:
        return None
    length, _ = resolve_cycle_length(cycle_length)
    if last_period_date >= as_of:
        return last_period_date

    completed_cycles = (as_of - last_period_date).days // length
    return last_period_date + timedelta(days=completed_cycles * length)

def compute_next_period_date(
    last_period_date: Optional[date],
    cycle_length: Optional[int],
    as_of: Optional[date] = None
) -> Optional[NextPeriod]:
    """
    Calculate the expected next period.

    Returns the smallest date of the form last_period_date + N * cycle_length
    that is on or after as_of.

    Args:
        last_period_date: First day of the last recorded period
        cycle_length: Cycle length in days (default length used if invalid)
        as_of: Reference date, defaults to today

    Returns:
        NextPeriod with date and days_until (>= 0), or None without a period date

    Example:
        >>> compute_next_period_date(date(2024, 1, 1), 28, date(2024, 1, 15))
        NextPeriod(date=datetime.date(2024, 1, 29), days_until=14)
    """
    if as_of is None:
        as_of = date.today()
    if last_period_date is None:
        return None
    length, _ = resolve_cycle_length(cycle_length)

    elapsed = (as_of - last_period_date).days
    cycles = math.ceil(elapsed / length) if elapsed > 0 else 0
    next_date = last_period_date + timedelta(days=cycles * length)
    return NextPeriod(date=next_date, days_until=(next_date - as_of).days)

def compute_conception_probability(day_offset_from_ovulation: int) -> int:
    """
    Look up the conception probability for a day relative to ovulation.

    The curve rises over the five days before ovulation, peaks on the day of
    ovulation and drops sharply after the following day.

    Args:
        day_offset_from_ovulation: cycle_day - dia_ovulacion

    Returns:
        Probability as an integer percentage

    Example:
        >>> compute_conception_probability(0)
        33
        >>> compute_conception_probability(3)
        0
    """
    return CONCEPTION_PROBABILITY_BY_OFFSET.get(day_offset_from_ovulation, 0)

def compute_cycle_snapshot(
    profile: UserProfile,
    as_of: Optional[date] = None,
    settings: Optional[EngineSettings] = None
) -> CycleSnapshot:
    """
    Calculate every cycle value for a profile on a given date.

    Args:
        profile: User profile
        as_of: Reference date, defaults to today
        settings: Engine settings providing default and luteal lengths

    Returns:
        CycleSnapshot; using_default is set when the cycle length was substituted
    """
    if as_of is None:
        as_of = date.today()
    settings = settings or EngineSettings()

    cycle_length, using_default = resolve_cycle_length(
        profile.cycle_length, settings.default_cycle_length
    )
    window = compute_fertile_window(cycle_length, settings.luteal_phase_length)
    cycle_day = compute_cycle_day(profile.last_period_date, cycle_length, as_of)

    return CycleSnapshot(
        cycle_day=cycle_day,
        cycle_length=cycle_length,
        using_default=using_default,
        has_period_date=profile.last_period_date is not None,
        fertile_window=window,
        current_cycle_start=compute_current_cycle_start(
            profile.last_period_date, cycle_length, as_of
        ),
        next_period=compute_next_period_date(profile.last_period_date, cycle_length, as_of),
        days_until_ovulation=window.dia_ovulacion - cycle_day,
        conception_probability=compute_conception_probability(cycle_day - window.dia_ovulacion),
    )

def calculate_average_cycle_length(period_starts: List[date]) -> Optional[int]:
    """
    Calculate the average cycle length from period start dates.

    Args:
        period_starts: Period start dates in any order

    Returns:
        Rounded mean gap between consecutive starts, or None with fewer than 2 starts
    """
    starts = sorted(set(period_starts))
    if len(starts) < 2:
        return None
    gaps = [(later - earlier).days for earlier, later in zip(starts, starts[1:])]
    return round(mean(gaps))

def confirm_period(profile: UserProfile, new_period_date: date) -> UserProfile:
    """
    Apply a confirmed period start to a profile.

    The date is added to the period history (newest first, capped at 12
    entries, no duplicates). With two or more starts the cycle length is
    recalculated; it is only replaced when the average is physiologically
    plausible (21-45 days).

    Args:
        profile: Current profile
        new_period_date: First day of the confirmed period

    Returns:
        Updated copy of the profile
    """
    history = list(profile.period_history)
    if new_period_date not in history:
        history = [new_period_date] + history
    history = sorted(history, reverse=True)[:MAX_PERIOD_HISTORY]

    cycle_length = profile.cycle_length
    average = calculate_average_cycle_length(history)
    low, high = PLAUSIBLE_AVERAGE_CYCLE_RANGE
    if average is not None and low <= average <= high:
        cycle_length = average

    return profile.model_copy(update={
        "last_period_date": new_period_date,
        "period_history": history,
        "cycle_length": cycle_length,
    })

def delay_period(
    profile: UserProfile,
    days_to_add: int,
    fallback_length: int = DEFAULT_CYCLE_LENGTH
) -> UserProfile:
    """
    Lengthen the cycle after the user reports a late period.

    Args:
        profile: Current profile
        days_to_add: Days of delay reported (must be positive)
        fallback_length: Base length when the profile has none

    Returns:
        Updated copy of the profile

    Raises:
        ValueError: If days_to_add is not positive
    """
    if days_to_add <= 0:
        raise ValueError("days_to_add must be positive")
    base = profile.cycle_length or fallback_length
    return profile.model_copy(update={
        "cycle_length": min(MAX_CYCLE_LENGTH, base + days_to_add)
    })

def calculate_months_trying(
    start_date: Optional[date],
    initial_months: Optional[int],
    as_of: Optional[date] = None
) -> Optional[int]:
    """
    Calculate total months trying to conceive.

    Args:
        start_date: Date the initial months value was recorded
        initial_months: Months trying reported at registration
        as_of: Reference date, defaults to today

    Returns:
        initial_months plus whole calendar months since start_date, or None without start_date
    """
    if start_date is None:
        return None
    if as_of is None:
        as_of = date.today()
    months_diff = (as_of.year - start_date.year) * 12 + (as_of.month - start_date.month)
    return (initial_months or 0) + max(0, months_diff)

def should_send_fertility_notifications(age: Optional[int]) -> bool:
    """Fertile-window notifications are not sent from age 50 on."""
    return age is None or age < FERTILITY_NOTIFICATION_MAX_AGE
