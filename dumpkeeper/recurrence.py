"""
Recurrence calculation for backup jobs.

Computes the next execution time of a job from its frequency and its
time-of-day anchor. The anchor baseline depends on the frequency band:

- under 1 day: every day restarts at the anchor time
- exactly 1 day: once a day at the anchor time
- up to 15 days: the first day of the current month at the anchor time
- over 15 days: January 1 of the current year at the anchor time
"""

from datetime import datetime, time, timedelta


MIN_FREQUENCY = timedelta(minutes=30)
MAX_FREQUENCY = timedelta(days=365)
ONE_DAY = timedelta(days=1)
MONTH_ANCHOR_LIMIT = timedelta(days=15)


def clamp_frequency(frequency: timedelta) -> timedelta:
    """
    Clamp a frequency into the supported band.

    Seconds are dropped first, then anything under 30 minutes becomes
    30 minutes and anything over 365 days becomes 365 days.

    Args:
        frequency: Configured frequency

    Returns:
        Frequency in whole minutes within [30 minutes, 365 days]
    """
    whole_minutes = timedelta(minutes=int(frequency.total_seconds() // 60))

    if whole_minutes < MIN_FREQUENCY:
        return MIN_FREQUENCY
    if whole_minutes > MAX_FREQUENCY:
        return MAX_FREQUENCY
    return whole_minutes


def get_next_run_time(frequency: timedelta, time_of_day: time, now: datetime) -> datetime:
    """
    Calculate the next time a job should run.

    A computed boundary equal to ``now`` is returned as-is, so calling this
    again with its own result yields the same instant.

    Args:
        frequency: How often the job runs (clamped, never rejected)
        time_of_day: Anchor time; seconds are ignored
        now: Current local time

    Returns:
        Next run time, always >= now
    """
    frequency = clamp_frequency(frequency)
    offset = timedelta(hours=time_of_day.hour, minutes=time_of_day.minute)
    today = datetime(now.year, now.month, now.day)

    if frequency < ONE_DAY:
        return _next_within_day(frequency, today + offset, now)

    if frequency == ONE_DAY:
        baseline = today + offset
        if now <= baseline:
            return baseline
        return baseline + ONE_DAY

    if frequency <= MONTH_ANCHOR_LIMIT:
        month_start = datetime(now.year, now.month, 1)
        return _next_within_period(frequency, month_start, add_months(month_start, 1), offset, now)

    year_start = datetime(now.year, 1, 1)
    return _next_within_period(frequency, year_start, datetime(now.year + 1, 1, 1), offset, now)


def _next_within_day(frequency: timedelta, today_baseline: datetime, now: datetime) -> datetime:
    """Sub-daily schedule: runs restart from the anchor every day."""
    # Before today's anchor we are still inside yesterday's cycle
    baseline = today_baseline if now >= today_baseline else today_baseline - ONE_DAY

    candidate = baseline + ((now - baseline) // frequency) * frequency
    if candidate == now:
        return now

    candidate += frequency
    if candidate > baseline + ONE_DAY:
        return baseline + ONE_DAY
    return candidate


def _next_within_period(frequency: timedelta, period_start: datetime,
                        period_end: datetime, offset: timedelta, now: datetime) -> datetime:
    """Multi-day schedule anchored to a month or year start."""
    baseline = period_start + offset
    if now <= baseline:
        return baseline

    candidate = baseline + ((now - baseline) // frequency) * frequency
    if candidate >= now:
        return candidate

    candidate += frequency
    if candidate >= period_end:
        # Never overshoot into the next period, restart from its baseline
        return period_end + offset
    return candidate


def add_months(month_start: datetime, months: int) -> datetime:
    """Shift a first-of-month datetime by a number of months."""
    month_index = month_start.year * 12 + (month_start.month - 1) + months
    return month_start.replace(year=month_index // 12, month=month_index % 12 + 1)
