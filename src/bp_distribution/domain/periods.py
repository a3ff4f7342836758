"""Period Calculator — pure functions over (start, period, duration, now).

Period i (1-based) is scheduled at start + i·P and is due once now reaches
that instant. Nothing beyond the configured duration is ever due: the
remaining wall-clock time past the last period belongs to completion, not to
extra accrual. A start in the future (clock skew) yields nothing due.

All datetimes are expected timezone-aware; naive values are treated as UTC.
"""

from datetime import datetime, timedelta

from src.bp_common.datetime_utils import ensure_utc


def _check_period(period: timedelta) -> None:
    if period <= timedelta(0):
        raise ValueError(f"Period length must be positive, got {period}")


def elapsed_periods(start_at: datetime, period: timedelta, now: datetime) -> int:
    """Whole periods between start and now, floor-divided; never negative."""
    _check_period(period)
    start_at, now = ensure_utc(start_at), ensure_utc(now)
    if now < start_at:
        return 0
    return (now - start_at) // period


def period_instant(start_at: datetime, period: timedelta, index: int) -> datetime:
    if index < 1:
        raise ValueError(f"Period index is 1-based, got {index}")
    return ensure_utc(start_at) + period * index


def scheduled_end(start_at: datetime, period: timedelta, duration_periods: int) -> datetime:
    return ensure_utc(start_at) + period * duration_periods


def due_period_indices(
    start_at: datetime,
    period: timedelta,
    duration_periods: int,
    now: datetime,
) -> list[int]:
    """Ordered indices 1..min(elapsed, duration)."""
    if duration_periods < 0:
        raise ValueError(f"Duration must be non-negative, got {duration_periods}")
    due = min(elapsed_periods(start_at, period, now), duration_periods)
    return list(range(1, due + 1))


def is_duration_reached(
    start_at: datetime,
    period: timedelta,
    duration_periods: int,
    now: datetime,
) -> bool:
    return elapsed_periods(start_at, period, now) >= duration_periods


def next_period_instant(
    start_at: datetime,
    period: timedelta,
    duration_periods: int,
    now: datetime,
) -> datetime | None:
    """When the next period becomes due; None once the last one is due."""
    elapsed = elapsed_periods(start_at, period, now)
    if elapsed >= duration_periods:
        return None
    return period_instant(start_at, period, elapsed + 1)
