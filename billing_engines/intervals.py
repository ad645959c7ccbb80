"""
Module: billing_engines.intervals
Responsibility:
    Date-only calendar and interval arithmetic shared by every billing
    engine: days in a month, inclusive and exclusive day counts, interval
    intersection, month arithmetic and splitting an interval at calendar
    month boundaries.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel.

Invariants enforced:
    - All intervals are inclusive on both ends.
    - ``month_segments`` returns contiguous, non-overlapping segments whose
      inclusive day counts sum to the day count of the input interval.

Failure modes:
    - InvalidIntervalError when start > end where an interval is required.
"""

from __future__ import annotations

from calendar import monthrange
from datetime import date, timedelta

from billing_kernel.domain.agreements import CycleWindow
from billing_kernel.exceptions import InvalidIntervalError

_ONE_DAY = timedelta(days=1)


def days_in_month(year: int, month: int) -> int:
    """Number of days in the given calendar month (leap-year aware)."""
    return monthrange(year, month)[1]


def last_day_of_month(d: date) -> date:
    return date(d.year, d.month, days_in_month(d.year, d.month))


def next_day(d: date) -> date:
    return d + _ONE_DAY


def previous_day(d: date) -> date:
    return d - _ONE_DAY


def inclusive_day_count(start: date, end: date) -> int:
    """
    Count days in [start, end], both ends included.

    Raises:
        InvalidIntervalError: If start > end.
    """
    if start > end:
        raise InvalidIntervalError(start, end)
    return (end - start).days + 1


def day_count(start: date, end: date) -> int:
    """Days from start up to (but excluding) end. May be negative."""
    return (end - start).days


def add_months(d: date, months: int) -> date:
    """Shift by whole calendar months, clamping the day to the target month."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(d.day, days_in_month(year, month)))


def intersect(
    a_start: date,
    a_end: date,
    b_start: date,
    b_end: date,
) -> CycleWindow | None:
    """Overlap of two inclusive intervals, or None when they are disjoint."""
    start = max(a_start, b_start)
    end = min(a_end, b_end)
    if start > end:
        return None
    return CycleWindow(start, end)


def month_segments(start: date, end: date) -> tuple[CycleWindow, ...]:
    """
    Split [start, end] at calendar month boundaries.

    Example:
        2025-05-20..2025-07-24 ->
        (05-20..05-31, 06-01..06-30, 07-01..07-24)

    Raises:
        InvalidIntervalError: If start > end.
    """
    if start > end:
        raise InvalidIntervalError(start, end)

    segments: list[CycleWindow] = []
    current = start
    while current <= end:
        segment_end = min(last_day_of_month(current), end)
        segments.append(CycleWindow(current, segment_end))
        current = next_day(segment_end)
    return tuple(segments)
