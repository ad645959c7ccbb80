"""
Module: billing_engines.cycles
Responsibility:
    Billing cycle scheduler. Given a cycle type and an anchor date, compute
    cycle boundaries and advance from one cycle to the next.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Cycle rules:
    MONTHLY      Ends on min(billing_day, days_in_month) of a month. A date
                 past that day belongs to the next month's cycle.
    QUARTERLY    Calendar-fixed ends: Mar 31, Jun 30, Sep 30, Dec 31.
                 A sales order starting mid-quarter has a short first cycle.
    HALF_YEARLY  Calendar-fixed ends: Jun 30, Dec 31.
    YEARLY       Anchor-relative: a cycle anchored at D ends the day before
                 D + 12 months (Feb 28 for a Feb 29 anchor); each later end
                 is exactly 12 months after the previous end.

Invariants enforced:
    - Windows produced by ``calculate_cycle_window`` and
      ``iter_cycle_windows`` are contiguous and non-overlapping:
      windows[i].end + 1 day == windows[i + 1].start.
    - ``first_cycle_end(d, ...) >= d`` for every cycle type.

Failure modes:
    - UnsupportedBillingCycleError for unknown cycle values (no fallback).
    - MissingBillingDayError when a monthly schedule has no billing day.
    - InvalidBillingDayError when the billing day is outside 1..31.
    - ValueError for a negative cycle index.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date
from itertools import islice

from billing_kernel.domain.agreements import BillingCycle, CycleWindow, SalesOrderTerms
from billing_kernel.domain.engine_config import DEFAULT_CONFIG, EngineConfig
from billing_kernel.exceptions import (
    InvalidBillingDayError,
    MissingBillingDayError,
    UnsupportedBillingCycleError,
)
from billing_kernel.logging_config import get_logger
from billing_engines.intervals import add_months, days_in_month, next_day, previous_day

logger = get_logger("engines.cycles")

_QUARTER_ENDS: tuple[tuple[int, int], ...] = ((3, 31), (6, 30), (9, 30), (12, 31))
_HALF_YEAR_ENDS: tuple[tuple[int, int], ...] = ((6, 30), (12, 31))


def _require_billing_day(billing_day: int | None) -> int:
    if billing_day is None:
        raise MissingBillingDayError()
    if isinstance(billing_day, bool) or not isinstance(billing_day, int):
        raise InvalidBillingDayError(billing_day)
    if not 1 <= billing_day <= 31:
        raise InvalidBillingDayError(billing_day)
    return billing_day


def _billing_date(year: int, month: int, billing_day: int) -> date:
    """The billing day of a month, clamped to the month's length."""
    return date(year, month, min(billing_day, days_in_month(year, month)))


def _first_fixed_end(d: date, ends: tuple[tuple[int, int], ...]) -> date:
    for month, day in ends:
        candidate = date(d.year, month, day)
        if candidate >= d:
            return candidate
    # The last fixed end is Dec 31, so this is unreachable for valid tables.
    month, day = ends[0]
    return date(d.year + 1, month, day)


def resolve_billing_day(
    terms: SalesOrderTerms,
    config: EngineConfig = DEFAULT_CONFIG,
) -> int | None:
    """
    Billing day to schedule ``terms`` with.

    Monthly terms use their own billing day, falling back to the
    configured default. Other cycles have no billing day.
    """
    if terms.cycle is not BillingCycle.MONTHLY:
        return None
    if terms.billing_day is not None:
        return terms.billing_day
    return config.default_billing_day


def first_cycle_end(
    d: date,
    cycle: BillingCycle | str,
    billing_day: int | None = None,
) -> date:
    """
    Earliest cycle end on or after ``d``.

    Args:
        d: Reference date
        cycle: Billing cycle type
        billing_day: Day of month monthly cycles end on (Monthly only)

    Returns:
        The cycle end date (>= d)
    """
    cycle = BillingCycle.parse(cycle)

    if cycle is BillingCycle.MONTHLY:
        bd = _require_billing_day(billing_day)
        end = _billing_date(d.year, d.month, bd)
        if d > end:
            following = add_months(date(d.year, d.month, 1), 1)
            end = _billing_date(following.year, following.month, bd)
        return end

    if cycle is BillingCycle.QUARTERLY:
        return _first_fixed_end(d, _QUARTER_ENDS)

    if cycle is BillingCycle.HALF_YEARLY:
        return _first_fixed_end(d, _HALF_YEAR_ENDS)

    if cycle is BillingCycle.YEARLY:
        anniversary = add_months(d, 12)
        if anniversary.day != d.day:
            # Feb 29 anchor: no anniversary, the cycle runs through Feb 28
            return anniversary
        return previous_day(anniversary)

    raise UnsupportedBillingCycleError(cycle)


def next_cycle_end(
    prev_end: date,
    cycle: BillingCycle | str,
    billing_day: int | None = None,
) -> date:
    """End of the cycle that follows the cycle ending on ``prev_end``."""
    cycle = BillingCycle.parse(cycle)
    if cycle is BillingCycle.YEARLY:
        return add_months(prev_end, 12)
    return first_cycle_end(next_day(prev_end), cycle, billing_day)


def cycle_start_for(
    d: date,
    cycle: BillingCycle | str,
    billing_day: int | None = None,
) -> date:
    """
    Start of the cycle that contains ``d``.

    For the billing-day and calendar-fixed cycles this is the day after the
    previous boundary, so it may precede ``d``. Yearly cycles are
    anchor-relative, so ``d`` itself starts the cycle.
    """
    cycle = BillingCycle.parse(cycle)

    if cycle is BillingCycle.MONTHLY:
        bd = _require_billing_day(billing_day)
        end = first_cycle_end(d, cycle, bd)
        prior = add_months(date(end.year, end.month, 1), -1)
        return next_day(_billing_date(prior.year, prior.month, bd))

    if cycle is BillingCycle.QUARTERLY:
        return date(d.year, ((d.month - 1) // 3) * 3 + 1, 1)

    if cycle is BillingCycle.HALF_YEARLY:
        return date(d.year, 1 if d.month <= 6 else 7, 1)

    if cycle is BillingCycle.YEARLY:
        return d

    raise UnsupportedBillingCycleError(cycle)


def iter_cycle_windows(
    anchor: date,
    cycle: BillingCycle | str,
    billing_day: int | None = None,
    until: date | None = None,
) -> Iterator[CycleWindow]:
    """
    Yield contiguous cycle windows starting at ``anchor``.

    Window 0 runs from ``anchor`` to ``first_cycle_end(anchor)``; each later
    window starts the day after the previous one ends. Iteration stops
    before the first window starting after ``until``; with no ``until`` the
    generator is unbounded.
    """
    cycle = BillingCycle.parse(cycle)
    start = anchor
    end = first_cycle_end(anchor, cycle, billing_day)
    while until is None or start <= until:
        yield CycleWindow(start, end)
        start = next_day(end)
        end = next_cycle_end(end, cycle, billing_day)


def calculate_cycle_window(
    anchor: date,
    cycle_index: int,
    cycle: BillingCycle | str,
    billing_day: int | None = None,
) -> CycleWindow:
    """
    The ``cycle_index``-th window of a schedule anchored at ``anchor``.

    Window 0 starts at ``anchor``; window n starts the day after window
    n-1 ends.

    Raises:
        ValueError: If cycle_index is negative.
    """
    if cycle_index < 0:
        raise ValueError(f"cycle_index must be non-negative, got {cycle_index}")

    window = next(islice(iter_cycle_windows(anchor, cycle, billing_day), cycle_index, None))
    logger.debug("cycle_window_calculated", extra={
        "anchor": anchor.isoformat(),
        "cycle": BillingCycle.parse(cycle).value,
        "cycle_index": cycle_index,
        "window_start": window.start.isoformat(),
        "window_end": window.end.isoformat(),
    })
    return window
