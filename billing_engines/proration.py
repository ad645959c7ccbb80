"""
billing_engines.proration -- Month-by-month proration of a full-cycle amount.

Responsibility:
    Apportion a full-cycle monetary value to the part of a billing window a
    usage interval actually covers.  Full coverage returns the amount
    untouched; partial coverage is priced one calendar month at a time.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel and billing_engines.intervals.
    Consumed by the invoice generator and the aggregator.

Invariants enforced:
    - Full-cycle coverage never goes through fractional rounding:
      ``amount == full_amount`` exactly and ``reason == FULL_CYCLE``.
    - Each monthly segment is rounded to 2 decimal places and the total is
      the sum of the rounded segments, so
      ``sum(s.amount for s in monthly_breakdown) == amount`` to the cent.
    - No overlap is a valid zero result, not an error.

Denominator strategies (``ProrationDenominator``):
    DAYS_IN_MONTH  fraction = active_days / days_in_month (default)
    BILLING_DAY    fraction = active_days / min(billing_day, days_in_month);
                   falls back to days_in_month when no billing day applies

Failure modes:
    - InvalidIntervalError if the usage or window interval is inverted.
    - ValueError for a negative full amount.
    - TypeError for a float full amount.

Usage:
    from datetime import date
    from decimal import Decimal
    from billing_engines.proration import prorate

    result = prorate(
        date(2025, 5, 20), date(2025, 7, 24),
        date(2025, 5, 1), date(2025, 7, 31),
        Decimal("4000"),
    )
    result.amount  # Decimal("8645.16")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from billing_kernel.domain.engine_config import ProrationDenominator
from billing_kernel.exceptions import InvalidIntervalError
from billing_kernel.logging_config import get_logger
from billing_engines.intervals import days_in_month, intersect, month_segments

logger = get_logger("engines.proration")

_TWO_PLACES = Decimal("0.01")
_ZERO = Decimal("0.00")


class ProrationReason(str, Enum):
    """How a proration amount was arrived at."""

    FULL_CYCLE = "full_cycle"
    PRORATED = "prorated"
    NO_OVERLAP = "no_overlap"


@dataclass(frozen=True)
class MonthlySegment:
    """One calendar month's share of a prorated amount."""

    year: int
    month: int
    start: date
    end: date
    active_days: int
    days_in_month: int
    denominator: int
    fraction: Decimal
    amount: Decimal


@dataclass(frozen=True)
class ProrationResult:
    """
    Result of prorating a full-cycle amount against a window.

    ``monthly_breakdown`` is empty unless ``reason`` is PRORATED.
    """

    amount: Decimal
    reason: ProrationReason
    full_amount: Decimal
    overlap_start: date | None = None
    overlap_end: date | None = None
    monthly_breakdown: tuple[MonthlySegment, ...] = field(default_factory=tuple)

    @property
    def is_full_cycle(self) -> bool:
        return self.reason is ProrationReason.FULL_CYCLE

    @property
    def is_prorated(self) -> bool:
        return self.reason is ProrationReason.PRORATED

    @property
    def active_days(self) -> int:
        """Days of the window covered by usage (0 when there is no overlap)."""
        if self.overlap_start is None or self.overlap_end is None:
            return 0
        return (self.overlap_end - self.overlap_start).days + 1


def _coerce_amount(value: Decimal | int | str) -> Decimal:
    if isinstance(value, float):
        raise TypeError("full_amount must be Decimal, not float")
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    if amount < 0:
        raise ValueError(f"full_amount must be non-negative, got {amount}")
    return amount


def segment_denominator(
    year: int,
    month: int,
    denominator: ProrationDenominator,
    billing_day: int | None = None,
) -> int:
    """Day count a month's active days are divided by."""
    dim = days_in_month(year, month)
    if denominator is ProrationDenominator.BILLING_DAY and billing_day is not None:
        return min(billing_day, dim)
    return dim


def prorate(
    usage_start: date,
    usage_end: date,
    window_start: date,
    window_end: date,
    full_amount: Decimal,
    *,
    denominator: ProrationDenominator | str = ProrationDenominator.DAYS_IN_MONTH,
    billing_day: int | None = None,
    rounding: str = ROUND_HALF_UP,
) -> ProrationResult:
    """
    Prorate ``full_amount`` for the part of the window covered by usage.

    Args:
        usage_start: First day of usage
        usage_end: Last day of usage
        window_start: First day of the billing window
        window_end: Last day of the billing window
        full_amount: Value of a full cycle (quantity * rate)
        denominator: Month-fraction denominator strategy
        billing_day: Monthly billing day, used by the BILLING_DAY strategy
        rounding: Decimal rounding mode for each monthly segment

    Returns:
        ProrationResult with the amount, reason and monthly breakdown

    Raises:
        InvalidIntervalError: If either interval is inverted
        ValueError: If full_amount is negative
    """
    if usage_start > usage_end:
        raise InvalidIntervalError(usage_start, usage_end, "usage interval")
    if window_start > window_end:
        raise InvalidIntervalError(window_start, window_end, "billing window")
    amount = _coerce_amount(full_amount)
    strategy = ProrationDenominator.parse(denominator)

    overlap = intersect(usage_start, usage_end, window_start, window_end)
    if overlap is None:
        return ProrationResult(
            amount=_ZERO,
            reason=ProrationReason.NO_OVERLAP,
            full_amount=amount,
        )

    if overlap.start == window_start and overlap.end == window_end:
        return ProrationResult(
            amount=amount,
            reason=ProrationReason.FULL_CYCLE,
            full_amount=amount,
            overlap_start=overlap.start,
            overlap_end=overlap.end,
        )

    segments: list[MonthlySegment] = []
    for segment in month_segments(overlap.start, overlap.end):
        year, month = segment.start.year, segment.start.month
        denom = segment_denominator(year, month, strategy, billing_day)
        active = segment.days
        segment_amount = (amount * active / denom).quantize(_TWO_PLACES, rounding=rounding)
        segments.append(MonthlySegment(
            year=year,
            month=month,
            start=segment.start,
            end=segment.end,
            active_days=active,
            days_in_month=days_in_month(year, month),
            denominator=denom,
            fraction=Decimal(active) / Decimal(denom),
            amount=segment_amount,
        ))

    total = sum((s.amount for s in segments), _ZERO)

    logger.debug("proration_calculated", extra={
        "overlap_start": overlap.start.isoformat(),
        "overlap_end": overlap.end.isoformat(),
        "full_amount": str(amount),
        "prorated_amount": str(total),
        "segment_count": len(segments),
        "denominator": strategy.value,
    })

    return ProrationResult(
        amount=total,
        reason=ProrationReason.PRORATED,
        full_amount=amount,
        overlap_start=overlap.start,
        overlap_end=overlap.end,
        monthly_breakdown=tuple(segments),
    )
