"""
Agreements -- Immutable sales-order and usage-agreement value objects.

Responsibility:
    Describes the inputs of the billing engines: the billing schedule of a
    sales order (SalesOrderTerms), the time-bounded usage agreements billed
    against it (UsageAgreement) and their priced line items (LineItem).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Quantities and rates are Decimal, never float.
    - SalesOrderTerms.start <= SalesOrderTerms.end.
    - CycleWindow.start <= CycleWindow.end.
    - billing_day, when present, lies in 1..31.

    UsageAgreement deliberately does NOT reject inverted dates or
    non-positive quantities on construction; those are reported as a list
    by ``billing_engines.invoices.validate_usage_agreement``.

Failure modes:
    - UnsupportedBillingCycleError for unknown cycle strings.
    - InvalidIntervalError / InvalidBillingDayError on bad terms.
    - TypeError when a float is passed where a Decimal is required.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from billing_kernel.exceptions import (
    InvalidBillingDayError,
    InvalidIntervalError,
    UnsupportedBillingCycleError,
)


def to_decimal(value: Any, name: str) -> Decimal:
    """Coerce int/str to Decimal; floats are rejected outright."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError(f"{name} must be Decimal, not float")
    if isinstance(value, bool):
        raise TypeError(f"{name} must be Decimal, not bool")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid {name}: {value!r}") from e


class BillingCycle(str, Enum):
    """Billing cycle types."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    HALF_YEARLY = "halfyearly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value: BillingCycle | str) -> BillingCycle:
        """
        Normalise an external billing cycle spelling.

        Accepts "Monthly", "half-yearly", "Half Yearly", "half_yearly" and
        similar. Anything else raises UnsupportedBillingCycleError; there is
        no fallback cycle.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise UnsupportedBillingCycleError(value)
        normalized = (
            value.strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        )
        for member in cls:
            if member.value == normalized:
                return member
        raise UnsupportedBillingCycleError(value)

    @property
    def is_calendar_fixed(self) -> bool:
        """True when cycle ends fall on fixed calendar dates."""
        return self in (BillingCycle.QUARTERLY, BillingCycle.HALF_YEARLY)


class UsageAgreementStatus(str, Enum):
    """Lifecycle status of a usage agreement."""

    DRAFT = "Draft"
    ACTIVE = "Active"
    ENDED = "Ended"

    @classmethod
    def _missing_(cls, value: object) -> UsageAgreementStatus | None:
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None

    @property
    def is_billable(self) -> bool:
        """Draft and Active agreements take part in aggregation."""
        return self in (UsageAgreementStatus.DRAFT, UsageAgreementStatus.ACTIVE)


@dataclass(frozen=True)
class CycleWindow:
    """
    One billing period's inclusive date range.

    Guarantees:
        - start <= end
        - ``days`` counts both endpoints
    """

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidIntervalError(self.start, self.end, "cycle window")

    @property
    def days(self) -> int:
        """Inclusive day count."""
        return (self.end - self.start).days + 1

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end

    def overlaps(self, start: date, end: date) -> bool:
        """True if [start, end] shares at least one day with this window."""
        return start <= self.end and end >= self.start


@dataclass(frozen=True)
class SalesOrderTerms:
    """
    Billing schedule of a sales order.

    Attributes:
        start: First billable day of the sales order
        end: Last billable day of the sales order
        cycle: Billing cycle type
        billing_day: Day of month a monthly cycle ends on (Monthly only)
        sales_order_id: Optional identifier, used for logging only
    """

    start: date
    end: date
    cycle: BillingCycle
    billing_day: int | None = None
    sales_order_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "cycle", BillingCycle.parse(self.cycle))
        if self.start > self.end:
            raise InvalidIntervalError(self.start, self.end, "sales order window")
        if self.billing_day is not None:
            if isinstance(self.billing_day, bool) or not isinstance(self.billing_day, int):
                raise InvalidBillingDayError(self.billing_day)
            if not 1 <= self.billing_day <= 31:
                raise InvalidBillingDayError(self.billing_day)

    @property
    def window(self) -> CycleWindow:
        return CycleWindow(self.start, self.end)

    @property
    def effective_billing_day(self) -> int | None:
        """Billing day when it is meaningful (Monthly), else None."""
        if self.cycle is BillingCycle.MONTHLY:
            return self.billing_day
        return None


@dataclass(frozen=True)
class LineItem:
    """
    A priced product line on a usage agreement.

    The value (quantity * rate) is a full-cycle amount. It is never
    prorated itself; only its value is apportioned by time.
    """

    product_id: str
    quantity: Decimal
    rate: Decimal
    product_name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", to_decimal(self.quantity, "quantity"))
        object.__setattr__(self, "rate", to_decimal(self.rate, "rate"))

    @property
    def value(self) -> Decimal:
        """Full-cycle value of the line."""
        return self.quantity * self.rate


@dataclass(frozen=True)
class UsageAgreement:
    """
    A time-bounded usage agreement (UAD).

    Attributes:
        id: Agreement identifier
        start: First day of usage
        end: Last day of usage
        line_items: Priced product lines
        status: Lifecycle status
        factory_id: Optional factory/site the usage belongs to
    """

    id: str
    start: date
    end: date
    line_items: tuple[LineItem, ...] = field(default_factory=tuple)
    status: UsageAgreementStatus = UsageAgreementStatus.ACTIVE
    factory_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "line_items", tuple(self.line_items))
        if not isinstance(self.status, UsageAgreementStatus):
            object.__setattr__(self, "status", UsageAgreementStatus(self.status))

    @property
    def total_value(self) -> Decimal:
        """Full-cycle value across all line items."""
        return sum((item.value for item in self.line_items), Decimal("0"))
