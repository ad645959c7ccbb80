"""
EngineConfig -- Frozen runtime configuration for the billing engines.

Responsibility:
    Holds the handful of knobs that change engine arithmetic: which
    proration denominator to use, the Decimal rounding mode, the fallback
    billing day for monthly terms, and the precision of informational
    effective quantities.

Architecture position:
    Kernel > Domain -- pure value object. Built from YAML by
    ``billing_config`` or constructed directly; engines receive it as an
    explicit argument and never look it up themselves.

Failure modes:
    - UnsupportedProrationDenominatorError for unknown denominator names.
    - InvalidBillingDayError when default_billing_day is outside 1..31.
    - ValueError for an unknown rounding mode or negative precision.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP
from enum import Enum

from billing_kernel.exceptions import (
    InvalidBillingDayError,
    UnsupportedProrationDenominatorError,
)

SUPPORTED_ROUNDING_MODES: frozenset[str] = frozenset({ROUND_HALF_UP, ROUND_HALF_EVEN})


class ProrationDenominator(str, Enum):
    """
    Denominator used when turning active days into a month fraction.

    DAYS_IN_MONTH: actual days in the calendar month (default).
    BILLING_DAY: min(billing_day, days_in_month) for every month. Only
        meaningful for monthly terms; other cycles fall back to
        DAYS_IN_MONTH.
    """

    DAYS_IN_MONTH = "days_in_month"
    BILLING_DAY = "billing_day"

    @classmethod
    def parse(cls, value: ProrationDenominator | str) -> ProrationDenominator:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            for member in cls:
                if member.value == normalized:
                    return member
        raise UnsupportedProrationDenominatorError(value)


@dataclass(frozen=True)
class EngineConfig:
    """
    Runtime configuration for the billing engines.

    Attributes:
        proration_denominator: Month-fraction denominator strategy
        rounding: Decimal rounding mode applied at each monthly segment
        default_billing_day: Billing day used when monthly terms omit one
        effective_quantity_places: Decimal places for effective quantities
        config_id: Identifier of the configuration set
        version: Version of the configuration set
    """

    proration_denominator: ProrationDenominator = ProrationDenominator.DAYS_IN_MONTH
    rounding: str = ROUND_HALF_UP
    default_billing_day: int | None = None
    effective_quantity_places: int = 4
    config_id: str = "default"
    version: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "proration_denominator",
            ProrationDenominator.parse(self.proration_denominator),
        )
        if self.rounding not in SUPPORTED_ROUNDING_MODES:
            raise ValueError(f"Unsupported rounding mode: {self.rounding!r}")
        if self.default_billing_day is not None and not (
            1 <= self.default_billing_day <= 31
        ):
            raise InvalidBillingDayError(self.default_billing_day)
        if self.effective_quantity_places < 0:
            raise ValueError("effective_quantity_places must be non-negative")


DEFAULT_CONFIG = EngineConfig()
