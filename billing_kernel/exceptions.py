"""
Typed Exception Hierarchy for the Billing Engines.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BillingEngineError:

    BillingEngineError (base)
    |
    +-- ConfigurationError
    |   +-- UnsupportedBillingCycleError
    |   +-- MissingBillingDayError
    |   +-- InvalidBillingDayError
    |   +-- UnsupportedProrationDenominatorError
    |
    +-- BillingValidationError
    |   +-- UsageAgreementValidationError
    |   +-- ChurnValidationError
    |
    +-- IntervalError
    |   +-- InvalidIntervalError
    |   +-- OutOfWindowError
    |
    +-- ChurnError
        +-- InvalidChurnTransitionError

===============================================================================
HANDLING POLICY
===============================================================================

  - ConfigurationError -> fatal, fix the configuration or caller input
  - BillingValidationError -> carries EVERY violation in ``errors`` so the
    caller can report them together
  - IntervalError -> fatal for the call; the dates are structurally wrong
  - ChurnError -> the requested lifecycle action is not allowed

Every class has a ``code`` attribute (machine-readable, API-safe) and
stores its structured data as attributes rather than only in the message.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from billing_kernel.domain.dtos import ValidationError


class BillingEngineError(Exception):
    """
    Base exception for all billing engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_ENGINE_ERROR"


# Configuration exceptions


class ConfigurationError(BillingEngineError):
    """Base exception for configuration errors. Always fatal."""

    code: str = "CONFIGURATION_ERROR"


class UnsupportedBillingCycleError(ConfigurationError):
    """Billing cycle value is not one of the supported cycle types."""

    code: str = "UNSUPPORTED_BILLING_CYCLE"

    def __init__(self, cycle: Any):
        self.cycle = str(cycle)
        super().__init__(
            f"Unsupported billing cycle: {cycle!r}. "
            "Supported values: monthly, quarterly, halfyearly, yearly"
        )


class MissingBillingDayError(ConfigurationError):
    """Monthly billing requires a billing day and none was configured."""

    code: str = "MISSING_BILLING_DAY"

    def __init__(self) -> None:
        super().__init__("Monthly billing cycle requires a billing day (1-31)")


class InvalidBillingDayError(ConfigurationError):
    """Billing day outside 1..31."""

    code: str = "INVALID_BILLING_DAY"

    def __init__(self, billing_day: Any):
        self.billing_day = billing_day
        super().__init__(f"Billing day must be between 1 and 31, got {billing_day!r}")


class UnsupportedProrationDenominatorError(ConfigurationError):
    """Proration denominator strategy is not recognised."""

    code: str = "UNSUPPORTED_PRORATION_DENOMINATOR"

    def __init__(self, denominator: Any):
        self.denominator = str(denominator)
        super().__init__(
            f"Unsupported proration denominator: {denominator!r}. "
            "Supported values: days_in_month, billing_day"
        )


# Validation exceptions


class BillingValidationError(BillingEngineError):
    """
    Validation failed with one or more field-level errors.

    The full list of violations is kept on ``errors`` so callers can
    surface all of them at once.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(self, errors: Iterable[ValidationError], subject: str = "input"):
        self.errors = tuple(errors)
        self.subject = subject
        summary = "; ".join(e.message for e in self.errors)
        super().__init__(
            f"{subject} failed validation with {len(self.errors)} error(s): {summary}"
        )


class UsageAgreementValidationError(BillingValidationError):
    """Usage agreement or its line items are structurally invalid."""

    code: str = "UAD_VALIDATION_FAILED"

    def __init__(self, errors: Iterable[ValidationError], uad_id: str):
        self.uad_id = uad_id
        super().__init__(errors, subject=f"Usage agreement {uad_id}")


class ChurnValidationError(BillingValidationError):
    """Churn request failed validation."""

    code: str = "CHURN_VALIDATION_FAILED"

    def __init__(self, errors: Iterable[ValidationError]):
        super().__init__(errors, subject="Churn request")


# Interval exceptions


class IntervalError(BillingEngineError):
    """Base exception for date interval errors."""

    code: str = "INTERVAL_ERROR"


class InvalidIntervalError(IntervalError):
    """Interval start is after its end."""

    code: str = "INVALID_INTERVAL"

    def __init__(self, start: date, end: date, label: str = "interval"):
        self.start = start
        self.end = end
        self.label = label
        super().__init__(f"Invalid {label}: start {start} is after end {end}")


class OutOfWindowError(IntervalError):
    """Usage agreement interval falls outside the sales-order window."""

    code: str = "OUT_OF_WINDOW"

    def __init__(
        self,
        uad_id: str,
        uad_start: date,
        uad_end: date,
        window_start: date,
        window_end: date,
    ):
        self.uad_id = uad_id
        self.uad_start = uad_start
        self.uad_end = uad_end
        self.window_start = window_start
        self.window_end = window_end
        super().__init__(
            f"Usage agreement {uad_id} ({uad_start} to {uad_end}) lies outside "
            f"the sales order window ({window_start} to {window_end})"
        )


# Churn lifecycle exceptions


class ChurnError(BillingEngineError):
    """Base exception for churn lifecycle errors."""

    code: str = "CHURN_ERROR"


class InvalidChurnTransitionError(ChurnError):
    """Requested churn action is not allowed from the current status."""

    code: str = "INVALID_CHURN_TRANSITION"

    def __init__(self, current_status: str, action: str):
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} a churn request in status {current_status}"
        )
