"""
billing_engines.churn -- Financial impact of cancelling usage agreement lines.

Responsibility:
    Compute what a partial or full cancellation (churn) of a usage
    agreement's line items is worth, either billed through the end of the
    period or with a pro-rata refund of the unused portion.  Also applies a
    processed churn to the agreement and guards the churn request
    lifecycle.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Uses the same interval primitives as proration; independent of the
    cycle scheduler.

Formulas:
    current_period_amount = sum(current_qty * rate)
    cancelled_amount      = sum(qty_to_cancel * rate)
    new_monthly_amount    = current_period_amount - cancelled_amount

    PRORATED only:
        total_days       = inclusive days in [uad_start, uad_end]
        used_days        = days from uad_start up to, not including,
                           the effective date
        remaining_days   = total_days - used_days
        prorated_payable = round2(cancelled_amount * used_days / total_days)
        refund           = cancelled_amount - prorated_payable

Invariants enforced:
    - prorated_payable + refund == cancelled_amount exactly.
    - END_OF_PERIOD never refunds and reports zero day counts.

Failure modes:
    - ChurnValidationError carrying every field-level violation.
    - InvalidChurnTransitionError for a disallowed lifecycle action.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any

from billing_kernel.domain.agreements import (
    LineItem,
    UsageAgreement,
    UsageAgreementStatus,
    to_decimal,
)
from billing_kernel.domain.dtos import ValidationError, ValidationResult
from billing_kernel.exceptions import ChurnValidationError, InvalidChurnTransitionError
from billing_kernel.logging_config import get_logger
from billing_engines.intervals import day_count, inclusive_day_count
from billing_engines.tracer import traced_engine

logger = get_logger("engines.churn")

_TWO_PLACES = Decimal("0.01")
_ZERO = Decimal("0")


class ChurnMode(str, Enum):
    """How a cancellation is billed."""

    END_OF_PERIOD = "end_of_period"
    PRORATED = "prorated"

    @classmethod
    def parse(cls, value: Any) -> ChurnMode | None:
        """Resolve a mode from its value; None when unrecognised."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class ChurnStatus(str, Enum):
    """Lifecycle status of a churn request."""

    PENDING = "Pending"
    APPROVED = "Approved"
    PROCESSED = "Processed"
    CANCELLED = "Cancelled"


class ChurnAction(str, Enum):
    APPROVE = "approve"
    PROCESS = "process"
    CANCEL = "cancel"


_ITEM_AMOUNT_FIELDS = ("qty_to_cancel", "current_qty", "rate")

# action -> statuses it may be applied from, and the resulting status
_TRANSITIONS: dict[ChurnAction, tuple[frozenset[ChurnStatus], ChurnStatus]] = {
    ChurnAction.APPROVE: (frozenset({ChurnStatus.PENDING}), ChurnStatus.APPROVED),
    ChurnAction.PROCESS: (frozenset({ChurnStatus.APPROVED}), ChurnStatus.PROCESSED),
    ChurnAction.CANCEL: (
        frozenset({ChurnStatus.PENDING, ChurnStatus.APPROVED}),
        ChurnStatus.CANCELLED,
    ),
}


@dataclass(frozen=True)
class ChurnItem:
    """
    A line item being cancelled.

    Not validated on construction; ``validate_churn_request`` reports
    every problem at once.  Quantities and rate may be None when the
    request omitted them.
    """

    product_id: str
    qty_to_cancel: Decimal | None
    current_qty: Decimal | None
    rate: Decimal | None
    product_name: str | None = None

    def __post_init__(self) -> None:
        for name in _ITEM_AMOUNT_FIELDS:
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_decimal(value, name))

    @property
    def current_amount(self) -> Decimal:
        return self.current_qty * self.rate

    @property
    def cancelled_amount(self) -> Decimal:
        return self.qty_to_cancel * self.rate


@dataclass(frozen=True)
class ChurnImpact:
    """
    Financial effect of a churn request.

    ``prorated_payable`` and ``refund`` are None in END_OF_PERIOD mode.
    """

    mode: ChurnMode
    current_period_amount: Decimal
    cancelled_amount: Decimal
    new_monthly_amount: Decimal
    prorated_payable: Decimal | None
    refund: Decimal | None
    used_days: int
    total_days: int
    remaining_days: int


def validate_churn_request(
    mode: ChurnMode | str | None,
    effective_date: date | None,
    uad_start: date,
    uad_end: date,
    items: Sequence[ChurnItem],
) -> ValidationResult:
    """
    Validate a churn request, collecting every violation.

    Returns:
        ValidationResult listing all field-level errors
    """
    errors: list[ValidationError] = []

    if ChurnMode.parse(mode) is None:
        errors.append(ValidationError(
            code="INVALID_CHURN_MODE",
            message='Invalid churn mode. Must be "end_of_period" or "prorated"',
            field="mode",
        ))

    if uad_start > uad_end:
        errors.append(ValidationError(
            code="INVERTED_INTERVAL",
            message=f"Usage start {uad_start} is after usage end {uad_end}",
            field="uad_end",
        ))

    if effective_date is None:
        errors.append(ValidationError(
            code="MISSING_EFFECTIVE_DATE",
            message="Effective date is required",
            field="effective_date",
        ))
    elif not uad_start <= effective_date <= uad_end:
        errors.append(ValidationError(
            code="EFFECTIVE_DATE_OUT_OF_RANGE",
            message=(
                f"Effective date {effective_date} is outside the usage "
                f"agreement ({uad_start} to {uad_end})"
            ),
            field="effective_date",
        ))

    if not items:
        errors.append(ValidationError(
            code="NO_CHURN_ITEMS",
            message="At least one churn item is required",
            field="items",
        ))

    for index, item in enumerate(items):
        label = f"Churn item {index + 1}"
        prefix = f"items[{index}]"
        if not item.product_id:
            errors.append(ValidationError(
                code="MISSING_PRODUCT_ID",
                message=f"{label}: product id is required",
                field=f"{prefix}.product_id",
            ))
        missing = [name for name in _ITEM_AMOUNT_FIELDS if getattr(item, name) is None]
        for name in missing:
            errors.append(ValidationError(
                code=f"MISSING_{name.upper()}",
                message=f"{label}: {name.replace('_', ' ')} is required",
                field=f"{prefix}.{name}",
            ))
        if item.qty_to_cancel is not None and item.qty_to_cancel <= 0:
            errors.append(ValidationError(
                code="NON_POSITIVE_QTY_TO_CANCEL",
                message=f"{label}: quantity to cancel must be greater than 0",
                field=f"{prefix}.qty_to_cancel",
            ))
        if item.current_qty is not None and item.current_qty <= 0:
            errors.append(ValidationError(
                code="NON_POSITIVE_CURRENT_QTY",
                message=f"{label}: current quantity must be greater than 0",
                field=f"{prefix}.current_qty",
            ))
        if (
            item.qty_to_cancel is not None
            and item.current_qty is not None
            and item.qty_to_cancel > item.current_qty
        ):
            errors.append(ValidationError(
                code="CANCEL_EXCEEDS_CURRENT",
                message=f"{label}: cannot cancel more than current quantity",
                field=f"{prefix}.qty_to_cancel",
                details={
                    "qty_to_cancel": str(item.qty_to_cancel),
                    "current_qty": str(item.current_qty),
                },
            ))
        if item.rate is not None and item.rate <= 0:
            errors.append(ValidationError(
                code="NON_POSITIVE_RATE",
                message=f"{label}: rate must be greater than 0",
                field=f"{prefix}.rate",
            ))

    return ValidationResult.from_errors(errors)


@traced_engine(
    "churn", "1.0",
    fingerprint_fields=("mode", "effective_date", "uad_start", "uad_end", "items"),
)
def calculate_churn_impact(
    mode: ChurnMode | str,
    effective_date: date,
    uad_start: date,
    uad_end: date,
    items: Sequence[ChurnItem],
    *,
    rounding: str = ROUND_HALF_UP,
) -> ChurnImpact:
    """
    Compute the financial impact of cancelling ``items``.

    Raises:
        ChurnValidationError: With every violation when the request is invalid
    """
    validation = validate_churn_request(mode, effective_date, uad_start, uad_end, items)
    if not validation:
        logger.warning("churn_request_invalid", extra={
            "error_codes": list(validation.codes),
        })
        raise ChurnValidationError(validation.errors)

    churn_mode = ChurnMode.parse(mode)
    current_amount = sum((item.current_amount for item in items), _ZERO)
    cancelled_amount = sum((item.cancelled_amount for item in items), _ZERO)
    new_amount = current_amount - cancelled_amount

    if churn_mode is ChurnMode.PRORATED:
        total_days = inclusive_day_count(uad_start, uad_end)
        used_days = day_count(uad_start, effective_date)
        remaining_days = total_days - used_days
        payable = (cancelled_amount * used_days / total_days).quantize(
            _TWO_PLACES, rounding=rounding,
        )
        refund: Decimal | None = cancelled_amount - payable
        prorated_payable: Decimal | None = payable
    else:
        total_days = used_days = remaining_days = 0
        refund = None
        prorated_payable = None

    logger.info("churn_impact_calculated", extra={
        "mode": churn_mode.value,
        "effective_date": effective_date.isoformat(),
        "cancelled_amount": str(cancelled_amount),
        "refund": str(refund) if refund is not None else None,
        "used_days": used_days,
        "total_days": total_days,
    })

    return ChurnImpact(
        mode=churn_mode,
        current_period_amount=current_amount,
        cancelled_amount=cancelled_amount,
        new_monthly_amount=new_amount,
        prorated_payable=prorated_payable,
        refund=refund,
        used_days=used_days,
        total_days=total_days,
        remaining_days=remaining_days,
    )


def apply_churn(
    uad: UsageAgreement,
    items: Sequence[ChurnItem],
    effective_date: date,
) -> UsageAgreement:
    """
    Apply a processed churn to a usage agreement.

    Each matching line's quantity is reduced by ``qty_to_cancel``; lines
    reaching zero are dropped.  When no line remains the agreement ends on
    ``effective_date`` with status ENDED.

    Raises:
        ChurnValidationError: If an item names a product the agreement does
            not carry, cancels more than the line holds, or the effective
            date is outside the agreement
    """
    errors: list[ValidationError] = []
    if not uad.start <= effective_date <= uad.end:
        errors.append(ValidationError(
            code="EFFECTIVE_DATE_OUT_OF_RANGE",
            message=(
                f"Effective date {effective_date} is outside the usage "
                f"agreement ({uad.start} to {uad.end})"
            ),
            field="effective_date",
        ))

    to_cancel: dict[str, Decimal] = {}
    for index, item in enumerate(items):
        if item.qty_to_cancel is None:
            errors.append(ValidationError(
                code="MISSING_QTY_TO_CANCEL",
                message=f"Churn item {index + 1}: qty to cancel is required",
                field=f"items[{index}].qty_to_cancel",
            ))
            continue
        to_cancel[item.product_id] = to_cancel.get(item.product_id, _ZERO) + item.qty_to_cancel

    held = {line.product_id: line.quantity for line in uad.line_items}
    for product_id, qty in to_cancel.items():
        if product_id not in held:
            errors.append(ValidationError(
                code="UNKNOWN_PRODUCT",
                message=f"Usage agreement {uad.id} has no line for product {product_id}",
                field="items",
            ))
        elif qty > held[product_id]:
            errors.append(ValidationError(
                code="CANCEL_EXCEEDS_CURRENT",
                message=f"Cannot cancel {qty} of {product_id}; agreement holds {held[product_id]}",
                field="items",
            ))

    if errors:
        raise ChurnValidationError(errors)

    remaining: list[LineItem] = []
    for line in uad.line_items:
        new_qty = line.quantity - to_cancel.get(line.product_id, _ZERO)
        if new_qty > 0:
            remaining.append(replace(line, quantity=new_qty))

    if remaining:
        updated = replace(uad, line_items=tuple(remaining))
    else:
        updated = replace(
            uad,
            line_items=(),
            end=effective_date,
            status=UsageAgreementStatus.ENDED,
        )

    logger.info("churn_applied", extra={
        "uad_id": uad.id,
        "remaining_line_count": len(updated.line_items),
        "ended": updated.status is UsageAgreementStatus.ENDED,
    })
    return updated


def transition_churn_status(
    status: ChurnStatus | str,
    action: ChurnAction | str,
) -> ChurnStatus:
    """
    Next status of a churn request after ``action``.

    PENDING -> APPROVED -> PROCESSED; CANCEL is allowed from PENDING or
    APPROVED.  PROCESSED and CANCELLED are terminal.

    Raises:
        InvalidChurnTransitionError: If the action is not allowed
        ValueError: For an unknown status or action value
    """
    current = ChurnStatus(status)
    requested = ChurnAction(action)
    allowed_from, target = _TRANSITIONS[requested]
    if current not in allowed_from:
        raise InvalidChurnTransitionError(current.value, requested.value)
    return target
