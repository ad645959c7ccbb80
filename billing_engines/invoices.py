"""
billing_engines.invoices -- Invoice generation across a usage agreement's life.

Responsibility:
    Walk the cycle windows of a sales order's billing schedule, intersect
    each with a usage agreement's active interval, price every line item
    through the proration engine and emit one Invoice per window that has
    a non-zero total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Composes billing_engines.cycles and billing_engines.proration.

Iteration:
    The schedule is anchored at the usage agreement's own start date: the
    first window is the cycle containing ``uad.start``.  Windows advance
    contiguously until a window starts after ``uad.end``.  A window that
    ends after ``terms.end`` is the last one: the agreement overlap inside
    it is billed, iteration stops there and the result is flagged
    ``horizon_truncated``.

Invariants enforced:
    - At most one Invoice per (uad_id, cycle_start, cycle_end).
    - ``Invoice.prorated`` is True iff at least one line was fractionally
      prorated.
    - Identical (terms, uad, config) inputs produce identical results.

Failure modes:
    - UsageAgreementValidationError carrying every structural violation.
    - OutOfWindowError when the agreement leaves the sales-order window.
    - Configuration errors (unsupported cycle, missing billing day)
      propagate unchanged.
    - Per-cycle arithmetic failures are caught, logged as
      ``cycle_skipped`` and reported in ``skipped_cycles``; generation
      continues with the next window.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from billing_kernel.domain.agreements import (
    CycleWindow,
    LineItem,
    SalesOrderTerms,
    UsageAgreement,
)
from billing_kernel.domain.dtos import ValidationError, ValidationResult
from billing_kernel.domain.engine_config import DEFAULT_CONFIG, EngineConfig
from billing_kernel.exceptions import (
    BillingEngineError,
    BillingValidationError,
    ConfigurationError,
    IntervalError,
    OutOfWindowError,
    UsageAgreementValidationError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_engines.cycles import (
    cycle_start_for,
    first_cycle_end,
    next_cycle_end,
    resolve_billing_day,
)
from billing_engines.intervals import next_day
from billing_engines.proration import ProrationResult, prorate
from billing_engines.tracer import traced_engine

logger = get_logger("engines.invoices")

_ZERO = Decimal("0")

# Raised for the whole call, never skipped per cycle.
_STRUCTURAL_ERRORS = (ConfigurationError, IntervalError, BillingValidationError)


@dataclass(frozen=True)
class InvoiceLine:
    """
    One product's charge on an invoice.

    ``effective_quantity`` is ``prorated_amount / rate``: informational
    only, never used for further arithmetic.
    """

    product_id: str
    product_name: str | None
    quantity: Decimal
    rate: Decimal
    prorated_amount: Decimal
    effective_quantity: Decimal
    proration: ProrationResult

    @property
    def prorated(self) -> bool:
        return self.proration.is_prorated


@dataclass(frozen=True)
class Invoice:
    """An invoice for one usage agreement over one cycle window."""

    uad_id: str
    cycle_start: date
    cycle_end: date
    line_items: tuple[InvoiceLine, ...]
    total_amount: Decimal
    prorated: bool

    @property
    def key(self) -> tuple[str, date, date]:
        """Deduplication key for persistence layers."""
        return (self.uad_id, self.cycle_start, self.cycle_end)

    @property
    def window(self) -> CycleWindow:
        return CycleWindow(self.cycle_start, self.cycle_end)


@dataclass(frozen=True)
class CycleFailure:
    """A cycle window whose computation failed and was skipped."""

    cycle_start: date
    cycle_end: date
    error_type: str
    error_code: str | None
    message: str


@dataclass(frozen=True)
class InvoiceGenerationResult:
    """Invoices for one usage agreement plus per-cycle diagnostics."""

    uad_id: str
    invoices: tuple[Invoice, ...] = field(default_factory=tuple)
    skipped_cycles: tuple[CycleFailure, ...] = field(default_factory=tuple)
    horizon_truncated: bool = False

    @property
    def total_amount(self) -> Decimal:
        return sum((inv.total_amount for inv in self.invoices), _ZERO)

    @property
    def has_failures(self) -> bool:
        return bool(self.skipped_cycles)


def validate_usage_agreement(uad: UsageAgreement) -> ValidationResult:
    """
    Check a usage agreement's structure, collecting every violation.

    Checks the date order, that there is at least one line item, and that
    each line has a product id and positive quantity and rate.
    """
    errors: list[ValidationError] = []

    if not uad.id:
        errors.append(ValidationError(
            code="MISSING_UAD_ID",
            message="Usage agreement id is required",
            field="id",
        ))

    if uad.start > uad.end:
        errors.append(ValidationError(
            code="INVERTED_INTERVAL",
            message=f"Usage start {uad.start} is after usage end {uad.end}",
            field="end",
            details={"start": uad.start.isoformat(), "end": uad.end.isoformat()},
        ))

    if not uad.line_items:
        errors.append(ValidationError(
            code="NO_LINE_ITEMS",
            message="Usage agreement has no line items",
            field="line_items",
        ))

    for index, item in enumerate(uad.line_items):
        prefix = f"line_items[{index}]"
        if not item.product_id:
            errors.append(ValidationError(
                code="MISSING_PRODUCT_ID",
                message=f"Line {index} has no product id",
                field=f"{prefix}.product_id",
            ))
        if item.quantity <= 0:
            errors.append(ValidationError(
                code="NON_POSITIVE_QUANTITY",
                message=f"Line {index} quantity must be positive, got {item.quantity}",
                field=f"{prefix}.quantity",
            ))
        if item.rate <= 0:
            errors.append(ValidationError(
                code="NON_POSITIVE_RATE",
                message=f"Line {index} rate must be positive, got {item.rate}",
                field=f"{prefix}.rate",
            ))

    return ValidationResult.from_errors(errors)


def _price_line(
    item: LineItem,
    uad: UsageAgreement,
    window: CycleWindow,
    config: EngineConfig,
    billing_day: int | None,
) -> InvoiceLine:
    proration = prorate(
        uad.start,
        uad.end,
        window.start,
        window.end,
        item.value,
        denominator=config.proration_denominator,
        billing_day=billing_day,
        rounding=config.rounding,
    )
    quantum = Decimal(1).scaleb(-config.effective_quantity_places)
    effective_quantity = (proration.amount / item.rate).quantize(
        quantum, rounding=config.rounding,
    )
    return InvoiceLine(
        product_id=item.product_id,
        product_name=item.product_name,
        quantity=item.quantity,
        rate=item.rate,
        prorated_amount=proration.amount,
        effective_quantity=effective_quantity,
        proration=proration,
    )


def build_invoice(
    uad: UsageAgreement,
    window: CycleWindow,
    config: EngineConfig = DEFAULT_CONFIG,
    billing_day: int | None = None,
) -> Invoice | None:
    """
    Price every line of ``uad`` against one window.

    Returns None when the window's total is exactly zero.
    """
    lines = tuple(
        _price_line(item, uad, window, config, billing_day)
        for item in uad.line_items
    )
    total = sum((line.prorated_amount for line in lines), _ZERO)
    if total == _ZERO:
        return None
    return Invoice(
        uad_id=uad.id,
        cycle_start=window.start,
        cycle_end=window.end,
        line_items=lines,
        total_amount=total,
        prorated=any(line.prorated for line in lines),
    )


@traced_engine("invoices", "1.0", fingerprint_fields=("terms", "uad", "config"))
def generate_invoices(
    terms: SalesOrderTerms,
    uad: UsageAgreement,
    config: EngineConfig | None = None,
) -> InvoiceGenerationResult:
    """
    Generate the invoices of a usage agreement across its sales order.

    Args:
        terms: Billing schedule of the owning sales order
        uad: Usage agreement to invoice
        config: Engine configuration (defaults to DEFAULT_CONFIG)

    Returns:
        InvoiceGenerationResult with invoices in cycle order

    Raises:
        UsageAgreementValidationError: If the agreement is malformed
        OutOfWindowError: If the agreement lies outside the sales order
        ConfigurationError: For an unsupported schedule
    """
    config = config or DEFAULT_CONFIG

    with LogContext.bind(uad_id=uad.id or None, sales_order_id=terms.sales_order_id):
        t0 = time.monotonic()
        logger.info("invoice_generation_started", extra={
            "cycle": terms.cycle.value,
            "uad_start": uad.start.isoformat(),
            "uad_end": uad.end.isoformat(),
            "line_count": len(uad.line_items),
        })

        validation = validate_usage_agreement(uad)
        if not validation:
            logger.warning("usage_agreement_invalid", extra={
                "error_codes": list(validation.codes),
            })
            raise UsageAgreementValidationError(validation.errors, uad.id)

        if uad.start < terms.start or uad.end > terms.end:
            logger.warning("usage_agreement_out_of_window", extra={
                "so_start": terms.start.isoformat(),
                "so_end": terms.end.isoformat(),
            })
            raise OutOfWindowError(uad.id, uad.start, uad.end, terms.start, terms.end)

        billing_day = resolve_billing_day(terms, config)
        start = cycle_start_for(uad.start, terms.cycle, billing_day)
        end = first_cycle_end(uad.start, terms.cycle, billing_day)

        invoices: list[Invoice] = []
        failures: list[CycleFailure] = []
        horizon_truncated = False

        while start <= uad.end:
            window = CycleWindow(start, end)
            if window.overlaps(uad.start, uad.end):
                try:
                    invoice = build_invoice(uad, window, config, billing_day)
                except (ArithmeticError, BillingEngineError) as exc:
                    if isinstance(exc, _STRUCTURAL_ERRORS):
                        raise
                    logger.error("cycle_skipped", extra={
                        "cycle_start": start.isoformat(),
                        "cycle_end": end.isoformat(),
                        "error_type": type(exc).__name__,
                        "error_message": str(exc),
                    })
                    failures.append(CycleFailure(
                        cycle_start=start,
                        cycle_end=end,
                        error_type=type(exc).__name__,
                        error_code=getattr(exc, "code", None),
                        message=str(exc),
                    ))
                else:
                    if invoice is not None:
                        invoices.append(invoice)

            if end > terms.end:
                # Last window of the order; only the agreement overlap was priced
                horizon_truncated = True
                logger.warning("billing_horizon_reached", extra={
                    "cycle_start": start.isoformat(),
                    "cycle_end": end.isoformat(),
                    "so_end": terms.end.isoformat(),
                })
                break

            start = next_day(end)
            end = next_cycle_end(end, terms.cycle, billing_day)

        result = InvoiceGenerationResult(
            uad_id=uad.id,
            invoices=tuple(invoices),
            skipped_cycles=tuple(failures),
            horizon_truncated=horizon_truncated,
        )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("invoice_generation_completed", extra={
            "invoice_count": len(result.invoices),
            "skipped_cycle_count": len(result.skipped_cycles),
            "horizon_truncated": horizon_truncated,
            "total_amount": str(result.total_amount),
            "duration_ms": duration_ms,
        })
        return result
