"""
billing_engines.aggregation -- Period-level roll-ups across usage agreements.

Responsibility:
    Group the prorated contributions of several usage agreements (typically
    those of one factory) into period-level, per-agreement and per-product
    totals, and consolidate already-generated invoices into one total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    A second consumer of the proration primitive: ``aggregate`` prorates
    line items against the period directly instead of reading generated
    invoices, so it is correct before any invoice has been persisted.

Anchoring:
    ``aggregate_all_periods`` walks windows anchored at the SALES ORDER
    start.  The invoice generator anchors at the usage agreement's start.
    These are distinct entry points and are not reconciled.

Invariants enforced:
    - Only ACTIVE and DRAFT agreements take part; ENDED ones are ignored.
    - An agreement contributing exactly zero to a period is omitted.
    - ``total_amount == sum(u.total_amount for u in uads)
      == sum(p.total_amount for p in by_product)``.
    - ``total_quantity`` sums nominal (not prorated) quantities.

Failure modes:
    - InvalidIntervalError for an inverted period.
    - Agreements outside the sales-order window are NOT fatal; their ids
      are reported in ``out_of_window_uad_ids``.
    - ValueError from ``consolidate_invoices`` for an empty selection or a
      duplicated (uad_id, cycle_start, cycle_end) key.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from billing_kernel.domain.agreements import (
    BillingCycle,
    SalesOrderTerms,
    UsageAgreement,
    UsageAgreementStatus,
)
from billing_kernel.domain.engine_config import DEFAULT_CONFIG, EngineConfig
from billing_kernel.exceptions import InvalidIntervalError
from billing_kernel.logging_config import get_logger
from billing_engines.cycles import iter_cycle_windows, resolve_billing_day
from billing_engines.invoices import Invoice
from billing_engines.proration import ProrationResult, prorate
from billing_engines.tracer import traced_engine

logger = get_logger("engines.aggregation")

_ZERO = Decimal("0")


# ============================================================================
# Result types
# ============================================================================


@dataclass(frozen=True)
class AggregatedLineItem:
    """One line item's contribution to a period."""

    product_id: str
    product_name: str | None
    quantity: Decimal
    rate: Decimal
    prorated_amount: Decimal
    proration: ProrationResult


@dataclass(frozen=True)
class AggregatedUAD:
    """A usage agreement's contribution to a period."""

    uad_id: str
    uad_name: str
    factory_id: str | None
    start: date
    end: date
    status: UsageAgreementStatus
    line_items: tuple[AggregatedLineItem, ...]

    @property
    def total_quantity(self) -> Decimal:
        return sum((line.quantity for line in self.line_items), _ZERO)

    @property
    def total_amount(self) -> Decimal:
        return sum((line.prorated_amount for line in self.line_items), _ZERO)


@dataclass(frozen=True)
class ProductTotal:
    """Roll-up of one product across agreements or invoices."""

    product_id: str
    product_name: str | None
    total_quantity: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class AggregatedPeriod:
    """
    Aggregation of usage agreements over one period.

    Derived data: recomputed on demand, never a source of truth.
    """

    period_start: date
    period_end: date
    cycle: BillingCycle
    uads: tuple[AggregatedUAD, ...]
    total_quantity: Decimal
    total_amount: Decimal
    by_product: tuple[ProductTotal, ...]
    out_of_window_uad_ids: tuple[str, ...] = field(default_factory=tuple)
    factory_id: str | None = None

    @property
    def by_uad(self) -> dict[str, Decimal]:
        """Prorated total per agreement id, in agreement order."""
        return {u.uad_id: u.total_amount for u in self.uads}

    @property
    def is_empty(self) -> bool:
        return not self.uads


@dataclass(frozen=True)
class UADInvoiceTotal:
    """Roll-up of one agreement's invoices inside a consolidation."""

    uad_id: str
    invoice_count: int
    total_amount: Decimal


@dataclass(frozen=True)
class InvoiceConsolidation:
    """Several generated invoices summed into one consolidated total."""

    invoices: tuple[Invoice, ...]
    period_start: date
    period_end: date
    total_amount: Decimal
    by_product: tuple[ProductTotal, ...]
    by_uad: tuple[UADInvoiceTotal, ...]

    @property
    def invoice_count(self) -> int:
        return len(self.invoices)


# ============================================================================
# Helpers
# ============================================================================


class _ProductAccumulator:
    """Accumulates product totals keeping first-appearance order."""

    def __init__(self) -> None:
        self._names: dict[str, str | None] = {}
        self._quantities: dict[str, Decimal] = {}
        self._amounts: dict[str, Decimal] = {}

    def add(
        self,
        product_id: str,
        product_name: str | None,
        quantity: Decimal,
        amount: Decimal,
    ) -> None:
        if product_id not in self._names:
            self._names[product_id] = product_name
            self._quantities[product_id] = _ZERO
            self._amounts[product_id] = _ZERO
        elif self._names[product_id] is None and product_name is not None:
            self._names[product_id] = product_name
        self._quantities[product_id] += quantity
        self._amounts[product_id] += amount

    def totals(self) -> tuple[ProductTotal, ...]:
        return tuple(
            ProductTotal(
                product_id=pid,
                product_name=self._names[pid],
                total_quantity=self._quantities[pid],
                total_amount=self._amounts[pid],
            )
            for pid in self._names
        )


def _select_uads(
    uads: Iterable[UsageAgreement],
    period_start: date,
    period_end: date,
    factory_id: str | None,
) -> list[UsageAgreement]:
    selected = [
        u for u in uads
        if u.status.is_billable
        and (factory_id is None or u.factory_id == factory_id)
        and u.start <= period_end
        and u.end >= period_start
    ]
    selected.sort(key=lambda u: (u.start, u.id))
    return selected


# ============================================================================
# Aggregation
# ============================================================================


@traced_engine(
    "aggregation", "1.0",
    fingerprint_fields=("terms", "factory_uads", "period_start", "period_end", "config", "factory_id"),
)
def aggregate(
    terms: SalesOrderTerms,
    factory_uads: Sequence[UsageAgreement],
    period_start: date,
    period_end: date,
    config: EngineConfig | None = None,
    *,
    factory_id: str | None = None,
) -> AggregatedPeriod:
    """
    Aggregate usage agreements over ``[period_start, period_end]``.

    Args:
        terms: Billing schedule of the owning sales order
        factory_uads: Candidate usage agreements
        period_start: First day of the period
        period_end: Last day of the period
        config: Engine configuration (defaults to DEFAULT_CONFIG)
        factory_id: Only consider agreements of this factory when given

    Returns:
        AggregatedPeriod with per-agreement and per-product roll-ups

    Raises:
        InvalidIntervalError: If period_start > period_end
    """
    if period_start > period_end:
        raise InvalidIntervalError(period_start, period_end, "aggregation period")
    config = config or DEFAULT_CONFIG
    billing_day = resolve_billing_day(terms, config)

    t0 = time.monotonic()
    selected = _select_uads(factory_uads, period_start, period_end, factory_id)

    in_window: list[UsageAgreement] = []
    out_of_window: list[str] = []
    for uad in selected:
        if uad.start < terms.start or uad.end > terms.end:
            out_of_window.append(uad.id)
        else:
            in_window.append(uad)

    if out_of_window:
        logger.warning("aggregation_uads_out_of_window", extra={
            "uad_ids": out_of_window,
            "so_start": terms.start.isoformat(),
            "so_end": terms.end.isoformat(),
        })

    aggregated: list[AggregatedUAD] = []
    products = _ProductAccumulator()

    for number, uad in enumerate(in_window, start=1):
        lines = []
        for item in uad.line_items:
            proration = prorate(
                uad.start,
                uad.end,
                period_start,
                period_end,
                item.value,
                denominator=config.proration_denominator,
                billing_day=billing_day,
                rounding=config.rounding,
            )
            lines.append(AggregatedLineItem(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                rate=item.rate,
                prorated_amount=proration.amount,
                proration=proration,
            ))

        entry = AggregatedUAD(
            uad_id=uad.id,
            uad_name=f"UAD-{number}",
            factory_id=uad.factory_id,
            start=uad.start,
            end=uad.end,
            status=uad.status,
            line_items=tuple(lines),
        )
        if entry.total_amount == _ZERO:
            continue

        aggregated.append(entry)
        for line in entry.line_items:
            products.add(line.product_id, line.product_name, line.quantity, line.prorated_amount)

    result = AggregatedPeriod(
        period_start=period_start,
        period_end=period_end,
        cycle=terms.cycle,
        uads=tuple(aggregated),
        total_quantity=sum((u.total_quantity for u in aggregated), _ZERO),
        total_amount=sum((u.total_amount for u in aggregated), _ZERO),
        by_product=products.totals(),
        out_of_window_uad_ids=tuple(out_of_window),
        factory_id=factory_id,
    )

    duration_ms = round((time.monotonic() - t0) * 1000, 2)
    logger.info("period_aggregated", extra={
        "period_start": period_start.isoformat(),
        "period_end": period_end.isoformat(),
        "uad_count": len(result.uads),
        "product_count": len(result.by_product),
        "total_amount": str(result.total_amount),
        "duration_ms": duration_ms,
    })
    return result


def aggregate_all_periods(
    terms: SalesOrderTerms,
    factory_uads: Sequence[UsageAgreement],
    config: EngineConfig | None = None,
    *,
    factory_id: str | None = None,
) -> tuple[AggregatedPeriod, ...]:
    """
    Aggregate every cycle window of the sales order.

    Windows are anchored at ``terms.start``; the last one is clamped to
    ``terms.end``.  Periods with no contributing agreement are skipped.
    """
    config = config or DEFAULT_CONFIG
    billing_day = resolve_billing_day(terms, config)

    periods: list[AggregatedPeriod] = []
    for window in iter_cycle_windows(terms.start, terms.cycle, billing_day, until=terms.end):
        period_end = min(window.end, terms.end)
        period = aggregate(
            terms, factory_uads, window.start, period_end, config,
            factory_id=factory_id,
        )
        if period.is_empty:
            continue
        periods.append(period)

    logger.info("all_periods_aggregated", extra={
        "cycle": terms.cycle.value,
        "period_count": len(periods),
    })
    return tuple(periods)


# ============================================================================
# Invoice consolidation
# ============================================================================


def consolidate_invoices(invoices: Sequence[Invoice]) -> InvoiceConsolidation:
    """
    Sum already-generated invoices into one consolidated total.

    Product quantities are the billed (effective) quantities.  Invoices
    keep their input order.

    Raises:
        ValueError: If ``invoices`` is empty or contains the same
            (uad_id, cycle_start, cycle_end) twice.
    """
    if not invoices:
        raise ValueError("Cannot consolidate an empty invoice selection")

    seen: set[tuple[str, date, date]] = set()
    products = _ProductAccumulator()
    uad_counts: dict[str, int] = {}
    uad_amounts: dict[str, Decimal] = {}

    for invoice in invoices:
        if invoice.key in seen:
            raise ValueError(
                f"Duplicate invoice for {invoice.uad_id} "
                f"{invoice.cycle_start} to {invoice.cycle_end}"
            )
        seen.add(invoice.key)

        uad_counts[invoice.uad_id] = uad_counts.get(invoice.uad_id, 0) + 1
        uad_amounts[invoice.uad_id] = uad_amounts.get(invoice.uad_id, _ZERO) + invoice.total_amount
        for line in invoice.line_items:
            products.add(
                line.product_id, line.product_name,
                line.effective_quantity, line.prorated_amount,
            )

    consolidation = InvoiceConsolidation(
        invoices=tuple(invoices),
        period_start=min(inv.cycle_start for inv in invoices),
        period_end=max(inv.cycle_end for inv in invoices),
        total_amount=sum((inv.total_amount for inv in invoices), _ZERO),
        by_product=products.totals(),
        by_uad=tuple(
            UADInvoiceTotal(uad_id=uid, invoice_count=uad_counts[uid], total_amount=uad_amounts[uid])
            for uid in uad_counts
        ),
    )

    logger.info("invoices_consolidated", extra={
        "invoice_count": consolidation.invoice_count,
        "uad_count": len(consolidation.by_uad),
        "total_amount": str(consolidation.total_amount),
    })
    return consolidation
