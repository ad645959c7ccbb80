"""
Module: billing_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    billing calculation engines: cycle scheduling, proration, invoice
    generation, aggregation and churn.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel (and sibling engine modules).
    MUST NOT import billing_config; configuration arrives as an explicit
    ``EngineConfig`` argument.

Invariants enforced:
    - Purity: engines NEVER call ``date.today()``.  Every date is passed in
      by the caller.
    - Decimal-only arithmetic: monetary amounts and quantities are
      ``Decimal``; floats are rejected.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Top-level engine calls are traced via ``@traced_engine`` (see
    ``billing_engines.tracer``), emitting BILLING_ENGINE_TRACE records.

Usage:
    from billing_engines import generate_invoices, aggregate, prorate
    from billing_engines.churn import calculate_churn_impact
"""

from billing_kernel.logging_config import get_logger

logger = get_logger("engines")

from billing_engines.aggregation import (
    AggregatedLineItem,
    AggregatedPeriod,
    AggregatedUAD,
    InvoiceConsolidation,
    ProductTotal,
    UADInvoiceTotal,
    aggregate,
    aggregate_all_periods,
    consolidate_invoices,
)
from billing_engines.churn import (
    ChurnAction,
    ChurnImpact,
    ChurnItem,
    ChurnMode,
    ChurnStatus,
    apply_churn,
    calculate_churn_impact,
    transition_churn_status,
    validate_churn_request,
)
from billing_engines.cycles import (
    calculate_cycle_window,
    cycle_start_for,
    first_cycle_end,
    iter_cycle_windows,
    next_cycle_end,
    resolve_billing_day,
)
from billing_engines.intervals import (
    add_months,
    day_count,
    days_in_month,
    inclusive_day_count,
    intersect,
    month_segments,
)
from billing_engines.invoices import (
    CycleFailure,
    Invoice,
    InvoiceGenerationResult,
    InvoiceLine,
    build_invoice,
    generate_invoices,
    validate_usage_agreement,
)
from billing_engines.proration import (
    MonthlySegment,
    ProrationReason,
    ProrationResult,
    prorate,
)
from billing_engines.tracer import traced_engine

__all__ = [
    # Intervals
    "add_months",
    "day_count",
    "days_in_month",
    "inclusive_day_count",
    "intersect",
    "month_segments",
    # Cycles
    "calculate_cycle_window",
    "cycle_start_for",
    "first_cycle_end",
    "iter_cycle_windows",
    "next_cycle_end",
    "resolve_billing_day",
    # Proration
    "MonthlySegment",
    "ProrationReason",
    "ProrationResult",
    "prorate",
    # Invoices
    "CycleFailure",
    "Invoice",
    "InvoiceGenerationResult",
    "InvoiceLine",
    "build_invoice",
    "generate_invoices",
    "validate_usage_agreement",
    # Aggregation
    "AggregatedLineItem",
    "AggregatedPeriod",
    "AggregatedUAD",
    "InvoiceConsolidation",
    "ProductTotal",
    "UADInvoiceTotal",
    "aggregate",
    "aggregate_all_periods",
    "consolidate_invoices",
    # Churn
    "ChurnAction",
    "ChurnImpact",
    "ChurnItem",
    "ChurnMode",
    "ChurnStatus",
    "apply_churn",
    "calculate_churn_impact",
    "transition_churn_status",
    "validate_churn_request",
    # Tracing
    "traced_engine",
]
