"""
Pytest fixtures for the billing engine test suite.

Provides:
- Sales-order terms for each billing cycle
- Usage agreement builders
- Logging isolation between tests
"""

from datetime import date
from decimal import Decimal

import pytest

from billing_kernel.domain import (
    BillingCycle,
    EngineConfig,
    LineItem,
    ProrationDenominator,
    SalesOrderTerms,
    UsageAgreement,
    UsageAgreementStatus,
)
from billing_kernel.logging_config import LogContext, reset_logging


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


# ---------------------------------------------------------------------------
# Sales-order terms
# ---------------------------------------------------------------------------


@pytest.fixture
def monthly_terms() -> SalesOrderTerms:
    """Calendar-month billing for 2025 (billing day 31 clamps to month end)."""
    return SalesOrderTerms(
        start=date(2025, 1, 1),
        end=date(2025, 12, 31),
        cycle=BillingCycle.MONTHLY,
        billing_day=31,
        sales_order_id="SO-2025-001",
    )


@pytest.fixture
def mid_month_terms() -> SalesOrderTerms:
    """Monthly billing on the 15th."""
    return SalesOrderTerms(
        start=date(2025, 1, 1),
        end=date(2025, 12, 31),
        cycle=BillingCycle.MONTHLY,
        billing_day=15,
        sales_order_id="SO-2025-015",
    )


@pytest.fixture
def quarterly_terms() -> SalesOrderTerms:
    return SalesOrderTerms(
        start=date(2025, 2, 1),
        end=date(2025, 12, 31),
        cycle=BillingCycle.QUARTERLY,
        sales_order_id="SO-2025-Q",
    )


@pytest.fixture
def yearly_terms() -> SalesOrderTerms:
    return SalesOrderTerms(
        start=date(2024, 2, 1),
        end=date(2027, 1, 31),
        cycle=BillingCycle.YEARLY,
        sales_order_id="SO-2024-Y",
    )


# ---------------------------------------------------------------------------
# Usage agreements
# ---------------------------------------------------------------------------


def _make_uad(
    uad_id: str = "UAD-A",
    start: date = date(2025, 1, 1),
    end: date = date(2025, 12, 31),
    lines: tuple[tuple[str, str, str], ...] = (("P-100", "10", "400"),),
    status: UsageAgreementStatus = UsageAgreementStatus.ACTIVE,
    factory_id: str | None = "F-1",
) -> UsageAgreement:
    """Build a usage agreement from (product_id, quantity, rate) triples."""
    return UsageAgreement(
        id=uad_id,
        start=start,
        end=end,
        line_items=tuple(
            LineItem(product_id=pid, quantity=Decimal(qty), rate=Decimal(rate))
            for pid, qty, rate in lines
        ),
        status=status,
        factory_id=factory_id,
    )


@pytest.fixture
def make_uad():
    """Factory fixture for usage agreements."""
    return _make_uad


@pytest.fixture
def billing_day_config() -> EngineConfig:
    return EngineConfig(proration_denominator=ProrationDenominator.BILLING_DAY)
