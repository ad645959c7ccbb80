"""
Tests for the domain value objects.

Covers:
- BillingCycle normalisation
- UsageAgreementStatus parsing
- SalesOrderTerms, CycleWindow, LineItem invariants
- EngineConfig validation
- ValidationResult helpers
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_EVEN

import pytest

from billing_kernel.domain import (
    BillingCycle,
    CycleWindow,
    DEFAULT_CONFIG,
    EngineConfig,
    LineItem,
    ProrationDenominator,
    SalesOrderTerms,
    UsageAgreement,
    UsageAgreementStatus,
    ValidationError,
    ValidationResult,
)
from billing_kernel.exceptions import (
    ConfigurationError,
    InvalidBillingDayError,
    InvalidIntervalError,
    UnsupportedBillingCycleError,
    UnsupportedProrationDenominatorError,
)


class TestBillingCycleParse:
    """Tests for external billing cycle spellings."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Monthly", BillingCycle.MONTHLY),
            (" monthly ", BillingCycle.MONTHLY),
            ("Quarterly", BillingCycle.QUARTERLY),
            ("Half-Yearly", BillingCycle.HALF_YEARLY),
            ("half_yearly", BillingCycle.HALF_YEARLY),
            ("Half Yearly", BillingCycle.HALF_YEARLY),
            ("HalfYearly", BillingCycle.HALF_YEARLY),
            ("YEARLY", BillingCycle.YEARLY),
        ],
    )
    def test_normalises(self, raw, expected):
        assert BillingCycle.parse(raw) is expected

    def test_enum_passes_through(self):
        assert BillingCycle.parse(BillingCycle.YEARLY) is BillingCycle.YEARLY

    @pytest.mark.parametrize("raw", ["weekly", "", "bi-monthly", None, 12])
    def test_unknown_raises(self, raw):
        with pytest.raises(UnsupportedBillingCycleError) as exc_info:
            BillingCycle.parse(raw)
        assert isinstance(exc_info.value, ConfigurationError)
        assert exc_info.value.code == "UNSUPPORTED_BILLING_CYCLE"

    def test_calendar_fixed(self):
        assert BillingCycle.QUARTERLY.is_calendar_fixed
        assert BillingCycle.HALF_YEARLY.is_calendar_fixed
        assert not BillingCycle.MONTHLY.is_calendar_fixed
        assert not BillingCycle.YEARLY.is_calendar_fixed


class TestUsageAgreementStatus:
    """Tests for status parsing."""

    def test_case_insensitive(self):
        assert UsageAgreementStatus("active") is UsageAgreementStatus.ACTIVE
        assert UsageAgreementStatus("DRAFT") is UsageAgreementStatus.DRAFT

    def test_billable(self):
        assert UsageAgreementStatus.ACTIVE.is_billable
        assert UsageAgreementStatus.DRAFT.is_billable
        assert not UsageAgreementStatus.ENDED.is_billable

    def test_unknown_raises(self):
        with pytest.raises(ValueError):
            UsageAgreementStatus("Archived")


class TestSalesOrderTerms:
    """Tests for sales order terms invariants."""

    def test_cycle_string_is_parsed(self):
        terms = SalesOrderTerms(date(2025, 1, 1), date(2025, 12, 31), "Half-Yearly")
        assert terms.cycle is BillingCycle.HALF_YEARLY

    def test_inverted_window_raises(self):
        with pytest.raises(InvalidIntervalError):
            SalesOrderTerms(date(2025, 2, 1), date(2025, 1, 1), BillingCycle.MONTHLY, 1)

    @pytest.mark.parametrize("billing_day", [0, 32, -1])
    def test_billing_day_out_of_range(self, billing_day):
        with pytest.raises(InvalidBillingDayError) as exc_info:
            SalesOrderTerms(date(2025, 1, 1), date(2025, 12, 31), BillingCycle.MONTHLY, billing_day)
        assert exc_info.value.billing_day == billing_day

    def test_effective_billing_day_only_for_monthly(self):
        monthly = SalesOrderTerms(date(2025, 1, 1), date(2025, 12, 31), BillingCycle.MONTHLY, 15)
        quarterly = SalesOrderTerms(date(2025, 1, 1), date(2025, 12, 31), BillingCycle.QUARTERLY, 15)
        assert monthly.effective_billing_day == 15
        assert quarterly.effective_billing_day is None

    def test_window(self):
        terms = SalesOrderTerms(date(2025, 1, 1), date(2025, 3, 31), BillingCycle.QUARTERLY)
        assert terms.window == CycleWindow(date(2025, 1, 1), date(2025, 3, 31))
        assert terms.window.days == 90


class TestCycleWindow:
    def test_inverted_raises(self):
        with pytest.raises(InvalidIntervalError):
            CycleWindow(date(2025, 1, 2), date(2025, 1, 1))

    def test_contains_and_overlaps(self):
        window = CycleWindow(date(2025, 2, 1), date(2025, 2, 28))
        assert window.contains(date(2025, 2, 28))
        assert not window.contains(date(2025, 3, 1))
        assert window.overlaps(date(2025, 1, 15), date(2025, 2, 1))
        assert not window.overlaps(date(2025, 3, 1), date(2025, 3, 31))


class TestLineItem:
    """Tests for line item value and decimal coercion."""

    def test_value(self):
        item = LineItem("P-1", Decimal("10"), Decimal("400"))
        assert item.value == Decimal("4000")

    def test_int_and_str_coerced(self):
        item = LineItem("P-1", 3, "2.50")
        assert item.quantity == Decimal("3")
        assert item.rate == Decimal("2.50")

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            LineItem("P-1", 1.5, Decimal("1"))

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            LineItem("P-1", "ten", Decimal("1"))


class TestUsageAgreement:
    def test_total_value(self):
        uad = UsageAgreement(
            id="U-1",
            start=date(2025, 1, 1),
            end=date(2025, 1, 31),
            line_items=[
                LineItem("P-1", Decimal("2"), Decimal("100")),
                LineItem("P-2", Decimal("1"), Decimal("50")),
            ],
            status="Draft",
        )
        assert uad.total_value == Decimal("250")
        assert isinstance(uad.line_items, tuple)
        assert uad.status is UsageAgreementStatus.DRAFT

    def test_inverted_dates_not_rejected_on_construction(self):
        uad = UsageAgreement(id="U-1", start=date(2025, 2, 1), end=date(2025, 1, 1))
        assert uad.start > uad.end


class TestEngineConfig:
    """Tests for engine configuration validation."""

    def test_defaults(self):
        assert DEFAULT_CONFIG.proration_denominator is ProrationDenominator.DAYS_IN_MONTH
        assert DEFAULT_CONFIG.default_billing_day is None
        assert DEFAULT_CONFIG.effective_quantity_places == 4

    def test_denominator_string_parsed(self):
        config = EngineConfig(proration_denominator="billing-day")
        assert config.proration_denominator is ProrationDenominator.BILLING_DAY

    def test_unknown_denominator(self):
        with pytest.raises(UnsupportedProrationDenominatorError) as exc_info:
            EngineConfig(proration_denominator="thirty_days")
        assert exc_info.value.denominator == "thirty_days"

    def test_rounding_modes(self):
        assert EngineConfig(rounding=ROUND_HALF_EVEN).rounding == ROUND_HALF_EVEN
        with pytest.raises(ValueError):
            EngineConfig(rounding="ROUND_CEILING")

    def test_default_billing_day_range(self):
        with pytest.raises(InvalidBillingDayError):
            EngineConfig(default_billing_day=40)

    def test_negative_places(self):
        with pytest.raises(ValueError):
            EngineConfig(effective_quantity_places=-1)


class TestValidationResult:
    def test_success(self):
        result = ValidationResult.success()
        assert result.is_valid
        assert bool(result)
        assert result.errors == ()

    def test_from_errors(self):
        errors = [
            ValidationError("A", "first", field="x"),
            ValidationError("B", "second"),
        ]
        result = ValidationResult.from_errors(errors)
        assert not result
        assert len(result.errors) == 2
        assert result.fields == ("x",)

    def test_from_empty_errors_is_success(self):
        assert ValidationResult.from_errors([]).is_valid
