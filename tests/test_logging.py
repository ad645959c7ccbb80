"""Tests for the structured logging system (billing_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from billing_engines.churn import ChurnItem, apply_churn
from billing_engines.invoices import generate_invoices
from billing_kernel.domain import BillingCycle
from billing_kernel.exceptions import (
    InvalidBillingDayError,
    OutOfWindowError,
    UsageAgreementValidationError,
)
from billing_kernel.domain.dtos import ValidationError
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
)


class _JsonLogs:
    """Captures billing_kernel output as parsed JSON records."""

    def __init__(self, level: int) -> None:
        self.stream = StringIO()
        configure_logging(handler=logging.StreamHandler(self.stream), level=level)

    @property
    def records(self) -> list[dict]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines() if line]

    @property
    def first(self) -> dict:
        return self.records[0]

    def named(self, message: str) -> dict:
        return next(r for r in self.records if r["message"] == message)


@pytest.fixture
def json_logs() -> _JsonLogs:
    return _JsonLogs(logging.INFO)


@pytest.fixture
def log():
    return get_logger("test")


# ---------------------------------------------------------------------------
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """One JSON object per log line."""

    def test_envelope(self, json_logs, log):
        log.info("cycle_billed")

        record = json_logs.first
        assert record["level"] == "INFO"
        assert record["message"] == "cycle_billed"
        assert record["logger"] == "billing_kernel.test"
        assert "ts" in record

    def test_billing_values_serialized(self, json_logs, log):
        log.info("invoice", extra={
            "amount": Decimal("1548.39"),
            "cycle_start": date(2025, 5, 1),
            "cycle": BillingCycle.QUARTERLY,
            "line_count": 2,
        })

        record = json_logs.first
        assert record["amount"] == "1548.39"
        assert record["cycle_start"] == "2025-05-01"
        assert record["cycle"] == "quarterly"
        assert record["line_count"] == 2

    def test_context_fields(self, json_logs, log):
        LogContext.set(sales_order_id="SO-1", uad_id="UAD-7")
        log.info("with_context")

        assert json_logs.first["sales_order_id"] == "SO-1"
        assert json_logs.first["uad_id"] == "UAD-7"

    def test_no_context_when_empty(self, json_logs, log):
        log.info("bare_message")

        assert "uad_id" not in json_logs.first
        assert "sales_order_id" not in json_logs.first

    def test_extra_overrides_context(self, json_logs, log):
        with LogContext.bind(uad_id="UAD-CTX", sales_order_id="SO-1"):
            log.info("churn_applied", extra={"uad_id": "UAD-CALL"})

        assert json_logs.first["uad_id"] == "UAD-CALL"
        assert json_logs.first["sales_order_id"] == "SO-1"

    def test_plain_exception(self, json_logs, log):
        try:
            raise ZeroDivisionError("division by zero")
        except ZeroDivisionError:
            log.error("failed", exc_info=True)

        record = json_logs.first
        assert record["exc_type"] == "ZeroDivisionError"
        assert "exc_code" not in record
        assert "traceback" in record

    def test_billing_exception_attributes(self, json_logs, log):
        try:
            raise InvalidBillingDayError(0)
        except InvalidBillingDayError:
            log.error("bad_terms", exc_info=True)

        record = json_logs.first
        assert record["exc_code"] == "INVALID_BILLING_DAY"
        assert record["exc_type"] == "InvalidBillingDayError"
        assert record["exc_billing_day"] == 0

    def test_exception_dates(self, json_logs, log):
        try:
            raise OutOfWindowError(
                "UAD-9", date(2024, 12, 1), date(2025, 1, 31),
                date(2025, 1, 1), date(2025, 12, 31),
            )
        except OutOfWindowError:
            log.error("rejected", exc_info=True)

        record = json_logs.first
        assert record["exc_uad_id"] == "UAD-9"
        assert record["exc_uad_start"] == "2024-12-01"
        assert record["exc_window_start"] == "2025-01-01"

    def test_validation_errors_rendered(self, json_logs, log):
        errors = [ValidationError("NON_POSITIVE_RATE", "rate must be > 0", "line_items[0].rate")]
        try:
            raise UsageAgreementValidationError(errors, "UAD-3")
        except UsageAgreementValidationError:
            log.error("invalid", exc_info=True)

        rendered = json_logs.first["exc_errors"]
        assert rendered[0]["code"] == "NON_POSITIVE_RATE"
        assert rendered[0]["field"] == "line_items[0].rate"

    def test_level_filtering(self, json_logs, log):
        log.info("first")
        log.warning("second")
        log.debug("third")

        assert [r["message"] for r in json_logs.records] == ["first", "second"]

    def test_formatter_usable_standalone(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "standalone", (), None)

        assert json.loads(StructuredFormatter().format(record))["message"] == "standalone"


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_is_additive(self):
        LogContext.set(correlation_id="x")
        LogContext.set(uad_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "uad_id": "y"}

    def test_clear(self):
        LogContext.set(sales_order_id="SO-1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(uad_id="outer")
        with LogContext.bind(uad_id="inner"):
            assert LogContext.get_all()["uad_id"] == "inner"
        assert LogContext.get_all()["uad_id"] == "outer"

    def test_bind_restores_absent(self):
        with LogContext.bind(sales_order_id="SO-TEMP"):
            assert LogContext.get_all()["sales_order_id"] == "SO-TEMP"
        assert "sales_order_id" not in LogContext.get_all()

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(uad_id="UAD-ERR"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_none_values_ignored(self):
        with LogContext.bind(uad_id="UAD-1", sales_order_id=None):
            assert LogContext.get_all() == {"uad_id": "UAD-1"}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            LogContext.bind(event_id="e-1")
        with pytest.raises(ValueError):
            LogContext.set(entry_id="n-1")

    def test_all_fields(self):
        LogContext.set(**{name: name[0] for name in LogContext.FIELDS})
        assert len(LogContext.get_all()) == 5


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert len(logging.getLogger("billing_kernel").handlers) == 1

    def test_get_logger_namespace(self):
        assert get_logger("engines.invoices").name == "billing_kernel.engines.invoices"

    def test_engine_records_carry_agreement_context(self, json_logs, monthly_terms, make_uad):
        """Invoice generation binds the UAD and sales order to its records."""
        generate_invoices(monthly_terms, make_uad(uad_id="UAD-LOG"))

        started = json_logs.named("invoice_generation_started")
        assert started["uad_id"] == "UAD-LOG"
        assert started["sales_order_id"] == "SO-2025-001"
        assert json_logs.named("BILLING_ENGINE_TRACE")["engine_name"] == "invoices"
        assert LogContext.get_all() == {}

    def test_churn_record_names_its_own_agreement(self, json_logs, make_uad):
        item = ChurnItem("P-100", qty_to_cancel=1, current_qty=10, rate=400)

        with LogContext.bind(uad_id="UAD-OTHER"):
            apply_churn(make_uad(uad_id="UAD-CHURN"), [item], date(2025, 6, 1))

        assert json_logs.named("churn_applied")["uad_id"] == "UAD-CHURN"
