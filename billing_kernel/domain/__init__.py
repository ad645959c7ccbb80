"""
Pure domain layer.

This module contains immutable value objects describing sales-order
billing terms and usage agreements, with NO dependencies on:
- ORM
- Database
- Time/clock
- I/O

All domain objects are immutable and deterministic.
"""

from billing_kernel.domain.agreements import (
    BillingCycle,
    CycleWindow,
    LineItem,
    SalesOrderTerms,
    UsageAgreement,
    UsageAgreementStatus,
)
from billing_kernel.domain.dtos import ValidationError, ValidationResult
from billing_kernel.domain.engine_config import (
    DEFAULT_CONFIG,
    EngineConfig,
    ProrationDenominator,
)

__all__ = [
    "BillingCycle",
    "CycleWindow",
    "DEFAULT_CONFIG",
    "EngineConfig",
    "LineItem",
    "ProrationDenominator",
    "SalesOrderTerms",
    "UsageAgreement",
    "UsageAgreementStatus",
    "ValidationError",
    "ValidationResult",
]
