"""
Validation DTOs shared by the billing engines.

Validators never stop at the first problem. Each violation becomes a
ValidationError and the whole set comes back in one ValidationResult, so
a caller can show every bad field of a usage agreement or churn request
at once.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ValidationError:
    """
    One field-level violation.

    Attributes:
        code: Machine-readable code, e.g. ``NON_POSITIVE_RATE``
        message: Human-readable explanation
        field: Path of the offending input, e.g. ``line_items[0].rate``
        details: Optional structured context (offending values)
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one request.

    Truthy when valid, so ``if not validate_x(...)`` reads naturally.
    """

    is_valid: bool
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True)

    @classmethod
    def failure(cls, *errors: ValidationError) -> ValidationResult:
        return cls(is_valid=False, errors=errors)

    @classmethod
    def from_errors(cls, errors: Iterable[ValidationError]) -> ValidationResult:
        """Success when ``errors`` is empty, failure otherwise."""
        collected = tuple(errors)
        return cls(is_valid=not collected, errors=collected)

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(e.code for e in self.errors)

    @property
    def fields(self) -> tuple[str, ...]:
        """Field paths that failed, in error order."""
        return tuple(e.field for e in self.errors if e.field is not None)

    def __bool__(self) -> bool:
        return self.is_valid
