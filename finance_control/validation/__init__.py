"""Input validation package."""

from finance_control.validation.validator import (
    LedgerInputValidator,
    LedgerValidationError,
    ValidationIssue,
)

__all__ = [
    "LedgerInputValidator",
    "LedgerValidationError",
    "ValidationIssue",
]
