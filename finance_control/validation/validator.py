"""
Input Validation for Ledger Operations

DESIGN DECISION: Every user-entered value is checked BEFORE any store call.
A rejected form never reaches the store, so there is nothing to undo.

Checks:
- Required text present (after trimming) and within the model limits
- E-mail addresses have the shape the User model accepts
- Amounts parse, are finite, positive and within a sanity limit
- Enumerated values belong to their enumeration
- Dates parse

IMPORTANT: Validation NEVER silently fixes issues.
All problems in one form are collected and reported together.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel, Field

from finance_control.config import get_settings
from finance_control.models.ledger import (
    Category,
    ControlType,
    Currency,
    TransactionType,
    as_timestamp,
)


E = TypeVar("E", bound=Enum)

MIN_PASSWORD_LENGTH = 6
MAX_NAME_LENGTH = 100
MAX_NICKNAME_LENGTH = 50
MAX_EMAIL_LENGTH = 254

# Same shape the User model enforces
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    suggested_fix: Optional[str] = None


class LedgerValidationError(ValueError):
    """User input was rejected before reaching the store."""

    def __init__(self, operation: str, issues: list[ValidationIssue]):
        self.operation = operation
        self.issues = issues
        summary = "; ".join(issue.message for issue in issues)
        super().__init__(f"{operation}: {summary}")

    def to_dicts(self) -> list[dict]:
        return [
            {"field": i.field, "type": i.issue_type, "message": i.message}
            for i in self.issues
        ]


class LedgerInputValidator:
    """
    Validates and normalizes form input for the mutation operations.

    Each validate_* method returns clean values or raises
    LedgerValidationError listing every issue in the form.
    """

    def __init__(self, max_amount: Optional[Decimal] = None):
        if max_amount is None:
            max_amount = Decimal(str(get_settings().app.max_amount))
        self._max_amount = max_amount

    # -------------------------------------------------------------------------
    # Field checks (append to issues, return the clean value or None)
    # -------------------------------------------------------------------------

    def _require_text(
        self,
        field: str,
        value: Optional[str],
        issues: list[ValidationIssue],
        max_length: int = 200,
    ) -> Optional[str]:
        text = (value or "").strip()
        if not text:
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{field.replace('_', ' ').capitalize()} is required",
            ))
            return None
        if len(text) > max_length:
            issues.append(ValidationIssue(
                field=field,
                issue_type="too_long",
                message=f"{field.replace('_', ' ').capitalize()} is longer than {max_length} characters",
            ))
            return None
        return text

    def _optional_text(
        self,
        field: str,
        value: Optional[str],
        issues: list[ValidationIssue],
        max_length: int,
    ) -> Optional[str]:
        """Trimmed text, "" when blank, None when too long."""
        text = (value or "").strip()
        if len(text) > max_length:
            issues.append(ValidationIssue(
                field=field,
                issue_type="too_long",
                message=f"{field.replace('_', ' ').capitalize()} is longer than {max_length} characters",
            ))
            return None
        return text

    def parse_amount(
        self,
        raw: Union[str, int, float, Decimal, None],
        issues: list[ValidationIssue],
        field: str = "amount",
    ) -> Optional[Decimal]:
        """
        Parse a user-entered amount.

        Accepts numbers or strings; a single comma is read as the decimal
        separator ("12,50"). At most two decimal places.
        """
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message="Amount is required",
            ))
            return None

        text = str(raw).strip()
        if "," in text and "." not in text and text.count(",") == 1:
            text = text.replace(",", ".")

        try:
            amount = Decimal(text)
        except InvalidOperation:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"'{raw}' is not a number",
                suggested_fix="Use digits with an optional decimal point, e.g. 12.50",
            ))
            return None

        if not amount.is_finite() or amount <= 0:
            issues.append(ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message="Amount must be greater than zero",
            ))
            return None

        if amount > self._max_amount:
            issues.append(ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message=f"Amount exceeds the limit of {self._max_amount}",
                suggested_fix="Check if the amount was typed correctly",
            ))
            return None

        if amount.as_tuple().exponent < -2:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message="Amount has more than two decimal places",
            ))
            return None

        return amount

    def _parse_enum(
        self,
        enum_cls: type[E],
        field: str,
        raw: Any,
        issues: list[ValidationIssue],
    ) -> Optional[E]:
        if isinstance(raw, enum_cls):
            return raw
        try:
            return enum_cls(raw)
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"'{raw}' is not a valid {field.replace('_', ' ')}",
                suggested_fix=f"Choose one of: {allowed}",
            ))
            return None

    def _parse_date(
        self,
        field: str,
        raw: Union[date, datetime, str, None],
        issues: list[ValidationIssue],
    ) -> Optional[datetime]:
        if raw is None or raw == "":
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{field.replace('_', ' ').capitalize()} is required",
            ))
            return None
        try:
            return as_timestamp(raw)
        except (TypeError, ValueError):
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"'{raw}' is not a valid date",
                suggested_fix="Use the YYYY-MM-DD format",
            ))
            return None

    @staticmethod
    def _raise_if_any(operation: str, issues: list[ValidationIssue]) -> None:
        if issues:
            raise LedgerValidationError(operation, issues)

    # -------------------------------------------------------------------------
    # Forms
    # -------------------------------------------------------------------------

    def validate_control(
        self,
        name: Optional[str],
        currency: Any,
        control_type: Any,
    ) -> dict:
        issues: list[ValidationIssue] = []
        clean = {
            "name": self._require_text("name", name, issues, max_length=100),
            "currency": self._parse_enum(Currency, "currency", currency, issues),
            "type": self._parse_enum(ControlType, "control_type", control_type, issues),
        }
        self._raise_if_any("create_control", issues)
        return clean

    def validate_transaction(
        self,
        description: Optional[str],
        amount: Any,
        transaction_type: Any,
        category: Any,
        on_date: Union[date, datetime, str, None],
    ) -> dict:
        issues: list[ValidationIssue] = []
        clean = {
            "description": self._require_text("description", description, issues),
            "amount": self.parse_amount(amount, issues),
            "type": self._parse_enum(TransactionType, "transaction_type", transaction_type, issues),
            "category": self._parse_enum(Category, "category", category, issues),
            "date": self._parse_date("date", on_date, issues),
        }
        self._raise_if_any("add_transaction", issues)
        return clean

    def validate_reminder(
        self,
        description: Optional[str],
        amount: Any,
        due_date: Union[date, datetime, str, None],
    ) -> dict:
        issues: list[ValidationIssue] = []
        clean = {
            "description": self._require_text("description", description, issues),
            "amount": self.parse_amount(amount, issues),
            "date": self._parse_date("due_date", due_date, issues),
        }
        self._raise_if_any("add_reminder", issues)
        return clean

    def validate_sign_up(
        self,
        email: Optional[str],
        password: Optional[str],
        confirm_password: Optional[str],
        name: Optional[str],
        nickname: Optional[str],
    ) -> dict:
        """
        Check a sign-up form.

        Name falls back to the nickname, as either one identifies the user.
        """
        issues: list[ValidationIssue] = []
        clean_email = self._require_text("email", email, issues, max_length=MAX_EMAIL_LENGTH)
        if clean_email and not EMAIL_PATTERN.match(clean_email):
            issues.append(ValidationIssue(
                field="email",
                issue_type="invalid_format",
                message=f"'{clean_email}' is not an e-mail address",
            ))

        clean_name = self._optional_text("name", name, issues, MAX_NAME_LENGTH)
        clean_nickname = self._optional_text("nickname", nickname, issues, MAX_NICKNAME_LENGTH)
        display = clean_name or clean_nickname
        if clean_name == "" and clean_nickname == "":
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Name or nickname is required",
            ))

        if not password or len(password) < MIN_PASSWORD_LENGTH:
            issues.append(ValidationIssue(
                field="password",
                issue_type="too_short",
                message=f"Password must have at least {MIN_PASSWORD_LENGTH} characters",
            ))
        elif password != confirm_password:
            issues.append(ValidationIssue(
                field="confirm_password",
                issue_type="mismatch",
                message="Passwords do not match",
            ))

        self._raise_if_any("sign_up", issues)
        return {
            "email": clean_email.lower(),
            "password": password,
            "name": display,
            "nickname": clean_nickname or None,
        }

    def validate_profile(
        self,
        name: Optional[str],
        nickname: Optional[str],
        avatar: Optional[str],
    ) -> dict:
        """
        Check a profile edit. None means the field was not touched and
        stays None; anything else comes back trimmed.
        """
        issues: list[ValidationIssue] = []
        clean = {
            "name": None if name is None else self._optional_text(
                "name", name, issues, MAX_NAME_LENGTH
            ),
            "nickname": None if nickname is None else self._optional_text(
                "nickname", nickname, issues, MAX_NICKNAME_LENGTH
            ),
            "avatar": None if avatar is None else avatar.strip(),
        }
        self._raise_if_any("update_profile", issues)
        return clean
