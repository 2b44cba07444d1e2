"""
Core Data Models for Finance Control

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Be replaced, never edited in place

DESIGN DECISION: Field names are snake_case everywhere inside the system.
Each model also carries camelCase aliases because the local record format
uses them; stores translate at their boundary and nowhere else.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a money movement."""
    INCOME = "income"
    EXPENSE = "expense"
    INVESTMENT = "investment"


class TransactionFrequency(str, Enum):
    """How often a transaction happens."""
    ONE_TIME = "one-time"
    MONTHLY = "monthly"


class ControlType(str, Enum):
    """Whether a ledger belongs to one person or is shared."""
    INDIVIDUAL = "individual"
    GROUP = "group"


class Currency(str, Enum):
    """Currencies a control can be kept in. No conversion is ever done."""
    BRL = "BRL"
    USD = "USD"
    EUR = "EUR"


class Category(str, Enum):
    """
    Transaction categories.

    DESIGN DECISION: Using explicit categories rather than free text ensures
    consistent categorization and enables reliable breakdowns.
    """
    FOOD = "Food"
    HOUSING = "Housing"
    TRANSPORTATION = "Transportation"
    LEISURE = "Leisure"
    HEALTH = "Health"
    EDUCATION = "Education"
    SALARY = "Salary"
    INVESTMENTS = "Investments"
    OTHER = "Other"


class InvestmentType(str, Enum):
    """Kinds of investment. OTHER is refined by a free-text custom type."""
    SAVINGS = "Savings"
    CRYPTO = "Crypto"
    FUNDS = "Funds"
    ETF = "ETF"
    STOCKS = "Stocks"
    FIXED_INCOME = "Fixed Income"
    OTHER = "Other"


class InvestmentReturnFrequency(str, Enum):
    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Language(str, Enum):
    PT_BR = "pt-BR"
    EN_US = "en-US"


ENTITY_CONFIG = ConfigDict(
    frozen=True,
    str_strip_whitespace=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


def as_timestamp(value: Union[date, datetime, str]) -> datetime:
    """
    Normalize a user-entered date into the stored timestamp.

    Plain calendar dates are pinned to 12:00 UTC so the local calendar day
    stays the same in every time zone between UTC-11 and UTC+11.
    Full timestamps are kept as they are.
    """
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            value = date.fromisoformat(text)
        else:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))

    if isinstance(value, datetime):
        return value

    return datetime(value.year, value.month, value.day, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# ENTITIES
# =============================================================================

class User(BaseModel):
    """A signed-up person. One per session."""
    model_config = ENTITY_CONFIG

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    nickname: Optional[str] = Field(default=None, max_length=50)
    email: str = Field(
        ...,
        pattern=r"^[^@\s]+@[^@\s]+$",
        description="Login e-mail, unique per account"
    )
    avatar: Optional[str] = Field(
        default=None,
        description="Avatar URL or data URI"
    )

    @property
    def display_name(self) -> str:
        return self.nickname or self.name


class Account(BaseModel):
    """A user plus the bcrypt hash of their password. Never leaves the auth layer."""
    model_config = ENTITY_CONFIG

    user: User
    password_hash: str = Field(..., min_length=1)


class Transaction(BaseModel):
    """
    A recorded money movement.

    Transactions are never edited after creation, only deleted.
    """
    model_config = ENTITY_CONFIG

    id: UUID = Field(default_factory=uuid4)
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    type: TransactionType
    category: Category
    frequency: TransactionFrequency = TransactionFrequency.ONE_TIME
    date: datetime = Field(..., description="When the movement happened")


class Reminder(BaseModel):
    """A future expense that has not been recorded yet."""
    model_config = ENTITY_CONFIG

    id: UUID = Field(default_factory=uuid4)
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    date: datetime = Field(..., description="Due date")


class Investment(BaseModel):
    """
    An investment position kept under a control.

    Only ever read, stored and cascade-deleted.
    """
    model_config = ENTITY_CONFIG

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    type: InvestmentType
    custom_type: Optional[str] = Field(default=None, max_length=100)
    amount: Decimal = Field(..., ge=0)
    expected_return: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Free-text expected return, e.g. '1% a.m.'"
    )
    return_frequency: Optional[InvestmentReturnFrequency] = None
    date: datetime

    @model_validator(mode='after')
    def validate_custom_type(self) -> 'Investment':
        if self.custom_type and self.type != InvestmentType.OTHER:
            raise ValueError("Custom type is only allowed for investments of type 'Other'")
        return self


class FinancialControl(BaseModel):
    """
    A named ledger.

    Owns its transactions, investments and reminders; deleting the control
    deletes all of them. Collections are kept newest first.
    """
    model_config = ENTITY_CONFIG

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    currency: Currency = Currency.BRL
    type: ControlType = ControlType.INDIVIDUAL
    owner_id: UUID
    members: list[str] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    investments: list[Investment] = Field(default_factory=list)
    reminders: list[Reminder] = Field(default_factory=list)

    def find_reminder(self, reminder_id: UUID) -> Optional[Reminder]:
        return next((r for r in self.reminders if r.id == reminder_id), None)


# =============================================================================
# APPLICATION STATE
# =============================================================================

class AppState(BaseModel):
    """
    Everything the session knows, as one immutable value.

    Operations take a state and return a new one. A failed operation
    returns nothing, so the caller keeps the previous state.
    """
    model_config = ConfigDict(frozen=True)

    user: Optional[User] = None
    controls: list[FinancialControl] = Field(default_factory=list)
    selected_control_id: Optional[UUID] = None
    language: Language = Language.PT_BR

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def current_control(self) -> Optional[FinancialControl]:
        if self.selected_control_id is None:
            return None
        return self.get_control(self.selected_control_id)

    def get_control(self, control_id: UUID) -> Optional[FinancialControl]:
        return next((c for c in self.controls if c.id == control_id), None)
