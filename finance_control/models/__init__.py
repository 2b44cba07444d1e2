"""
Data Models Package

This package contains all Pydantic models used in the Finance Control system.
All data flowing through the system must conform to these schemas.
"""

from finance_control.models.ledger import (
    Account,
    AppState,
    Category,
    ControlType,
    Currency,
    FinancialControl,
    Investment,
    InvestmentReturnFrequency,
    InvestmentType,
    Language,
    Reminder,
    Transaction,
    TransactionFrequency,
    TransactionType,
    User,
    as_timestamp,
)
from finance_control.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AppState",
    "Category",
    "ControlType",
    "Currency",
    "FinancialControl",
    "Investment",
    "InvestmentReturnFrequency",
    "InvestmentType",
    "Language",
    "Reminder",
    "Transaction",
    "TransactionFrequency",
    "TransactionType",
    "User",
    "as_timestamp",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
