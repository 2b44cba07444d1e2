"""
Ledger Aggregation

DESIGN DECISION: Everything the dashboard shows is DERIVED.
Nothing here reads a store or keeps state; the functions are called
again on the new AppState after every mutation.

All functions are total: bad filters produce empty results, never errors.
"""

from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from finance_control.models.ledger import (
    Category,
    FinancialControl,
    Transaction,
    TransactionType,
)


# Sentinel accepted by filter_transactions meaning "every type"
ALL_TYPES = "all"

ZERO = Decimal("0")


class LedgerSummary(BaseModel):
    """Monthly totals for one control."""
    model_config = ConfigDict(frozen=True)

    income: Decimal = ZERO
    expense: Decimal = ZERO
    investment: Decimal = ZERO
    balance: Decimal = ZERO


def _local_time(moment: datetime, tz: Optional[tzinfo]) -> datetime:
    # Naive timestamps are already wall-clock time
    if moment.tzinfo is None:
        return moment
    try:
        return moment.astimezone(tz)
    except OverflowError:
        # Shifting would leave year 1..9999; keep the stored wall time
        return moment.replace(tzinfo=None)


def filter_transactions(
    control: Optional[FinancialControl],
    month: int,
    year: int,
    type_filter: Optional[Union[TransactionType, str]] = None,
    tz: Optional[tzinfo] = None,
) -> list[Transaction]:
    """
    Select a control's transactions for one calendar month.

    Args:
        control: The ledger to read; None yields an empty list
        month: Calendar month, 1-12
        year: Calendar year
        type_filter: Only keep this transaction type; None or "all" keeps every type
        tz: Time zone whose calendar is used. Defaults to the machine's local zone.

    Returns:
        Matching transactions in stored order (newest first)
    """
    if control is None:
        return []

    match_all_types = type_filter is None or type_filter == ALL_TYPES

    selected = []
    for transaction in control.transactions:
        moment = _local_time(transaction.date, tz)
        if moment.month != month or moment.year != year:
            continue
        if not match_all_types and transaction.type != type_filter:
            continue
        selected.append(transaction)

    return selected


def summarize(transactions: list[Transaction]) -> LedgerSummary:
    """
    Total a list of transactions by type.

    balance = income - expense - investment. No currency conversion.
    """
    totals = {kind: ZERO for kind in TransactionType}
    for transaction in transactions:
        totals[transaction.type] += transaction.amount

    income = totals[TransactionType.INCOME]
    expense = totals[TransactionType.EXPENSE]
    investment = totals[TransactionType.INVESTMENT]

    return LedgerSummary(
        income=income,
        expense=expense,
        investment=investment,
        balance=income - expense - investment,
    )


def movement_breakdown(summary: LedgerSummary) -> list[tuple[TransactionType, Decimal]]:
    """Chart slices for the month's movement; empty slices are left out."""
    slices = [
        (TransactionType.INCOME, summary.income),
        (TransactionType.INVESTMENT, summary.investment),
        (TransactionType.EXPENSE, summary.expense),
    ]
    return [(kind, value) for kind, value in slices if value > 0]


def category_breakdown(
    transactions: list[Transaction],
    transaction_type: TransactionType = TransactionType.EXPENSE,
) -> dict[Category, Decimal]:
    """
    Sum amounts per category for one transaction type.

    Categories without movement are omitted. Largest total first.
    """
    groups: dict[Category, Decimal] = {}
    for transaction in transactions:
        if transaction.type != transaction_type:
            continue
        groups[transaction.category] = groups.get(transaction.category, ZERO) + transaction.amount

    return dict(sorted(groups.items(), key=lambda item: item[1], reverse=True))
