"""Ledger aggregation package."""

from finance_control.ledger.aggregator import (
    ALL_TYPES,
    LedgerSummary,
    category_breakdown,
    filter_transactions,
    movement_breakdown,
    summarize,
)

__all__ = [
    "ALL_TYPES",
    "LedgerSummary",
    "category_breakdown",
    "filter_transactions",
    "movement_breakdown",
    "summarize",
]
