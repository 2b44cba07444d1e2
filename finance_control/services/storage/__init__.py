"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ledgers live either in local JSON records or in Google Sheets; session and
language always stay in local records.
"""

from finance_control.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    DuplicateError,
    JsonFileBackend,
    KeyValueBackend,
    LedgerStorageInterface,
    MemoryBackend,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)
from finance_control.services.storage.local import LocalLedgerStore
from finance_control.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AccountStorageInterface",
    "AuditStorageInterface",
    "KeyValueBackend",
    "LedgerStorageInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # Local implementation
    "JsonFileBackend",
    "LocalLedgerStore",
    "MemoryBackend",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
