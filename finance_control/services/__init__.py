"""Services package."""

from finance_control.services.auth import (
    AuthError,
    AuthProvider,
    PasswordAuthProvider,
)
from finance_control.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    LedgerStorageInterface,
    LocalLedgerStore,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # Auth services
    "AuthError",
    "AuthProvider",
    "PasswordAuthProvider",
    # Storage services
    "AccountStorageInterface",
    "AuditStorageInterface",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "LedgerStorageInterface",
    "LocalLedgerStore",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
]
