"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run on local JSON records or on Google Sheets with the same operations
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from storage implementation

Every insert returns the record as persisted. Every failure raises
StorageError (or a subclass); nothing is retried.

Session and language preference always live in a local key-value
backend, whatever holds the ledgers, because they describe this device.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from finance_control.models.audit import AuditEvent
from finance_control.models.ledger import (
    Account,
    FinancialControl,
    Language,
    Reminder,
    Transaction,
    User,
)


logger = structlog.get_logger(__name__)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


# =============================================================================
# KEY-VALUE BACKENDS
# =============================================================================

class KeyValueBackend(ABC):
    """
    Addressable string records, one per key.

    The local analogue of browser storage: each record is read and
    written whole.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


class MemoryBackend(KeyValueBackend):
    """Dict-backed records. Lost when the process exits."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._records: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._records.get(key)

    def set(self, key: str, value: str) -> None:
        self._records[key] = value

    def remove(self, key: str) -> None:
        self._records.pop(key, None)


class JsonFileBackend(KeyValueBackend):
    """
    One file per key inside a directory.

    Writes go to a temporary file first and are moved into place,
    so a crash never leaves a half-written record.
    """

    def __init__(self, directory: str):
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}")

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove record {key}: {e}")


# =============================================================================
# LEDGER STORAGE
# =============================================================================

class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (local records, Google Sheets, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_controls(self, owner_id: UUID) -> list[FinancialControl]:
        """
        Load every control owned by a user, with its collections.

        Returns:
            Controls in creation order; collections newest first
        """
        pass

    @abstractmethod
    async def insert_control(self, control: FinancialControl) -> FinancialControl:
        """
        Persist a new control.

        Returns:
            The control as stored

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_control(self, control_id: UUID) -> bool:
        """
        Delete a control and everything it owns.

        Returns:
            True if a control was deleted, False if none matched
        """
        pass

    @abstractmethod
    async def insert_transaction(
        self,
        control_id: UUID,
        transaction: Transaction,
    ) -> Transaction:
        """
        Persist a transaction under a control.

        Raises:
            NotFoundError: If the control doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        pass

    @abstractmethod
    async def insert_reminder(self, control_id: UUID, reminder: Reminder) -> Reminder:
        """
        Persist a reminder under a control.

        Raises:
            NotFoundError: If the control doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_reminder(self, reminder_id: UUID) -> bool:
        pass

    @abstractmethod
    async def get_or_create_session(self, user: Optional[User] = None) -> Optional[User]:
        """
        Return the signed-in user of this device.

        If no session exists and a user is given, that user becomes the session.
        Passing a user while a session exists replaces it.
        """
        pass

    @abstractmethod
    async def clear_session(self) -> None:
        pass

    @abstractmethod
    async def get_language(self) -> Optional[Language]:
        pass

    @abstractmethod
    async def persist_language_preference(self, language: Language) -> None:
        pass


class LocalPreferencesMixin:
    """
    Session and language kept in a key-value backend.

    Shared by every LedgerStorageInterface implementation.
    Expects self._backend and self._key_prefix.
    """

    _backend: KeyValueBackend
    _key_prefix: str

    @property
    def session_key(self) -> str:
        return f"{self._key_prefix}_session"

    @property
    def settings_key(self) -> str:
        return f"{self._key_prefix}_settings"

    async def get_or_create_session(self, user: Optional[User] = None) -> Optional[User]:
        if user is not None:
            self._backend.set(self.session_key, user.model_dump_json(by_alias=True))
            return user

        raw = self._backend.get(self.session_key)
        if not raw:
            return None
        try:
            return User.model_validate_json(raw)
        except ValidationError as e:
            # A corrupt session only means signing in again
            logger.warning("session_record_invalid", error=str(e))
            self._backend.remove(self.session_key)
            return None

    async def clear_session(self) -> None:
        self._backend.remove(self.session_key)

    async def get_language(self) -> Optional[Language]:
        raw = self._backend.get(self.settings_key)
        if not raw:
            return None
        try:
            return Language(raw.strip())
        except ValueError:
            logger.warning("language_record_invalid", value=raw)
            return None

    async def persist_language_preference(self, language: Language) -> None:
        self._backend.set(self.settings_key, Language(language).value)


class AccountStorageInterface(ABC):
    """
    Where password accounts live.

    Implemented by both ledger stores so the auth provider
    works on either backend.
    """

    @abstractmethod
    async def find_account(self, email: str) -> Optional[Account]:
        """Look up an account by e-mail (case-insensitive)."""
        pass

    @abstractmethod
    async def save_account(self, account: Account) -> Account:
        """Add an account, or replace the one with the same user id."""
        pass


# =============================================================================
# AUDIT STORAGE
# =============================================================================

class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass
