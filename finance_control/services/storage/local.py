"""
Local Record Storage Implementation

DESIGN DECISION: The local store keeps four independent records,
exactly like browser local storage would:
- <prefix>_registered_users: every account created on this device
- <prefix>_session: the signed-in user
- <prefix>_data: the full list of controls, with nested collections
- <prefix>_settings: the language code

Records are JSON with camelCase keys. The translation from the
snake_case models happens here (pydantic aliases) and nowhere else.

TRADEOFFS:
- Every write rewrites the whole controls record (fine for personal use)
- Controls of every user on the device share one record
"""

from typing import Optional
from uuid import UUID

import structlog
from pydantic import TypeAdapter, ValidationError

from finance_control.config import get_settings
from finance_control.models.ledger import (
    Account,
    FinancialControl,
    Reminder,
    Transaction,
)
from finance_control.services.storage.interface import (
    AccountStorageInterface,
    DuplicateError,
    JsonFileBackend,
    KeyValueBackend,
    LedgerStorageInterface,
    LocalPreferencesMixin,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)

_CONTROLS = TypeAdapter(list[FinancialControl])
_ACCOUNTS = TypeAdapter(list[Account])


class LocalLedgerStore(
    LocalPreferencesMixin,
    LedgerStorageInterface,
    AccountStorageInterface,
):
    """
    Ledger storage in local key-value records.

    The in-memory object graph is mirrored into one record on every write.
    """

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        key_prefix: Optional[str] = None,
    ):
        if backend is None or key_prefix is None:
            settings = get_settings().local_storage
            backend = backend or JsonFileBackend(settings.data_dir)
            key_prefix = key_prefix or settings.key_prefix
        self._backend = backend
        self._key_prefix = key_prefix

    @property
    def users_key(self) -> str:
        return f"{self._key_prefix}_registered_users"

    @property
    def controls_key(self) -> str:
        return f"{self._key_prefix}_data"

    # -------------------------------------------------------------------------
    # Record access
    # -------------------------------------------------------------------------

    def _load_controls(self) -> list[FinancialControl]:
        raw = self._backend.get(self.controls_key)
        if not raw:
            return []
        try:
            return _CONTROLS.validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"Controls record is corrupt: {e}")

    def _save_controls(self, controls: list[FinancialControl]) -> None:
        payload = _CONTROLS.dump_json(controls, by_alias=True).decode("utf-8")
        self._backend.set(self.controls_key, payload)

    def _load_accounts(self) -> list[Account]:
        raw = self._backend.get(self.users_key)
        if not raw:
            return []
        try:
            return _ACCOUNTS.validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"Registered users record is corrupt: {e}")

    def _save_accounts(self, accounts: list[Account]) -> None:
        payload = _ACCOUNTS.dump_json(accounts, by_alias=True).decode("utf-8")
        self._backend.set(self.users_key, payload)

    # -------------------------------------------------------------------------
    # Controls
    # -------------------------------------------------------------------------

    async def list_controls(self, owner_id: UUID) -> list[FinancialControl]:
        return [c for c in self._load_controls() if c.owner_id == owner_id]

    async def insert_control(self, control: FinancialControl) -> FinancialControl:
        controls = self._load_controls()
        if any(c.id == control.id for c in controls):
            raise DuplicateError(f"Control already exists: {control.id}")
        self._save_controls([*controls, control])
        return control

    async def delete_control(self, control_id: UUID) -> bool:
        controls = self._load_controls()
        remaining = [c for c in controls if c.id != control_id]
        if len(remaining) == len(controls):
            return False
        self._save_controls(remaining)
        return True

    # -------------------------------------------------------------------------
    # Transactions and reminders
    # -------------------------------------------------------------------------

    async def insert_transaction(
        self,
        control_id: UUID,
        transaction: Transaction,
    ) -> Transaction:
        controls = self._load_controls()
        control = self._find(controls, control_id)
        if any(t.id == transaction.id for t in control.transactions):
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._replace(
            controls,
            control.model_copy(update={"transactions": [transaction, *control.transactions]}),
        )
        return transaction

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        controls = self._load_controls()
        for control in controls:
            remaining = [t for t in control.transactions if t.id != transaction_id]
            if len(remaining) != len(control.transactions):
                self._replace(controls, control.model_copy(update={"transactions": remaining}))
                return True
        return False

    async def insert_reminder(self, control_id: UUID, reminder: Reminder) -> Reminder:
        controls = self._load_controls()
        control = self._find(controls, control_id)
        if any(r.id == reminder.id for r in control.reminders):
            raise DuplicateError(f"Reminder already exists: {reminder.id}")
        self._replace(
            controls,
            control.model_copy(update={"reminders": [reminder, *control.reminders]}),
        )
        return reminder

    async def delete_reminder(self, reminder_id: UUID) -> bool:
        controls = self._load_controls()
        for control in controls:
            remaining = [r for r in control.reminders if r.id != reminder_id]
            if len(remaining) != len(control.reminders):
                self._replace(controls, control.model_copy(update={"reminders": remaining}))
                return True
        return False

    @staticmethod
    def _find(controls: list[FinancialControl], control_id: UUID) -> FinancialControl:
        for control in controls:
            if control.id == control_id:
                return control
        raise NotFoundError(f"Control not found: {control_id}")

    def _replace(self, controls: list[FinancialControl], updated: FinancialControl) -> None:
        self._save_controls([updated if c.id == updated.id else c for c in controls])

    # -------------------------------------------------------------------------
    # Registered users
    # -------------------------------------------------------------------------

    async def find_account(self, email: str) -> Optional[Account]:
        wanted = email.strip().lower()
        return next(
            (a for a in self._load_accounts() if a.user.email.lower() == wanted),
            None,
        )

    async def save_account(self, account: Account) -> Account:
        """Add an account, or replace the one with the same user id."""
        accounts = self._load_accounts()
        replaced = False
        for idx, existing in enumerate(accounts):
            if existing.user.id == account.user.id:
                accounts[idx] = account
                replaced = True
        if not replaced:
            accounts.append(account)
        self._save_accounts(accounts)
        logger.debug("account_saved", user_id=str(account.user.id), replaced=replaced)
        return account
