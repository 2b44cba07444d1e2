"""
Main Orchestrator for Finance Control

This module ties together all the components and defines the
end-to-end flows for:
1. Ledger mutations (controls, transactions, reminders)
2. Session (sign up/in/out, selection, language, profile)

DESIGN DECISION: Every operation takes the current AppState and returns
a new one. The orchestrator enforces the boundaries:
- Input is validated before any store call
- The store is written first; the state only changes once the write succeeded
- A failed operation raises, so the caller keeps the state it had
- Every step is audited

Paying a reminder is the only operation with two writes. Its failures are
reported per step so the caller knows what still needs doing.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from finance_control.agents import FinancialAdviceAgent
from finance_control.audit import AuditLogger, configure_logging, create_correlation_id
from finance_control.config import get_settings, validate_all_settings
from finance_control.models.audit import AuditEventType
from finance_control.models.ledger import (
    AppState,
    Category,
    ControlType,
    Currency,
    FinancialControl,
    Language,
    Reminder,
    Transaction,
    TransactionFrequency,
    TransactionType,
)
from finance_control.services.auth import AuthError, AuthProvider, PasswordAuthProvider
from finance_control.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    LedgerStorageInterface,
    LocalLedgerStore,
    NotFoundError,
    StorageError,
)
from finance_control.validation import LedgerInputValidator, LedgerValidationError


logger = structlog.get_logger(__name__)

DateInput = Union[date, datetime, str]
AmountInput = Union[Decimal, int, float, str]


class CompositeOperationError(Exception):
    """A multi-step operation stopped before its last step."""

    def __init__(self, operation: str, failed_step: str, message: str):
        super().__init__(message)
        self.operation = operation
        self.failed_step = failed_step


class ReminderTransactionError(CompositeOperationError):
    """
    The expense for a paid reminder could not be recorded.

    Nothing was changed: the reminder is still there.
    """

    def __init__(self, reminder: Reminder, message: str):
        super().__init__("pay_reminder", "insert_transaction", message)
        self.reminder = reminder


class ReminderRemovalError(CompositeOperationError):
    """
    The expense was recorded but the reminder could not be removed.

    Attributes:
        transaction: The expense that was recorded
        state: The state with the expense and the reminder both present.
               Callers should adopt it; the reminder needs a delete of its own.
    """

    def __init__(self, reminder: Reminder, transaction: Transaction, state: AppState, message: str):
        super().__init__("pay_reminder", "delete_reminder", message)
        self.reminder = reminder
        self.transaction = transaction
        self.state = state


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _replace_control(state: AppState, updated: FinancialControl) -> AppState:
    return state.model_copy(update={
        "controls": [updated if c.id == updated.id else c for c in state.controls]
    })


def _control_or_raise(state: AppState, control_id: UUID) -> FinancialControl:
    control = state.get_control(control_id)
    if control is None:
        raise NotFoundError(f"Control not found: {control_id}")
    return control


class LedgerFlow:
    """
    Mutations of the signed-in user's controls.

    Flow of every operation:
    1. Validate → LedgerValidationError, no store call
    2. Write → StorageError propagates, state unchanged
    3. Return the new state
    """

    def __init__(
        self,
        store: LedgerStorageInterface,
        validator: Optional[LedgerInputValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._validator = validator or LedgerInputValidator()
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock or _utc_now

    async def _validated(self, validate: Callable[..., dict], **form) -> dict:
        try:
            return validate(**form)
        except LedgerValidationError as e:
            await self._audit_logger.log_validation_failed(e.operation, e.to_dicts())
            raise

    async def _write(self, operation: str, call):
        """Await a store call, auditing the failure before it propagates."""
        try:
            return await call
        except StorageError as e:
            await self._audit_logger.log_store_write_failed(operation, str(e))
            raise

    # -------------------------------------------------------------------------
    # Controls
    # -------------------------------------------------------------------------

    async def create_control(
        self,
        state: AppState,
        name: str,
        currency: Union[Currency, str] = Currency.BRL,
        control_type: Union[ControlType, str] = ControlType.INDIVIDUAL,
    ) -> AppState:
        """Create a control for the signed-in user and select it."""
        if state.user is None:
            raise AuthError("Sign in to create a control")

        form = await self._validated(
            self._validator.validate_control,
            name=name,
            currency=currency,
            control_type=control_type,
        )
        control = FinancialControl(
            name=form["name"],
            currency=form["currency"],
            type=form["type"],
            owner_id=state.user.id,
        )
        persisted = await self._write("insert_control", self._store.insert_control(control))

        await self._audit_logger.log_control_created(persisted.id, persisted.name, persisted.owner_id)
        return state.model_copy(update={
            "controls": [*state.controls, persisted],
            "selected_control_id": persisted.id,
        })

    async def delete_control(
        self,
        state: AppState,
        control_id: UUID,
        confirmed: bool,
    ) -> AppState:
        """
        Delete a control with all its transactions, investments and reminders.

        Nothing happens unless the user confirmed.
        """
        if not confirmed:
            return state

        control = _control_or_raise(state, control_id)
        deleted = await self._write("delete_control", self._store.delete_control(control_id))
        if not deleted:
            logger.warning("control_missing_in_store", control_id=str(control_id))

        await self._audit_logger.log_control_deleted(
            control_id=control_id,
            transaction_count=len(control.transactions),
            reminder_count=len(control.reminders),
            investment_count=len(control.investments),
        )
        selected = None if state.selected_control_id == control_id else state.selected_control_id
        return state.model_copy(update={
            "controls": [c for c in state.controls if c.id != control_id],
            "selected_control_id": selected,
        })

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def add_transaction(
        self,
        state: AppState,
        control_id: UUID,
        description: str,
        amount: AmountInput,
        transaction_type: Union[TransactionType, str],
        category: Union[Category, str],
        on_date: DateInput,
    ) -> AppState:
        """Record a one-time transaction, newest first."""
        form = await self._validated(
            self._validator.validate_transaction,
            description=description,
            amount=amount,
            transaction_type=transaction_type,
            category=category,
            on_date=on_date,
        )
        control = _control_or_raise(state, control_id)

        transaction = Transaction(
            description=form["description"],
            amount=form["amount"],
            type=form["type"],
            category=form["category"],
            frequency=TransactionFrequency.ONE_TIME,
            date=form["date"],
        )
        persisted = await self._write(
            "insert_transaction",
            self._store.insert_transaction(control_id, transaction),
        )

        await self._audit_logger.log_transaction_added(
            transaction_id=persisted.id,
            control_id=control_id,
            transaction_type=persisted.type.value,
            amount=str(persisted.amount),
        )
        return _replace_control(state, control.model_copy(update={
            "transactions": [persisted, *control.transactions],
        }))

    async def delete_transaction(
        self,
        state: AppState,
        transaction_id: UUID,
        confirmed: bool,
    ) -> AppState:
        if not confirmed:
            return state

        control = next(
            (c for c in state.controls if any(t.id == transaction_id for t in c.transactions)),
            None,
        )
        if control is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        await self._write("delete_transaction", self._store.delete_transaction(transaction_id))

        await self._audit_logger.log_deleted("transaction", transaction_id)
        return _replace_control(state, control.model_copy(update={
            "transactions": [t for t in control.transactions if t.id != transaction_id],
        }))

    # -------------------------------------------------------------------------
    # Reminders
    # -------------------------------------------------------------------------

    async def add_reminder(
        self,
        state: AppState,
        control_id: UUID,
        description: str,
        amount: AmountInput,
        due_date: DateInput,
    ) -> AppState:
        form = await self._validated(
            self._validator.validate_reminder,
            description=description,
            amount=amount,
            due_date=due_date,
        )
        control = _control_or_raise(state, control_id)

        reminder = Reminder(
            description=form["description"],
            amount=form["amount"],
            date=form["date"],
        )
        persisted = await self._write(
            "insert_reminder",
            self._store.insert_reminder(control_id, reminder),
        )

        await self._audit_logger.log_reminder_added(
            reminder_id=persisted.id,
            control_id=control_id,
            amount=str(persisted.amount),
            due=persisted.date.date().isoformat(),
        )
        return _replace_control(state, control.model_copy(update={
            "reminders": [persisted, *control.reminders],
        }))

    async def pay_reminder(self, state: AppState, reminder: Reminder) -> AppState:
        """
        Turn a reminder into an expense and remove it.

        Step 1 records an expense (category Other, one-time, dated now).
        Step 2 deletes the reminder.

        Raises:
            ReminderTransactionError: Step 1 failed. Nothing changed.
            ReminderRemovalError: Step 2 failed. The expense exists; the
                error carries the state that includes it.
        """
        control = next(
            (c for c in state.controls if c.find_reminder(reminder.id) is not None),
            None,
        )
        if control is None:
            raise NotFoundError(f"Reminder not found: {reminder.id}")

        correlation_id = create_correlation_id()
        expense = Transaction(
            description=reminder.description,
            amount=reminder.amount,
            type=TransactionType.EXPENSE,
            category=Category.OTHER,
            frequency=TransactionFrequency.ONE_TIME,
            date=self._clock(),
        )

        try:
            recorded = await self._store.insert_transaction(control.id, expense)
        except StorageError as e:
            await self._audit_logger.log_store_write_failed(
                "pay_reminder.insert_transaction", str(e), correlation_id
            )
            raise ReminderTransactionError(
                reminder, f"Could not record the payment of '{reminder.description}': {e}"
            ) from e

        await self._audit_logger.log_transaction_added(
            transaction_id=recorded.id,
            control_id=control.id,
            transaction_type=recorded.type.value,
            amount=str(recorded.amount),
            correlation_id=correlation_id,
        )
        control = control.model_copy(update={"transactions": [recorded, *control.transactions]})
        recorded_state = _replace_control(state, control)

        try:
            await self._store.delete_reminder(reminder.id)
        except StorageError as e:
            await self._audit_logger.log_partial_operation(
                operation="pay_reminder",
                completed_step="insert_transaction",
                failed_step="delete_reminder",
                error_message=str(e),
                entity_id=reminder.id,
                correlation_id=correlation_id,
            )
            raise ReminderRemovalError(
                reminder,
                recorded,
                recorded_state,
                f"Payment recorded, but reminder '{reminder.description}' "
                f"must still be removed: {e}",
            ) from e

        await self._audit_logger.log_reminder_paid(reminder.id, recorded.id, correlation_id)
        return _replace_control(recorded_state, control.model_copy(update={
            "reminders": [r for r in control.reminders if r.id != reminder.id],
        }))

    async def delete_reminder(self, state: AppState, reminder_id: UUID) -> AppState:
        control = next(
            (c for c in state.controls if c.find_reminder(reminder_id) is not None),
            None,
        )
        if control is None:
            raise NotFoundError(f"Reminder not found: {reminder_id}")

        await self._write("delete_reminder", self._store.delete_reminder(reminder_id))

        await self._audit_logger.log_deleted("reminder", reminder_id)
        return _replace_control(state, control.model_copy(update={
            "reminders": [r for r in control.reminders if r.id != reminder_id],
        }))


class SessionFlow:
    """
    Who is signed in, which control is open, which language is shown.
    """

    def __init__(
        self,
        store: LedgerStorageInterface,
        auth: AuthProvider,
        audit_logger: Optional[AuditLogger] = None,
        default_language: Optional[Language] = None,
    ):
        self._store = store
        self._auth = auth
        self._audit_logger = audit_logger or AuditLogger()
        self._default_language = default_language

    async def _language(self) -> Language:
        stored = await self._store.get_language()
        if stored is not None:
            return stored
        if self._default_language is not None:
            return self._default_language
        return Language(get_settings().app.default_language)

    async def restore(self) -> AppState:
        """Rebuild the state at startup from the stored session."""
        language = await self._language()
        user = await self._auth.get_active_session()
        if user is None:
            return AppState(language=language)

        controls = await self._store.list_controls(user.id)
        return AppState(user=user, controls=controls, language=language)

    async def sign_up(
        self,
        state: AppState,
        email: str,
        password: str,
        confirm_password: str,
        name: str,
        nickname: Optional[str] = None,
    ) -> AppState:
        try:
            user = await self._auth.sign_up(email, password, confirm_password, name, nickname)
        except AuthError as e:
            await self._audit_logger.log_session_event(
                AuditEventType.AUTH_FAILED, None, f"Sign-up refused: {e}"
            )
            raise
        except LedgerValidationError as e:
            await self._audit_logger.log_validation_failed(e.operation, e.to_dicts())
            raise

        await self._audit_logger.log_session_event(
            AuditEventType.USER_SIGNED_UP, user.id, "User signed up"
        )
        return AppState(user=user, controls=[], language=state.language)

    async def sign_in(self, state: AppState, email: str, password: str) -> AppState:
        try:
            user = await self._auth.sign_in(email, password)
        except AuthError as e:
            await self._audit_logger.log_session_event(
                AuditEventType.AUTH_FAILED, None, str(e)
            )
            raise

        try:
            controls = await self._store.list_controls(user.id)
        except StorageError:
            # The session record was already written; drop it again
            await self._auth.sign_out()
            raise

        await self._audit_logger.log_session_event(
            AuditEventType.USER_SIGNED_IN, user.id, "User signed in",
            details={"controls": len(controls)},
        )
        return AppState(user=user, controls=controls, language=state.language)

    async def sign_out(self, state: AppState) -> AppState:
        await self._auth.sign_out()
        await self._audit_logger.log_session_event(
            AuditEventType.USER_SIGNED_OUT,
            state.user.id if state.user else None,
            "User signed out",
        )
        return AppState(language=state.language)

    async def select_control(self, state: AppState, control_id: Optional[UUID]) -> AppState:
        """Open a control, or go back to the control list with None."""
        if control_id is not None:
            _control_or_raise(state, control_id)
        return state.model_copy(update={"selected_control_id": control_id})

    async def set_language(self, state: AppState, language: Union[Language, str]) -> AppState:
        language = Language(language)
        await self._store.persist_language_preference(language)
        await self._audit_logger.log_session_event(
            AuditEventType.LANGUAGE_CHANGED,
            state.user.id if state.user else None,
            f"Language set to {language.value}",
        )
        return state.model_copy(update={"language": language})

    async def update_profile(
        self,
        state: AppState,
        name: Optional[str] = None,
        nickname: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> AppState:
        try:
            user = await self._auth.update_profile(name=name, nickname=nickname, avatar=avatar)
        except LedgerValidationError as e:
            await self._audit_logger.log_validation_failed(e.operation, e.to_dicts())
            raise
        await self._audit_logger.log_session_event(
            AuditEventType.PROFILE_UPDATED, user.id, "Profile updated"
        )
        return state.model_copy(update={"user": user})


def create_app_components() -> tuple[LedgerFlow, SessionFlow, FinancialAdviceAgent]:
    """
    Factory function to create all application components.

    The storage backend comes from STORAGE_BACKEND. When Google Sheets
    can't be reached we fall back to local records.

    Returns:
        (ledger_flow, session_flow, advice_agent)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    checks = validate_all_settings()
    failing = sorted(name for name, ok in checks.items() if ok is False)
    logger.info(
        "app_starting",
        environment=settings.app.app_environment,
        storage_backend=settings.app.storage_backend,
        unconfigured=failing,
    )
    for name in failing:
        logger.warning("settings_section_invalid", section=name, error=checks[f"{name}_error"])

    store: LedgerStorageInterface
    audit_storage: Optional[AuditStorageInterface] = None

    if settings.app.storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            store = GoogleSheetsLedgerStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except (StorageError, ValidationError) as e:
            logger.warning("sheets_unavailable_using_local_store", error=str(e))
            store = LocalLedgerStore()
    else:
        store = LocalLedgerStore()

    audit_logger = AuditLogger(audit_storage)
    auth = PasswordAuthProvider(accounts=store, sessions=store)

    ledger_flow = LedgerFlow(store, audit_logger=audit_logger)
    session_flow = SessionFlow(store, auth, audit_logger=audit_logger)
    return ledger_flow, session_flow, FinancialAdviceAgent(audit_logger=audit_logger)
