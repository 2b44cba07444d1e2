"""
Tests for the ledger mutation flow.

The store is the in-memory local store from conftest; failures are
simulated per operation.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import FIXED_NOW
from finance_control.ledger import filter_transactions, summarize
from finance_control.models import (
    AppState,
    Category,
    Investment,
    InvestmentType,
    TransactionFrequency,
    TransactionType,
)
from finance_control.orchestrator import (
    CompositeOperationError,
    ReminderRemovalError,
    ReminderTransactionError,
)
from finance_control.services.auth import AuthError
from finance_control.services.storage import NotFoundError, StorageError
from finance_control.validation import LedgerValidationError


async def stored_control(store, state):
    """The selected control as the store sees it."""
    [control] = [c for c in await store.list_controls(state.user.id) if c.id == state.selected_control_id]
    return control


class TestCreateControl:

    async def test_appends_and_selects(self, ledger_flow, user):
        state = await ledger_flow.create_control(AppState(user=user), "Casa", "BRL", "individual")
        state = await ledger_flow.create_control(state, "Viagem", "EUR", "group")

        assert [c.name for c in state.controls] == ["Casa", "Viagem"]
        assert state.selected_control_id == state.controls[1].id
        assert state.current_control.transactions == []

    async def test_persisted(self, ledger_flow, store, user):
        state = await ledger_flow.create_control(AppState(user=user), "Casa", "BRL", "individual")
        assert [c.id for c in await store.list_controls(user.id)] == [state.controls[0].id]

    async def test_requires_user(self, ledger_flow, store):
        with pytest.raises(AuthError):
            await ledger_flow.create_control(AppState(), "Casa", "BRL", "individual")
        assert store.calls == []

    async def test_empty_name_never_reaches_store(self, ledger_flow, store, user):
        with pytest.raises(LedgerValidationError):
            await ledger_flow.create_control(AppState(user=user), "  ", "BRL", "individual")
        assert store.calls == []

    async def test_store_failure_leaves_state(self, ledger_flow, store, user):
        state = AppState(user=user)
        store.fail_on.add("insert_control")
        with pytest.raises(StorageError):
            await ledger_flow.create_control(state, "Casa", "BRL", "individual")
        assert state.controls == []
        assert await store.list_controls(user.id) == []


class TestDeleteControl:

    async def test_requires_confirmation(self, ledger_flow, store, state_with_control):
        control_id = state_with_control.selected_control_id
        state = await ledger_flow.delete_control(state_with_control, control_id, confirmed=False)
        assert state is state_with_control
        assert "delete_control" not in store.calls

    async def test_clears_selection(self, ledger_flow, state_with_control):
        control_id = state_with_control.selected_control_id
        state = await ledger_flow.delete_control(state_with_control, control_id, confirmed=True)
        assert state.controls == []
        assert state.selected_control_id is None

    async def test_keeps_other_selection(self, ledger_flow, state_with_control):
        first_id = state_with_control.selected_control_id
        state = await ledger_flow.create_control(state_with_control, "Outro", "USD", "individual")
        second_id = state.selected_control_id

        state = await ledger_flow.delete_control(state, first_id, confirmed=True)
        assert [c.id for c in state.controls] == [second_id]
        assert state.selected_control_id == second_id

    async def test_cascade(self, ledger_flow, store, state_with_control, user):
        """Nothing owned by a deleted control can be found afterwards."""
        control_id = state_with_control.selected_control_id
        state = await ledger_flow.add_transaction(
            state_with_control, control_id, "Salary", "5000", "income", "Salary", "2024-01-05"
        )
        state = await ledger_flow.add_reminder(state, control_id, "Rent", "1200", "2024-03-05")

        # Investments are never created by the flow; seed one directly
        controls = store._load_controls()
        investment = Investment(
            name="CDB", type=InvestmentType.FIXED_INCOME, amount=Decimal("100"),
            date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        store._save_controls([
            c.model_copy(update={"investments": [investment]}) for c in controls
        ])

        state = await ledger_flow.delete_control(state, control_id, confirmed=True)

        assert await store.list_controls(user.id) == []
        assert filter_transactions(state.get_control(control_id), 1, 2024) == []
        assert not any(c.reminders or c.transactions or c.investments for c in state.controls)

    async def test_unknown_control(self, ledger_flow, state_with_control):
        with pytest.raises(NotFoundError):
            await ledger_flow.delete_control(state_with_control, uuid4(), confirmed=True)

    async def test_store_failure_leaves_state(self, ledger_flow, store, state_with_control):
        store.fail_on.add("delete_control")
        with pytest.raises(StorageError):
            await ledger_flow.delete_control(
                state_with_control, state_with_control.selected_control_id, confirmed=True
            )
        assert len(state_with_control.controls) == 1


class TestTransactions:

    async def test_add_prepends_one_time(self, ledger_flow, store, state_with_control):
        control_id = state_with_control.selected_control_id
        state = await ledger_flow.add_transaction(
            state_with_control, control_id, "Salary", "5000", "income", "Salary", date(2024, 1, 5)
        )
        state = await ledger_flow.add_transaction(
            state, control_id, "Market", "12,50", TransactionType.EXPENSE, Category.FOOD, "2024-01-06"
        )

        transactions = state.current_control.transactions
        assert [t.description for t in transactions] == ["Market", "Salary"]
        assert transactions[0].amount == Decimal("12.50")
        assert all(t.frequency == TransactionFrequency.ONE_TIME for t in transactions)
        assert (await stored_control(store, state)).transactions == transactions

    async def test_invalid_input_never_reaches_store(self, ledger_flow, store, state_with_control):
        calls_before = list(store.calls)
        with pytest.raises(LedgerValidationError):
            await ledger_flow.add_transaction(
                state_with_control, state_with_control.selected_control_id,
                "", "0", "income", "Salary", "2024-01-05",
            )
        assert store.calls == calls_before

    async def test_unknown_control(self, ledger_flow, state_with_control):
        with pytest.raises(NotFoundError):
            await ledger_flow.add_transaction(
                state_with_control, uuid4(), "Salary", "5000", "income", "Salary", "2024-01-05"
            )

    async def test_store_failure_leaves_state(self, ledger_flow, store, state_with_control):
        store.fail_on.add("insert_transaction")
        with pytest.raises(StorageError):
            await ledger_flow.add_transaction(
                state_with_control, state_with_control.selected_control_id,
                "Salary", "5000", "income", "Salary", "2024-01-05",
            )
        assert state_with_control.current_control.transactions == []
        assert (await stored_control(store, state_with_control)).transactions == []

    async def test_delete(self, ledger_flow, store, state_with_control):
        state = await ledger_flow.add_transaction(
            state_with_control, state_with_control.selected_control_id,
            "Salary", "5000", "income", "Salary", "2024-01-05",
        )
        transaction_id = state.current_control.transactions[0].id

        unchanged = await ledger_flow.delete_transaction(state, transaction_id, confirmed=False)
        assert unchanged is state

        state = await ledger_flow.delete_transaction(state, transaction_id, confirmed=True)
        assert state.current_control.transactions == []
        assert (await stored_control(store, state)).transactions == []

    async def test_delete_unknown(self, ledger_flow, state_with_control):
        with pytest.raises(NotFoundError):
            await ledger_flow.delete_transaction(state_with_control, uuid4(), confirmed=True)

    async def test_summary_follows_mutations(self, ledger_flow, state_with_control):
        control_id = state_with_control.selected_control_id
        state = state_with_control
        for description, amount, kind, category, on in [
            ("Salary", "1000", "income", "Salary", "2024-01-10"),
            ("Market", "300", "expense", "Food", "2024-01-20"),
            ("Bus", "50", "expense", "Transportation", "2024-02-03"),
        ]:
            state = await ledger_flow.add_transaction(
                state, control_id, description, amount, kind, category, on
            )

        summary = summarize(
            filter_transactions(state.current_control, 1, 2024, tz=timezone.utc)
        )
        assert summary.balance == Decimal("700")


class TestReminders:

    async def test_add_and_delete(self, ledger_flow, store, state_with_control):
        control_id = state_with_control.selected_control_id
        state = await ledger_flow.add_reminder(state_with_control, control_id, "Rent", "1200", "2024-03-05")
        reminder = state.current_control.reminders[0]
        assert reminder.date == datetime(2024, 3, 5, 12, tzinfo=timezone.utc)

        state = await ledger_flow.delete_reminder(state, reminder.id)
        assert state.current_control.reminders == []
        assert (await stored_control(store, state)).reminders == []

    async def test_delete_unknown(self, ledger_flow, state_with_control):
        with pytest.raises(NotFoundError):
            await ledger_flow.delete_reminder(state_with_control, uuid4())


class TestPayReminder:
    """The two-step payment of a reminder."""

    @pytest.fixture
    async def state_with_rent(self, ledger_flow, state_with_control):
        return await ledger_flow.add_reminder(
            state_with_control, state_with_control.selected_control_id,
            "Rent", "1200", "2024-03-05",
        )

    async def test_rent_scenario(self, ledger_flow, store, state_with_rent):
        reminder = state_with_rent.current_control.reminders[0]
        state = await ledger_flow.pay_reminder(state_with_rent, reminder)

        control = state.current_control
        assert control.reminders == []
        [expense] = control.transactions
        assert expense.amount == Decimal("1200")
        assert expense.description == "Rent"
        assert expense.type == TransactionType.EXPENSE
        assert expense.category == Category.OTHER
        assert expense.frequency == TransactionFrequency.ONE_TIME
        assert expense.date == FIXED_NOW

        stored = await stored_control(store, state)
        assert stored.reminders == []
        assert stored.transactions == [expense]

    async def test_insert_failure_changes_nothing(self, ledger_flow, store, state_with_rent):
        reminder = state_with_rent.current_control.reminders[0]
        store.fail_on.add("insert_transaction")

        with pytest.raises(ReminderTransactionError) as exc_info:
            await ledger_flow.pay_reminder(state_with_rent, reminder)

        assert isinstance(exc_info.value, CompositeOperationError)
        assert exc_info.value.failed_step == "insert_transaction"
        assert "delete_reminder" not in store.calls
        stored = await stored_control(store, state_with_rent)
        assert stored.reminders == [reminder]
        assert stored.transactions == []

    async def test_removal_failure_keeps_both(self, ledger_flow, store, state_with_rent):
        reminder = state_with_rent.current_control.reminders[0]
        store.fail_on.add("delete_reminder")

        with pytest.raises(ReminderRemovalError) as exc_info:
            await ledger_flow.pay_reminder(state_with_rent, reminder)

        error = exc_info.value
        assert error.failed_step == "delete_reminder"
        assert error.transaction.amount == Decimal("1200")
        # The returned state matches the store: expense recorded, reminder kept
        assert error.state.current_control.transactions == [error.transaction]
        assert error.state.current_control.reminders == [reminder]
        stored = await stored_control(store, error.state)
        assert stored.transactions == [error.transaction]
        assert stored.reminders == [reminder]

    async def test_finish_after_removal_failure(self, ledger_flow, store, state_with_rent):
        """Deleting the reminder afterwards completes the payment."""
        reminder = state_with_rent.current_control.reminders[0]
        store.fail_on.add("delete_reminder")
        with pytest.raises(ReminderRemovalError) as exc_info:
            await ledger_flow.pay_reminder(state_with_rent, reminder)

        store.fail_on.clear()
        state = await ledger_flow.delete_reminder(exc_info.value.state, reminder.id)
        assert state.current_control.reminders == []
        assert len(state.current_control.transactions) == 1

    async def test_unknown_reminder(self, ledger_flow, state_with_rent):
        stranger = state_with_rent.current_control.reminders[0].model_copy(update={"id": uuid4()})
        with pytest.raises(NotFoundError):
            await ledger_flow.pay_reminder(state_with_rent, stranger)
