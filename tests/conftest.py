"""
Shared fixtures.

Every store here is in memory; nothing touches the network or the disk.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from finance_control.models import AppState, User
from finance_control.orchestrator import LedgerFlow
from finance_control.services.storage import LocalLedgerStore, MemoryBackend, StorageError
from finance_control.validation import LedgerInputValidator


FIXED_NOW = datetime(2024, 3, 10, 15, 30, tzinfo=timezone.utc)


class FlakyLedgerStore(LocalLedgerStore):
    """Local store that fails the operations named in fail_on."""

    def __init__(self, *args, fail_on=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_on = set(fail_on)
        self.calls: list[str] = []

    def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise StorageError(f"simulated failure: {operation}")

    async def list_controls(self, owner_id):
        self._call("list_controls")
        return await super().list_controls(owner_id)

    async def insert_control(self, control):
        self._call("insert_control")
        return await super().insert_control(control)

    async def delete_control(self, control_id):
        self._call("delete_control")
        return await super().delete_control(control_id)

    async def insert_transaction(self, control_id, transaction):
        self._call("insert_transaction")
        return await super().insert_transaction(control_id, transaction)

    async def delete_transaction(self, transaction_id):
        self._call("delete_transaction")
        return await super().delete_transaction(transaction_id)

    async def insert_reminder(self, control_id, reminder):
        self._call("insert_reminder")
        return await super().insert_reminder(control_id, reminder)

    async def delete_reminder(self, reminder_id):
        self._call("delete_reminder")
        return await super().delete_reminder(reminder_id)


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    return FlakyLedgerStore(backend=backend, key_prefix="finance_control")


@pytest.fixture
def validator():
    return LedgerInputValidator(max_amount=Decimal("1000000000"))


@pytest.fixture
def user():
    return User(name="Ana Souza", nickname="Ana", email="ana@example.com")


@pytest.fixture
def ledger_flow(store, validator):
    return LedgerFlow(store, validator=validator, clock=lambda: FIXED_NOW)


@pytest.fixture
async def state_with_control(ledger_flow, user):
    """Signed-in state with one selected, empty BRL control."""
    return await ledger_flow.create_control(AppState(user=user), "Casa", "BRL", "individual")
