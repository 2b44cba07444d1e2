"""Tests for the local record store."""

import json
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_control.models import (
    Account,
    Category,
    FinancialControl,
    Language,
    Reminder,
    Transaction,
    TransactionType,
    User,
)
from finance_control.services.storage import (
    DuplicateError,
    JsonFileBackend,
    LocalLedgerStore,
    MemoryBackend,
    NotFoundError,
    StorageError,
)


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    return LocalLedgerStore(backend=backend, key_prefix="finance_control")


@pytest.fixture
def owner():
    return User(name="Ana", email="ana@example.com")


def transaction(amount="10", kind=TransactionType.EXPENSE):
    return Transaction(
        description="Market",
        amount=Decimal(amount),
        type=kind,
        category=Category.FOOD,
        date=datetime(2024, 1, 5, 12, tzinfo=timezone.utc),
    )


class TestRecords:
    """Tests for the record layout."""

    async def test_keys(self, store, backend, owner):
        await store.insert_control(FinancialControl(name="Casa", owner_id=owner.id))
        await store.get_or_create_session(owner)
        await store.persist_language_preference(Language.EN_US)
        await store.save_account(Account(user=owner, password_hash="x"))

        assert set(backend._records) == {
            "finance_control_data",
            "finance_control_session",
            "finance_control_settings",
            "finance_control_registered_users",
        }

    async def test_controls_record_is_camel_case(self, store, backend, owner):
        control = FinancialControl(name="Casa", owner_id=owner.id)
        await store.insert_control(control)
        await store.insert_transaction(control.id, transaction())

        [record] = json.loads(backend.get("finance_control_data"))
        assert record["ownerId"] == str(owner.id)
        assert "owner_id" not in record
        assert record["transactions"][0]["amount"] == "10"

    async def test_reads_camel_case_record(self, backend, owner):
        """A record written by another client loads."""
        control_id = str(uuid4())
        backend.set("finance_control_data", json.dumps([{
            "id": control_id,
            "name": "Casa",
            "currency": "BRL",
            "type": "group",
            "ownerId": str(owner.id),
            "members": ["bia@example.com"],
            "transactions": [{
                "id": str(uuid4()),
                "description": "Salary",
                "amount": 5000,
                "type": "income",
                "category": "Salary",
                "frequency": "monthly",
                "date": "2024-01-05T12:00:00.000Z",
            }],
            "investments": [],
            "reminders": [],
        }]))
        store = LocalLedgerStore(backend=backend, key_prefix="finance_control")

        [control] = await store.list_controls(owner.id)
        assert str(control.id) == control_id
        assert control.members == ["bia@example.com"]
        assert control.transactions[0].amount == Decimal("5000")

    async def test_corrupt_record(self, store, backend, owner):
        backend.set("finance_control_data", "{not json")
        with pytest.raises(StorageError):
            await store.list_controls(owner.id)


class TestControls:

    async def test_only_owner_controls(self, store, owner):
        mine = FinancialControl(name="Mine", owner_id=owner.id)
        theirs = FinancialControl(name="Theirs", owner_id=uuid4())
        await store.insert_control(mine)
        await store.insert_control(theirs)
        assert [c.name for c in await store.list_controls(owner.id)] == ["Mine"]

    async def test_duplicate_id(self, store, owner):
        control = FinancialControl(name="Casa", owner_id=owner.id)
        await store.insert_control(control)
        with pytest.raises(DuplicateError):
            await store.insert_control(control)

    async def test_delete(self, store, owner):
        control = FinancialControl(name="Casa", owner_id=owner.id)
        await store.insert_control(control)
        assert await store.delete_control(control.id) is True
        assert await store.delete_control(control.id) is False
        assert await store.list_controls(owner.id) == []


class TestChildren:

    async def test_insert_needs_control(self, store):
        with pytest.raises(NotFoundError):
            await store.insert_transaction(uuid4(), transaction())
        with pytest.raises(NotFoundError):
            await store.insert_reminder(
                uuid4(),
                Reminder(description="Rent", amount=Decimal("1"), date=datetime.now(timezone.utc)),
            )

    async def test_newest_first(self, store, owner):
        control = FinancialControl(name="Casa", owner_id=owner.id)
        await store.insert_control(control)
        first, second = transaction("1"), transaction("2")
        await store.insert_transaction(control.id, first)
        await store.insert_transaction(control.id, second)

        [loaded] = await store.list_controls(owner.id)
        assert [t.id for t in loaded.transactions] == [second.id, first.id]

    async def test_delete_transaction(self, store, owner):
        control = FinancialControl(name="Casa", owner_id=owner.id)
        await store.insert_control(control)
        item = transaction()
        await store.insert_transaction(control.id, item)

        assert await store.delete_transaction(item.id) is True
        assert await store.delete_transaction(item.id) is False

    async def test_delete_reminder(self, store, owner):
        control = FinancialControl(name="Casa", owner_id=owner.id)
        await store.insert_control(control)
        reminder = Reminder(description="Rent", amount=Decimal("1200"), date=datetime.now(timezone.utc))
        await store.insert_reminder(control.id, reminder)

        assert await store.delete_reminder(reminder.id) is True
        [loaded] = await store.list_controls(owner.id)
        assert loaded.reminders == []


class TestSessionAndLanguage:

    async def test_no_session(self, store):
        assert await store.get_or_create_session() is None

    async def test_session_round_trip(self, store, owner):
        await store.get_or_create_session(owner)
        assert await store.get_or_create_session() == owner
        await store.clear_session()
        assert await store.get_or_create_session() is None

    async def test_corrupt_session_is_dropped(self, store, backend):
        backend.set("finance_control_session", '{"name": ""}')
        assert await store.get_or_create_session() is None
        assert backend.get("finance_control_session") is None

    async def test_language(self, store, backend):
        assert await store.get_language() is None
        await store.persist_language_preference(Language.EN_US)
        assert backend.get("finance_control_settings") == "en-US"
        assert await store.get_language() == Language.EN_US

    async def test_unknown_language_is_ignored(self, store, backend):
        backend.set("finance_control_settings", "fr-FR")
        assert await store.get_language() is None


class TestAccounts:

    async def test_find_is_case_insensitive(self, store, owner):
        await store.save_account(Account(user=owner, password_hash="hash"))
        found = await store.find_account("  ANA@example.com ")
        assert found.user == owner
        assert await store.find_account("bia@example.com") is None

    async def test_save_replaces_same_user(self, store, owner):
        await store.save_account(Account(user=owner, password_hash="old"))
        renamed = owner.model_copy(update={"name": "Ana Maria"})
        await store.save_account(Account(user=renamed, password_hash="old"))

        found = await store.find_account(owner.email)
        assert found.user.name == "Ana Maria"
        assert len(store._load_accounts()) == 1


class TestJsonFileBackend:

    def test_round_trip(self, tmp_path):
        backend = JsonFileBackend(str(tmp_path / "records"))
        assert backend.get("finance_control_data") is None

        backend.set("finance_control_data", "[]")
        assert (tmp_path / "records" / "finance_control_data.json").read_text() == "[]"
        assert backend.get("finance_control_data") == "[]"

        backend.remove("finance_control_data")
        backend.remove("finance_control_data")
        assert backend.get("finance_control_data") is None

    async def test_store_on_disk(self, tmp_path):
        owner = User(name="Ana", email="ana@example.com")
        first = LocalLedgerStore(backend=JsonFileBackend(str(tmp_path)), key_prefix="fc")
        control = FinancialControl(name="Casa", owner_id=owner.id)
        await first.insert_control(control)

        second = LocalLedgerStore(backend=JsonFileBackend(str(tmp_path)), key_prefix="fc")
        assert [c.id for c in await second.list_controls(owner.id)] == [control.id]
