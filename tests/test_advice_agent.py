"""Tests for the advice agent. The model is always a fake."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_control.agents import FinancialAdviceAgent
from finance_control.agents.advice_agent import EMPTY_MESSAGES, FALLBACK_MESSAGES
from finance_control.audit import AuditLogger
from finance_control.config import GeminiSettings
from finance_control.models import (
    AuditEventType,
    Category,
    Language,
    Transaction,
    TransactionFrequency,
    TransactionType,
)
from finance_control.services.storage import AuditStorageInterface


class RecordingAuditStorage(AuditStorageInterface):

    def __init__(self):
        self.events = []

    async def append_event(self, event):
        self.events.append(event)
        return True

    async def get_recent_events(self, limit=100):
        return list(reversed(self.events))[:limit]


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:

    def __init__(self, text="## Summary\nAll good.", error=None):
        self.text = text
        self.error = error
        self.prompts: list[str] = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return FakeResponse(self.text)


@pytest.fixture
def transactions():
    return [
        Transaction(
            description="Aluguel",
            amount=Decimal("1200"),
            type=TransactionType.EXPENSE,
            category=Category.HOUSING,
            frequency=TransactionFrequency.MONTHLY,
            date=datetime(2024, 1, 5, 12, tzinfo=timezone.utc),
        ),
        Transaction(
            description="Salário",
            amount=Decimal("5000"),
            type=TransactionType.INCOME,
            category=Category.SALARY,
            date=datetime(2024, 1, 1, 12, tzinfo=timezone.utc),
        ),
    ]


class TestGetAdvice:

    @pytest.mark.parametrize("language", list(Language))
    async def test_empty_input(self, language):
        model = FakeModel()
        agent = FinancialAdviceAgent(model=model)
        assert await agent.get_advice([], language) == EMPTY_MESSAGES[language]
        assert model.prompts == []

    async def test_returns_model_text(self, transactions):
        agent = FinancialAdviceAgent(model=FakeModel(text="  ## Resumo\nTudo certo.  "))
        assert await agent.get_advice(transactions, Language.PT_BR) == "## Resumo\nTudo certo."

    @pytest.mark.parametrize("language", list(Language))
    async def test_failure_falls_back(self, transactions, language):
        agent = FinancialAdviceAgent(model=FakeModel(error=RuntimeError("503")))
        assert await agent.get_advice(transactions, language) == FALLBACK_MESSAGES[language]

    async def test_empty_answer_falls_back(self, transactions):
        agent = FinancialAdviceAgent(model=FakeModel(text=""))
        assert await agent.get_advice(transactions, "en-US") == FALLBACK_MESSAGES[Language.EN_US]

    async def test_missing_api_key_falls_back(self, transactions, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        agent = FinancialAdviceAgent()
        assert await agent.get_advice(transactions, Language.EN_US) == FALLBACK_MESSAGES[Language.EN_US]

    def test_explicit_settings_build_a_model(self):
        agent = FinancialAdviceAgent(settings=GeminiSettings(api_key="test-key"))
        assert agent._model is not None


class TestPrompt:

    def test_contains_transactions(self, transactions):
        prompt = FinancialAdviceAgent.build_prompt(transactions, Language.PT_BR)
        assert "Aluguel" in prompt
        assert "Salário" in prompt
        assert '"frequency": "monthly"' in prompt
        assert '"amount": "1200"' in prompt

    def test_asks_for_the_four_sections(self, transactions):
        prompt = FinancialAdviceAgent.build_prompt(transactions, Language.EN_US)
        assert "fixed monthly spending" in prompt
        assert "3 practical" in prompt
        assert "Great, Good, Warning or Critical" in prompt
        assert "Markdown" in prompt

    def test_answer_language(self, transactions):
        assert "Brazilian Portuguese" in FinancialAdviceAgent.build_prompt(transactions, Language.PT_BR)
        assert "English (US)" in FinancialAdviceAgent.build_prompt(transactions, Language.EN_US)

    async def test_sent_to_model(self, transactions):
        model = FakeModel()
        agent = FinancialAdviceAgent(model=model)
        await agent.get_advice(transactions, Language.EN_US)
        assert model.prompts == [FinancialAdviceAgent.build_prompt(transactions, Language.EN_US)]


class TestAuditTrail:

    @pytest.fixture
    def audit_storage(self):
        return RecordingAuditStorage()

    async def test_request_is_recorded(self, transactions, audit_storage):
        control_id = uuid4()
        agent = FinancialAdviceAgent(model=FakeModel(), audit_logger=AuditLogger(audit_storage))
        await agent.get_advice(transactions, Language.EN_US, control_id=control_id)

        [event] = audit_storage.events
        assert event.event_type == AuditEventType.ADVICE_REQUESTED
        assert event.entity_id == control_id
        assert event.details == {"transactions": 2, "language": "en-US"}

    async def test_failed_call_is_recorded(self, transactions, audit_storage):
        agent = FinancialAdviceAgent(
            model=FakeModel(error=RuntimeError("503")), audit_logger=AuditLogger(audit_storage)
        )
        await agent.get_advice(transactions, Language.PT_BR)

        requested, failed = audit_storage.events
        assert failed.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert failed.error_message == "503"
        assert failed.correlation_id == requested.correlation_id

    async def test_empty_input_is_not_recorded(self, audit_storage):
        agent = FinancialAdviceAgent(model=FakeModel(), audit_logger=AuditLogger(audit_storage))
        await agent.get_advice([], Language.PT_BR)
        assert audit_storage.events == []
