"""
Financial Advice Agent

DESIGN DECISION: The LLM only COMMENTS on data the user already recorded.
It receives the transactions of the selected control and returns Markdown
text. Nothing it says is written back to the ledger.

BOUNDARIES:
- CAN: Summarize spending, point at heavy categories, suggest savings
- CANNOT: Create, change or delete any record
- NEVER raises: any failure, including a missing API key, becomes a
  localized fallback message
"""

import json
from typing import Any, Optional, Sequence
from uuid import UUID

import google.generativeai as genai
import structlog
from pydantic import ValidationError

from finance_control.audit import AuditLogger, create_correlation_id
from finance_control.config import GeminiSettings, get_settings
from finance_control.models.ledger import Language, Transaction


logger = structlog.get_logger(__name__)

EMPTY_MESSAGES = {
    Language.PT_BR: "Adicione algumas transações para que eu possa analisar suas finanças!",
    Language.EN_US: "Add some transactions so I can analyze your finances!",
}

FALLBACK_MESSAGES = {
    Language.PT_BR: (
        "Desculpe, não consegui analisar suas finanças no momento. "
        "Tente novamente mais tarde."
    ),
    Language.EN_US: (
        "Sorry, I couldn't analyze your finances at the moment. "
        "Please try again later."
    ),
}

LANGUAGE_NAMES = {
    Language.PT_BR: "Brazilian Portuguese",
    Language.EN_US: "English (US)",
}


class FinancialAdviceAgent:
    """
    Gemini-backed commentary on a list of transactions.

    Args:
        settings: Gemini settings. Loaded from the environment when omitted.
        model: Anything with an async generate_content_async(prompt).
               Built from settings when omitted.
        audit_logger: Records each request and each failed call
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Optional[Any] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._audit_logger = audit_logger or AuditLogger()
        self._model = model
        if self._model is None:
            self._model = self._configure_genai(settings)

    def _configure_genai(self, settings: Optional[GeminiSettings]) -> Optional[Any]:
        """Configure Google Generative AI, or return None without an API key."""
        if settings is None:
            try:
                settings = get_settings().gemini
            except ValidationError:
                logger.warning("gemini_not_configured")
                return None

        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "top_p": settings.top_p,
                "top_k": settings.top_k,
                "max_output_tokens": settings.max_tokens,
            },
        )

    @staticmethod
    def build_prompt(transactions: Sequence[Transaction], language: Language) -> str:
        summary = [
            {
                "type": t.type.value,
                "amount": str(t.amount),
                "category": t.category.value,
                "description": t.description,
                "frequency": t.frequency.value,
                "date": t.date.isoformat(),
            }
            for t in transactions
        ]

        return f"""Analyze the following history of financial transactions and provide:
1. A short summary of the financial behaviour, highlighting the impact of fixed monthly spending versus one-time spending.
2. Possible waste, or categories with high spending.
3. 3 practical, personalized tips to save or invest better, taking the recurring commitments into account.
4. An overall financial health rating (Great, Good, Warning or Critical).

Transactions:
{json.dumps(summary, indent=2, ensure_ascii=False)}

Answer in {LANGUAGE_NAMES[language]}, in a friendly and professional tone. Use Markdown for formatting."""

    async def get_advice(
        self,
        transactions: Sequence[Transaction],
        language: Language = Language.PT_BR,
        control_id: Optional[UUID] = None,
    ) -> str:
        """
        Ask the model for advice on the given transactions.

        Returns:
            Markdown text, or a localized message when there is nothing
            to analyze or the model can't be reached
        """
        language = Language(language)
        if not transactions:
            return EMPTY_MESSAGES[language]

        correlation_id = create_correlation_id()
        await self._audit_logger.log_advice_requested(
            control_id, len(transactions), language.value, correlation_id
        )

        if self._model is None:
            await self._audit_logger.log_external_service_error(
                "gemini", "API key not configured", correlation_id
            )
            return FALLBACK_MESSAGES[language]

        try:
            response = await self._model.generate_content_async(
                self.build_prompt(transactions, language)
            )
            text = (response.text or "").strip()
        except Exception as e:
            logger.error("advice_request_failed", error=str(e))
            await self._audit_logger.log_external_service_error("gemini", str(e), correlation_id)
            return FALLBACK_MESSAGES[language]

        return text or FALLBACK_MESSAGES[language]
