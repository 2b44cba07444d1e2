"""AI Agents package."""

from finance_control.agents.advice_agent import FinancialAdviceAgent

__all__ = ["FinancialAdviceAgent"]
