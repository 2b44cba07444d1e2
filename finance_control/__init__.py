"""
Finance Control - Source Package

Personal and group finance tracking: financial controls (ledgers),
transactions, payment reminders and monthly totals.

DESIGN PRINCIPLES:
1. Every user action is one explicit operation over an explicit state
2. Fail early, fail visibly
3. Memory never diverges from what the store accepted
4. Every mutation is auditable
5. Storage layer is swappable (local records or Google Sheets)
"""

__version__ = "1.0.0"
__author__ = "Finance Control Team"
