"""
E-Money Ledger Engine

Single-process electronic-money ledger: account balances, transfers,
payments and admin-approved top-ups, persisted to a JSON snapshot.
All monetary values use Decimal precision.
"""

__version__ = "1.0.0"
