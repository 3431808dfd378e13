# src/tabcoin_ledger/models/__init__.py
"""SQLAlchemy models for the TabCoin ledger."""

from .balance import BalanceOperation
from .content import Content

__all__ = ["BalanceOperation", "Content"]
