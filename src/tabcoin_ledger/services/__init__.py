# src/tabcoin_ledger/services/__init__.py
"""Business logic services for the TabCoin ledger."""

from .prestige import LedgerWriter, ParentOwnerLookup, PrestigeGateway
from .status import get_database_status
from .tabcoins import TabCoinTransitionEngine, TransitionKind, classify

__all__ = [
    "LedgerWriter",
    "ParentOwnerLookup",
    "PrestigeGateway",
    "TabCoinTransitionEngine",
    "TransitionKind",
    "classify",
    "get_database_status",
]
