"""Pydantic value types for the ledger engine."""

from .tabcoins import (
    BalanceType,
    ContentSnapshot,
    ContentStatus,
    ContentType,
    LedgerEntry,
    OriginatorType,
    PrestigeRecord,
)

__all__ = [
    "BalanceType",
    "ContentSnapshot",
    "ContentStatus",
    "ContentType",
    "LedgerEntry",
    "OriginatorType",
    "PrestigeRecord",
]
