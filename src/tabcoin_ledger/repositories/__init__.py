"""Data access helpers built on the query executor."""

from .balance_repo import BalanceRepository
from .content_repo import ContentRepository

__all__ = ["BalanceRepository", "ContentRepository"]
