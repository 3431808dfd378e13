"""Ledger writer backed by the balance_operations table."""
from __future__ import annotations

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncConnection

from tabcoin_ledger.db.executor import Database
from tabcoin_ledger.models.balance import BalanceOperation
from tabcoin_ledger.schemas.tabcoins import LedgerEntry

__all__ = ["BalanceRepository"]


class BalanceRepository:
    """Appends immutable balance operations through the query executor."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def create(self, entry: LedgerEntry, *, transaction: AsyncConnection | None = None) -> str:
        """Insert one ledger entry and return the new operation id.

        Args:
            entry: Entry to persist.
            transaction: Open transaction the insert must join.
        """
        stmt = (
            insert(BalanceOperation)
            .values(
                balance_type=entry.balance_type.value,
                recipient_id=entry.recipient_id,
                amount=entry.amount,
                originator_type=entry.originator_type.value,
                originator_id=entry.originator_id,
            )
            .returning(BalanceOperation.id)
        )
        result = await self.database.execute(stmt, transaction=transaction)
        return result.scalar_one()
