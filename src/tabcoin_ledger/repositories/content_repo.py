"""Read access to contents needed by the TabCoin engine."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncConnection

from tabcoin_ledger.db.executor import Database
from tabcoin_ledger.models.content import Content

__all__ = ["ContentRepository"]


class ContentRepository:
    """Thin wrapper around content lookups."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def get_owner_id(
        self,
        content_id: str,
        *,
        transaction: AsyncConnection | None = None,
    ) -> str | None:
        """Return the owner of a content, or None when the row does not exist."""
        result = await self.database.execute(
            select(Content.owner_id).where(Content.id == content_id),
            transaction=transaction,
        )
        owner_id = result.scalar_one_or_none()
        return str(owner_id) if owner_id is not None else None
