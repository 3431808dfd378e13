"""Interfaces of the collaborators the TabCoin engine depends on."""

from __future__ import annotations

from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncConnection

from tabcoin_ledger.schemas.tabcoins import LedgerEntry, PrestigeRecord


class PrestigeGateway(Protocol):
    """Reputation service that scores users and contents.

    The scoring algorithm lives elsewhere; the engine only reads its numbers.
    """

    async def get_by_content_id(
        self,
        content_id: str,
        *,
        transaction: AsyncConnection | None = None,
    ) -> PrestigeRecord | None:
        """Return the earnings attributed to a content over its published life."""
        ...

    async def get_by_user_id(
        self,
        user_id: str,
        *,
        is_root: bool,
        transaction: AsyncConnection | None = None,
    ) -> int:
        """Return the signed earnings a user gets for a new publication."""
        ...


class LedgerWriter(Protocol):
    """Append-only store of balance entries."""

    async def create(self, entry: LedgerEntry, *, transaction: AsyncConnection | None = None) -> Any:
        ...


class ParentOwnerLookup(Protocol):
    async def get_owner_id(
        self,
        content_id: str,
        *,
        transaction: AsyncConnection | None = None,
    ) -> str | None:
        ...
