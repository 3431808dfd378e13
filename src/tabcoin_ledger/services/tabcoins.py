"""TabCoin credits and debits for content lifecycle transitions.

A transition is the pair (old snapshot, new snapshot) of one content. Two
independent decisions are derived from it:

- debit: a content that was published leaves the published state, so the
  owner gives back what the content earned;
- credit: a content is published for the first time, so the owner earns
  TabCoins and the content receives its initial grant.

Planning is pure (snapshots and prestige figures in, ledger entries out); the
engine performs the lookups and writes everything inside the caller's
transaction.
"""

from __future__ import annotations

import logging
import re
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncConnection

from tabcoin_ledger.core.errors import ForbiddenTransition
from tabcoin_ledger.schemas.tabcoins import (
    BalanceType,
    ContentSnapshot,
    ContentStatus,
    ContentType,
    LedgerEntry,
    OriginatorType,
    PrestigeRecord,
)
from tabcoin_ledger.services.prestige import LedgerWriter, ParentOwnerLookup, PrestigeGateway

logger = logging.getLogger(__name__)

INITIAL_CONTENT_EARNINGS = 1
MIN_SUBSTANTIAL_WORDS = 5
_SUBSTANTIAL_WORD = re.compile(r"[a-z]{5,}", re.IGNORECASE)

NEGATIVE_EARNINGS_MESSAGE = (
    "Cannot publish while other poorly-rated publications by this user remain undeleted."
)
NEGATIVE_EARNINGS_ACTION = "Delete or improve your poorly-rated publications before publishing again."


class TransitionKind(str, Enum):
    """Economic meaning of a lifecycle transition."""

    NEVER_PUBLISHED = "never_published"
    STILL_PUBLISHED = "still_published"
    NEWLY_UNPUBLISHED = "newly_unpublished"
    NEWLY_PUBLISHED = "newly_published"
    # Same lifecycle state on both sides, or a content already deleted.
    UNCHANGED = "unchanged"


def _same_lifecycle(old: ContentSnapshot, new: ContentSnapshot) -> bool:
    return old.status == new.status and old.was_published == new.was_published


def needs_debit(old: ContentSnapshot | None, new: ContentSnapshot) -> bool:
    """Return True when a published content is leaving the published state."""
    if old is None or not old.was_published:
        return False
    if old.status == ContentStatus.DELETED or new.status == ContentStatus.PUBLISHED:
        return False
    return not _same_lifecycle(old, new)


def needs_credit(old: ContentSnapshot | None, new: ContentSnapshot) -> bool:
    """Return True when a content is published for the first time."""
    if not new.was_published or new.status != ContentStatus.PUBLISHED:
        return False
    return old is None or not old.was_published


def classify(old: ContentSnapshot | None, new: ContentSnapshot) -> TransitionKind:
    if old is not None and (_same_lifecycle(old, new) or old.status == ContentStatus.DELETED):
        return TransitionKind.UNCHANGED
    if needs_debit(old, new):
        return TransitionKind.NEWLY_UNPUBLISHED
    if needs_credit(old, new):
        return TransitionKind.NEWLY_PUBLISHED
    if old is not None and old.was_published:
        return TransitionKind.STILL_PUBLISHED
    return TransitionKind.NEVER_PUBLISHED


def has_substantial_body(body: str | None) -> bool:
    """Return True when the body holds enough words of five letters or more."""
    return len(_SUBSTANTIAL_WORD.findall(body or "")) >= MIN_SUBSTANTIAL_WORDS


def plan_debit(
    old: ContentSnapshot,
    new: ContentSnapshot,
    record: PrestigeRecord | None,
) -> list[LedgerEntry]:
    """Return the entry that claws back a content's earnings.

    Everything the content earned is taken back when its total is positive;
    otherwise only the initial grant is reverted.
    """
    if record is None:
        return []

    if record.total_tabcoins > 0:
        amount_to_debit = record.total_tabcoins
    else:
        amount_to_debit = -record.initial_tabcoins

    if not amount_to_debit:
        return []

    return [
        LedgerEntry(
            balance_type=BalanceType.USER_TABCOIN,
            recipient_id=new.owner_id,
            amount=-amount_to_debit,
            originator_type=OriginatorType.CONTENT,
            originator_id=new.id,
        )
    ]


def ensure_publishable(user_earnings: int) -> None:
    """Reject publication while the owner has net negative earnings.

    Raises:
        ForbiddenTransition: If ``user_earnings`` is negative.
    """
    if user_earnings < 0:
        raise ForbiddenTransition(
            NEGATIVE_EARNINGS_MESSAGE,
            action=NEGATIVE_EARNINGS_ACTION,
            context={"user_earnings": user_earnings},
        )


def plan_credit(
    new: ContentSnapshot,
    user_earnings: int,
    parent_owner_id: str | None = None,
) -> list[LedgerEntry]:
    """Return the entries credited when ``new`` is published for the first time.

    Args:
        new: Snapshot being published.
        user_earnings: Signed earnings reported by the prestige service.
        parent_owner_id: Owner of the parent content, for replies.

    Raises:
        ForbiddenTransition: If ``user_earnings`` is negative.
    """
    ensure_publishable(user_earnings)

    content_earnings = INITIAL_CONTENT_EARNINGS

    if new.type != ContentType.CONTENT:
        user_earnings = 0

    if not has_substantial_body(new.body):
        user_earnings = 0
        content_earnings = 0

    if new.parent_id is not None and parent_owner_id == new.owner_id:
        user_earnings = 0
        content_earnings = 0

    entries: list[LedgerEntry] = []
    if user_earnings:
        entries.append(
            LedgerEntry(
                balance_type=BalanceType.USER_TABCOIN,
                recipient_id=new.owner_id,
                amount=user_earnings,
                originator_type=OriginatorType.CONTENT,
                originator_id=new.id,
            )
        )
    if content_earnings:
        entries.append(
            LedgerEntry(
                balance_type=BalanceType.CONTENT_TABCOIN_INITIAL,
                recipient_id=new.id,
                amount=content_earnings,
                originator_type=OriginatorType.USER,
                originator_id=new.owner_id,
            )
        )
    return entries


class TabCoinTransitionEngine:
    """Posts TabCoin ledger entries for content lifecycle transitions."""

    def __init__(
        self,
        *,
        prestige: PrestigeGateway,
        ledger: LedgerWriter,
        contents: ParentOwnerLookup,
    ) -> None:
        self.prestige = prestige
        self.ledger = ledger
        self.contents = contents

    async def transition(
        self,
        old: ContentSnapshot | None,
        new: ContentSnapshot,
        *,
        transaction: AsyncConnection,
    ) -> list[LedgerEntry]:
        """Credit or debit TabCoins for one content transition.

        The debit decision completes, including its write, before the credit
        decision starts. Both run on ``transaction``; the caller commits or
        rolls back, so a rejection never leaves partial writes behind.

        Args:
            old: Snapshot before the change, or None when the content is new.
            new: Snapshot after the change.
            transaction: Open transaction shared by every lookup and write.

        Returns:
            The entries written, in order.

        Raises:
            ForbiddenTransition: If the owner may not publish right now.
            QueryError: If a statement failed.
            ConnectionAcquisitionError: If a collaborator could not get a connection.
        """
        kind = classify(old, new)
        logger.debug("Content %s transition classified as %s", new.id, kind.value)
        if kind is TransitionKind.UNCHANGED:
            return []

        written: list[LedgerEntry] = []

        if old is not None and needs_debit(old, new):
            record = await self.prestige.get_by_content_id(old.id, transaction=transaction)
            entries = plan_debit(old, new, record)
            await self._apply(entries, transaction)
            written.extend(entries)

        if needs_credit(old, new):
            user_earnings = await self.prestige.get_by_user_id(
                new.owner_id,
                is_root=True,
                transaction=transaction,
            )
            try:
                ensure_publishable(user_earnings)
            except ForbiddenTransition as exc:
                logger.info(
                    "Rejected publication of content %s by %s: %s",
                    new.id,
                    new.owner_id,
                    exc.message,
                )
                raise
            parent_owner_id = await self._parent_owner_id(new, transaction)
            entries = plan_credit(new, user_earnings, parent_owner_id)
            await self._apply(entries, transaction)
            written.extend(entries)

        return written

    async def _parent_owner_id(
        self,
        new: ContentSnapshot,
        transaction: AsyncConnection,
    ) -> str | None:
        if new.parent_id is None:
            return None
        if new.parent_owner_id is not None:
            return new.parent_owner_id
        return await self.contents.get_owner_id(new.parent_id, transaction=transaction)

    async def _apply(self, entries: list[LedgerEntry], transaction: AsyncConnection) -> None:
        for entry in entries:
            await self.ledger.create(entry, transaction=transaction)
