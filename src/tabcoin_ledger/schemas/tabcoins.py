# src/tabcoin_ledger/schemas/tabcoins.py
"""Value types exchanged by the TabCoin transition engine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from tabcoin_ledger.models import Content


class ContentStatus(str, Enum):
    """Lifecycle states a content can be in."""

    DRAFT = "draft"
    PUBLISHED = "published"
    DELETED = "deleted"
    ARCHIVED = "archived"
    SPAM = "spam"
    PENDING = "pending"


class ContentType(str, Enum):
    CONTENT = "content"
    COMMENT = "comment"


class BalanceType(str, Enum):
    USER_TABCOIN = "user:tabcoin"
    CONTENT_TABCOIN_INITIAL = "content:tabcoin:initial"


class OriginatorType(str, Enum):
    CONTENT = "content"
    USER = "user"


class ContentSnapshot(BaseModel):
    """Immutable view of a content at one side of a lifecycle transition.

    ``status`` and ``type`` stay plain strings so that states this engine has
    no rules for still validate.
    """

    id: str
    owner_id: str
    status: str
    published_at: datetime | None = None
    type: str = ContentType.CONTENT.value
    parent_id: str | None = None
    parent_owner_id: str | None = None
    tabcoins: int = 0
    body: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def was_published(self) -> bool:
        return self.published_at is not None

    @classmethod
    def from_model(cls, content: Content, parent_owner_id: str | None = None) -> ContentSnapshot:
        """Build a snapshot from a Content row."""
        return cls(
            id=str(content.id),
            owner_id=str(content.owner_id),
            status=content.status,
            published_at=content.published_at,
            type=content.type,
            parent_id=str(content.parent_id) if content.parent_id is not None else None,
            parent_owner_id=parent_owner_id,
            tabcoins=content.tabcoins,
            body=content.body,
        )


class PrestigeRecord(BaseModel):
    """Earnings attributed to one content by the prestige service."""

    user_id: str
    total_tabcoins: int = Field(alias="totalTabcoins")
    initial_tabcoins: int = Field(alias="initialTabcoins")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class LedgerEntry(BaseModel):
    """A balance change to append to the ledger."""

    balance_type: BalanceType
    recipient_id: str
    amount: int
    originator_type: OriginatorType
    originator_id: str

    model_config = ConfigDict(frozen=True)

    @field_validator("amount")
    @classmethod
    def _reject_zero_amount(cls, value: int) -> int:
        if value == 0:
            raise ValueError("ledger entries must move a non-zero amount")
        return value
