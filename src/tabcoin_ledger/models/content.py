# src/tabcoin_ledger/models/content.py
"""SQLAlchemy model for user contents."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from tabcoin_ledger.db.session import Base


class Content(Base):
    """A publication or a reply to one.

    Only the columns the TabCoin engine needs are mapped here.
    """

    __tablename__ = "contents"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    owner_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)

    # Replies point at their parent; root contents have parent_id = NULL.
    parent_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("contents.id"),
        nullable=True,
    )

    # Lifecycle: draft, published, deleted, archived, spam, pending, ...
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft")
    type: Mapped[str] = mapped_column(Text, nullable=False, default="content")
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # NULL until the first publication; never cleared afterwards.
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    tabcoins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
