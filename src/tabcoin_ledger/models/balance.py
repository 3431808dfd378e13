# src/tabcoin_ledger/models/balance.py
"""Append-only balance ledger."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from tabcoin_ledger.db.session import Base


class BalanceOperation(Base):
    """One immutable credit or debit.

    Balances are never updated in place; the current balance of a recipient
    is the sum of its operations.
    """

    __tablename__ = "balance_operations"
    __table_args__ = (
        Index("ix_balance_operations_recipient", "balance_type", "recipient_id"),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    # user:tabcoin or content:tabcoin:initial
    balance_type: Mapped[str] = mapped_column(Text, nullable=False)
    recipient_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    originator_type: Mapped[str] = mapped_column(Text, nullable=False)
    originator_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
