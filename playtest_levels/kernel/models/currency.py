"""
In-database currency ledger: one balance per user plus an append-only journal.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from playtest_levels.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow


class CurrencyAccount(Base, TimestampMixin):
    __tablename__ = "currency_accounts"

    user_id: Mapped[uuid.UUID] = mapped_column(primary_key=True)
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class CurrencyTransaction(Base):
    __tablename__ = "currency_transactions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(100), nullable=False)
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_currency_transactions_user_time", "user_id", "created_at"),
    )
