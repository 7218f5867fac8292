"""
Append-only audit log for administrative operations on the levels engine.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from playtest_levels.kernel.models.base import Base, generate_uuid, utcnow


class EventType(str, Enum):
    """Audited operations."""

    # Batch runs
    LEVEL_SWEEP_RUN = "levels.sweep_run"
    PAYMENT_BATCH_RUN = "payments.batch_run"
    PAYMENT_RETRY_RUN = "payments.retry_run"
    PROGRESS_NOTIFICATIONS_RUN = "notifications.progress_run"
    NOTIFICATIONS_CLEANED = "notifications.cleaned"

    # User-initiated
    LEVELS_RECALCULATED = "levels.recalculated"
    PREFERENCES_UPDATED = "notifications.preferences_updated"


class EventLog(Base):
    """
    Immutable audit event log. Rows are only ever inserted.
    """

    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    event_type: Mapped[EventType] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False, index=True)
    # NULL for scheduler-triggered runs
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(), nullable=True, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_event_logs_type_time", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.event_type} {self.entity_type}:{self.entity_id}>"
