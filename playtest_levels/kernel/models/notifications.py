"""
User-visible notifications and per-user notification preferences.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from playtest_levels.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow


class NotificationKind(str, Enum):
    LEVEL_UP = "level_up"
    LEVEL_PROGRESS = "level_progress"
    WEEKLY_PAYMENT = "weekly_payment"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Notification(Base):
    """A notification. Only read_at ever changes after creation."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    kind: Mapped[NotificationKind] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    priority: Mapped[NotificationPriority] = mapped_column(
        String(10),
        nullable=False,
        default=NotificationPriority.MEDIUM.value,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_notifications_user_time", "user_id", "created_at"),
        Index("ix_notifications_user_unread", "user_id", "read_at"),
        Index("ix_notifications_created", "created_at"),
    )


class NotificationPreference(Base, TimestampMixin):
    """Opt-in flags per notification kind. Missing row means all defaults."""

    __tablename__ = "notification_preferences"

    user_id: Mapped[uuid.UUID] = mapped_column(primary_key=True)
    level_up: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    level_progress: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    weekly_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    push_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
