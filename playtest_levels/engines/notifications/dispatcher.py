"""
Notification Dispatcher - level and payment events to stored notifications.

A notification kind the user opted out of is never stored. Unread counts are
computed with a query on read_at every time.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from playtest_levels.config import Settings, get_settings
from playtest_levels.engines.levels.evaluator import LevelTransition
from playtest_levels.engines.notifications import messages
from playtest_levels.kernel.events.event_store import EventStore
from playtest_levels.kernel.models import (
    ContentBlock,
    EventType,
    LevelType,
    Notification,
    NotificationKind,
    NotificationPreference,
    NotificationPriority,
    WeeklyPayment,
)
from playtest_levels.logging_config import get_logger

logger = get_logger(__name__)

PREFERENCE_FIELDS = (
    "level_up",
    "level_progress",
    "weekly_payment",
    "push_notifications",
    "email_notifications",
)


class NotificationPreferences(BaseModel):
    level_up: bool = True
    level_progress: bool = True
    weekly_payment: bool = True
    push_notifications: bool = True
    email_notifications: bool = False

    def allows(self, kind: NotificationKind) -> bool:
        return bool(getattr(self, kind.value))


class NotificationStat(BaseModel):
    kind: NotificationKind
    total: int
    read: int
    read_rate: float


class NotificationDispatcher:
    """Creates, lists and expires notifications."""

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()

    # Preferences

    async def get_preferences(self, user_id: uuid.UUID) -> NotificationPreferences:
        row = await self.session.get(NotificationPreference, user_id)
        if row is None:
            return NotificationPreferences()
        return NotificationPreferences(**{f: getattr(row, f) for f in PREFERENCE_FIELDS})

    async def update_preferences(self, user_id: uuid.UUID, changes: Dict[str, bool]) -> NotificationPreferences:
        """Apply a partial update; unknown keys are rejected."""
        unknown = set(changes) - set(PREFERENCE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown notification preferences: {', '.join(sorted(unknown))}")

        row = await self.session.get(NotificationPreference, user_id)
        if row is None:
            row = NotificationPreference(user_id=user_id, **NotificationPreferences().model_dump())
            self.session.add(row)
        for field, value in changes.items():
            setattr(row, field, bool(value))
        await self.session.flush()

        await EventStore(self.session).log(
            event_type=EventType.PREFERENCES_UPDATED,
            entity_type="notification_preferences",
            entity_id=user_id,
            user_id=user_id,
            payload={"changes": changes},
        )
        return NotificationPreferences(**{f: getattr(row, f) for f in PREFERENCE_FIELDS})

    # Creation

    async def notify(
        self,
        user_id: uuid.UUID,
        kind: NotificationKind,
        title: str,
        message: str,
        payload: Optional[Dict[str, Any]] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
    ) -> Optional[Notification]:
        """Store a notification unless the user opted out of its kind."""
        preferences = await self.get_preferences(user_id)
        if not preferences.allows(kind):
            logger.debug(
                "Notification suppressed by preferences",
                extra={"user_id": str(user_id), "kind": kind.value},
            )
            return None

        notification = Notification(
            user_id=user_id,
            kind=kind.value,
            title=title,
            message=message,
            payload=payload or {},
            priority=priority.value,
        )
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def _block_title(self, block_id: Optional[uuid.UUID]) -> Optional[str]:
        if block_id is None:
            return None
        block = await self.session.get(ContentBlock, block_id)
        return block.title if block else None

    async def notify_level_transition(
        self,
        transition: LevelTransition,
        badge_name: Optional[str] = None,
    ) -> Optional[Notification]:
        """level_up for placements and promotions; demotions are only logged."""
        if not transition.is_upward or transition.new_level is None:
            return None
        block_title = await self._block_title(transition.block_id)
        msg = messages.level_up_message(
            transition.level_type,
            transition.new_level,
            transition.metrics,
            weekly_reward=transition.weekly_reward,
            block_id=transition.block_id,
            block_title=block_title,
        )
        return await self.notify(
            transition.user_id,
            NotificationKind.LEVEL_UP,
            msg.title,
            msg.message,
            payload={
                "level_type": transition.level_type.value,
                "block_id": str(transition.block_id) if transition.block_id else None,
                "block_title": block_title,
                "previous_level": transition.previous_level,
                "new_level": transition.new_level,
                "weekly_reward": transition.weekly_reward,
                "metrics": transition.metrics,
                "badge": badge_name,
                "action_url": msg.action_url,
            },
            priority=msg.priority,
        )

    async def notify_payment(self, payment: WeeklyPayment) -> Optional[Notification]:
        week = payment.week_start.isoformat()
        levels = (payment.breakdown or {}).get("levels", [])
        msg = messages.weekly_payment_message(payment.amount, week, levels)
        return await self.notify(
            payment.user_id,
            NotificationKind.WEEKLY_PAYMENT,
            msg.title,
            msg.message,
            payload={
                "payment_id": str(payment.id),
                "week_start": week,
                "amount": payment.amount,
                "levels": levels,
                "action_url": msg.action_url,
            },
            priority=msg.priority,
        )

    async def notify_progress(
        self,
        user_id: uuid.UUID,
        level_type: LevelType,
        current_level: Optional[str],
        next_level: str,
        metric: float,
        next_threshold: float,
        block_id: Optional[uuid.UUID] = None,
    ) -> Optional[Notification]:
        gap = max(0.0, next_threshold - metric)
        progress_pct = min(100.0, metric / next_threshold * 100) if next_threshold > 0 else 100.0
        block_title = await self._block_title(block_id)
        msg = messages.level_progress_message(
            level_type, next_level, gap, progress_pct, block_id=block_id, block_title=block_title
        )
        return await self.notify(
            user_id,
            NotificationKind.LEVEL_PROGRESS,
            msg.title,
            msg.message,
            payload={
                "level_type": level_type.value,
                "block_id": str(block_id) if block_id else None,
                "current_level": current_level,
                "next_level": next_level,
                "threshold_difference": round(gap, 2),
                "progress_to_next": round(progress_pct, 1),
                "action_url": msg.action_url,
            },
            priority=msg.priority,
        )

    async def has_recent(
        self,
        user_id: uuid.UUID,
        kind: NotificationKind,
        since: datetime,
        **payload_match: Any,
    ) -> bool:
        """Whether a notification of `kind` whose payload matches was created since `since`."""
        result = await self.session.execute(
            select(Notification.payload).where(
                Notification.user_id == user_id,
                Notification.kind == kind.value,
                Notification.created_at >= since,
            )
        )
        for payload in result.scalars().all():
            if all((payload or {}).get(k) == v for k, v in payload_match.items()):
                return True
        return False

    # Reading

    async def list_notifications(
        self,
        user_id: uuid.UUID,
        limit: int = 20,
        offset: int = 0,
        unread_only: bool = False,
    ) -> Tuple[List[Notification], int]:
        """Newest first, plus the total matching count."""
        conditions = [Notification.user_id == user_id]
        if unread_only:
            conditions.append(Notification.read_at.is_(None))

        total = await self.session.execute(select(func.count(Notification.id)).where(*conditions))
        result = await self.session.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc(), Notification.id)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total.scalar() or 0

    async def unread_count(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.read_at.is_(None),
            )
        )
        return result.scalar() or 0

    async def mark_read(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        """
        Mark one notification read. Returns False when the notification does
        not exist or belongs to someone else; marking twice is harmless.
        """
        notification = await self.session.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            return False
        if notification.read_at is None:
            notification.read_at = datetime.now(timezone.utc)
            await self.session.flush()
        return True

    async def mark_all_read(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read_at.is_(None))
            .values(read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    # Maintenance

    async def cleanup(self, days_old: Optional[int] = None, triggered_by: Optional[uuid.UUID] = None) -> int:
        """Delete notifications older than the retention window, read or not."""
        days = self.settings.notification_retention_days if days_old is None else days_old
        if days < 1:
            raise ValueError("days_old must be at least 1")
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)

        result = await self.session.execute(
            delete(Notification)
            .where(Notification.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount or 0

        await EventStore(self.session).log(
            event_type=EventType.NOTIFICATIONS_CLEANED,
            entity_type="notification_cleanup",
            entity_id=uuid.uuid4(),
            user_id=triggered_by,
            payload={"days_old": days, "cutoff": cutoff, "deleted": deleted},
        )
        logger.info("Old notifications removed", extra={"deleted": deleted, "days_old": days})
        return deleted

    async def get_stats(self, days: Optional[int] = None) -> List[NotificationStat]:
        """Sent and read counts per kind over the last `days` days."""
        days = days or self.settings.notification_stats_days
        since = datetime.now(timezone.utc) - timedelta(days=days)
        q = (
            select(
                Notification.kind,
                func.count(Notification.id),
                func.sum(case((Notification.read_at.is_not(None), 1), else_=0)),
            )
            .where(Notification.created_at >= since)
            .group_by(Notification.kind)
            .order_by(Notification.kind)
        )
        result = await self.session.execute(q)
        stats = []
        for kind, total, read in result.all():
            read = int(read or 0)
            stats.append(
                NotificationStat(
                    kind=NotificationKind(kind),
                    total=total,
                    read=read,
                    read_rate=round(read / total * 100, 2) if total else 0.0,
                )
            )
        return stats
