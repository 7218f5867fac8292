"""Integration tests for notification delivery, read state, preferences and cleanup."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from conftest import NOW
from playtest_levels.engines.levels.evaluator import LevelTransition
from playtest_levels.engines.notifications.dispatcher import NotificationDispatcher
from playtest_levels.kernel.models import (
    EventLog,
    EventType,
    LevelType,
    Notification,
    NotificationKind,
    TransitionDirection,
)


def transition(user_id, direction=TransitionDirection.PROMOTION, **overrides) -> LevelTransition:
    values = dict(
        user_id=user_id,
        level_type=LevelType.CREATOR,
        direction=direction,
        previous_level="Semilla",
        previous_order=1,
        new_level="Chispa",
        new_order=2,
        weekly_reward=60,
        metric=55,
        metrics={"active_users": 55},
        occurred_at=NOW,
    )
    values.update(overrides)
    return LevelTransition(**values)


class TestLevelNotifications:
    @pytest.mark.asyncio
    async def test_promotion_notifies(self, db_session):
        user_id = uuid.uuid4()
        dispatcher = NotificationDispatcher(db_session)

        notification = await dispatcher.notify_level_transition(transition(user_id))

        assert notification.kind == NotificationKind.LEVEL_UP.value
        assert "Chispa" in notification.title or "Chispa" in notification.message
        assert notification.payload["previous_level"] == "Semilla"
        assert notification.payload["weekly_reward"] == 60

    @pytest.mark.asyncio
    async def test_demotion_is_not_notified(self, db_session):
        dispatcher = NotificationDispatcher(db_session)
        demotion = transition(
            uuid.uuid4(),
            TransitionDirection.DEMOTION,
            previous_level="Chispa",
            previous_order=2,
            new_level="Semilla",
            new_order=1,
        )
        assert await dispatcher.notify_level_transition(demotion) is None

    @pytest.mark.asyncio
    async def test_opt_out_suppresses(self, db_session):
        user_id = uuid.uuid4()
        dispatcher = NotificationDispatcher(db_session)
        await dispatcher.update_preferences(user_id, {"level_up": False})

        assert await dispatcher.notify_level_transition(transition(user_id)) is None
        assert await dispatcher.unread_count(user_id) == 0


class TestPreferences:
    @pytest.mark.asyncio
    async def test_defaults(self, db_session):
        preferences = await NotificationDispatcher(db_session).get_preferences(uuid.uuid4())
        assert preferences.level_up and preferences.weekly_payment
        assert preferences.email_notifications is False

    @pytest.mark.asyncio
    async def test_partial_update_is_audited(self, db_session):
        user_id = uuid.uuid4()
        dispatcher = NotificationDispatcher(db_session)

        updated = await dispatcher.update_preferences(user_id, {"level_progress": False})
        assert updated.level_progress is False
        assert updated.level_up is True

        await db_session.flush()
        count = await db_session.scalar(
            select(func.count(EventLog.id)).where(EventLog.event_type == EventType.PREFERENCES_UPDATED.value)
        )
        assert count == 1

    @pytest.mark.asyncio
    async def test_unknown_preference_rejected(self, db_session):
        with pytest.raises(ValueError):
            await NotificationDispatcher(db_session).update_preferences(uuid.uuid4(), {"sms": True})


class TestInbox:
    """Listing, read state and cleanup."""

    async def _fill(self, dispatcher, user_id, count):
        for i in range(count):
            await dispatcher.notify(user_id, NotificationKind.LEVEL_PROGRESS, f"Title {i}", "Almost there")

    @pytest.mark.asyncio
    async def test_list_and_unread_count(self, db_session):
        user_id = uuid.uuid4()
        dispatcher = NotificationDispatcher(db_session)
        await self._fill(dispatcher, user_id, 5)
        await self._fill(dispatcher, uuid.uuid4(), 2)

        items, total = await dispatcher.list_notifications(user_id, limit=2, offset=0)
        assert total == 5
        assert len(items) == 2
        assert await dispatcher.unread_count(user_id) == 5

    @pytest.mark.asyncio
    async def test_mark_read(self, db_session):
        user_id = uuid.uuid4()
        dispatcher = NotificationDispatcher(db_session)
        await self._fill(dispatcher, user_id, 3)
        items, _ = await dispatcher.list_notifications(user_id)

        assert await dispatcher.mark_read(items[0].id, user_id) is True
        assert await dispatcher.mark_read(items[0].id, user_id) is True
        assert await dispatcher.mark_read(items[0].id, uuid.uuid4()) is False
        assert await dispatcher.mark_read(uuid.uuid4(), user_id) is False
        assert await dispatcher.unread_count(user_id) == 2

        _, unread_total = await dispatcher.list_notifications(user_id, unread_only=True)
        assert unread_total == 2

        assert await dispatcher.mark_all_read(user_id) == 2
        assert await dispatcher.unread_count(user_id) == 0

    @pytest.mark.asyncio
    async def test_cleanup_removes_old_notifications(self, db_session):
        user_id = uuid.uuid4()
        dispatcher = NotificationDispatcher(db_session)
        await self._fill(dispatcher, user_id, 2)
        db_session.add(
            Notification(
                user_id=user_id,
                kind=NotificationKind.LEVEL_UP.value,
                title="Old",
                message="Old news",
                payload={},
                priority="medium",
                created_at=datetime.now(timezone.utc) - timedelta(days=200),
            )
        )
        await db_session.flush()

        assert await dispatcher.cleanup(90) == 1
        _, total = await dispatcher.list_notifications(user_id)
        assert total == 2

    @pytest.mark.asyncio
    async def test_cleanup_needs_positive_age(self, db_session):
        with pytest.raises(ValueError):
            await NotificationDispatcher(db_session).cleanup(0)

    @pytest.mark.asyncio
    async def test_stats(self, db_session):
        user_id = uuid.uuid4()
        dispatcher = NotificationDispatcher(db_session)
        await self._fill(dispatcher, user_id, 4)
        items, _ = await dispatcher.list_notifications(user_id)
        await dispatcher.mark_read(items[0].id, user_id)

        stats = await dispatcher.get_stats(7)
        assert len(stats) == 1
        assert stats[0].kind == NotificationKind.LEVEL_PROGRESS
        assert stats[0].total == 4
        assert stats[0].read == 1
        assert stats[0].read_rate == 25.0
