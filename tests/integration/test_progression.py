"""Integration tests for the level sweep and progression notifications."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import NOW, add_block, answer
from playtest_levels.kernel.models import (
    AnswerResult,
    EventLog,
    EventType,
    LevelType,
    Notification,
    NotificationKind,
    UserLevel,
)
from playtest_levels.orchestration.progression import ProgressionService, recompute_after_gameplay
from playtest_levels.orchestration.sweep import LevelSweep


async def notifications_of(session_factory, user_id, kind: NotificationKind):
    async with session_factory() as session:
        result = await session.execute(
            select(Notification).where(Notification.user_id == user_id, Notification.kind == kind.value)
        )
        return list(result.scalars().all())


class TestLevelSweep:
    @pytest.mark.asyncio
    async def test_sweep_recomputes_recently_active_users(self, session_factory, seeded):
        creator_id, player_id, idle_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        async with session_factory() as session:
            _, (q1,) = await add_block(session, ["math"], creator_id=creator_id)
            await answer(session, player_id, q1, [AnswerResult.CORRECT], NOW - timedelta(hours=2))
            await answer(session, idle_id, q1, [AnswerResult.CORRECT], NOW - timedelta(days=5))
            await session.commit()

        operator = uuid.uuid4()
        result = await LevelSweep(session_factory).run(triggered_by=operator, now=NOW)

        assert result.users_processed == 2
        assert result.transitions == 2
        assert result.failures == []

        async with session_factory() as session:
            holders = await session.execute(select(UserLevel.user_id, UserLevel.level_type))
            assert set(holders.all()) == {
                (player_id, LevelType.LEARNER.value),
                (creator_id, LevelType.CREATOR.value),
            }
            audited = await session.scalar(
                select(func.count(EventLog.id)).where(EventLog.event_type == EventType.LEVEL_SWEEP_RUN.value)
            )
            assert audited == 1

        assert len(await notifications_of(session_factory, player_id, NotificationKind.LEVEL_UP)) == 1
        assert len(await notifications_of(session_factory, creator_id, NotificationKind.LEVEL_UP)) == 1

    @pytest.mark.asyncio
    async def test_rerun_changes_nothing(self, session_factory, seeded):
        player_id = uuid.uuid4()
        async with session_factory() as session:
            _, (q1,) = await add_block(session, ["math"])
            await answer(session, player_id, q1, [AnswerResult.CORRECT], NOW - timedelta(hours=2))
            await session.commit()

        sweep = LevelSweep(session_factory)
        await sweep.run(now=NOW)
        second = await sweep.run(now=NOW)

        assert second.transitions == 0
        assert len(await notifications_of(session_factory, player_id, NotificationKind.LEVEL_UP)) == 1

    @pytest.mark.asyncio
    async def test_zero_lookback_is_not_the_default_window(self, session_factory, seeded):
        player_id = uuid.uuid4()
        async with session_factory() as session:
            _, (q1,) = await add_block(session, ["math"])
            await answer(session, player_id, q1, [AnswerResult.CORRECT], NOW - timedelta(hours=2))
            await session.commit()

        later = NOW + timedelta(hours=1)
        result = await LevelSweep(session_factory).run(lookback_hours=0, now=later)

        assert result.since == later
        assert result.users_processed == 0


class TestProgressNotifications:
    @pytest.mark.asyncio
    async def test_near_level_up_notified_once_a_day(self, session_factory, seeded):
        player_id = uuid.uuid4()
        async with session_factory() as session:
            _, (q1,) = await add_block(session, ["math"])
            # One fresh correct answer scores about 30: Explorador, 21 short of Estratega
            await answer(session, player_id, q1, [AnswerResult.CORRECT], NOW - timedelta(minutes=5))
            await ProgressionService(session).recompute_all(player_id, NOW)
            await session.commit()

        async with session_factory() as session:
            sent = await ProgressionService(session).notify_near_level_up(margin=25)
            await session.commit()
        assert sent == 1

        async with session_factory() as session:
            sent_again = await ProgressionService(session).notify_near_level_up(margin=25)
            await session.commit()
        assert sent_again == 0

        notices = await notifications_of(session_factory, player_id, NotificationKind.LEVEL_PROGRESS)
        assert len(notices) == 1
        assert notices[0].payload["next_level"] == "Estratega"

    @pytest.mark.asyncio
    async def test_outside_margin_not_notified(self, session_factory, seeded):
        player_id = uuid.uuid4()
        async with session_factory() as session:
            _, (q1,) = await add_block(session, ["math"])
            await answer(session, player_id, q1, [AnswerResult.CORRECT], NOW - timedelta(minutes=5))
            await ProgressionService(session).recompute_all(player_id, NOW)
            sent = await ProgressionService(session).notify_near_level_up(margin=5)
        assert sent == 0


class TestRecomputeAfterGameplay:
    @pytest.mark.asyncio
    async def test_returns_evaluation(self, session_factory, seeded):
        player_id = uuid.uuid4()
        async with session_factory() as session:
            block, (q1,) = await add_block(session, ["math"])
            await answer(session, player_id, q1, [AnswerResult.CORRECT, AnswerResult.CORRECT], NOW)
            await session.commit()

        evaluation = await recompute_after_gameplay(session_factory, player_id, block.id)
        assert evaluation is not None
        assert evaluation.level_name is not None

    @pytest.mark.asyncio
    async def test_failure_is_reported_as_none(self, session_factory, seeded):
        async with session_factory() as session:
            block, _ = await add_block(session, [])
            await session.commit()

        assert await recompute_after_gameplay(session_factory, uuid.uuid4(), block.id) is None
