"""Integration tests for level badges: awards, collection, leaderboard and stats."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import NOW, add_block, answer
from playtest_levels.engines.levels.badges import BadgeService, seed_badge_definitions
from playtest_levels.engines.levels.evaluator import LevelTransition
from playtest_levels.kernel.models import (
    AnswerResult,
    BadgeDefinition,
    LevelType,
    Notification,
    NotificationKind,
    TransitionDirection,
    UserBadge,
)
from playtest_levels.orchestration.progression import ProgressionService


def reached(user_id, new_level, level_type=LevelType.CREATOR, direction=TransitionDirection.PROMOTION, **extra):
    values = dict(
        user_id=user_id,
        level_type=level_type,
        direction=direction,
        new_level=new_level,
        metric=55,
        metrics={},
        occurred_at=NOW,
    )
    values.update(extra)
    return LevelTransition(**values)


class TestBadgeAwards:
    @pytest.mark.asyncio
    async def test_seeding_is_idempotent(self, seeded, db_session):
        assert await seed_badge_definitions(db_session) == 0
        total = await db_session.scalar(select(func.count(BadgeDefinition.id)))
        assert total == 15

    @pytest.mark.asyncio
    async def test_promotion_earns_badge_of_reached_rung(self, seeded, db_session):
        user_id = uuid.uuid4()
        badges = BadgeService(db_session)

        earned = await badges.award_for_transition(reached(user_id, "Chispa", previous_level="Semilla"))

        assert earned.name == "Chispa de Inspiración"
        assert earned.rarity == "common"
        assert earned.details["metric"] == 55
        assert [b.name for b in await badges.get_user_badges(user_id)] == ["Chispa de Inspiración"]

    @pytest.mark.asyncio
    async def test_badge_is_earned_once(self, seeded, db_session):
        user_id = uuid.uuid4()
        badges = BadgeService(db_session)
        first_block = reached(user_id, "Estratega", LevelType.LEARNER, block_id=uuid.uuid4())
        second_block = reached(user_id, "Estratega", LevelType.LEARNER, block_id=uuid.uuid4())

        assert await badges.award_for_transition(first_block) is not None
        assert await badges.award_for_transition(second_block) is None

        held = await db_session.scalar(select(func.count(UserBadge.id)).where(UserBadge.user_id == user_id))
        assert held == 1

    @pytest.mark.asyncio
    async def test_demotion_and_unknown_rung_earn_nothing(self, seeded, db_session):
        user_id = uuid.uuid4()
        badges = BadgeService(db_session)
        demotion = reached(user_id, "Semilla", direction=TransitionDirection.DEMOTION, previous_level="Chispa")

        assert await badges.award_for_transition(demotion) is None
        assert await badges.award_for_transition(reached(user_id, "Platinum")) is None
        assert await badges.get_user_badges(user_id) == []

    @pytest.mark.asyncio
    async def test_recompute_awards_badge_and_mentions_it_in_level_up(self, session_factory, seeded):
        player_id = uuid.uuid4()
        async with session_factory() as session:
            _, (q1,) = await add_block(session, ["math"])
            # One fresh correct answer places the player straight at Explorador
            await answer(session, player_id, q1, [AnswerResult.CORRECT], NOW - timedelta(minutes=5))
            await ProgressionService(session).recompute_all(player_id, NOW)
            await session.commit()

        async with session_factory() as session:
            earned = await BadgeService(session).get_user_badges(player_id)
            notice = await session.scalar(
                select(Notification).where(
                    Notification.user_id == player_id,
                    Notification.kind == NotificationKind.LEVEL_UP.value,
                )
            )

        assert [b.name for b in earned] == ["Explorador Curioso"]
        assert notice.payload["badge"] == "Explorador Curioso"


class TestBadgeReads:
    @pytest.mark.asyncio
    async def test_collection_shows_progress(self, seeded, db_session):
        user_id = uuid.uuid4()
        badges = BadgeService(db_session)
        await badges.award_for_transition(reached(user_id, "Chispa"))

        collection = await badges.get_badge_collection(user_id)

        assert collection.total_earned == 1
        assert collection.total_available == 15
        assert collection.completion_percentage == 6.7
        assert collection.rarity_counts["common"] == 1
        assert collection.rarity_counts["legendary"] == 0
        creator_badges = [b for b in collection.available if b.level_type == LevelType.CREATOR]
        assert [b.level_name for b in creator_badges] == ["Semilla", "Chispa", "Constructor", "Orador", "Visionario"]
        assert [b.earned for b in creator_badges] == [False, True, False, False, False]

    @pytest.mark.asyncio
    async def test_leaderboard_ranks_rarest_badges_first(self, seeded, db_session):
        collector, legend = uuid.uuid4(), uuid.uuid4()
        badges = BadgeService(db_session)
        await badges.award_for_transition(reached(collector, "Semilla", direction=TransitionDirection.PLACEMENT))
        await badges.award_for_transition(reached(collector, "Chispa"))
        await badges.award_for_transition(reached(legend, "Visionario", direction=TransitionDirection.PLACEMENT))

        board = await badges.get_leaderboard()

        assert [(e.rank, e.user_id) for e in board] == [(1, legend), (2, collector)]
        assert board[0].legendary_badges == 1
        assert board[1].total_badges == 2
        assert await badges.get_leaderboard(LevelType.INSTRUCTOR) == []

    @pytest.mark.asyncio
    async def test_statistics_include_unearned_badges(self, seeded, db_session):
        badges = BadgeService(db_session)
        await badges.award_for_transition(reached(uuid.uuid4(), "Chispa"))
        await badges.award_for_transition(reached(uuid.uuid4(), "Chispa"))

        stats = await badges.get_statistics()

        assert len(stats) == 15
        chispa = next(s for s in stats if s.level_name == "Chispa")
        assert chispa.earned_count == 2
        assert chispa.first_earned_at == NOW
        assert stats[0] == chispa
        assert all(s.earned_count == 0 for s in stats if s.level_name != "Chispa")
