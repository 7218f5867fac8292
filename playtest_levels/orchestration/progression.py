"""
Progression coordination: level recompute followed by badge awards and
level-up notifications.

The evaluator knows nothing about badges or notifications; this layer feeds
its transitions to both inside the same transaction.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playtest_levels.config import Settings, get_settings
from playtest_levels.engines.errors import LevelsError
from playtest_levels.engines.levels.badges import BadgeService
from playtest_levels.engines.levels.evaluator import (
    LevelEvaluator,
    LevelTransition,
    RecomputeResult,
    TrackEvaluation,
)
from playtest_levels.engines.notifications.dispatcher import NotificationDispatcher
from playtest_levels.kernel.models import LevelType, NotificationKind, UserLevel
from playtest_levels.logging_config import get_logger

logger = get_logger(__name__)


class ProgressionService:
    """Recompute levels for a user; upward transitions earn badges and notifications."""

    def __init__(
        self,
        session: AsyncSession,
        evaluator: Optional[LevelEvaluator] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.evaluator = evaluator or LevelEvaluator(session, settings=self.settings)
        self.dispatcher = NotificationDispatcher(session, self.settings)
        self.badges = BadgeService(session)

    async def _notify(self, transitions: List[LevelTransition]) -> None:
        for transition in transitions:
            badge = await self.badges.award_for_transition(transition)
            await self.dispatcher.notify_level_transition(transition, badge_name=badge.name if badge else None)

    async def recompute_all(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> RecomputeResult:
        result = await self.evaluator.recompute_for_user(user_id, now)
        await self._notify(result.transitions)
        return result

    async def recompute_block(
        self,
        user_id: uuid.UUID,
        block_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> TrackEvaluation:
        evaluation = await self.evaluator.recompute_for_user_block(user_id, block_id, now)
        if evaluation.transition is not None:
            await self._notify([evaluation.transition])
        return evaluation

    async def notify_near_level_up(self, margin: Optional[float] = None, now: Optional[datetime] = None) -> int:
        """
        level_progress notifications for holders within `margin` of their next
        rung. A key is notified at most once a day.
        """
        margin = self.settings.near_level_up_margin if margin is None else margin
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=1)

        result = await self.session.execute(select(UserLevel))
        sent = 0
        for row in result.scalars().all():
            level_type = LevelType(row.level_type)
            ladder = await self.evaluator.get_ladder(level_type)
            current = ladder.get(row.current_level_id)
            upcoming = ladder.next_above(current)
            if upcoming is None:
                continue
            gap = upcoming.min_threshold - row.metric_value
            if gap <= 0 or gap > margin:
                continue
            block_key = str(row.block_id) if row.block_id else None
            if await self.dispatcher.has_recent(
                row.user_id,
                NotificationKind.LEVEL_PROGRESS,
                since,
                level_type=level_type.value,
                block_id=block_key,
            ):
                continue
            created = await self.dispatcher.notify_progress(
                row.user_id,
                level_type,
                current.name if current else None,
                upcoming.name,
                row.metric_value,
                upcoming.min_threshold,
                block_id=row.block_id,
            )
            if created is not None:
                sent += 1
        return sent


async def recompute_after_gameplay(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: uuid.UUID,
    block_id: uuid.UUID,
) -> Optional[TrackEvaluation]:
    """
    Level feedback after a finished game. Runs in its own transaction so the
    game result already written by the caller is never affected; a failure is
    logged and reported as None.
    """
    async with session_factory() as session:
        try:
            evaluation = await ProgressionService(session).recompute_block(user_id, block_id)
            await session.commit()
            return evaluation
        except (LevelsError, SQLAlchemyError):
            await session.rollback()
            logger.exception(
                "Level recompute after gameplay failed",
                extra={"user_id": str(user_id), "block_id": str(block_id)},
            )
            return None
