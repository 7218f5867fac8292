"""
Level Evaluator - maps track metrics onto ladders and records transitions.

One state machine per (user, level type[, block]). States are the rungs of the
track's ladder plus "no level". Every recompute runs the same threshold walk
for every track; only the metric that feeds it differs:

    learner     block consolidation (per block)
    creator     distinct active players on the creator's blocks
    instructor  distinct active enrolled students

On a change the UserLevel row is rewritten and one LevelProgressionEvent is
appended, both inside the caller's transaction. The row is read FOR UPDATE so
concurrent recomputes of the same key serialize.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from playtest_levels.config import Settings, get_settings
from playtest_levels.engines.consolidation.calculator import ConsolidationCalculator
from playtest_levels.engines.consolidation.ledger import SqlAnswerLedger
from playtest_levels.engines.levels.ladder import Ladder, LadderRung
from playtest_levels.engines.levels.metrics import ActivityMetricsProvider, SqlActivityMetrics
from playtest_levels.kernel.models import (
    GLOBAL_SCOPE,
    LevelDefinition,
    LevelProgressionEvent,
    LevelType,
    TransitionDirection,
    UserLevel,
)
from playtest_levels.logging_config import get_logger

logger = get_logger(__name__)


class LevelTransition(BaseModel):
    """Descriptor of one detected level change."""

    user_id: uuid.UUID
    level_type: LevelType
    block_id: Optional[uuid.UUID] = None
    direction: TransitionDirection
    previous_level: Optional[str] = None
    previous_order: Optional[int] = None
    new_level: Optional[str] = None
    new_order: Optional[int] = None
    weekly_reward: int = 0
    metric: float
    metrics: dict
    occurred_at: datetime

    @property
    def is_upward(self) -> bool:
        return self.direction in (TransitionDirection.PLACEMENT, TransitionDirection.PROMOTION)


class TrackEvaluation(BaseModel):
    """Outcome of evaluating one track key."""

    level_type: LevelType
    block_id: Optional[uuid.UUID] = None
    metric: float
    level_name: Optional[str] = None
    level_order: Optional[int] = None
    transition: Optional[LevelTransition] = None

    @property
    def changed(self) -> bool:
        return self.transition is not None


class RecomputeResult(BaseModel):
    user_id: uuid.UUID
    evaluations: List[TrackEvaluation] = []

    @property
    def transitions(self) -> List[LevelTransition]:
        return [e.transition for e in self.evaluations if e.transition is not None]


def _direction(previous: Optional[LadderRung], target: Optional[LadderRung]) -> TransitionDirection:
    if previous is None:
        return TransitionDirection.PLACEMENT
    if target is None or target.order < previous.order:
        return TransitionDirection.DEMOTION
    return TransitionDirection.PROMOTION


class LevelEvaluator:
    """
    Evaluates level tracks for a user.

    Collaborators default to the SQL implementations bound to the same
    session; tests and other callers may pass their own.
    """

    def __init__(
        self,
        session: AsyncSession,
        calculator: Optional[ConsolidationCalculator] = None,
        metrics: Optional[ActivityMetricsProvider] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.calculator = calculator or ConsolidationCalculator(SqlAnswerLedger(session))
        self.metrics = metrics or SqlActivityMetrics(session)
        self._ladders: Dict[LevelType, Ladder] = {}

    async def get_ladder(self, level_type: LevelType) -> Ladder:
        """Ladder for a track; an empty ladder raises LevelConfigurationError."""
        if level_type not in self._ladders:
            result = await self.session.execute(
                select(LevelDefinition)
                .where(LevelDefinition.level_type == level_type.value)
                .order_by(LevelDefinition.level_order)
            )
            rungs = [LadderRung.from_row(row) for row in result.scalars().all()]
            self._ladders[level_type] = Ladder(level_type, rungs)
        return self._ladders[level_type]

    async def evaluate_track(
        self,
        user_id: uuid.UUID,
        level_type: LevelType,
        metric: float,
        snapshot: dict,
        block_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> TrackEvaluation:
        """
        Apply one metric value to one track key.

        Args:
            user_id: Level holder
            level_type: Track
            metric: Primary metric value for the threshold walk
            snapshot: Metrics stored on the row and in the progression event
            block_id: Required for the learner track
            now: Evaluation instant

        Returns:
            TrackEvaluation; `transition` is set only when the level changed
        """
        now = now or datetime.now(timezone.utc)
        if level_type == LevelType.LEARNER and block_id is None:
            raise ValueError("Learner levels are evaluated per block")

        ladder = await self.get_ladder(level_type)
        target = ladder.best_qualifying(metric)
        scope = str(block_id) if level_type == LevelType.LEARNER else GLOBAL_SCOPE

        result = await self.session.execute(
            select(UserLevel)
            .where(
                UserLevel.user_id == user_id,
                UserLevel.level_type == level_type.value,
                UserLevel.scope == scope,
            )
            .with_for_update()
        )
        row = result.scalar_one_or_none()

        if row is None:
            if target is None:
                return TrackEvaluation(level_type=level_type, block_id=block_id, metric=metric)
            row = UserLevel(
                user_id=user_id,
                level_type=level_type.value,
                scope=scope,
                block_id=block_id,
                current_level_id=None,
            )
            self.session.add(row)

        previous = ladder.get(row.current_level_id)
        row.metric_value = metric
        row.metrics_snapshot = snapshot
        row.last_calculated_at = now

        unchanged = (previous.id if previous else None) == (target.id if target else None)
        if unchanged:
            await self.session.flush()
            return TrackEvaluation(
                level_type=level_type,
                block_id=block_id,
                metric=metric,
                level_name=target.name if target else None,
                level_order=target.order if target else None,
            )

        direction = _direction(previous, target)
        row.current_level_id = target.id if target else None
        row.achieved_at = now if target else None

        self.session.add(
            LevelProgressionEvent(
                user_id=user_id,
                level_type=level_type.value,
                block_id=block_id,
                previous_level_id=previous.id if previous else None,
                previous_level_name=previous.name if previous else None,
                new_level_id=target.id if target else None,
                new_level_name=target.name if target else None,
                direction=direction.value,
                metrics_at_transition=snapshot,
                created_at=now,
            )
        )
        await self.session.flush()

        logger.info(
            "Level %s",
            direction.value,
            extra={
                "user_id": str(user_id),
                "level_type": level_type.value,
                "block_id": str(block_id) if block_id else None,
                "previous_level": previous.name if previous else None,
                "new_level": target.name if target else None,
                "metric": round(metric, 2),
            },
        )

        transition = LevelTransition(
            user_id=user_id,
            level_type=level_type,
            block_id=block_id,
            direction=direction,
            previous_level=previous.name if previous else None,
            previous_order=previous.order if previous else None,
            new_level=target.name if target else None,
            new_order=target.order if target else None,
            weekly_reward=target.weekly_reward if target else 0,
            metric=metric,
            metrics=snapshot,
            occurred_at=now,
        )
        return TrackEvaluation(
            level_type=level_type,
            block_id=block_id,
            metric=metric,
            level_name=target.name if target else None,
            level_order=target.order if target else None,
            transition=transition,
        )

    async def recompute_for_user_block(
        self,
        user_id: uuid.UUID,
        block_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> TrackEvaluation:
        """Learner track for a single block. A block without questions is an input error."""
        now = now or datetime.now(timezone.utc)
        block = await self.calculator.require_block_consolidation(user_id, block_id, now)
        return await self.evaluate_track(
            user_id,
            LevelType.LEARNER,
            block.score,
            block.snapshot(),
            block_id=block_id,
            now=now,
        )

    async def recompute_creator(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> TrackEvaluation:
        now = now or datetime.now(timezone.utc)
        days = self.settings.creator_activity_days
        active = await self.metrics.active_users_for_creator(user_id, days, now)
        return await self.evaluate_track(
            user_id,
            LevelType.CREATOR,
            float(active),
            {"active_users": active, "window_days": days},
            now=now,
        )

    async def recompute_instructor(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> TrackEvaluation:
        now = now or datetime.now(timezone.utc)
        days = self.settings.instructor_activity_days
        active = await self.metrics.active_students_for_instructor(user_id, days, now)
        return await self.evaluate_track(
            user_id,
            LevelType.INSTRUCTOR,
            float(active),
            {"active_students": active, "window_days": days},
            now=now,
        )

    async def recompute_for_user(
        self,
        user_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> RecomputeResult:
        """
        All tracks for one user: learner per played block, then creator and
        instructor. Idempotent; a second call with no new activity changes
        nothing but the metric snapshot timestamps.
        """
        now = now or datetime.now(timezone.utc)
        evaluations: List[TrackEvaluation] = []

        blocks = await self.calculator.all_blocks(user_id, now)
        for block_id, block in sorted(blocks.items(), key=lambda item: str(item[0])):
            evaluations.append(
                await self.evaluate_track(
                    user_id,
                    LevelType.LEARNER,
                    block.score,
                    block.snapshot(),
                    block_id=block_id,
                    now=now,
                )
            )
        evaluations.append(await self.recompute_creator(user_id, now))
        evaluations.append(await self.recompute_instructor(user_id, now))

        return RecomputeResult(user_id=user_id, evaluations=evaluations)
