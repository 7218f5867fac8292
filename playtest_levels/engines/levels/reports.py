"""
Read-side views over levels: current levels, history, distribution, rankings.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from playtest_levels.kernel.models import (
    ContentBlock,
    LevelDefinition,
    LevelProgressionEvent,
    LevelType,
    UserLevel,
    ensure_utc,
    enum_value,
)


class CurrentLevel(BaseModel):
    level_type: LevelType
    block_id: Optional[uuid.UUID] = None
    block_title: Optional[str] = None
    level_name: Optional[str] = None
    level_order: Optional[int] = None
    weekly_reward: int = 0
    metric_value: float
    metrics: dict
    achieved_at: Optional[datetime] = None
    last_calculated_at: datetime


class ProgressionEntry(BaseModel):
    level_type: LevelType
    block_id: Optional[uuid.UUID] = None
    direction: str
    previous_level: Optional[str] = None
    new_level: Optional[str] = None
    metrics: dict
    occurred_at: datetime


class DistributionEntry(BaseModel):
    level_type: LevelType
    level_name: str
    level_order: int
    holders: int


class RankingEntry(BaseModel):
    rank: int
    user_id: uuid.UUID
    level_name: str
    level_order: int
    metric_value: float


class LevelReports:
    """Queries only; nothing here writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_level_definitions(self, level_type: Optional[LevelType] = None) -> List[LevelDefinition]:
        q = select(LevelDefinition).order_by(LevelDefinition.level_type, LevelDefinition.level_order)
        if level_type is not None:
            q = q.where(LevelDefinition.level_type == level_type.value)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def get_current_levels(self, user_id: uuid.UUID) -> List[CurrentLevel]:
        """Every track row of the user, including rows demoted to no level."""
        q = (
            select(UserLevel, LevelDefinition, ContentBlock.title)
            .outerjoin(LevelDefinition, LevelDefinition.id == UserLevel.current_level_id)
            .outerjoin(ContentBlock, ContentBlock.id == UserLevel.block_id)
            .where(UserLevel.user_id == user_id)
            .order_by(UserLevel.level_type, UserLevel.scope)
        )
        result = await self.session.execute(q)
        levels = []
        for row, definition, block_title in result.all():
            levels.append(
                CurrentLevel(
                    level_type=LevelType(row.level_type),
                    block_id=row.block_id,
                    block_title=block_title,
                    level_name=definition.name if definition else None,
                    level_order=definition.level_order if definition else None,
                    weekly_reward=definition.weekly_reward if definition else 0,
                    metric_value=row.metric_value,
                    metrics=row.metrics_snapshot or {},
                    achieved_at=ensure_utc(row.achieved_at),
                    last_calculated_at=ensure_utc(row.last_calculated_at),
                )
            )
        return levels

    async def get_progression_history(self, user_id: uuid.UUID, limit: int = 20) -> List[ProgressionEntry]:
        q = (
            select(LevelProgressionEvent)
            .where(LevelProgressionEvent.user_id == user_id)
            .order_by(desc(LevelProgressionEvent.created_at))
            .limit(limit)
        )
        result = await self.session.execute(q)
        return [
            ProgressionEntry(
                level_type=LevelType(e.level_type),
                block_id=e.block_id,
                direction=enum_value(e.direction),
                previous_level=e.previous_level_name,
                new_level=e.new_level_name,
                metrics=e.metrics_at_transition or {},
                occurred_at=ensure_utc(e.created_at),
            )
            for e in result.scalars().all()
        ]

    async def get_level_distribution(self) -> List[DistributionEntry]:
        """Holders per rung; learner holders are counted once per user."""
        q = (
            select(
                LevelDefinition.level_type,
                LevelDefinition.name,
                LevelDefinition.level_order,
                func.count(func.distinct(UserLevel.user_id)),
            )
            .outerjoin(UserLevel, UserLevel.current_level_id == LevelDefinition.id)
            .group_by(LevelDefinition.level_type, LevelDefinition.name, LevelDefinition.level_order)
            .order_by(LevelDefinition.level_type, LevelDefinition.level_order)
        )
        result = await self.session.execute(q)
        return [
            DistributionEntry(
                level_type=LevelType(level_type),
                level_name=name,
                level_order=order,
                holders=holders,
            )
            for level_type, name, order, holders in result.all()
        ]

    async def get_rankings(self, level_type: LevelType, limit: int = 50) -> List[RankingEntry]:
        """
        Users ranked by rung, then by metric. Learners are ranked by their best
        block.
        """
        q = (
            select(UserLevel.user_id, UserLevel.metric_value, LevelDefinition.name, LevelDefinition.level_order)
            .join(LevelDefinition, LevelDefinition.id == UserLevel.current_level_id)
            .where(UserLevel.level_type == level_type.value)
        )
        result = await self.session.execute(q)

        best: Dict[uuid.UUID, tuple] = {}
        for user_id, metric, name, order in result.all():
            key = (order, metric)
            if user_id not in best or key > best[user_id][0]:
                best[user_id] = (key, name)

        ordered = sorted(best.items(), key=lambda item: (item[1][0], str(item[0])), reverse=True)
        return [
            RankingEntry(
                rank=position,
                user_id=user_id,
                level_name=name,
                level_order=key[0],
                metric_value=key[1],
            )
            for position, (user_id, (key, name)) in enumerate(ordered[:limit], start=1)
        ]
