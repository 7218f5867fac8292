"""
Level models - ladder definitions, current levels per track and the progression log.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from playtest_levels.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow

GLOBAL_SCOPE = "global"


class LevelType(str, Enum):
    """The three independent progression tracks."""

    LEARNER = "learner"
    CREATOR = "creator"
    INSTRUCTOR = "instructor"


class TransitionDirection(str, Enum):
    PLACEMENT = "placement"
    PROMOTION = "promotion"
    DEMOTION = "demotion"


class LevelDefinition(Base):
    """
    One rung of a level ladder.

    Reference data: seeded at startup and administered out of band, never
    written by the evaluator.
    """

    __tablename__ = "level_definitions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    level_type: Mapped[LevelType] = mapped_column(String(20), nullable=False, index=True)
    level_order: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    min_threshold: Mapped[float] = mapped_column(Float, nullable=False)
    max_threshold: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    weekly_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    benefits: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("level_type", "level_order", name="uq_level_definitions_type_order"),
        UniqueConstraint("level_type", "name", name="uq_level_definitions_type_name"),
    )

    def __repr__(self) -> str:
        return f"<LevelDefinition {self.level_type}:{self.level_order} {self.name}>"


class UserLevel(Base, TimestampMixin):
    """
    Current level of a user on one track.

    Learner levels are kept per content block (scope = block id); creator and
    instructor levels use the global scope. current_level_id is NULL when an
    existing holder no longer qualifies for any rung.
    """

    __tablename__ = "user_levels"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    level_type: Mapped[LevelType] = mapped_column(String(20), nullable=False)
    scope: Mapped[str] = mapped_column(String(64), nullable=False, default=GLOBAL_SCOPE)
    block_id: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True)
    current_level_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("level_definitions.id"),
        nullable=True,
    )
    # Primary metric of the track at the last recompute (consolidation %, active users, ...)
    metric_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    metrics_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    achieved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "level_type", "scope", name="uq_user_levels_user_type_scope"),
        Index("ix_user_levels_type_level", "level_type", "current_level_id"),
    )


class LevelProgressionEvent(Base):
    """Append-only log: one row per detected level transition."""

    __tablename__ = "level_progression_events"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    level_type: Mapped[LevelType] = mapped_column(String(20), nullable=False)
    block_id: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True)
    previous_level_id: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True)
    previous_level_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    new_level_id: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True)
    new_level_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    direction: Mapped[TransitionDirection] = mapped_column(String(20), nullable=False)
    metrics_at_transition: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_level_progression_user_time", "user_id", "created_at"),
    )
