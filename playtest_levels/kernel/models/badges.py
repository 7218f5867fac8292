"""
Level badges - one collectible badge per ladder rung and the badges users hold.
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from playtest_levels.kernel.models.base import Base, generate_uuid, utcnow
from playtest_levels.kernel.models.levels import LevelType


class BadgeRarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


# Leaderboard ranks by the rarest badges first
RARITY_RANK = {
    BadgeRarity.LEGENDARY.value: 5,
    BadgeRarity.EPIC.value: 4,
    BadgeRarity.RARE.value: 3,
    BadgeRarity.UNCOMMON.value: 2,
    BadgeRarity.COMMON.value: 1,
}


class BadgeDefinition(Base):
    """Badge awarded on reaching the rung (level_type, level_name)."""

    __tablename__ = "badge_definitions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    level_type: Mapped[LevelType] = mapped_column(String(20), nullable=False)
    level_name: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    icon: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    color: Mapped[str] = mapped_column(String(20), nullable=False, default="#6B7280")
    rarity: Mapped[BadgeRarity] = mapped_column(
        String(20),
        nullable=False,
        default=BadgeRarity.COMMON.value,
    )
    benefits: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("level_type", "level_name", name="uq_badge_definitions_type_level"),
    )


class UserBadge(Base):
    """
    A badge held by a user. Earned once: a learner reaching the same rung in
    a second block keeps the first award.
    """

    __tablename__ = "user_badges"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    badge_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("badge_definitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Transition that earned the badge (block, metric)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
        Index("ix_user_badges_user_time", "user_id", "earned_at"),
    )
