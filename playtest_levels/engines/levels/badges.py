"""
Level badges.

Every ladder rung has a badge. Reaching the rung (placement or promotion)
earns it once; demotions never take a badge away. Awards ride on the same
LevelTransition the notification dispatcher consumes, inside the recompute
transaction.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from playtest_levels.engines.levels.evaluator import LevelTransition
from playtest_levels.kernel.models import (
    RARITY_RANK,
    BadgeDefinition,
    BadgeRarity,
    LevelDefinition,
    LevelType,
    UserBadge,
    ensure_utc,
    enum_value,
)
from playtest_levels.logging_config import get_logger

logger = get_logger(__name__)


DEFAULT_BADGES: Dict[LevelType, List[dict]] = {
    LevelType.LEARNER: [
        {"level": "Aprendiz", "name": "Primer Paso", "icon": "rookie-shield", "color": "#6B7280",
         "rarity": BadgeRarity.COMMON, "description": "Started the learning journey",
         "benefits": {"encouragement_message": True}},
        {"level": "Explorador", "name": "Explorador Curioso", "icon": "explorer-compass", "color": "#3B82F6",
         "rarity": BadgeRarity.COMMON, "description": "Curious to learn more",
         "benefits": {"hint_access": True, "exploration_rewards": 5}},
        {"level": "Estratega", "name": "Mente Estratégica", "icon": "strategy-crown", "color": "#8B5CF6",
         "rarity": BadgeRarity.UNCOMMON, "description": "Masters learning strategies",
         "benefits": {"advanced_strategies": True, "bonus_points": 10}},
        {"level": "Sabio", "name": "Sabiduría Ancestral", "icon": "wisdom-owl", "color": "#F59E0B",
         "rarity": BadgeRarity.RARE, "description": "Deep knowledge and experience",
         "benefits": {"mentor_access": True, "wisdom_bonus": 20, "special_challenges": True}},
        {"level": "Gran Maestro", "name": "Gran Maestro", "icon": "grandmaster-star", "color": "#EF4444",
         "rarity": BadgeRarity.LEGENDARY, "description": "Absolute mastery",
         "benefits": {"mastery_rewards": 50, "legendary_status": True, "exclusive_content": True}},
    ],
    LevelType.CREATOR: [
        {"level": "Semilla", "name": "Semilla Creativa", "icon": "seed-sprout", "color": "#10B981",
         "rarity": BadgeRarity.COMMON, "description": "First creations are sprouting",
         "benefits": {"creator_tips": True}},
        {"level": "Chispa", "name": "Chispa de Inspiración", "icon": "spark-fire", "color": "#F59E0B",
         "rarity": BadgeRarity.COMMON, "description": "Creativity starting to shine",
         "benefits": {"featured_slot_days": 1}},
        {"level": "Constructor", "name": "Arquitecto del Conocimiento", "icon": "architect-hammer",
         "color": "#3B82F6", "rarity": BadgeRarity.UNCOMMON,
         "description": "Builds solid learning experiences", "benefits": {"analytics_access": True}},
        {"level": "Orador", "name": "Voz Influyente", "icon": "speaker-megaphone", "color": "#8B5CF6",
         "rarity": BadgeRarity.RARE, "description": "Reaches a wide audience",
         "benefits": {"premium_templates": True}},
        {"level": "Visionario", "name": "Visionario Digital", "icon": "visionary-eye", "color": "#EF4444",
         "rarity": BadgeRarity.LEGENDARY, "description": "Leads the future of learning",
         "benefits": {"priority_support": True, "featured_creator": True}},
    ],
    LevelType.INSTRUCTOR: [
        {"level": "Guía", "name": "Guía Sabio", "icon": "guide-lantern", "color": "#10B981",
         "rarity": BadgeRarity.COMMON, "description": "Lights the way for learners",
         "benefits": {"student_management_tools": True}},
        {"level": "Instructor", "name": "Instructor Experto", "icon": "instructor-book", "color": "#3B82F6",
         "rarity": BadgeRarity.COMMON, "description": "Teaching that makes a difference",
         "benefits": {"class_reports": True}},
        {"level": "Consejero", "name": "Consejero de Sabiduría", "icon": "counselor-scales",
         "color": "#8B5CF6", "rarity": BadgeRarity.UNCOMMON,
         "description": "Advises with wisdom and experience", "benefits": {"advanced_reports": True}},
        {"level": "Erudito", "name": "Erudito Académico", "icon": "scholar-scroll", "color": "#F59E0B",
         "rarity": BadgeRarity.RARE, "description": "Vast and deep knowledge",
         "benefits": {"custom_assignments": True}},
        {"level": "Maestro Jedi", "name": "Maestro Jedi", "icon": "jedi-lightsaber", "color": "#EF4444",
         "rarity": BadgeRarity.LEGENDARY, "description": "Mastery in teaching",
         "benefits": {"institutional_features": True}},
    ],
}


class EarnedBadge(BaseModel):
    badge_id: uuid.UUID
    name: str
    description: str
    icon: str
    color: str
    rarity: str
    level_type: LevelType
    level_name: str
    benefits: dict
    earned_at: datetime
    details: dict = {}


class AvailableBadge(BaseModel):
    badge_id: uuid.UUID
    name: str
    description: str
    icon: str
    color: str
    rarity: str
    level_type: LevelType
    level_name: str
    earned: bool


class BadgeCollection(BaseModel):
    earned: List[EarnedBadge]
    available: List[AvailableBadge]
    total_earned: int
    total_available: int
    completion_percentage: float
    rarity_counts: Dict[str, int]


class BadgeLeaderboardEntry(BaseModel):
    rank: int
    user_id: uuid.UUID
    total_badges: int
    legendary_badges: int
    epic_badges: int
    rare_badges: int
    latest_earned_at: datetime


class BadgeStat(BaseModel):
    name: str
    level_type: LevelType
    level_name: str
    rarity: str
    earned_count: int
    first_earned_at: Optional[datetime] = None
    last_earned_at: Optional[datetime] = None


async def seed_badge_definitions(session: AsyncSession) -> int:
    """Insert the default badges that are missing. Returns rows inserted."""
    result = await session.execute(select(BadgeDefinition.level_type, BadgeDefinition.level_name))
    existing = {(enum_value(level_type), level_name) for level_type, level_name in result.all()}

    inserted = 0
    for level_type, badges in DEFAULT_BADGES.items():
        for badge in badges:
            if (level_type.value, badge["level"]) in existing:
                continue
            session.add(
                BadgeDefinition(
                    level_type=level_type.value,
                    level_name=badge["level"],
                    name=badge["name"],
                    description=badge["description"],
                    icon=badge["icon"],
                    color=badge["color"],
                    rarity=badge["rarity"].value,
                    benefits=badge["benefits"],
                )
            )
            inserted += 1

    if inserted:
        await session.flush()
        logger.info("Seeded badge definitions", extra={"inserted": inserted})
    return inserted


def _earned(badge: BadgeDefinition, held: UserBadge) -> EarnedBadge:
    return EarnedBadge(
        badge_id=badge.id,
        name=badge.name,
        description=badge.description,
        icon=badge.icon,
        color=badge.color,
        rarity=enum_value(badge.rarity),
        level_type=LevelType(badge.level_type),
        level_name=badge.level_name,
        benefits=badge.benefits or {},
        earned_at=ensure_utc(held.earned_at),
        details=held.details or {},
    )


class BadgeService:
    """
    Awards and reads level badges.

    Usage:
        badges = BadgeService(session)
        earned = await badges.award_for_transition(transition)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def award_for_transition(self, transition: LevelTransition) -> Optional[EarnedBadge]:
        """
        Badge of the rung the transition reached, or None when nothing new was
        earned (demotion, no badge for the rung, badge already held).
        """
        if not transition.is_upward or transition.new_level is None:
            return None

        badge = await self.session.scalar(
            select(BadgeDefinition).where(
                BadgeDefinition.level_type == transition.level_type.value,
                BadgeDefinition.level_name == transition.new_level,
            )
        )
        if badge is None:
            logger.debug(
                "No badge for level",
                extra={"level_type": transition.level_type.value, "level_name": transition.new_level},
            )
            return None

        held = await self.session.scalar(
            select(UserBadge.id).where(UserBadge.user_id == transition.user_id, UserBadge.badge_id == badge.id)
        )
        if held is not None:
            return None

        user_badge = UserBadge(
            user_id=transition.user_id,
            badge_id=badge.id,
            earned_at=transition.occurred_at,
            details={
                "level_type": transition.level_type.value,
                "level_name": transition.new_level,
                "block_id": str(transition.block_id) if transition.block_id else None,
                "metric": transition.metric,
            },
        )
        self.session.add(user_badge)
        await self.session.flush()

        logger.info(
            "Badge awarded",
            extra={"user_id": str(transition.user_id), "badge": badge.name},
        )
        return _earned(badge, user_badge)

    async def get_user_badges(self, user_id: uuid.UUID) -> List[EarnedBadge]:
        """Badges held by the user, most recent first."""
        result = await self.session.execute(
            select(BadgeDefinition, UserBadge)
            .join(UserBadge, UserBadge.badge_id == BadgeDefinition.id)
            .where(UserBadge.user_id == user_id)
            .order_by(desc(UserBadge.earned_at), BadgeDefinition.name)
        )
        return [_earned(badge, held) for badge, held in result.all()]

    async def get_badge_collection(self, user_id: uuid.UUID) -> BadgeCollection:
        earned = await self.get_user_badges(user_id)
        earned_ids = {b.badge_id for b in earned}

        rungs = await self.session.execute(
            select(LevelDefinition.level_type, LevelDefinition.name, LevelDefinition.level_order)
        )
        order = {(enum_value(t), name): o for t, name, o in rungs.all()}
        result = await self.session.execute(select(BadgeDefinition))
        definitions = sorted(
            result.scalars().all(),
            key=lambda b: (enum_value(b.level_type), order.get((enum_value(b.level_type), b.level_name), 0)),
        )
        available = [
            AvailableBadge(
                badge_id=b.id,
                name=b.name,
                description=b.description,
                icon=b.icon,
                color=b.color,
                rarity=enum_value(b.rarity),
                level_type=LevelType(b.level_type),
                level_name=b.level_name,
                earned=b.id in earned_ids,
            )
            for b in definitions
        ]

        rarity_counts = {rarity.value: 0 for rarity in BadgeRarity}
        for badge in earned:
            if badge.rarity in rarity_counts:
                rarity_counts[badge.rarity] += 1

        total = len(available)
        return BadgeCollection(
            earned=earned,
            available=available,
            total_earned=len(earned),
            total_available=total,
            completion_percentage=round(len(earned) / total * 100, 1) if total else 0.0,
            rarity_counts=rarity_counts,
        )

    async def get_leaderboard(
        self,
        level_type: Optional[LevelType] = None,
        limit: int = 50,
    ) -> List[BadgeLeaderboardEntry]:
        """Users ordered by legendary, epic and rare badges held, then by total."""
        q = select(UserBadge.user_id, BadgeDefinition.rarity, UserBadge.earned_at).join(
            BadgeDefinition, BadgeDefinition.id == UserBadge.badge_id
        )
        if level_type is not None:
            q = q.where(BadgeDefinition.level_type == level_type.value)
        result = await self.session.execute(q)

        tallies: Dict[uuid.UUID, dict] = {}
        for user_id, rarity, earned_at in result.all():
            earned_at = ensure_utc(earned_at)
            tally = tallies.get(user_id)
            if tally is None:
                tally = tallies[user_id] = {"total": 0, "latest": earned_at, **{r: 0 for r in RARITY_RANK}}
            tally["total"] += 1
            tally[enum_value(rarity)] += 1
            tally["latest"] = max(tally["latest"], earned_at)

        def sort_key(item):
            user_id, t = item
            return (-t["legendary"], -t["epic"], -t["rare"], -t["total"], str(user_id))

        ordered = sorted(tallies.items(), key=sort_key)[:limit]
        return [
            BadgeLeaderboardEntry(
                rank=position,
                user_id=user_id,
                total_badges=t["total"],
                legendary_badges=t["legendary"],
                epic_badges=t["epic"],
                rare_badges=t["rare"],
                latest_earned_at=t["latest"],
            )
            for position, (user_id, t) in enumerate(ordered, start=1)
        ]

    async def get_statistics(self) -> List[BadgeStat]:
        """How often each badge was earned, unearned badges included."""
        result = await self.session.execute(
            select(
                BadgeDefinition.name,
                BadgeDefinition.level_type,
                BadgeDefinition.level_name,
                BadgeDefinition.rarity,
                func.count(UserBadge.id),
                func.min(UserBadge.earned_at),
                func.max(UserBadge.earned_at),
            )
            .outerjoin(UserBadge, UserBadge.badge_id == BadgeDefinition.id)
            .group_by(
                BadgeDefinition.id,
                BadgeDefinition.name,
                BadgeDefinition.level_type,
                BadgeDefinition.level_name,
                BadgeDefinition.rarity,
            )
            .order_by(BadgeDefinition.level_type, desc(func.count(UserBadge.id)), BadgeDefinition.name)
        )
        return [
            BadgeStat(
                name=name,
                level_type=LevelType(level_type),
                level_name=level_name,
                rarity=enum_value(rarity),
                earned_count=count,
                first_earned_at=ensure_utc(first),
                last_earned_at=ensure_utc(last),
            )
            for name, level_type, level_name, rarity, count, first, last in result.all()
        ]
