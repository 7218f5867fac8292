"""
Default level ladders and idempotent seeding.

Learner thresholds are block consolidation percentages, creator thresholds are
distinct active players over the activity window, instructor thresholds are
active enrolled students. Rewards are weekly currency amounts.
"""

from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from playtest_levels.kernel.models import LevelDefinition, LevelType, enum_value
from playtest_levels.logging_config import get_logger

logger = get_logger(__name__)


DEFAULT_LADDERS: Dict[LevelType, List[dict]] = {
    LevelType.LEARNER: [
        {"name": "Aprendiz", "order": 1, "min": 0, "max": 25, "reward": 0,
         "description": "Starting to learn the block"},
        {"name": "Explorador", "order": 2, "min": 26, "max": 50, "reward": 0,
         "description": "Exploring new concepts"},
        {"name": "Estratega", "order": 3, "min": 51, "max": 80, "reward": 0,
         "description": "Handling the advanced material"},
        {"name": "Sabio", "order": 4, "min": 81, "max": 95, "reward": 0,
         "description": "Expert knowledge of the block"},
        {"name": "Gran Maestro", "order": 5, "min": 96, "max": 100, "reward": 0,
         "description": "Complete mastery of the block"},
    ],
    LevelType.CREATOR: [
        {"name": "Semilla", "order": 1, "min": 1, "max": 49, "reward": 40,
         "description": "New creator with a first audience"},
        {"name": "Chispa", "order": 2, "min": 50, "max": 149, "reward": 60,
         "description": "Creator with steady growth"},
        {"name": "Constructor", "order": 3, "min": 150, "max": 499, "reward": 90,
         "description": "Established creator with a solid audience"},
        {"name": "Orador", "order": 4, "min": 500, "max": 999, "reward": 130,
         "description": "Influential creator with wide reach"},
        {"name": "Visionario", "order": 5, "min": 1000, "max": None, "reward": 180,
         "description": "Leading creator with massive impact"},
    ],
    LevelType.INSTRUCTOR: [
        {"name": "Guía", "order": 1, "min": 1, "max": 15, "reward": 50,
         "description": "Instructor with a small group"},
        {"name": "Instructor", "order": 2, "min": 16, "max": 35, "reward": 75,
         "description": "Instructor with a mid-sized class"},
        {"name": "Consejero", "order": 3, "min": 36, "max": 60, "reward": 110,
         "description": "Instructor running several groups"},
        {"name": "Erudito", "order": 4, "min": 61, "max": 100, "reward": 150,
         "description": "Instructor with a large student base"},
        {"name": "Maestro Jedi", "order": 5, "min": 101, "max": None, "reward": 200,
         "description": "Master instructor with institutional impact"},
    ],
}


def _benefits(level_type: LevelType, order: int) -> dict:
    if level_type == LevelType.LEARNER:
        return {
            "challenge_access": "intermediate" if order >= 2 else "basic",
            "advanced_challenges": order >= 3,
            "expert_challenges": order >= 4,
            "mastery_challenges": order >= 5,
            "bonus_rewards": order * 5,
        }
    if level_type == LevelType.CREATOR:
        return {
            "challenge_creation_boost": order * 10,
            "analytics_access": order >= 3,
            "premium_templates": order >= 4,
            "priority_support": order >= 5,
        }
    return {
        "student_management_tools": True,
        "advanced_reports": order >= 3,
        "custom_assignments": order >= 4,
        "institutional_features": order >= 5,
    }


async def seed_level_definitions(session: AsyncSession) -> int:
    """
    Insert the default rungs that are missing. Existing rows are left alone
    so ladders administered out of band survive restarts.

    Returns:
        Number of rows inserted
    """
    result = await session.execute(select(LevelDefinition.level_type, LevelDefinition.level_order))
    existing = {(enum_value(level_type), order) for level_type, order in result.all()}

    inserted = 0
    for level_type, rungs in DEFAULT_LADDERS.items():
        for rung in rungs:
            if (level_type.value, rung["order"]) in existing:
                continue
            session.add(
                LevelDefinition(
                    level_type=level_type.value,
                    level_order=rung["order"],
                    name=rung["name"],
                    min_threshold=rung["min"],
                    max_threshold=rung["max"],
                    weekly_reward=rung["reward"],
                    description=rung["description"],
                    benefits=_benefits(level_type, rung["order"]),
                )
            )
            inserted += 1

    if inserted:
        await session.flush()
        logger.info("Seeded level definitions", extra={"inserted": inserted})
    return inserted
