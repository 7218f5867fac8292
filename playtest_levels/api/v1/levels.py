"""
Level endpoints - current levels, history, ladders, rankings and recompute.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Query

from playtest_levels.api.deps import CurrentCaller, DbSession
from playtest_levels.engines.consolidation.calculator import ConsolidationCalculator
from playtest_levels.engines.consolidation.ledger import SqlAnswerLedger
from playtest_levels.engines.levels.badges import AvailableBadge, BadgeService, EarnedBadge
from playtest_levels.engines.levels.evaluator import TrackEvaluation
from playtest_levels.engines.levels.ladder import parse_level_type
from playtest_levels.engines.levels.reports import LevelReports
from playtest_levels.kernel.events.event_store import EventStore
from playtest_levels.kernel.models import EventType, enum_value
from playtest_levels.orchestration.progression import ProgressionService
from playtest_levels.schemas.levels import (
    AvailableBadgeResponse,
    BadgeCollectionResponse,
    BadgeLeaderboardEntryResponse,
    EarnedBadgeResponse,
    BlockConsolidationResponse,
    CurrentLevelResponse,
    DistributionEntryResponse,
    LevelDefinitionResponse,
    ProgressionEntryResponse,
    RankingEntryResponse,
    RecomputeResponse,
    TrackEvaluationResponse,
    TransitionResponse,
)

router = APIRouter()


def _evaluation_to_schema(evaluation: TrackEvaluation) -> TrackEvaluationResponse:
    transition = evaluation.transition
    return TrackEvaluationResponse(
        level_type=evaluation.level_type.value,
        block_id=evaluation.block_id,
        metric=evaluation.metric,
        level_name=evaluation.level_name,
        level_order=evaluation.level_order,
        changed=evaluation.changed,
        transition=TransitionResponse(
            level_type=transition.level_type.value,
            block_id=transition.block_id,
            direction=transition.direction.value,
            previous_level=transition.previous_level,
            new_level=transition.new_level,
            metric=transition.metric,
        ) if transition else None,
    )


def _badge_to_schema(badge: EarnedBadge) -> EarnedBadgeResponse:
    return EarnedBadgeResponse(**badge.model_dump(exclude={"level_type"}), level_type=badge.level_type.value)


def _available_to_schema(badge: AvailableBadge) -> AvailableBadgeResponse:
    return AvailableBadgeResponse(**badge.model_dump(exclude={"level_type"}), level_type=badge.level_type.value)


@router.get("/me", response_model=List[CurrentLevelResponse])
async def get_current_levels(caller: CurrentCaller, db: DbSession):
    """All level rows of the caller across tracks and blocks."""
    levels = await LevelReports(db).get_current_levels(caller.user_id)
    return [
        CurrentLevelResponse(**level.model_dump(exclude={"level_type"}), level_type=level.level_type.value)
        for level in levels
    ]


@router.get("/me/progression", response_model=List[ProgressionEntryResponse])
async def get_progression_history(
    caller: CurrentCaller,
    db: DbSession,
    limit: int = Query(20, ge=1, le=200),
):
    entries = await LevelReports(db).get_progression_history(caller.user_id, limit)
    return [
        ProgressionEntryResponse(**entry.model_dump(exclude={"level_type"}), level_type=entry.level_type.value)
        for entry in entries
    ]


@router.get("/me/badges", response_model=List[EarnedBadgeResponse])
async def get_my_badges(caller: CurrentCaller, db: DbSession):
    """Badges earned by the caller, most recent first."""
    badges = await BadgeService(db).get_user_badges(caller.user_id)
    return [_badge_to_schema(b) for b in badges]


@router.get("/me/badges/collection", response_model=BadgeCollectionResponse)
async def get_my_badge_collection(caller: CurrentCaller, db: DbSession):
    collection = await BadgeService(db).get_badge_collection(caller.user_id)
    return BadgeCollectionResponse(
        earned=[_badge_to_schema(b) for b in collection.earned],
        available=[_available_to_schema(b) for b in collection.available],
        total_earned=collection.total_earned,
        total_available=collection.total_available,
        completion_percentage=collection.completion_percentage,
        rarity_counts=collection.rarity_counts,
    )


@router.get("/me/consolidation/{block_id}", response_model=BlockConsolidationResponse)
async def get_block_consolidation(block_id: uuid.UUID, caller: CurrentCaller, db: DbSession):
    """Block, topic and question consolidation for the caller, computed now."""
    calculator = ConsolidationCalculator(SqlAnswerLedger(db))
    block = await calculator.require_block_consolidation(caller.user_id, block_id)
    return BlockConsolidationResponse(**block.model_dump())


@router.get("/definitions", response_model=List[LevelDefinitionResponse])
async def get_level_definitions(
    db: DbSession,
    level_type: Optional[str] = Query(None, description="learner, creator or instructor"),
):
    parsed = parse_level_type(level_type) if level_type else None
    rows = await LevelReports(db).get_level_definitions(parsed)
    return [
        LevelDefinitionResponse(
            id=row.id,
            level_type=enum_value(row.level_type),
            level_order=row.level_order,
            name=row.name,
            min_threshold=row.min_threshold,
            max_threshold=row.max_threshold,
            weekly_reward=row.weekly_reward,
            description=row.description,
            benefits=row.benefits or {},
        )
        for row in rows
    ]


@router.get("/distribution", response_model=List[DistributionEntryResponse])
async def get_level_distribution(caller: CurrentCaller, db: DbSession):
    entries = await LevelReports(db).get_level_distribution()
    return [
        DistributionEntryResponse(**entry.model_dump(exclude={"level_type"}), level_type=entry.level_type.value)
        for entry in entries
    ]


@router.get("/rankings/{level_type}", response_model=List[RankingEntryResponse])
async def get_rankings(
    level_type: str,
    caller: CurrentCaller,
    db: DbSession,
    limit: int = Query(50, ge=1, le=500),
):
    entries = await LevelReports(db).get_rankings(parse_level_type(level_type), limit)
    return [RankingEntryResponse(**entry.model_dump()) for entry in entries]


@router.get("/badges/leaderboard", response_model=List[BadgeLeaderboardEntryResponse])
async def get_badge_leaderboard(
    caller: CurrentCaller,
    db: DbSession,
    level_type: Optional[str] = Query(None, description="learner, creator or instructor"),
    limit: int = Query(50, ge=1, le=500),
):
    parsed = parse_level_type(level_type) if level_type else None
    entries = await BadgeService(db).get_leaderboard(parsed, limit)
    return [BadgeLeaderboardEntryResponse(**entry.model_dump()) for entry in entries]


@router.post("/recalculate", response_model=RecomputeResponse)
async def recompute_all(caller: CurrentCaller, db: DbSession):
    """Recompute every track of the caller."""
    result = await ProgressionService(db).recompute_all(caller.user_id)
    await EventStore(db).log(
        event_type=EventType.LEVELS_RECALCULATED,
        entity_type="user",
        entity_id=caller.user_id,
        user_id=caller.user_id,
        payload={"transitions": len(result.transitions)},
    )
    return RecomputeResponse(
        user_id=result.user_id,
        evaluations=[_evaluation_to_schema(e) for e in result.evaluations],
        transitions=len(result.transitions),
    )


@router.post("/recalculate/{block_id}", response_model=TrackEvaluationResponse)
async def recompute_block(block_id: uuid.UUID, caller: CurrentCaller, db: DbSession):
    """Learner level for one block. A block without questions is rejected."""
    evaluation = await ProgressionService(db).recompute_block(caller.user_id, block_id)
    return _evaluation_to_schema(evaluation)
