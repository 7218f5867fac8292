"""
Pydantic schemas for the levels API.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class LevelDefinitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    level_type: str
    level_order: int
    name: str
    min_threshold: float
    max_threshold: Optional[float] = None
    weekly_reward: int
    description: str
    benefits: dict


class CurrentLevelResponse(BaseModel):
    level_type: str
    block_id: Optional[uuid.UUID] = None
    block_title: Optional[str] = None
    level_name: Optional[str] = None
    level_order: Optional[int] = None
    weekly_reward: int
    metric_value: float
    metrics: dict
    achieved_at: Optional[datetime] = None
    last_calculated_at: datetime


class ProgressionEntryResponse(BaseModel):
    level_type: str
    block_id: Optional[uuid.UUID] = None
    direction: str
    previous_level: Optional[str] = None
    new_level: Optional[str] = None
    metrics: dict
    occurred_at: datetime


class DistributionEntryResponse(BaseModel):
    level_type: str
    level_name: str
    level_order: int
    holders: int


class RankingEntryResponse(BaseModel):
    rank: int
    user_id: uuid.UUID
    level_name: str
    level_order: int
    metric_value: float


class TransitionResponse(BaseModel):
    level_type: str
    block_id: Optional[uuid.UUID] = None
    direction: str
    previous_level: Optional[str] = None
    new_level: Optional[str] = None
    metric: float


class TrackEvaluationResponse(BaseModel):
    level_type: str
    block_id: Optional[uuid.UUID] = None
    metric: float
    level_name: Optional[str] = None
    level_order: Optional[int] = None
    changed: bool
    transition: Optional[TransitionResponse] = None


class RecomputeResponse(BaseModel):
    user_id: uuid.UUID
    evaluations: List[TrackEvaluationResponse]
    transitions: int


class TopicScoreResponse(BaseModel):
    topic: str
    score: float
    question_count: int


class QuestionScoreResponse(BaseModel):
    question_id: uuid.UUID
    topic: str
    score: float
    attempts: int


class BlockConsolidationResponse(BaseModel):
    block_id: uuid.UUID
    score: float
    question_count: int
    attempted_count: int
    topics: List[TopicScoreResponse]
    questions: List[QuestionScoreResponse]
    calculated_at: datetime


class SweepRequest(BaseModel):
    lookback_hours: Optional[int] = None


class SweepResponse(BaseModel):
    run_id: uuid.UUID
    since: datetime
    users_processed: int
    transitions: int
    failures: List[Dict[str, str]]


class ProgressRunRequest(BaseModel):
    margin: Optional[float] = None


class ProgressRunResponse(BaseModel):
    notifications_sent: int


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_type: str
    entity_type: str
    entity_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    payload: dict
    request_id: Optional[str] = None
    created_at: datetime


class EarnedBadgeResponse(BaseModel):
    badge_id: uuid.UUID
    name: str
    description: str
    icon: str
    color: str
    rarity: str
    level_type: str
    level_name: str
    benefits: dict
    earned_at: datetime
    details: dict


class AvailableBadgeResponse(BaseModel):
    badge_id: uuid.UUID
    name: str
    description: str
    icon: str
    color: str
    rarity: str
    level_type: str
    level_name: str
    earned: bool


class BadgeCollectionResponse(BaseModel):
    earned: List[EarnedBadgeResponse]
    available: List[AvailableBadgeResponse]
    total_earned: int
    total_available: int
    completion_percentage: float
    rarity_counts: Dict[str, int]


class BadgeLeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: uuid.UUID
    total_badges: int
    legendary_badges: int
    epic_badges: int
    rare_badges: int
    latest_earned_at: datetime


class BadgeStatResponse(BaseModel):
    name: str
    level_type: str
    level_name: str
    rarity: str
    earned_count: int
    first_earned_at: Optional[datetime] = None
    last_earned_at: Optional[datetime] = None
