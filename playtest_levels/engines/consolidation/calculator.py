"""
Consolidation Calculator - decayed, recency-weighted mastery scores.

Per question, over the trailing window of the most recent attempts (rank 0 =
newest):

    position(rank)  = max(position_floor, position_decay ** rank)
    recency(days)   = recency_floor + (1 - recency_floor) * exp(-days / tau)

    raw   = sum(sign(result) * increment(result) * position(rank) * recency(d_i))
    base  = clamp(raw, 0, 100) + streak bonus, capped at 100
    score = base * recency(days since newest attempt)

d_i is measured from attempt i to the newest attempt on that question, so the
relative weighting of a fixed history never changes with the clock. Only the
final freshness factor depends on "now", and it never grows as time passes.

Block and topic scores are plain means over every question in the set,
unattempted questions counting as 0.
"""

import math
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel

from playtest_levels.config import Settings, get_settings
from playtest_levels.engines.consolidation.ledger import (
    AnswerLedgerReader,
    AnswerRecord,
    QuestionRef,
    newest_first,
)
from playtest_levels.engines.errors import QuestionSetMissingError
from playtest_levels.kernel.models import AnswerResult

MAX_SCORE = 100.0
SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class ConsolidationParams:
    """Tunable constants of the scoring formula."""

    window_size: int = 20
    correct_increment: float = 30.0
    incorrect_penalty: float = 12.0
    position_decay: float = 0.8
    position_floor: float = 0.2
    recency_tau_days: float = 30.0
    recency_floor: float = 0.15
    streak_length: int = 3
    streak_bonus: float = 10.0

    def __post_init__(self) -> None:
        if self.incorrect_penalty >= self.correct_increment:
            raise ValueError("incorrect_penalty must be smaller than correct_increment")
        if not 0 < self.position_decay <= 1:
            raise ValueError("position_decay must be in (0, 1]")
        if not 0 <= self.recency_floor <= 1 or not 0 <= self.position_floor <= 1:
            raise ValueError("weight floors must be in [0, 1]")
        if self.window_size < 1 or self.streak_length < 2:
            raise ValueError("window_size must be >= 1 and streak_length >= 2")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ConsolidationParams":
        s = settings or get_settings()
        return cls(
            window_size=s.consolidation_window_size,
            correct_increment=s.consolidation_correct_increment,
            incorrect_penalty=s.consolidation_incorrect_penalty,
            position_decay=s.consolidation_position_decay,
            position_floor=s.consolidation_position_floor,
            recency_tau_days=s.consolidation_recency_tau_days,
            recency_floor=s.consolidation_recency_floor,
            streak_length=s.consolidation_streak_length,
            streak_bonus=s.consolidation_streak_bonus,
        )


class QuestionConsolidation(BaseModel):
    question_id: uuid.UUID
    topic: str
    score: float
    attempts: int


class TopicConsolidation(BaseModel):
    topic: str
    score: float
    question_count: int


class BlockConsolidation(BaseModel):
    """Block aggregate with its topic and question breakdown."""

    block_id: uuid.UUID
    score: float
    question_count: int
    attempted_count: int
    topics: List[TopicConsolidation]
    questions: List[QuestionConsolidation]
    calculated_at: datetime

    def snapshot(self) -> dict:
        """Compact form stored on UserLevel.metrics_snapshot."""
        return {
            "consolidation": round(self.score, 2),
            "questions": self.question_count,
            "attempted": self.attempted_count,
            "topics": {t.topic: round(t.score, 2) for t in self.topics},
        }


def _days_between(earlier: datetime, later: datetime) -> float:
    return max(0.0, (later - earlier).total_seconds() / SECONDS_PER_DAY)


def recency_weight(days: float, params: ConsolidationParams) -> float:
    """Continuous decay towards recency_floor; 1.0 at zero days."""
    return params.recency_floor + (1.0 - params.recency_floor) * math.exp(
        -days / params.recency_tau_days
    )


def position_weight(rank: int, params: ConsolidationParams) -> float:
    """Decay by attempt rank (0 = newest), never below position_floor."""
    return max(params.position_floor, params.position_decay ** rank)


def _has_streak(ordered: List[AnswerRecord], params: ConsolidationParams) -> bool:
    # Two attempts both correct qualify while the history is still short.
    if len(ordered) < 2:
        return False
    recent = ordered[: params.streak_length]
    return all(r.result == AnswerResult.CORRECT for r in recent)


def score_question(
    history: List[AnswerRecord],
    now: datetime,
    params: Optional[ConsolidationParams] = None,
) -> float:
    """
    Consolidation of a single question from its attempt history.

    Args:
        history: Attempts in any order; only the newest window_size are used
        now: Evaluation instant (timezone-aware)
        params: Formula constants

    Returns:
        Score in [0, 100]; 0 when there are no attempts
    """
    params = params or ConsolidationParams()
    if not history:
        return 0.0

    ordered = newest_first(history)[: params.window_size]
    newest = ordered[0].answered_at

    raw = 0.0
    for rank, attempt in enumerate(ordered):
        if attempt.result == AnswerResult.BLANK:
            continue
        weight = position_weight(rank, params) * recency_weight(
            _days_between(attempt.answered_at, newest), params
        )
        if attempt.result == AnswerResult.CORRECT:
            raw += params.correct_increment * weight
        else:
            raw -= params.incorrect_penalty * weight

    base = min(MAX_SCORE, max(0.0, raw))
    if _has_streak(ordered, params):
        base = min(MAX_SCORE, base + params.streak_bonus)

    return base * recency_weight(_days_between(newest, now), params)


def aggregate(scores: List[float]) -> Optional[float]:
    """Mean over the set, or None for an empty set."""
    if not scores:
        return None
    return sum(scores) / len(scores)


class ConsolidationCalculator:
    """
    Computes consolidation on demand from the answer ledger.

    Nothing is cached across calls; pass `now` explicitly to get reproducible
    results.
    """

    def __init__(
        self,
        ledger: AnswerLedgerReader,
        params: Optional[ConsolidationParams] = None,
    ):
        self.ledger = ledger
        self.params = params or ConsolidationParams.from_settings()

    async def score(
        self,
        user_id: uuid.UUID,
        question_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> float:
        """Consolidation of one question for one user."""
        now = now or datetime.now(timezone.utc)
        history = await self.ledger.get_question_history(user_id, question_id, self.params.window_size)
        return score_question(history, now, self.params)

    def _score_block(
        self,
        block_id: uuid.UUID,
        questions: List[QuestionRef],
        histories: Dict[uuid.UUID, List[AnswerRecord]],
        now: datetime,
    ) -> BlockConsolidation:
        per_question: List[QuestionConsolidation] = []
        by_topic: Dict[str, List[float]] = defaultdict(list)
        for ref in questions:
            history = histories.get(ref.question_id, [])
            value = score_question(history, now, self.params)
            per_question.append(
                QuestionConsolidation(
                    question_id=ref.question_id,
                    topic=ref.topic,
                    score=value,
                    attempts=len(history),
                )
            )
            by_topic[ref.topic].append(value)

        topics = [
            TopicConsolidation(topic=topic, score=aggregate(values), question_count=len(values))
            for topic, values in sorted(by_topic.items())
        ]
        return BlockConsolidation(
            block_id=block_id,
            score=aggregate([q.score for q in per_question]),
            question_count=len(per_question),
            attempted_count=sum(1 for q in per_question if q.attempts),
            topics=topics,
            questions=per_question,
            calculated_at=now,
        )

    async def block_consolidation(
        self,
        user_id: uuid.UUID,
        block_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Optional[BlockConsolidation]:
        """
        Block and topic consolidation for one user.

        Returns None for a block without questions; the aggregate is undefined
        there rather than zero.
        """
        now = now or datetime.now(timezone.utc)
        questions = await self.ledger.get_block_questions(block_id)
        if not questions:
            return None
        histories = await self.ledger.get_block_histories(user_id, block_id, self.params.window_size)
        return self._score_block(block_id, questions, histories, now)

    async def require_block_consolidation(
        self,
        user_id: uuid.UUID,
        block_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> BlockConsolidation:
        """Like block_consolidation but an empty question set is an input error."""
        result = await self.block_consolidation(user_id, block_id, now)
        if result is None:
            raise QuestionSetMissingError(f"Block {block_id} has no questions")
        return result

    async def topic_consolidation(
        self,
        user_id: uuid.UUID,
        block_id: uuid.UUID,
        topic: str,
        now: Optional[datetime] = None,
    ) -> Optional[float]:
        block = await self.block_consolidation(user_id, block_id, now)
        if block is None:
            return None
        for entry in block.topics:
            if entry.topic == topic:
                return entry.score
        return None

    async def all_blocks(
        self,
        user_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Dict[uuid.UUID, BlockConsolidation]:
        """Every block the user has played that has a question set."""
        now = now or datetime.now(timezone.utc)
        results: Dict[uuid.UUID, BlockConsolidation] = {}
        for block_id in await self.ledger.get_user_blocks(user_id):
            block = await self.block_consolidation(user_id, block_id, now)
            if block is not None:
                results[block_id] = block
        return results
