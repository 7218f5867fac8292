"""
Answer Ledger - read-only access to answer history and question sets.

The play subsystem owns these tables. Everything here is a SELECT.
"""

import uuid
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Protocol, Set

from pydantic import BaseModel
from sqlalchemy import distinct, select
from sqlalchemy.ext.asyncio import AsyncSession

from playtest_levels.kernel.models import AnswerEvent, AnswerResult, ContentBlock, Question, ensure_utc


class AnswerRecord(BaseModel):
    """One attempt on a question, as seen by the calculator."""

    result: AnswerResult
    answered_at: datetime
    sequence: int  # insertion order; breaks timestamp ties


class QuestionRef(BaseModel):
    question_id: uuid.UUID
    topic: str


class AnswerLedgerReader(Protocol):
    """What the consolidation calculator needs from the play subsystem."""

    async def get_question_history(
        self, user_id: uuid.UUID, question_id: uuid.UUID, limit: int
    ) -> List[AnswerRecord]: ...

    async def get_block_histories(
        self, user_id: uuid.UUID, block_id: uuid.UUID, limit: int
    ) -> Dict[uuid.UUID, List[AnswerRecord]]: ...

    async def get_block_questions(self, block_id: uuid.UUID) -> List[QuestionRef]: ...

    async def get_user_blocks(self, user_id: uuid.UUID) -> List[uuid.UUID]: ...


def newest_first(records: List[AnswerRecord]) -> List[AnswerRecord]:
    """Order attempts newest first; equal timestamps fall back to insertion order."""
    return sorted(records, key=lambda r: (r.answered_at, r.sequence), reverse=True)


class SqlAnswerLedger:
    """AnswerLedgerReader over the answer_events / questions tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _to_record(row: AnswerEvent) -> AnswerRecord:
        return AnswerRecord(
            result=AnswerResult(row.result),
            answered_at=ensure_utc(row.answered_at),
            sequence=row.id,
        )

    async def get_question_history(
        self, user_id: uuid.UUID, question_id: uuid.UUID, limit: int
    ) -> List[AnswerRecord]:
        """Most recent `limit` attempts on one question, newest first."""
        q = (
            select(AnswerEvent)
            .where(AnswerEvent.user_id == user_id, AnswerEvent.question_id == question_id)
            .order_by(AnswerEvent.answered_at.desc(), AnswerEvent.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(q)
        return [self._to_record(row) for row in result.scalars().all()]

    async def get_block_histories(
        self, user_id: uuid.UUID, block_id: uuid.UUID, limit: int
    ) -> Dict[uuid.UUID, List[AnswerRecord]]:
        """Per-question trailing windows for every question the user answered in a block."""
        q = (
            select(AnswerEvent)
            .where(AnswerEvent.user_id == user_id, AnswerEvent.block_id == block_id)
            .order_by(AnswerEvent.answered_at.desc(), AnswerEvent.id.desc())
        )
        result = await self.session.execute(q)
        histories: Dict[uuid.UUID, List[AnswerRecord]] = defaultdict(list)
        for row in result.scalars().all():
            window = histories[row.question_id]
            if len(window) < limit:
                window.append(self._to_record(row))
        return dict(histories)

    async def get_block_questions(self, block_id: uuid.UUID) -> List[QuestionRef]:
        q = select(Question.id, Question.topic).where(Question.block_id == block_id)
        result = await self.session.execute(q)
        return [QuestionRef(question_id=qid, topic=topic) for qid, topic in result.all()]

    async def get_user_blocks(self, user_id: uuid.UUID) -> List[uuid.UUID]:
        """Blocks the user has answered at least one question in."""
        q = select(distinct(AnswerEvent.block_id)).where(AnswerEvent.user_id == user_id)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def get_users_active_since(self, since: datetime) -> Set[uuid.UUID]:
        """Players who answered, and creators who published a block, since `since`."""
        players = await self.session.execute(
            select(distinct(AnswerEvent.user_id)).where(AnswerEvent.answered_at >= since)
        )
        creators = await self.session.execute(
            select(distinct(ContentBlock.creator_id)).where(ContentBlock.created_at >= since)
        )
        return set(players.scalars().all()) | set(creators.scalars().all())
