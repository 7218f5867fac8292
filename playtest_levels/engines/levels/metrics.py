"""
Activity metrics for the creator and instructor tracks.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from playtest_levels.kernel.models import AnswerEvent, ClassEnrollment, ContentBlock


class ActivityMetricsProvider(Protocol):
    async def active_users_for_creator(
        self, creator_id: uuid.UUID, days: int, now: Optional[datetime] = None
    ) -> int: ...

    async def active_students_for_instructor(
        self, instructor_id: uuid.UUID, days: int, now: Optional[datetime] = None
    ) -> int: ...


class SqlActivityMetrics:
    """Counts derived from answer history, block ownership and enrollments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def active_users_for_creator(
        self, creator_id: uuid.UUID, days: int, now: Optional[datetime] = None
    ) -> int:
        """Distinct players (other than the creator) who answered in the creator's blocks."""
        since = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        q = (
            select(func.count(distinct(AnswerEvent.user_id)))
            .join(ContentBlock, ContentBlock.id == AnswerEvent.block_id)
            .where(
                ContentBlock.creator_id == creator_id,
                AnswerEvent.user_id != creator_id,
                AnswerEvent.answered_at >= since,
            )
        )
        result = await self.session.execute(q)
        return result.scalar() or 0

    async def active_students_for_instructor(
        self, instructor_id: uuid.UUID, days: int, now: Optional[datetime] = None
    ) -> int:
        """Distinct enrolled students with at least one answer in the window."""
        since = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        q = (
            select(func.count(distinct(ClassEnrollment.student_id)))
            .join(AnswerEvent, AnswerEvent.user_id == ClassEnrollment.student_id)
            .where(
                ClassEnrollment.instructor_id == instructor_id,
                AnswerEvent.answered_at >= since,
            )
        )
        result = await self.session.execute(q)
        return result.scalar() or 0
