"""
Play-side read models: content blocks, questions, answer history and class enrollments.

These tables are written by the gameplay and content services; the levels
engine only reads them.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from playtest_levels.kernel.models.base import Base, generate_uuid, utcnow


class AnswerResult(str, Enum):
    """Outcome of a single answered question."""

    CORRECT = "correct"
    INCORRECT = "incorrect"
    BLANK = "blank"


class ContentBlock(Base):
    """A block of questions authored by a creator."""

    __tablename__ = "content_blocks"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    creator_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )


class Question(Base):
    """A question belonging to a block, tagged with its topic."""

    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    block_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("content_blocks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    topic: Mapped[str] = mapped_column(String(255), nullable=False, default="general")
    text: Mapped[str] = mapped_column(String(2000), nullable=False, default="")


class AnswerEvent(Base):
    """
    Immutable answer fact. Append-only.

    The integer primary key doubles as insertion order, which breaks ties
    between attempts recorded with the same timestamp.
    """

    __tablename__ = "answer_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    question_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    block_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("content_blocks.id", ondelete="CASCADE"),
        nullable=False,
    )
    topic_name: Mapped[str] = mapped_column(String(255), nullable=False, default="general")
    result: Mapped[AnswerResult] = mapped_column(String(20), nullable=False)
    response_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    answered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_answer_events_user_question", "user_id", "question_id", "answered_at"),
        Index("ix_answer_events_user_block", "user_id", "block_id"),
        Index("ix_answer_events_block_time", "block_id", "answered_at"),
    )


class ClassEnrollment(Base):
    """Instructor to student link."""

    __tablename__ = "class_enrollments"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    instructor_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    student_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("instructor_id", "student_id", name="uq_class_enrollments_pair"),
    )
