"""
Pytest fixtures for PlayTest Levels tests.

The whole test session runs against a temporary SQLite file, configured before
any application module reads its settings. Integration tests get a fresh
database per test.
"""

import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List, Optional

_session_db = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_session_db.close()
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_session_db.name}"
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only-32chars")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from playtest_levels.config import get_settings

get_settings.cache_clear()

from playtest_levels.engines.levels.badges import seed_badge_definitions
from playtest_levels.engines.levels.definitions import seed_level_definitions
from playtest_levels.kernel.identity.jwt import JWTManager
from playtest_levels.kernel.models import (
    AnswerEvent,
    AnswerResult,
    Base,
    ContentBlock,
    LevelDefinition,
    LevelType,
    Question,
)

NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Engine over a fresh SQLite file, schema created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'levels.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def seeded(session_factory) -> None:
    """Default ladders and badges in the database."""
    async with session_factory() as session:
        await seed_level_definitions(session)
        await seed_badge_definitions(session)
        await session.commit()


@pytest.fixture
def jwt_manager() -> JWTManager:
    """Create a JWT manager for tests."""
    return JWTManager(
        secret_key="test-secret-key-for-testing-only",
        algorithm="HS256",
        access_token_expire_minutes=30,
    )


def make_ladder(level_type: LevelType, rungs: List[tuple]) -> List[LevelDefinition]:
    """LevelDefinition rows from (name, order, min_threshold, weekly_reward) tuples."""
    return [
        LevelDefinition(
            id=uuid.uuid4(),
            level_type=level_type.value,
            level_order=order,
            name=name,
            min_threshold=minimum,
            weekly_reward=reward,
            description=name,
            benefits={},
        )
        for name, order, minimum, reward in rungs
    ]


async def add_block(
    session: AsyncSession,
    topics: List[str],
    creator_id: Optional[uuid.UUID] = None,
    title: str = "Block",
) -> tuple:
    """Content block with one question per entry in `topics`."""
    block = ContentBlock(id=uuid.uuid4(), title=title, creator_id=creator_id or uuid.uuid4(), created_at=NOW)
    session.add(block)
    questions = [Question(id=uuid.uuid4(), block_id=block.id, topic=topic) for topic in topics]
    session.add_all(questions)
    await session.flush()
    return block, questions


async def answer(
    session: AsyncSession,
    user_id: uuid.UUID,
    question: Question,
    results: List[AnswerResult],
    start: datetime,
    step: timedelta = timedelta(hours=1),
) -> None:
    """Record attempts in chronological order starting at `start`."""
    for i, result in enumerate(results):
        session.add(
            AnswerEvent(
                user_id=user_id,
                question_id=question.id,
                block_id=question.block_id,
                topic_name=question.topic,
                result=result.value,
                answered_at=start + step * i,
            )
        )
    await session.flush()
