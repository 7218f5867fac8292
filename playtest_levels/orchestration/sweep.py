"""
Periodic level sweep over recently active users.

Triggered externally (operator or scheduler). Each user is recomputed in its
own transaction; a failing user is recorded and the sweep continues. A level
configuration error stops the sweep because it would fail every user alike.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playtest_levels.config import Settings, get_settings
from playtest_levels.engines.consolidation.ledger import SqlAnswerLedger
from playtest_levels.engines.errors import LevelConfigurationError
from playtest_levels.kernel.events.event_store import EventStore
from playtest_levels.kernel.models import EventType
from playtest_levels.logging_config import get_logger, job_id_var
from playtest_levels.orchestration.progression import ProgressionService

logger = get_logger(__name__)


class SweepFailure(BaseModel):
    user_id: uuid.UUID
    error: str


class SweepResult(BaseModel):
    run_id: uuid.UUID
    since: datetime
    users_processed: int = 0
    transitions: int = 0
    failures: List[SweepFailure] = []


class LevelSweep:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    async def run(
        self,
        lookback_hours: Optional[int] = None,
        triggered_by: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> SweepResult:
        now = now or datetime.now(timezone.utc)
        hours = self.settings.level_sweep_lookback_hours if lookback_hours is None else lookback_hours
        since = now - timedelta(hours=hours)
        run_id = uuid.uuid4()
        token = job_id_var.set(str(run_id))
        try:
            async with self.session_factory() as session:
                user_ids = await SqlAnswerLedger(session).get_users_active_since(since)

            result = SweepResult(run_id=run_id, since=since)
            logger.info("Level sweep started", extra={"users": len(user_ids), "since": since.isoformat()})

            for user_id in sorted(user_ids, key=str):
                async with self.session_factory() as session:
                    try:
                        recompute = await ProgressionService(session, settings=self.settings).recompute_all(
                            user_id, now
                        )
                        await session.commit()
                    except LevelConfigurationError:
                        await session.rollback()
                        raise
                    except (SQLAlchemyError, ValueError) as exc:
                        await session.rollback()
                        logger.warning(
                            "Level sweep failed for user",
                            extra={"user_id": str(user_id), "error": str(exc)},
                        )
                        result.failures.append(SweepFailure(user_id=user_id, error=str(exc)))
                        continue
                result.users_processed += 1
                result.transitions += len(recompute.transitions)

            async with self.session_factory() as session:
                await EventStore(session).log(
                    event_type=EventType.LEVEL_SWEEP_RUN,
                    entity_type="level_sweep",
                    entity_id=run_id,
                    user_id=triggered_by,
                    payload={
                        "since": since,
                        "users_processed": result.users_processed,
                        "transitions": result.transitions,
                        "failures": len(result.failures),
                    },
                )
                await session.commit()

            logger.info(
                "Level sweep finished",
                extra={
                    "users_processed": result.users_processed,
                    "transitions": result.transitions,
                    "failures": len(result.failures),
                },
            )
            return result
        finally:
            job_id_var.reset(token)
