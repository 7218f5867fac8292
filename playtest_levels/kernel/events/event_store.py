"""
Event Store service for append-only audit logging.

Administrative batch runs and user-initiated changes are recorded here in the
same transaction as the change they describe.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from playtest_levels.kernel.models.event_log import EventLog, EventType
from playtest_levels.logging_config import get_request_id


class EventStore:
    """
    Service for managing the immutable event log.

    Usage:
        event_store = EventStore(session)
        await event_store.log(
            event_type=EventType.PAYMENT_BATCH_RUN,
            entity_type="payment_batch",
            entity_id=run_id,
            user_id=caller.user_id,
            payload={"week_start": week_start, "paid": 12, "failed": 1},
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> EventLog:
        """
        Add an event to the audit log. The caller commits.

        Args:
            event_type: The type of event
            entity_type: Kind of entity the event is about (payment_batch, user, ...)
            entity_id: The ID of the entity (a fresh run id for batch runs)
            user_id: The caller who triggered the event, None for system runs
            payload: Additional event data

        Returns:
            The pending EventLog record
        """
        event = EventLog(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=self._serialize_payload(payload or {}),
            request_id=get_request_id(),
        )
        self.session.add(event)
        return event

    async def get_recent(
        self,
        event_types: Optional[List[EventType]] = None,
        since: Optional[datetime] = None,
        limit: int = 50,
    ) -> List[EventLog]:
        """Newest-first events, optionally filtered by type and start time."""
        query = select(EventLog)
        if event_types:
            query = query.where(EventLog.event_type.in_([t.value for t in event_types]))
        if since:
            query = query.where(EventLog.created_at >= since)
        query = query.order_by(desc(EventLog.created_at)).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_events(
        self,
        event_type: Optional[EventType] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> int:
        query = select(func.count(EventLog.id))
        if event_type:
            query = query.where(EventLog.event_type == event_type.value)
        if user_id:
            query = query.where(EventLog.user_id == user_id)
        result = await self.session.execute(query)
        return result.scalar() or 0

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert payload values to JSON-serializable types."""
        return {key: self._serialize_value(value) for key, value in payload.items()}

    def _serialize_value(self, value: Any) -> Any:
        if isinstance(value, uuid.UUID):
            return str(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, dict):
            return self._serialize_payload(value)
        if isinstance(value, (list, tuple)):
            return [self._serialize_value(v) for v in value]
        return value
