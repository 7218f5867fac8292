"""
Notification endpoints - inbox, read state and preferences.
"""

import uuid

from fastapi import APIRouter, HTTPException, Query, status

from playtest_levels.api.deps import CurrentCaller, DbSession
from playtest_levels.engines.notifications.dispatcher import NotificationDispatcher
from playtest_levels.schemas.common import PaginatedResponse
from playtest_levels.schemas.notifications import (
    MarkAllReadResponse,
    NotificationResponse,
    PreferencesResponse,
    PreferencesUpdate,
    UnreadCountResponse,
)

router = APIRouter()


@router.get("/notifications", response_model=PaginatedResponse[NotificationResponse])
async def list_notifications(
    caller: CurrentCaller,
    db: DbSession,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = Query(False),
):
    items, total = await NotificationDispatcher(db).list_notifications(
        caller.user_id, limit=limit, offset=offset, unread_only=unread_only
    )
    return PaginatedResponse[NotificationResponse].create(
        items=[NotificationResponse.model_validate(n) for n in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(caller: CurrentCaller, db: DbSession):
    return UnreadCountResponse(unread=await NotificationDispatcher(db).unread_count(caller.user_id))


@router.put("/notifications/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(caller: CurrentCaller, db: DbSession):
    updated = await NotificationDispatcher(db).mark_all_read(caller.user_id)
    return MarkAllReadResponse(updated=updated)


@router.put("/notifications/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_read(notification_id: uuid.UUID, caller: CurrentCaller, db: DbSession):
    found = await NotificationDispatcher(db).mark_read(notification_id, caller.user_id)
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")


@router.get("/notifications/preferences", response_model=PreferencesResponse)
async def get_preferences(caller: CurrentCaller, db: DbSession):
    preferences = await NotificationDispatcher(db).get_preferences(caller.user_id)
    return PreferencesResponse(**preferences.model_dump())


@router.put("/notifications/preferences", response_model=PreferencesResponse)
async def update_preferences(data: PreferencesUpdate, caller: CurrentCaller, db: DbSession):
    """Partial update; fields left out keep their current value."""
    changes = data.model_dump(exclude_none=True)
    preferences = await NotificationDispatcher(db).update_preferences(caller.user_id, changes)
    return PreferencesResponse(**preferences.model_dump())
