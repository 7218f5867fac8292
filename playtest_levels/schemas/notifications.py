"""
Pydantic schemas for notifications.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: str
    title: str
    message: str
    payload: dict
    priority: str
    created_at: datetime
    read_at: Optional[datetime] = None


class UnreadCountResponse(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int


class PreferencesResponse(BaseModel):
    level_up: bool
    level_progress: bool
    weekly_payment: bool
    push_notifications: bool
    email_notifications: bool


class PreferencesUpdate(BaseModel):
    """Partial update; omitted fields keep their value."""

    level_up: Optional[bool] = None
    level_progress: Optional[bool] = None
    weekly_payment: Optional[bool] = None
    push_notifications: Optional[bool] = None
    email_notifications: Optional[bool] = None


class CleanupRequest(BaseModel):
    days_old: Optional[int] = None


class CleanupResponse(BaseModel):
    deleted: int
    days_old: int


class NotificationStatResponse(BaseModel):
    kind: str
    total: int
    read: int
    read_rate: float
