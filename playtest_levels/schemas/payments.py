"""
Pydantic schemas for weekly payments.
"""

import uuid
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class WeeklyPaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    week_start: date
    week_end: date
    amount: int
    breakdown: dict
    status: str
    attempts: int
    last_error: Optional[str] = None
    processed_at: Optional[datetime] = None


class PaymentRunRequest(BaseModel):
    """Week as 'YYYY-MM-DD' (a Monday) or ISO 'YYYY-Www'; empty means current week."""

    week_start: Optional[str] = None


class PaymentRetryRequest(BaseModel):
    week_start: str


class PaymentOutcomeResponse(BaseModel):
    user_id: uuid.UUID
    amount: int
    status: str
    attempts: int
    error: Optional[str] = None
    reason: Optional[str] = None
    payment_id: Optional[uuid.UUID] = None


class PaymentBatchResponse(BaseModel):
    run_id: uuid.UUID
    week_start: date
    paid: List[PaymentOutcomeResponse]
    failed: List[PaymentOutcomeResponse]
    skipped: List[PaymentOutcomeResponse]
    total_paid: int


class StatusTotalsResponse(BaseModel):
    count: int
    amount: int


class WeeklySummaryResponse(BaseModel):
    week_start: date
    week_end: date
    iso_week: str
    users: int
    by_status: Dict[str, StatusTotalsResponse]
    total_paid: int
