"""
Payment queries for users and operators.
"""

import uuid
from datetime import date
from typing import Dict, List

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from playtest_levels.engines.payments.weeks import iso_week_label, week_end
from playtest_levels.kernel.models import PaymentStatus, WeeklyPayment, enum_value


class StatusTotals(BaseModel):
    count: int = 0
    amount: int = 0


class WeeklySummary(BaseModel):
    week_start: date
    week_end: date
    iso_week: str
    users: int
    by_status: Dict[str, StatusTotals]
    total_paid: int


class PaymentReports:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_payment_history(self, user_id: uuid.UUID, limit: int = 20) -> List[WeeklyPayment]:
        result = await self.session.execute(
            select(WeeklyPayment)
            .where(WeeklyPayment.user_id == user_id)
            .order_by(WeeklyPayment.week_start.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_pending_payments(self, limit: int = 200) -> List[WeeklyPayment]:
        """Rows not yet paid: interrupted `pending` claims and `failed` rows awaiting retry."""
        result = await self.session.execute(
            select(WeeklyPayment)
            .where(WeeklyPayment.status.in_([PaymentStatus.PENDING.value, PaymentStatus.FAILED.value]))
            .order_by(WeeklyPayment.week_start.desc(), WeeklyPayment.user_id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_weekly_summary(self, week_start: date) -> WeeklySummary:
        result = await self.session.execute(
            select(
                WeeklyPayment.status,
                func.count(WeeklyPayment.id),
                func.coalesce(func.sum(WeeklyPayment.amount), 0),
            )
            .where(WeeklyPayment.week_start == week_start)
            .group_by(WeeklyPayment.status)
        )
        by_status = {status.value: StatusTotals() for status in PaymentStatus}
        users = 0
        for status, count, amount in result.all():
            by_status[enum_value(status)] = StatusTotals(count=count, amount=int(amount))
            users += count

        return WeeklySummary(
            week_start=week_start,
            week_end=week_end(week_start),
            iso_week=iso_week_label(week_start),
            users=users,
            by_status=by_status,
            total_paid=by_status[PaymentStatus.PAID.value].amount,
        )
