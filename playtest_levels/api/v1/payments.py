"""
Weekly payment endpoints.

Batch runs are admin-only and open their own sessions per user, so they take
the session factory rather than the request session.
"""

from typing import List, Optional

from fastapi import APIRouter, Query

from playtest_levels.api.deps import AdminCaller, CurrentCaller, DbSession, SessionFactory
from playtest_levels.engines.payments.processor import PaymentBatchResult, PaymentOutcome, PaymentProcessor
from playtest_levels.engines.payments.reports import PaymentReports
from playtest_levels.schemas.payments import (
    PaymentBatchResponse,
    PaymentOutcomeResponse,
    PaymentRetryRequest,
    PaymentRunRequest,
    WeeklyPaymentResponse,
)

router = APIRouter()


def _outcome_to_schema(outcome: PaymentOutcome) -> PaymentOutcomeResponse:
    return PaymentOutcomeResponse(
        user_id=outcome.user_id,
        amount=outcome.amount,
        status=outcome.status.value,
        attempts=outcome.attempts,
        error=outcome.error,
        reason=outcome.reason,
        payment_id=outcome.payment_id,
    )


def batch_to_schema(result: PaymentBatchResult) -> PaymentBatchResponse:
    return PaymentBatchResponse(
        run_id=result.run_id,
        week_start=result.week_start,
        paid=[_outcome_to_schema(o) for o in result.paid],
        failed=[_outcome_to_schema(o) for o in result.failed],
        skipped=[_outcome_to_schema(o) for o in result.skipped],
        total_paid=result.total_paid,
    )


@router.get("/payments", response_model=List[WeeklyPaymentResponse])
async def get_payment_history(
    caller: CurrentCaller,
    db: DbSession,
    limit: int = Query(20, ge=1, le=200),
):
    """Caller's weekly payments, newest week first."""
    payments = await PaymentReports(db).get_payment_history(caller.user_id, limit)
    return [WeeklyPaymentResponse.model_validate(p) for p in payments]


@router.get("/payments/pending", response_model=List[WeeklyPaymentResponse])
async def get_pending_payments(
    caller: AdminCaller,
    db: DbSession,
    limit: int = Query(200, ge=1, le=1000),
):
    payments = await PaymentReports(db).get_pending_payments(limit)
    return [WeeklyPaymentResponse.model_validate(p) for p in payments]


@router.post("/payments/process-weekly", response_model=PaymentBatchResponse)
async def process_weekly_payments(
    caller: AdminCaller,
    session_factory: SessionFactory,
    data: Optional[PaymentRunRequest] = None,
):
    """Pay the week's rewards. Running it again for the same week pays nobody twice."""
    processor = PaymentProcessor(session_factory)
    week = data.week_start if data else None
    result = await processor.process_weekly_payments(week, triggered_by=caller.user_id)
    return batch_to_schema(result)


@router.post("/payments/retry-failed", response_model=PaymentBatchResponse)
async def retry_failed_payments(
    data: PaymentRetryRequest,
    caller: AdminCaller,
    session_factory: SessionFactory,
):
    processor = PaymentProcessor(session_factory)
    result = await processor.retry_failed_payments(data.week_start, triggered_by=caller.user_id)
    return batch_to_schema(result)
