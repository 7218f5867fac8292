"""
Operator endpoints - batch triggers, summaries and the audit trail.

Every route requires the admin capability claim on the bearer token.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Query

from playtest_levels.api.deps import AdminCaller, DbSession, SessionFactory
from playtest_levels.engines.levels.badges import BadgeService
from playtest_levels.engines.notifications.dispatcher import NotificationDispatcher
from playtest_levels.engines.payments.reports import PaymentReports
from playtest_levels.engines.payments.weeks import parse_week
from playtest_levels.kernel.events.event_store import EventStore
from playtest_levels.kernel.models import EventType
from playtest_levels.orchestration.progression import ProgressionService
from playtest_levels.orchestration.sweep import LevelSweep
from playtest_levels.schemas.levels import (
    AuditEntryResponse,
    BadgeStatResponse,
    ProgressRunRequest,
    ProgressRunResponse,
    SweepRequest,
    SweepResponse,
)
from playtest_levels.schemas.notifications import CleanupRequest, CleanupResponse, NotificationStatResponse
from playtest_levels.schemas.payments import StatusTotalsResponse, WeeklySummaryResponse

router = APIRouter()


@router.get("/admin/weekly-summary/{week_start}", response_model=WeeklySummaryResponse)
async def get_weekly_summary(week_start: str, caller: AdminCaller, db: DbSession):
    """Payment counts and amounts per status for one week."""
    summary = await PaymentReports(db).get_weekly_summary(parse_week(week_start))
    return WeeklySummaryResponse(
        week_start=summary.week_start,
        week_end=summary.week_end,
        iso_week=summary.iso_week,
        users=summary.users,
        by_status={k: StatusTotalsResponse(**v.model_dump()) for k, v in summary.by_status.items()},
        total_paid=summary.total_paid,
    )


@router.post("/admin/run-calculations", response_model=SweepResponse)
async def run_level_calculations(
    caller: AdminCaller,
    session_factory: SessionFactory,
    data: Optional[SweepRequest] = None,
):
    """Recompute levels of every user active within the lookback window."""
    lookback = data.lookback_hours if data else None
    result = await LevelSweep(session_factory).run(lookback_hours=lookback, triggered_by=caller.user_id)
    return SweepResponse(
        run_id=result.run_id,
        since=result.since,
        users_processed=result.users_processed,
        transitions=result.transitions,
        failures=[{"user_id": str(f.user_id), "error": f.error} for f in result.failures],
    )


@router.post("/admin/run-notifications", response_model=ProgressRunResponse)
async def run_progress_notifications(
    caller: AdminCaller,
    db: DbSession,
    data: Optional[ProgressRunRequest] = None,
):
    margin = data.margin if data else None
    sent = await ProgressionService(db).notify_near_level_up(margin)
    await EventStore(db).log(
        event_type=EventType.PROGRESS_NOTIFICATIONS_RUN,
        entity_type="progress_notifications",
        entity_id=caller.user_id,
        user_id=caller.user_id,
        payload={"margin": margin, "sent": sent},
    )
    return ProgressRunResponse(notifications_sent=sent)


@router.post("/admin/cleanup-notifications", response_model=CleanupResponse)
async def cleanup_notifications(
    caller: AdminCaller,
    db: DbSession,
    data: Optional[CleanupRequest] = None,
):
    dispatcher = NotificationDispatcher(db)
    days_old = data.days_old if data and data.days_old is not None else dispatcher.settings.notification_retention_days
    deleted = await dispatcher.cleanup(days_old, triggered_by=caller.user_id)
    return CleanupResponse(deleted=deleted, days_old=days_old)


@router.get("/admin/notification-stats", response_model=List[NotificationStatResponse])
async def get_notification_stats(
    caller: AdminCaller,
    db: DbSession,
    days: int = Query(30, ge=1, le=365),
):
    stats = await NotificationDispatcher(db).get_stats(days)
    return [NotificationStatResponse(**s.model_dump(exclude={"kind"}), kind=s.kind.value) for s in stats]


@router.get("/admin/badge-stats", response_model=List[BadgeStatResponse])
async def get_badge_stats(caller: AdminCaller, db: DbSession):
    """Times each badge was earned, unearned badges included."""
    stats = await BadgeService(db).get_statistics()
    return [BadgeStatResponse(**s.model_dump(exclude={"level_type"}), level_type=s.level_type.value) for s in stats]


@router.get("/admin/audit", response_model=List[AuditEntryResponse])
async def get_audit_trail(
    caller: AdminCaller,
    db: DbSession,
    event_type: Optional[str] = Query(None, description="e.g. payments.batch_run"),
    since: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=500),
):
    types = [EventType(event_type)] if event_type else None
    events = await EventStore(db).get_recent(event_types=types, since=since, limit=limit)
    return [AuditEntryResponse.model_validate(e) for e in events]
