"""Integration tests for the weekly payment batch, its idempotency and retries."""

import uuid
from datetime import date, timedelta
from typing import Set

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from conftest import NOW
from playtest_levels.engines.errors import CurrencyCreditError
from playtest_levels.engines.payments.currency import SqlCurrencyLedger
from playtest_levels.engines.payments.processor import PaymentProcessor, RewardCandidate
from playtest_levels.engines.payments.reports import PaymentReports
from playtest_levels.kernel.events.event_store import EventStore
from playtest_levels.kernel.models import (
    EventType,
    LevelDefinition,
    LevelType,
    Notification,
    NotificationPreference,
    PaymentStatus,
    UserLevel,
    WeeklyPayment,
    utcnow,
)

WEEK = date(2026, 10, 12)


class FlakyLedger(SqlCurrencyLedger):
    """Currency ledger that refuses credits for selected users."""

    def __init__(self, session, failing: Set[uuid.UUID]):
        super().__init__(session)
        self.failing = failing

    async def credit(self, user_id, amount, reason, reference_id=None):
        if user_id in self.failing:
            raise CurrencyCreditError("wallet service unavailable")
        await super().credit(user_id, amount, reason, reference_id)


class TimeoutLedger(SqlCurrencyLedger):
    """Wallet service that times out for selected users."""

    def __init__(self, session, failing: Set[uuid.UUID]):
        super().__init__(session)
        self.failing = failing

    async def credit(self, user_id, amount, reason, reference_id=None):
        if user_id in self.failing:
            raise TimeoutError("wallet service timed out")
        await super().credit(user_id, amount, reason, reference_id)


def processor_for(session_factory, failing: Set[uuid.UUID]) -> PaymentProcessor:
    return PaymentProcessor(session_factory, ledger_factory=lambda session: FlakyLedger(session, failing))


async def balance(session_factory, user_id) -> int:
    async with session_factory() as session:
        return await SqlCurrencyLedger(session).balance(user_id)


async def payment_row(session_factory, user_id, week=WEEK) -> WeeklyPayment:
    async with session_factory() as session:
        return await session.scalar(
            select(WeeklyPayment).where(WeeklyPayment.user_id == user_id, WeeklyPayment.week_start == week)
        )


@pytest_asyncio.fixture
async def creators(session_factory, seeded):
    """Three users holding the lowest creator rung (reward 40), achieved before the week ended."""
    users = [uuid.uuid4(), uuid.uuid4(), uuid.uuid4()]
    async with session_factory() as session:
        seed = await session.scalar(
            select(LevelDefinition).where(
                LevelDefinition.level_type == LevelType.CREATOR.value,
                LevelDefinition.level_order == 1,
            )
        )
        for user_id in users:
            session.add(
                UserLevel(
                    user_id=user_id,
                    level_type=LevelType.CREATOR.value,
                    scope="global",
                    current_level_id=seed.id,
                    metric_value=5,
                    metrics_snapshot={"active_users": 5},
                    achieved_at=NOW - timedelta(days=10),
                    last_calculated_at=NOW,
                )
            )
        await session.commit()
    return users


class TestComputeRewards:
    @pytest.mark.asyncio
    async def test_only_rewarded_levels_achieved_in_time(self, session_factory, creators):
        late_user = uuid.uuid4()
        async with session_factory() as session:
            spark = await session.scalar(
                select(LevelDefinition).where(
                    LevelDefinition.level_type == LevelType.CREATOR.value,
                    LevelDefinition.level_order == 2,
                )
            )
            session.add(
                UserLevel(
                    user_id=late_user,
                    level_type=LevelType.CREATOR.value,
                    scope="global",
                    current_level_id=spark.id,
                    metric_value=60,
                    metrics_snapshot={},
                    achieved_at=NOW + timedelta(days=30),
                    last_calculated_at=NOW,
                )
            )
            await session.commit()

        candidates = await PaymentProcessor(session_factory).compute_rewards(WEEK)

        assert {c.user_id for c in candidates} == set(creators)
        assert all(c.amount == 40 for c in candidates)
        assert candidates[0].breakdown["levels"][0]["level_name"] == "Semilla"


class TestWeeklyBatch:
    """A batch where one user's credit fails."""

    @pytest.mark.asyncio
    async def test_partial_failure(self, session_factory, creators):
        a, b, c = creators
        result = await processor_for(session_factory, {b}).process_weekly_payments(WEEK)

        assert {o.user_id for o in result.paid} == {a, c}
        assert [o.user_id for o in result.failed] == [b]
        assert result.failed[0].attempts == 1
        assert "wallet service unavailable" in result.failed[0].error
        assert result.skipped == []
        assert result.total_paid == 80

        assert (await payment_row(session_factory, a)).status == PaymentStatus.PAID.value
        failed = await payment_row(session_factory, b)
        assert failed.status == PaymentStatus.FAILED.value
        assert failed.attempts == 1
        assert await balance(session_factory, a) == 40
        assert await balance(session_factory, b) == 0

    @pytest.mark.asyncio
    async def test_second_run_never_pays_twice(self, session_factory, creators):
        a, b, c = creators
        processor = processor_for(session_factory, {b})
        await processor.process_weekly_payments(WEEK)
        again = await processor.process_weekly_payments("2026-W42")

        assert again.paid == []
        assert {o.user_id for o in again.skipped} == {a, c}
        assert all(o.reason == "already_paid" for o in again.skipped)
        assert again.failed[0].attempts == 2
        assert await balance(session_factory, a) == 40
        assert await balance(session_factory, c) == 40

        async with session_factory() as session:
            rows = await session.scalar(select(func.count(WeeklyPayment.id)))
            assert rows == 3

    @pytest.mark.asyncio
    async def test_paid_users_are_notified_unless_opted_out(self, session_factory, creators):
        a, b, c = creators
        async with session_factory() as session:
            session.add(NotificationPreference(user_id=c, weekly_payment=False))
            await session.commit()

        await processor_for(session_factory, {b}).process_weekly_payments(WEEK)

        async with session_factory() as session:
            result = await session.execute(select(Notification.user_id, Notification.kind))
            notified = result.all()
        assert notified == [(a, "weekly_payment")]

    @pytest.mark.asyncio
    async def test_batch_is_audited(self, session_factory, creators):
        operator = uuid.uuid4()
        await processor_for(session_factory, set()).process_weekly_payments(WEEK, triggered_by=operator)

        async with session_factory() as session:
            events = await EventStore(session).get_recent([EventType.PAYMENT_BATCH_RUN])
        assert len(events) == 1
        assert events[0].user_id == operator
        assert events[0].payload["week_start"] == "2026-10-12"


class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_touches_only_failed_rows(self, session_factory, creators):
        a, b, c = creators
        await processor_for(session_factory, {b}).process_weekly_payments(WEEK)
        paid_before = await payment_row(session_factory, a)

        result = await processor_for(session_factory, set()).retry_failed_payments(WEEK)

        assert [o.user_id for o in result.paid] == [b]
        assert result.paid[0].attempts == 2
        assert result.failed == []
        assert await balance(session_factory, b) == 40
        paid_after = await payment_row(session_factory, a)
        assert paid_after.attempts == paid_before.attempts
        assert paid_after.processed_at == paid_before.processed_at

    @pytest.mark.asyncio
    async def test_retry_respects_attempt_cap(self, session_factory, creators):
        b = creators[1]
        processor = processor_for(session_factory, {b})
        await processor.process_weekly_payments(WEEK)
        await processor.retry_failed_payments(WEEK)
        third = await processor.retry_failed_payments(WEEK)
        assert third.failed[0].attempts == 3

        capped = await processor.retry_failed_payments(WEEK)
        assert capped.failed == []
        assert capped.skipped[0].reason == "max_attempts_reached"
        assert (await payment_row(session_factory, b)).attempts == 3

        # A full rerun leaves the capped row alone too
        rerun = await processor.process_weekly_payments(WEEK)
        assert {o.reason for o in rerun.skipped} == {"already_paid", "max_attempts_reached"}

    @pytest.mark.asyncio
    async def test_retry_of_other_week_is_empty(self, session_factory, creators):
        await processor_for(session_factory, {creators[1]}).process_weekly_payments(WEEK)
        result = await processor_for(session_factory, set()).retry_failed_payments("2026-10-05")
        assert result.paid == result.failed == result.skipped == []


class TestReports:
    @pytest.mark.asyncio
    async def test_weekly_summary_and_pending(self, session_factory, creators):
        a, b, c = creators
        await processor_for(session_factory, {b}).process_weekly_payments(WEEK)

        async with session_factory() as session:
            reports = PaymentReports(session)
            summary = await reports.get_weekly_summary(WEEK)
            pending = await reports.get_pending_payments()
            history = await reports.get_payment_history(a)

        assert summary.users == 3
        assert summary.by_status["paid"].count == 2
        assert summary.by_status["failed"].count == 1
        assert summary.by_status["pending"].count == 0
        assert summary.total_paid == 80
        assert summary.iso_week == "2026-W42"
        assert [p.user_id for p in pending] == [b]
        assert [p.week_start for p in history] == [WEEK]


class TestInterruptedBatches:
    @pytest.mark.asyncio
    async def test_transport_error_fails_only_that_user(self, session_factory, creators):
        a, b, c = creators
        processor = PaymentProcessor(session_factory, ledger_factory=lambda session: TimeoutLedger(session, {b}))

        result = await processor.process_weekly_payments(WEEK)

        assert {o.user_id for o in result.paid} == {a, c}
        assert [o.user_id for o in result.failed] == [b]
        assert result.failed[0].error == "TimeoutError: wallet service timed out"
        failed = await payment_row(session_factory, b)
        assert failed.status == PaymentStatus.FAILED.value
        assert failed.attempts == 1

        retried = await processor_for(session_factory, set()).retry_failed_payments(WEEK)
        assert [o.user_id for o in retried.paid] == [b]
        assert await balance(session_factory, b) == 40

    @pytest.mark.asyncio
    async def test_rerun_takes_over_stale_pending_claim(self, session_factory, creators):
        a, b, c = creators
        abandoned = utcnow() - timedelta(hours=2)
        async with session_factory() as session:
            session.add(
                WeeklyPayment(
                    user_id=b,
                    week_start=WEEK,
                    week_end=WEEK + timedelta(days=6),
                    amount=40,
                    breakdown={},
                    status=PaymentStatus.PENDING.value,
                    attempts=0,
                    created_at=abandoned,
                    updated_at=abandoned,
                )
            )
            await session.commit()

        result = await processor_for(session_factory, set()).process_weekly_payments(WEEK)

        assert {o.user_id for o in result.paid} == {a, b, c}
        assert result.skipped == []
        row = await payment_row(session_factory, b)
        assert row.status == PaymentStatus.PAID.value
        assert row.attempts == 1
        assert await balance(session_factory, b) == 40

    @pytest.mark.asyncio
    async def test_fresh_pending_claim_is_left_alone(self, session_factory, creators):
        b = creators[1]
        async with session_factory() as session:
            session.add(
                WeeklyPayment(
                    user_id=b,
                    week_start=WEEK,
                    week_end=WEEK + timedelta(days=6),
                    amount=40,
                    breakdown={},
                    status=PaymentStatus.PENDING.value,
                    attempts=0,
                )
            )
            await session.commit()

        result = await processor_for(session_factory, set()).process_weekly_payments(WEEK)

        assert [(o.user_id, o.reason) for o in result.skipped] == [(b, "in_progress")]
        assert await balance(session_factory, b) == 0

    @pytest.mark.asyncio
    async def test_insert_conflict_without_a_row_is_a_failure(self, session_factory, creators):
        user_id = uuid.uuid4()
        candidate = RewardCandidate(user_id=user_id, amount=40, breakdown={})
        conflict = IntegrityError("INSERT INTO weekly_payments", {}, Exception("CHECK constraint failed"))

        async with session_factory() as session:
            outcome = await PaymentProcessor(session_factory)._handle_existing(session, candidate, WEEK, conflict)

        assert outcome.user_id == user_id
        assert outcome.status == PaymentStatus.FAILED
        assert outcome.reason is None
        assert "CHECK constraint failed" in outcome.error
