"""
Payment Processor - weekly level rewards.

Each user is one unit of work in its own session:

1. Claim: insert the (user, week) row as `pending` and commit. The unique key
   makes this the idempotency gate; a conflict means the row already exists
   and its status decides what happens (paid rows and fresh pending claims are
   skipped, failed rows below the attempt cap are re-claimed).
2. Credit: the currency credit, the `paid` status and the payment
   notification commit together.
3. On a credit error the transaction is rolled back and the row is marked
   `failed` with the error and an incremented attempt count. The batch moves
   on to the next user.

A crash between 1 and 2 leaves a `pending` row. Once it has not been touched
for `payment_pending_stale_minutes` a re-run takes it over with a conditional
update; the credit and the `paid` status share one transaction, so a stale
claim was never credited.
"""

import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playtest_levels.config import Settings, get_settings
from playtest_levels.engines.notifications.dispatcher import NotificationDispatcher
from playtest_levels.engines.payments.currency import CurrencyLedger, SqlCurrencyLedger
from playtest_levels.engines.payments.weeks import WeekSpec, parse_week, week_bounds, week_end
from playtest_levels.kernel.events.event_store import EventStore
from playtest_levels.kernel.models import (
    EventType,
    LevelDefinition,
    PaymentStatus,
    UserLevel,
    WeeklyPayment,
    ensure_utc,
    enum_value,
    utcnow,
)
from playtest_levels.logging_config import get_logger, job_id_var
from playtest_levels.orchestration.state_machine import assert_transition

logger = get_logger(__name__)

REWARD_REASON = "weekly_level_reward"


class PaymentOutcome(BaseModel):
    user_id: uuid.UUID
    amount: int
    status: PaymentStatus
    attempts: int = 0
    error: Optional[str] = None
    reason: Optional[str] = None  # why a user was skipped
    payment_id: Optional[uuid.UUID] = None


class PaymentBatchResult(BaseModel):
    run_id: uuid.UUID
    week_start: date
    paid: List[PaymentOutcome] = []
    failed: List[PaymentOutcome] = []
    skipped: List[PaymentOutcome] = []

    @property
    def total_paid(self) -> int:
        return sum(o.amount for o in self.paid)


class RewardCandidate(BaseModel):
    user_id: uuid.UUID
    amount: int
    breakdown: dict


class PaymentProcessor:
    """
    Runs the weekly payment batch and its retries.

    Usage:
        processor = PaymentProcessor(async_session_maker)
        result = await processor.process_weekly_payments("2026-W42")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ledger_factory: Callable[[AsyncSession], CurrencyLedger] = SqlCurrencyLedger,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.ledger_factory = ledger_factory
        self.settings = settings or get_settings()

    @property
    def max_attempts(self) -> int:
        return self.settings.payment_max_attempts

    async def compute_rewards(self, week_start: date) -> List[RewardCandidate]:
        """
        Users holding a rewarded level achieved before the end of the week.

        Per track the best-paying row counts (a learner may hold levels in many
        blocks); tracks add up.
        """
        _, week_end_exclusive = week_bounds(week_start)
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    UserLevel.user_id,
                    UserLevel.level_type,
                    LevelDefinition.name,
                    LevelDefinition.weekly_reward,
                )
                .join(LevelDefinition, LevelDefinition.id == UserLevel.current_level_id)
                .where(
                    LevelDefinition.weekly_reward > 0,
                    UserLevel.achieved_at.is_not(None),
                    UserLevel.achieved_at < week_end_exclusive,
                )
            )
            rows = result.all()

        best: Dict[uuid.UUID, Dict[str, dict]] = defaultdict(dict)
        for user_id, level_type, name, reward in rows:
            track = enum_value(level_type)
            current = best[user_id].get(track)
            if current is None or reward > current["weekly_reward"]:
                best[user_id][track] = {"level_type": track, "level_name": name, "weekly_reward": reward}

        candidates = []
        for user_id, tracks in best.items():
            levels = [tracks[t] for t in sorted(tracks)]
            amount = sum(entry["weekly_reward"] for entry in levels)
            candidates.append(
                RewardCandidate(
                    user_id=user_id,
                    amount=amount,
                    breakdown={"levels": levels, "total": amount},
                )
            )
        return sorted(candidates, key=lambda c: str(c.user_id))

    async def process_weekly_payments(
        self,
        week: WeekSpec = None,
        triggered_by: Optional[uuid.UUID] = None,
    ) -> PaymentBatchResult:
        """
        Pay every qualifying user for the week once.

        Args:
            week: Monday date, "YYYY-MM-DD", "YYYY-Www" or None for the current week
            triggered_by: Caller id recorded in the audit log

        Returns:
            PaymentBatchResult listing every considered user under paid, failed or skipped
        """
        week_start = parse_week(week)
        run_id = uuid.uuid4()
        token = job_id_var.set(str(run_id))
        try:
            result = PaymentBatchResult(run_id=run_id, week_start=week_start)
            candidates = await self.compute_rewards(week_start)
            logger.info(
                "Weekly payment run started",
                extra={"week_start": week_start.isoformat(), "candidates": len(candidates)},
            )
            for candidate in candidates:
                outcome = await self._process_candidate(candidate, week_start)
                self._collect(result, outcome)

            await self._audit(EventType.PAYMENT_BATCH_RUN, result, triggered_by)
            logger.info(
                "Weekly payment run finished",
                extra={
                    "week_start": week_start.isoformat(),
                    "paid": len(result.paid),
                    "failed": len(result.failed),
                    "skipped": len(result.skipped),
                    "total_paid": result.total_paid,
                },
            )
            return result
        finally:
            job_id_var.reset(token)

    async def retry_failed_payments(
        self,
        week: WeekSpec,
        triggered_by: Optional[uuid.UUID] = None,
    ) -> PaymentBatchResult:
        """
        Re-attempt `failed` rows of one week. Rows at the attempt cap stay
        failed and are reported as skipped; no other row is touched.
        """
        week_start = parse_week(week)
        run_id = uuid.uuid4()
        token = job_id_var.set(str(run_id))
        try:
            result = PaymentBatchResult(run_id=run_id, week_start=week_start)
            async with self.session_factory() as session:
                rows = await session.execute(
                    select(WeeklyPayment.id, WeeklyPayment.user_id, WeeklyPayment.amount, WeeklyPayment.attempts)
                    .where(
                        WeeklyPayment.week_start == week_start,
                        WeeklyPayment.status == PaymentStatus.FAILED.value,
                    )
                    .order_by(WeeklyPayment.user_id)
                )
                failed_rows = rows.all()

            for payment_id, user_id, amount, attempts in failed_rows:
                if attempts >= self.max_attempts:
                    result.skipped.append(
                        PaymentOutcome(
                            user_id=user_id,
                            amount=amount,
                            status=PaymentStatus.FAILED,
                            attempts=attempts,
                            reason="max_attempts_reached",
                            payment_id=payment_id,
                        )
                    )
                    continue
                async with self.session_factory() as session:
                    outcome = await self._claim_and_credit(session, payment_id)
                self._collect(result, outcome)

            await self._audit(EventType.PAYMENT_RETRY_RUN, result, triggered_by)
            logger.info(
                "Failed payment retry finished",
                extra={
                    "week_start": week_start.isoformat(),
                    "paid": len(result.paid),
                    "failed": len(result.failed),
                    "skipped": len(result.skipped),
                },
            )
            return result
        finally:
            job_id_var.reset(token)

    @staticmethod
    def _collect(result: PaymentBatchResult, outcome: PaymentOutcome) -> None:
        if outcome.reason is not None:
            result.skipped.append(outcome)
        elif outcome.status == PaymentStatus.PAID:
            result.paid.append(outcome)
        else:
            result.failed.append(outcome)

    async def _process_candidate(self, candidate: RewardCandidate, week_start: date) -> PaymentOutcome:
        async with self.session_factory() as session:
            payment = WeeklyPayment(
                id=uuid.uuid4(),
                user_id=candidate.user_id,
                week_start=week_start,
                week_end=week_end(week_start),
                amount=candidate.amount,
                breakdown=candidate.breakdown,
                status=PaymentStatus.PENDING.value,
                attempts=0,
            )
            session.add(payment)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                return await self._handle_existing(session, candidate, week_start, exc)

            return await self._credit(session, payment.id)

    async def _handle_existing(
        self,
        session: AsyncSession,
        candidate: RewardCandidate,
        week_start: date,
        exc: IntegrityError,
    ) -> PaymentOutcome:
        existing = await session.scalar(
            select(WeeklyPayment).where(
                WeeklyPayment.user_id == candidate.user_id,
                WeeklyPayment.week_start == week_start,
            )
        )
        if existing is None:
            # The insert broke some other constraint; there is no row to claim.
            error = f"{type(exc).__name__}: {exc.orig if exc.orig is not None else exc}"[:1000]
            logger.error(
                "Weekly payment row could not be created",
                extra={"user_id": str(candidate.user_id), "amount": candidate.amount, "error": error},
            )
            return PaymentOutcome(
                user_id=candidate.user_id,
                amount=candidate.amount,
                status=PaymentStatus.FAILED,
                error=error,
            )

        status = PaymentStatus(existing.status)
        skip = PaymentOutcome(
            user_id=existing.user_id,
            amount=existing.amount,
            status=status,
            attempts=existing.attempts,
            error=existing.last_error,
            payment_id=existing.id,
        )
        if status == PaymentStatus.PAID:
            skip.reason = "already_paid"
            return skip
        if status == PaymentStatus.PENDING:
            stale_before = utcnow() - timedelta(minutes=self.settings.payment_pending_stale_minutes)
            if ensure_utc(existing.updated_at) > stale_before:
                skip.reason = "in_progress"
                return skip
            return await self._reclaim_stale(session, existing.id, stale_before)
        if existing.attempts >= self.max_attempts:
            skip.reason = "max_attempts_reached"
            return skip
        return await self._claim_and_credit(session, existing.id)

    async def _claim_and_credit(self, session: AsyncSession, payment_id: uuid.UUID) -> PaymentOutcome:
        """Move a failed row back to pending, then credit. Losing the race is a skip."""
        assert_transition(PaymentStatus.FAILED, PaymentStatus.PENDING)
        claimed = await session.execute(
            update(WeeklyPayment)
            .where(
                WeeklyPayment.id == payment_id,
                WeeklyPayment.status == PaymentStatus.FAILED.value,
                WeeklyPayment.attempts < self.max_attempts,
            )
            .values(status=PaymentStatus.PENDING.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        if claimed.rowcount != 1:
            return await self._claimed_elsewhere(session, payment_id)
        return await self._credit(session, payment_id)

    async def _reclaim_stale(
        self,
        session: AsyncSession,
        payment_id: uuid.UUID,
        stale_before: datetime,
    ) -> PaymentOutcome:
        """Take over a pending claim left behind by an interrupted run."""
        claimed = await session.execute(
            update(WeeklyPayment)
            .where(
                WeeklyPayment.id == payment_id,
                WeeklyPayment.status == PaymentStatus.PENDING.value,
                WeeklyPayment.updated_at <= stale_before,
            )
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        if claimed.rowcount != 1:
            return await self._claimed_elsewhere(session, payment_id)
        logger.warning("Stale pending payment taken over", extra={"payment_id": str(payment_id)})
        return await self._credit(session, payment_id)

    async def _claimed_elsewhere(self, session: AsyncSession, payment_id: uuid.UUID) -> PaymentOutcome:
        current = await session.get(WeeklyPayment, payment_id, populate_existing=True)
        return PaymentOutcome(
            user_id=current.user_id,
            amount=current.amount,
            status=PaymentStatus(current.status),
            attempts=current.attempts,
            reason="claimed_elsewhere",
            payment_id=payment_id,
        )

    async def _credit(self, session: AsyncSession, payment_id: uuid.UUID) -> PaymentOutcome:
        payment = await session.get(WeeklyPayment, payment_id, populate_existing=True)
        user_id, amount = payment.user_id, payment.amount
        try:
            assert_transition(payment.status, PaymentStatus.PAID)
            ledger = self.ledger_factory(session)
            await ledger.credit(user_id, amount, REWARD_REASON, reference_id=payment_id)
            payment.status = PaymentStatus.PAID.value
            payment.attempts += 1
            payment.last_error = None
            payment.processed_at = datetime.now(timezone.utc)
            await NotificationDispatcher(session, self.settings).notify_payment(payment)
            await session.commit()
        except Exception as exc:
            # The ledger is an outside system: timeouts and transport errors
            # fail this user only.
            await session.rollback()
            return await self._mark_failed(session, payment_id, user_id, amount, exc)

        logger.info(
            "Weekly payment credited",
            extra={"user_id": str(user_id), "amount": amount, "payment_id": str(payment_id)},
        )
        return PaymentOutcome(
            user_id=user_id,
            amount=amount,
            status=PaymentStatus.PAID,
            attempts=payment.attempts,
            payment_id=payment_id,
        )

    async def _mark_failed(
        self,
        session: AsyncSession,
        payment_id: uuid.UUID,
        user_id: uuid.UUID,
        amount: int,
        exc: Exception,
    ) -> PaymentOutcome:
        assert_transition(PaymentStatus.PENDING, PaymentStatus.FAILED)
        error = f"{type(exc).__name__}: {exc}"[:1000]
        await session.execute(
            update(WeeklyPayment)
            .where(WeeklyPayment.id == payment_id)
            .values(
                status=PaymentStatus.FAILED.value,
                attempts=WeeklyPayment.attempts + 1,
                last_error=error,
                processed_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        attempts = await session.scalar(select(WeeklyPayment.attempts).where(WeeklyPayment.id == payment_id))
        logger.warning(
            "Weekly payment failed",
            extra={
                "user_id": str(user_id),
                "amount": amount,
                "payment_id": str(payment_id),
                "attempts": attempts,
                "error": error,
            },
        )
        return PaymentOutcome(
            user_id=user_id,
            amount=amount,
            status=PaymentStatus.FAILED,
            attempts=attempts or 0,
            error=error,
            payment_id=payment_id,
        )

    async def _audit(
        self,
        event_type: EventType,
        result: PaymentBatchResult,
        triggered_by: Optional[uuid.UUID],
    ) -> None:
        async with self.session_factory() as session:
            await EventStore(session).log(
                event_type=event_type,
                entity_type="payment_batch",
                entity_id=result.run_id,
                user_id=triggered_by,
                payload={
                    "week_start": result.week_start,
                    "paid": len(result.paid),
                    "failed": len(result.failed),
                    "skipped": len(result.skipped),
                    "total_paid": result.total_paid,
                },
            )
            await session.commit()
