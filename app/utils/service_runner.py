import asyncio
import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import CreditTransaction
from app.schemas.checks import CheckResult, CheckSubject
from app.schemas.runner import RunStatus, RunSummary, ScheduleRunDetail
from app.utils.clock import as_utc, utcnow
from app.utils.exceptions import (
    CostCalculationError, IdempotencyConflictError,
    InsufficientCreditsError, MissingSubjectError
)
from app.utils.idempotency import build_idempotency_key
from app.utils.notifications import NotificationDispatcher, NotificationKind
from app.utils.pricing import calculate_cost
from app.utils.redis_cache import BalanceCache
from app.utils.service_checks import CheckExecutor
from app.utils.service_ledger import CreditLedger
from app.utils.service_schedule import ScheduleStore

logger = logging.getLogger("[CRON]")


class ScheduledRunner:
    """
    Один прохід по розкладах одного типу.

    Для кожного розкладу: resolve -> вартість -> перевірка балансу ->
    debit -> виконання -> (refund при повному провалі) -> advance.
    advance виконується завжди (finally), помилка одного розкладу
    не зупиняє прохід.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        executor: CheckExecutor,
        notifier: NotificationDispatcher,
        cache: Optional[BalanceCache] = None,
        *,
        schedule_delay_seconds: float = 0.0,
        warning_throttle_hours: int = 24,
        debit_max_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.executor = executor
        self.notifier = notifier
        self.cache = cache
        self.schedule_delay_seconds = schedule_delay_seconds
        self.warning_throttle = timedelta(hours=warning_throttle_hours)
        self.debit_max_attempts = max(1, debit_max_attempts)
        self.clock = clock
        self.store = ScheduleStore(session_factory, executor.model)

    @property
    def job_name(self) -> str:
        return self.executor.feature_type.value.replace("_", "-")

    async def find_due(self, now: Optional[datetime] = None) -> List:
        return await self.store.find_due(now or self.clock())

    async def run(self, now: Optional[datetime] = None, schedules: Optional[List] = None) -> RunSummary:
        started = time.monotonic()
        if schedules is None:
            schedules = await self.find_due(now)

        summary = RunSummary(job=self.job_name)
        logger.info(f"{self.job_name}: {len(schedules)} schedule(s) due")

        for index, schedule in enumerate(schedules):
            if index > 0 and self.schedule_delay_seconds > 0:
                await asyncio.sleep(self.schedule_delay_seconds)
            summary.add(await self.process_schedule(schedule))

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        return summary

    async def process_schedule(self, schedule) -> ScheduleRunDetail:
        detail = ScheduleRunDetail(
            schedule_id=schedule.id,
            subject_id=self.executor.subject_id_of(schedule),
            account_id=schedule.account_id,
            status=RunStatus.ERROR,
        )
        run_at = self.clock()
        try:
            await self._process(schedule, detail)
        except Exception as exc:
            logger.exception(f"Schedule {schedule.id} failed: {exc}")
            detail.status = RunStatus.ERROR
            detail.error = str(exc) or exc.__class__.__name__
        finally:
            try:
                await self.store.advance(schedule.id, run_at)
            except Exception as exc:
                logger.error(f"Failed to advance schedule {schedule.id}: {exc}")

        logger.info(
            f"{self.job_name} schedule processed: {detail.status.value}",
            extra=detail.model_dump(mode="json"),
        )
        return detail

    async def _process(self, schedule, detail: ScheduleRunDetail):
        try:
            subject = await self.executor.resolve(schedule)
            cost = calculate_cost(subject.unit_count, subject.providers)
        except (MissingSubjectError, CostCalculationError) as exc:
            detail.status = RunStatus.SKIPPED
            detail.error = str(exc)
            return
        detail.subject_id = subject.subject_id

        async with self.session_factory() as session:
            ledger = CreditLedger(session, self.cache)
            await ledger.ensure_balance_exists(subject.account_id)
            check = await ledger.check_credits(subject.account_id, cost)

        if not check.has_credits:
            await self._skip_insufficient(schedule, subject, detail, cost, check.available)
            return

        run_token = uuid.uuid4().hex
        idempotency_key = build_idempotency_key(
            subject.feature_type, subject.account_id, subject.subject_id, run_token
        )
        try:
            await self._debit(subject, cost, idempotency_key, run_token)
        except InsufficientCreditsError as exc:
            # баланс змінився між перевіркою та списанням
            await self._skip_insufficient(schedule, subject, detail, exc.required, exc.available)
            return

        detail.executed = True
        detail.credits_used = cost

        try:
            result = await self.executor.run(subject, run_token)
        except Exception as exc:
            logger.exception(f"Executor failed for schedule {schedule.id}: {exc}")
            result = CheckResult(errors=[f"Executor failed: {exc}"])

        detail.checks_performed = result.checks_performed
        detail.unit_errors = list(result.errors)

        if result.is_total_failure:
            detail.status = RunStatus.ERROR
            detail.error = "All checks failed"
            await self._refund(subject, cost, idempotency_key, detail)
            return

        # часткові помилки не повертають кредити
        detail.status = RunStatus.PARTIAL if result.errors else RunStatus.SUCCESS

    async def _debit(
        self,
        subject: CheckSubject,
        cost: int,
        idempotency_key: str,
        run_token: str
    ) -> CreditTransaction:
        # той самий ключ на кожній спробі: повтор після невідомого результату безпечний
        for attempt in range(1, self.debit_max_attempts + 1):
            async with self.session_factory() as session:
                ledger = CreditLedger(session, self.cache)
                try:
                    return await ledger.debit(
                        subject.account_id,
                        cost,
                        feature_type=subject.feature_type,
                        idempotency_key=idempotency_key,
                        feature_metadata={
                            "schedule_id": subject.schedule_id,
                            "subject_id": subject.subject_id,
                            "unit_count": subject.unit_count,
                            "providers": subject.providers,
                            "run_token": run_token,
                        },
                    )
                except IdempotencyConflictError as exc:
                    return exc.existing
                except DBAPIError as exc:
                    if attempt >= self.debit_max_attempts:
                        raise
                    logger.warning(
                        f"Debit attempt {attempt} failed for {idempotency_key}: {exc}"
                    )

    async def _refund(
        self,
        subject: CheckSubject,
        cost: int,
        idempotency_key: str,
        detail: ScheduleRunDetail
    ):
        async with self.session_factory() as session:
            ledger = CreditLedger(session, self.cache)
            try:
                await ledger.refund_feature(
                    subject.account_id,
                    cost,
                    idempotency_key,
                    feature_type=subject.feature_type,
                    feature_metadata={"schedule_id": subject.schedule_id},
                )
            except IdempotencyConflictError:
                pass
            except Exception as exc:
                logger.error(f"Refund failed for {idempotency_key}: {exc}")
                detail.error = f"All checks failed; refund failed: {exc}"
                return

        detail.credits_used = 0

    async def _skip_insufficient(
        self,
        schedule,
        subject: CheckSubject,
        detail: ScheduleRunDetail,
        required: int,
        available: int
    ):
        detail.status = RunStatus.INSUFFICIENT_CREDITS
        detail.error = f"Insufficient credits: required {required}, available {available}"

        now = self.clock()
        last_sent = as_utc(schedule.last_credit_warning_sent_at)
        if last_sent is not None and now - last_sent < self.warning_throttle:
            return

        try:
            await self.notifier.notify(
                subject.account_id,
                NotificationKind.CREDIT_CHECK_SKIPPED,
                {
                    "required": required,
                    "available": available,
                    "feature": subject.feature_type.value,
                },
            )
        except Exception as exc:
            logger.warning(f"Credit warning for {subject.account_id} not sent: {exc}")
            return

        await self.store.mark_credit_warning_sent(schedule.id, now)
