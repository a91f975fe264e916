import calendar
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Type

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import ScheduleFrequency
from app.utils.clock import as_utc

logger = logging.getLogger("[CRON]")


def _add_month(anchor: datetime) -> datetime:
    # 31 січня + 1 місяць -> 28/29 лютого
    year = anchor.year + (anchor.month // 12)
    month = anchor.month % 12 + 1
    day = min(anchor.day, calendar.monthrange(year, month)[1])
    return anchor.replace(year=year, month=month, day=day)


def compute_next_run(frequency: ScheduleFrequency, anchor: datetime) -> datetime:
    """Наступний запуск відносно anchor (час останнього запуску)."""
    anchor = as_utc(anchor)
    if frequency == ScheduleFrequency.HOURLY:
        return anchor + timedelta(hours=1)
    if frequency == ScheduleFrequency.DAILY:
        return anchor + timedelta(days=1)
    if frequency == ScheduleFrequency.WEEKLY:
        return anchor + timedelta(weeks=1)
    if frequency == ScheduleFrequency.MONTHLY:
        return _add_month(anchor)
    raise ValueError(f"Unsupported schedule frequency: {frequency!r}")


class ScheduleStore:
    """
    Доступ до рядків розкладу одного типу (RankKeywordGroup або LLMVisibilitySchedule).
    Кожна операція відкриває власну сесію: падіння одного розкладу
    не лишає брудного стану для наступних.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], model: Type):
        self.session_factory = session_factory
        self.model = model

    async def find_due(self, now: datetime) -> List:
        model = self.model
        async with self.session_factory() as session:
            result = await session.execute(
                select(model)
                .where(
                    model.is_enabled.is_(True),
                    model.schedule_frequency.is_not(None),
                    or_(
                        model.next_scheduled_at.is_(None),
                        model.next_scheduled_at <= now,
                    ),
                )
                .order_by(model.next_scheduled_at.asc().nulls_first(), model.id)
            )
            return list(result.scalars().all())

    async def advance(
        self,
        schedule_id: str,
        last_run_at: datetime,
        next_run_override: Optional[datetime] = None
    ) -> Optional[datetime]:
        """
        Фіксує запуск і переносить next_scheduled_at.
        Override береться лише якщо він пізніший за обчислений час.
        """
        async with self.session_factory() as session:
            schedule = await session.get(self.model, schedule_id)
            if schedule is None:
                logger.warning(f"Schedule {schedule_id} disappeared before advance")
                return None

            next_run = None
            if schedule.schedule_frequency is not None:
                next_run = compute_next_run(schedule.schedule_frequency, last_run_at)
            if next_run_override is not None:
                override = as_utc(next_run_override)
                if next_run is None or override > next_run:
                    next_run = override

            schedule.last_scheduled_run_at = last_run_at
            if next_run is not None:
                schedule.next_scheduled_at = next_run
            await session.commit()
            return next_run

    async def mark_credit_warning_sent(self, schedule_id: str, sent_at: datetime) -> None:
        async with self.session_factory() as session:
            schedule = await session.get(self.model, schedule_id)
            if schedule is None:
                return
            schedule.last_credit_warning_sent_at = sent_at
            await session.commit()
