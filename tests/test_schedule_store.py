from datetime import datetime, timedelta, timezone

import pytest

from app.models import RankKeywordGroup, ScheduleFrequency
from app.utils.clock import as_utc
from app.utils.service_schedule import ScheduleStore, compute_next_run

from conftest import NOW, seed_rank_group


@pytest.mark.parametrize(
    "frequency, expected",
    [
        (ScheduleFrequency.HOURLY, NOW + timedelta(hours=1)),
        (ScheduleFrequency.DAILY, NOW + timedelta(days=1)),
        (ScheduleFrequency.WEEKLY, NOW + timedelta(weeks=1)),
        (ScheduleFrequency.MONTHLY, datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)),
    ],
)
def test_compute_next_run(frequency, expected):
    assert compute_next_run(frequency, NOW) == expected


def test_monthly_clamps_day_of_month():
    anchor = datetime(2026, 1, 31, 9, 30, tzinfo=timezone.utc)
    assert compute_next_run(ScheduleFrequency.MONTHLY, anchor) == datetime(
        2026, 2, 28, 9, 30, tzinfo=timezone.utc
    )

    december = datetime(2026, 12, 15, tzinfo=timezone.utc)
    assert compute_next_run(ScheduleFrequency.MONTHLY, december) == datetime(
        2027, 1, 15, tzinfo=timezone.utc
    )


@pytest.mark.asyncio
async def test_find_due_filters_and_orders(session_factory):
    late = await seed_rank_group(session_factory, next_scheduled_at=NOW - timedelta(minutes=1))
    early = await seed_rank_group(session_factory, next_scheduled_at=NOW - timedelta(hours=2))
    never_run = await seed_rank_group(session_factory, next_scheduled_at=None)
    await seed_rank_group(session_factory, next_scheduled_at=NOW + timedelta(hours=1))
    await seed_rank_group(session_factory, frequency=None)
    await seed_rank_group(session_factory, is_enabled=False)

    store = ScheduleStore(session_factory, RankKeywordGroup)
    due = await store.find_due(NOW)

    assert [s.id for s in due] == [never_run.id, early.id, late.id]


@pytest.mark.asyncio
async def test_advance_moves_schedule_forward(session_factory):
    group = await seed_rank_group(session_factory, frequency=ScheduleFrequency.DAILY)
    store = ScheduleStore(session_factory, RankKeywordGroup)

    next_run = await store.advance(group.id, NOW)

    assert next_run == NOW + timedelta(days=1)
    async with session_factory() as session:
        stored = await session.get(RankKeywordGroup, group.id)
        assert as_utc(stored.next_scheduled_at) == NOW + timedelta(days=1)
        assert as_utc(stored.last_scheduled_run_at) == NOW

    assert await store.find_due(NOW) == []


@pytest.mark.asyncio
async def test_advance_override_only_when_later(session_factory):
    group = await seed_rank_group(session_factory, frequency=ScheduleFrequency.HOURLY)
    store = ScheduleStore(session_factory, RankKeywordGroup)

    earlier = NOW + timedelta(minutes=10)
    assert await store.advance(group.id, NOW, next_run_override=earlier) == NOW + timedelta(hours=1)

    later = NOW + timedelta(days=3)
    assert await store.advance(group.id, NOW, next_run_override=later) == later


@pytest.mark.asyncio
async def test_advance_missing_schedule_returns_none(session_factory):
    store = ScheduleStore(session_factory, RankKeywordGroup)
    assert await store.advance("missing", NOW) is None


@pytest.mark.asyncio
async def test_mark_credit_warning_sent(session_factory):
    group = await seed_rank_group(session_factory)
    store = ScheduleStore(session_factory, RankKeywordGroup)

    await store.mark_credit_warning_sent(group.id, NOW)

    async with session_factory() as session:
        stored = await session.get(RankKeywordGroup, group.id)
        assert as_utc(stored.last_credit_warning_sent_at) == NOW
