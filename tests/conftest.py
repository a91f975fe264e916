import os
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

# оточення для AppConfig - до імпорту app
_TMP_DIR = tempfile.mkdtemp(prefix="credit-ledger-tests-")
os.environ.setdefault("POSTGRES_USER", "test")
os.environ.setdefault("POSTGRES_PASSWORD", "test")
os.environ.setdefault("POSTGRES_DB", "test")
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_PORT", "5432")
os.environ["SQLALCHEMY_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/app.db"
os.environ.setdefault("SERVICE_TOKEN", "test-service-token")
os.environ.setdefault("CRON_SECRET_TOKEN", "test-cron-secret")
os.environ.setdefault("REDIS_HOST", "localhost")
os.environ.setdefault("REDIS_PORT", "6379")
os.environ.setdefault("REDIS_DB", "0")
os.environ.setdefault("CACHE_TTL_SECONDS", "60")
os.environ["LOG_DIR"] = os.path.join(_TMP_DIR, "logs")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
	create_async_engine, AsyncSession, async_sessionmaker
)

from app.main import app
from app.core.database import Base
from app.core.dependencies import (
	get_session, get_session_factory, get_balance_cache, get_notifier,
	get_rank_runner, get_llm_runner
)
from app.models import (
	Business, CreditBalance, Keyword, LLMVisibilitySchedule,
	RankGroupKeyword, RankKeywordGroup, ScheduleFrequency
)
from app.utils.exceptions import ExternalServiceError
from app.utils.providers import LLMAnswer, RankResult
from app.utils.redis_cache import BalanceCache
from app.utils.service_checks import LLMVisibilityCheckExecutor, RankCheckExecutor
from app.utils.service_runner import ScheduledRunner


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ---------- fakes ----------

class FakeRedis:
	def __init__(self):
		self.data: Dict[str, str] = {}

	async def get(self, key):
		return self.data.get(key)

	async def set(self, key, value, ex=None):
		self.data[key] = value

	async def delete(self, key):
		self.data.pop(key, None)


class BrokenRedis:
	async def get(self, key):
		raise RedisConnectionError("redis is down")

	async def set(self, key, value, ex=None):
		raise RedisConnectionError("redis is down")

	async def delete(self, key):
		raise RedisConnectionError("redis is down")


class FakeRankProvider:
	"""Позиція 3 для всіх запитів, крім тих, що в fail_queries."""

	def __init__(self, fail_queries=(), fail_all=False):
		self.fail_queries = set(fail_queries)
		self.fail_all = fail_all
		self.calls: List[str] = []

	async def check_rank(self, keyword, location_code, target_domain, device, language_code=None):
		self.calls.append(keyword)
		if self.fail_all or keyword in self.fail_queries:
			raise ExternalServiceError(503, "SERP unavailable")
		return RankResult(
			position=3,
			found_url=f"https://{target_domain}/",
			cost=Decimal("0.002"),
		)


class FakeLLMProvider:
	def __init__(self, cites=True, fail=False, fail_questions=()):
		self.cites = cites
		self.fail = fail
		self.fail_questions = set(fail_questions)
		self.calls: List[str] = []

	async def ask(self, question, target_domain):
		self.calls.append(question)
		if self.fail or question in self.fail_questions:
			raise ExternalServiceError(500, "LLM unavailable")
		return LLMAnswer(
			cites_domain=self.cites,
			raw=f"See {target_domain}",
			cost=Decimal("0.003"),
		)


class FakeNotifier:
	def __init__(self):
		self.sent: List[tuple] = []

	async def notify(self, account_id, kind, payload):
		self.sent.append((account_id, kind, payload))


class Clock:
	"""Керований час для runner."""

	def __init__(self, now: datetime = NOW):
		self.now = now

	def __call__(self) -> datetime:
		return self.now

	def shift(self, **kwargs):
		self.now = self.now + timedelta(**kwargs)


# ---------- seeding ----------

async def fund_account(session_factory, account_id: str, included: int = 0, purchased: int = 0):
	async with session_factory() as session:
		session.add(CreditBalance(
			account_id=account_id,
			included_credits=included,
			purchased_credits=purchased,
		))
		await session.commit()


async def read_balance(session_factory, account_id: str) -> Optional[CreditBalance]:
	async with session_factory() as session:
		result = await session.execute(
			select(CreditBalance).where(CreditBalance.account_id == account_id)
		)
		return result.scalar_one_or_none()


async def add_business(session_factory, account_id: str, website: Optional[str] = "https://www.example.com"):
	async with session_factory() as session:
		session.add(Business(account_id=account_id, name="Example", website=website))
		await session.commit()


async def seed_rank_group(
	session_factory,
	account_id: str = "acc_1",
	keywords: int = 3,
	frequency: Optional[ScheduleFrequency] = ScheduleFrequency.DAILY,
	next_scheduled_at: Optional[datetime] = NOW - timedelta(minutes=5),
	**group_kwargs
) -> RankKeywordGroup:
	async with session_factory() as session:
		group = RankKeywordGroup(
			account_id=account_id,
			name="Main keywords",
			schedule_frequency=frequency,
			next_scheduled_at=next_scheduled_at,
			**group_kwargs
		)
		session.add(group)
		await session.flush()
		for i in range(keywords):
			session.add(RankGroupKeyword(
				group_id=group.id,
				account_id=account_id,
				phrase=f"keyword {i}",
			))
		await session.commit()
		return group


async def seed_llm_schedule(
	session_factory,
	account_id: str = "acc_1",
	questions: Optional[list] = None,
	providers: Optional[list] = None,
	frequency: Optional[ScheduleFrequency] = ScheduleFrequency.WEEKLY,
	next_scheduled_at: Optional[datetime] = NOW - timedelta(minutes=5),
) -> LLMVisibilitySchedule:
	async with session_factory() as session:
		keyword = Keyword(
			account_id=account_id,
			phrase="best plumber",
			related_questions=questions if questions is not None else [
				{"question": "Who is the best plumber?"},
				{"question": "Which plumber is cheapest?"},
			],
		)
		session.add(keyword)
		await session.flush()
		schedule = LLMVisibilitySchedule(
			account_id=account_id,
			keyword_id=keyword.id,
			providers=providers if providers is not None else ["chatgpt", "claude"],
			schedule_frequency=frequency,
			next_scheduled_at=next_scheduled_at,
		)
		session.add(schedule)
		await session.commit()
		return schedule


def make_rank_runner(session_factory, provider, notifier, cache=None, clock=None, **kwargs) -> ScheduledRunner:
	executor = RankCheckExecutor(session_factory, provider)
	return ScheduledRunner(
		session_factory, executor, notifier, cache, clock=clock or Clock(), **kwargs
	)


def make_llm_runner(session_factory, providers, notifier, cache=None, clock=None, **kwargs) -> ScheduledRunner:
	executor = LLMVisibilityCheckExecutor(session_factory, providers)
	return ScheduledRunner(
		session_factory, executor, notifier, cache, clock=clock or Clock(), **kwargs
	)


# ---------- fixtures ----------

# окрема SQLite БД для КОЖНОГО тесту
@pytest_asyncio.fixture
async def session_factory(tmp_path):
	engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)

	SessionLocal = async_sessionmaker(
		engine,
		class_=AsyncSession,
		expire_on_commit=False,
	)

	yield SessionLocal

	await engine.dispose()  #  Закриваємо engine


@pytest_asyncio.fixture
async def fake_redis():
	return FakeRedis()


@pytest_asyncio.fixture
async def balance_cache(fake_redis):
	return BalanceCache(fake_redis, ttl_seconds=60)


@pytest_asyncio.fixture
async def notifier():
	return FakeNotifier()


@pytest_asyncio.fixture
async def rank_provider():
	return FakeRankProvider()


@pytest_asyncio.fixture
async def llm_providers():
	return {"chatgpt": FakeLLMProvider(), "claude": FakeLLMProvider()}


# Override залежностей на час тесту
@pytest_asyncio.fixture
async def db_session(session_factory, balance_cache, notifier, rank_provider, llm_providers):
	async def get_test_db():
		async with session_factory() as session:
			yield session

	app.dependency_overrides[get_session] = get_test_db
	app.dependency_overrides[get_session_factory] = lambda: session_factory
	app.dependency_overrides[get_balance_cache] = lambda: balance_cache
	app.dependency_overrides[get_notifier] = lambda: notifier
	app.dependency_overrides[get_rank_runner] = lambda: make_rank_runner(
		session_factory, rank_provider, notifier, balance_cache
	)
	app.dependency_overrides[get_llm_runner] = lambda: make_llm_runner(
		session_factory, llm_providers, notifier, balance_cache
	)

	yield session_factory  # Тест виконується тут

	# Cleanup після тесту
	app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(db_session):  # Залежить від db_session
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as client:
		yield client
