from fastapi import Header, HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import config
from app.core.database import async_session
from app.utils.notifications import HttpNotificationDispatcher, NotificationDispatcher
from app.utils.providers import build_llm_providers, build_rank_provider
from app.utils.redis_cache import BalanceCache, get_redis
from app.utils.service_checks import LLMVisibilityCheckExecutor, RankCheckExecutor
from app.utils.service_ledger import CreditLedger
from app.utils.service_runner import ScheduledRunner


# Dependency для отримання сесії
async def get_session() -> AsyncSession:
    async with async_session() as session:
        yield session


# Dependency: фабрика сесій для cron (кожен крок - окрема сесія)
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session


# Dependency: перевірка internal токену
def access_internal(x_service_token: str = Header(...)):
    if x_service_token != config.SERVICE_TOKEN:
        raise HTTPException(status_code=403, detail="Invalid service token")


cron_security = HTTPBearer(auto_error=False)

# Dependency: перевірка cron токену (до будь-якого доступу до леджера)
def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(cron_security)
):
    if not config.CRON_SECRET_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Cron secret is not configured",
        )
    if credentials is None or credentials.credentials != config.CRON_SECRET_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


# Dependency: Redis кеш балансу
def get_balance_cache() -> BalanceCache:
    return BalanceCache(get_redis())


# Dependency: кредитний леджер із Redis кеш
def get_ledger(
    session: AsyncSession = Depends(get_session),
    cache: BalanceCache = Depends(get_balance_cache)
) -> CreditLedger:
    return CreditLedger(session, cache)


def get_notifier() -> NotificationDispatcher:
    return HttpNotificationDispatcher(config.NOTIFICATIONS_URL, config.SERVICE_TOKEN)


def _runner(executor, session_factory, notifier, cache) -> ScheduledRunner:
    return ScheduledRunner(
        session_factory,
        executor,
        notifier,
        cache,
        schedule_delay_seconds=config.SCHEDULE_DELAY_SECONDS,
        warning_throttle_hours=config.CREDIT_WARNING_THROTTLE_HOURS,
        debit_max_attempts=config.DEBIT_MAX_ATTEMPTS,
    )


def get_rank_runner(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: NotificationDispatcher = Depends(get_notifier),
    cache: BalanceCache = Depends(get_balance_cache)
) -> ScheduledRunner:
    executor = RankCheckExecutor(
        session_factory,
        build_rank_provider(config),
        unit_delay_seconds=config.UNIT_DELAY_SECONDS,
    )
    return _runner(executor, session_factory, notifier, cache)


def get_llm_runner(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: NotificationDispatcher = Depends(get_notifier),
    cache: BalanceCache = Depends(get_balance_cache)
) -> ScheduledRunner:
    executor = LLMVisibilityCheckExecutor(
        session_factory,
        build_llm_providers(config),
        unit_delay_seconds=config.UNIT_DELAY_SECONDS,
    )
    return _runner(executor, session_factory, notifier, cache)
