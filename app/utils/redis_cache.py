import json
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import config

logger = logging.getLogger("[LEDGER]")

_redis_client: Optional[redis.Redis] = None


def get_redis() -> redis.Redis:
    # створюємо клієнт один раз на процес
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            config.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


def balance_key(account_id: str) -> str:
    return f"account:{account_id}:credit_balance"


class BalanceCache:
    """
    Кеш балансу: лише для get_balance (advisory).
    Помилки Redis не блокують леджер - читаємо з БД.
    """

    def __init__(self, client: redis.Redis, ttl_seconds: int = None):
        self.client = client
        self.ttl_seconds = ttl_seconds or config.CACHE_TTL_SECONDS

    async def get(self, account_id: str) -> Optional[dict]:
        try:
            cached = await self.client.get(balance_key(account_id))
        except RedisError as exc:
            logger.warning(f"Balance cache read failed for {account_id}: {exc}")
            return None
        if cached is None:
            return None
        return json.loads(cached)

    async def set(self, account_id: str, included_credits: int, purchased_credits: int):
        payload = json.dumps({
            "included_credits": included_credits,
            "purchased_credits": purchased_credits,
        })
        try:
            await self.client.set(balance_key(account_id), payload, ex=self.ttl_seconds)
        except RedisError as exc:
            logger.warning(f"Balance cache write failed for {account_id}: {exc}")

    async def delete(self, account_id: str):
        try:
            await self.client.delete(balance_key(account_id))
        except RedisError as exc:
            logger.warning(f"Balance cache invalidation failed for {account_id}: {exc}")
