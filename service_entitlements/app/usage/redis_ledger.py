"""
Redis-backed usage ledger.
"""

from typing import Dict, Optional

import redis.asyncio as redis

from shared.errors import ServiceError
from shared.logging import get_logger

from ..catalog.models import UsagePeriod
from ..rules.models import UsageSnapshot
from .ledger import Clock, utc_now, window_for

# Counter lifetimes; total counters never expire
WINDOW_TTL_SECONDS: Dict[UsagePeriod, Optional[int]] = {
    UsagePeriod.DAILY: 2 * 24 * 3600,
    UsagePeriod.MONTHLY: 32 * 24 * 3600,
    UsagePeriod.TOTAL: None,
}


class RedisUsageLedger:
    """Usage counters shared across service replicas."""

    USAGE_PREFIX = "usage:"

    def __init__(self, redis_url: str, clock: Clock = utc_now):
        self.redis_url = redis_url
        self.clock = clock
        self.logger = get_logger("entitlements.usage.redis")
        self._redis: Optional[redis.Redis] = None

    async def start(self):
        """Connect and verify the Redis server is reachable."""
        try:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
            await self._redis.ping()
            self.logger.info("Redis usage ledger started")
        except Exception as e:
            self.logger.error("Failed to start Redis usage ledger", error=str(e))
            raise ServiceError("Redis usage ledger unavailable", {"error": str(e)})

    async def stop(self):
        if self._redis:
            await self._redis.close()
            self._redis = None
            self.logger.info("Redis usage ledger stopped")

    async def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    def _make_key(self, user_id: str, feature_key: str, period: UsagePeriod, window: str) -> str:
        return f"{self.USAGE_PREFIX}{user_id}:{feature_key}:{period.value}:{window}"

    def _keys(self, user_id: str, feature_key: str) -> Dict[UsagePeriod, str]:
        now = self.clock()
        return {
            period: self._make_key(user_id, feature_key, period, window_for(period, now))
            for period in UsagePeriod
        }

    async def get_snapshot(self, user_id: str, feature_key: str) -> UsageSnapshot:
        keys = self._keys(user_id, feature_key)
        redis_client = await self._get_redis()
        values = await redis_client.mget(list(keys.values()))
        return UsageSnapshot(current_usage={
            period: int(value) if value is not None else 0
            for period, value in zip(keys, values)
        })

    async def increment(self, user_id: str, feature_key: str) -> UsageSnapshot:
        keys = self._keys(user_id, feature_key)
        redis_client = await self._get_redis()

        async with redis_client.pipeline(transaction=True) as pipeline:
            for period, key in keys.items():
                pipeline.incr(key)
                ttl = WINDOW_TTL_SECONDS[period]
                if ttl is not None:
                    pipeline.expire(key, ttl)
            results = await pipeline.execute()

        counts = iter(results)
        current_usage = {}
        for period in keys:
            current_usage[period] = int(next(counts))
            if WINDOW_TTL_SECONDS[period] is not None:
                next(counts)

        self.logger.debug(
            "Usage recorded",
            user_id=user_id,
            feature=feature_key,
            usage={p.value: n for p, n in current_usage.items()}
        )
        return UsageSnapshot(current_usage=current_usage)

    async def decrement(self, user_id: str, feature_key: str) -> UsageSnapshot:
        """Give back one use recorded by ``increment``."""
        keys = self._keys(user_id, feature_key)
        redis_client = await self._get_redis()

        async with redis_client.pipeline(transaction=True) as pipeline:
            for key in keys.values():
                pipeline.decr(key)
            results = await pipeline.execute()

        self.logger.debug("Usage released", user_id=user_id, feature=feature_key)
        return UsageSnapshot(current_usage={
            period: max(int(count), 0) for period, count in zip(keys, results)
        })

    async def reset(self, user_id: str, feature_key: str) -> None:
        # Only current windows are ever read; older window keys age out via TTL
        keys = list(self._keys(user_id, feature_key).values())
        redis_client = await self._get_redis()
        deleted = await redis_client.delete(*keys)
        self.logger.info("Usage reset", user_id=user_id, feature=feature_key, count=deleted)

    async def health_check(self) -> bool:
        try:
            redis_client = await self._get_redis()
            await redis_client.ping()
            return True
        except Exception as e:
            self.logger.warning("Redis health check failed", error=str(e))
            return False
