"""
Budget status caching.

Memoizes BudgetStatus results per SLO. Keys are budget:{sli}:{slo} so all
SLOs of an indicator can be invalidated with one prefix delete when new
events land.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Protocol

import redis.asyncio as aioredis
import structlog

from slogate.slos.models import BudgetStatus

logger = structlog.get_logger()

KEY_PREFIX = "budget:"


def budget_key(sli_slug: str, slo_slug: str) -> str:
    return f"{KEY_PREFIX}{sli_slug}:{slo_slug}"


def indicator_prefix(sli_slug: str) -> str:
    return f"{KEY_PREFIX}{sli_slug}:"


class BudgetCache(Protocol):
    async def get(self, key: str) -> BudgetStatus | None: ...

    async def set(self, key: str, status: BudgetStatus, ttl: int) -> None: ...

    async def delete_prefix(self, prefix: str) -> None: ...

    async def clear(self) -> None: ...


class MemoryBudgetCache:
    """Process-local cache. Expiry is judged by the caller against its clock."""

    def __init__(self) -> None:
        self._entries: dict[str, BudgetStatus] = {}

    async def get(self, key: str) -> BudgetStatus | None:
        return self._entries.get(key)

    async def set(self, key: str, status: BudgetStatus, ttl: int) -> None:
        self._entries[key] = status

    async def delete_prefix(self, prefix: str) -> None:
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]

    async def clear(self) -> None:
        self._entries.clear()


class RedisBudgetCache:
    """Redis-backed budget cache shared between processes."""

    def __init__(
        self,
        redis_url: str,
        max_connections: int = 10,
        redis_client: aioredis.Redis | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._pool: aioredis.ConnectionPool | None = None
        self._client: aioredis.Redis | None = redis_client

        if redis_client is None:
            self._pool = aioredis.ConnectionPool.from_url(
                redis_url,
                max_connections=max_connections,
                decode_responses=True,
            )

    async def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.Redis(connection_pool=self._pool)
        return self._client

    async def get(self, key: str) -> BudgetStatus | None:
        client = await self._get_client()
        value = await client.get(key)
        if not value:
            return None
        try:
            return BudgetStatus.from_dict(json.loads(value))
        except (json.JSONDecodeError, KeyError, ValueError):
            logger.warning("budget_cache_entry_invalid", key=key)
            await client.delete(key)
            return None

    async def set(self, key: str, status: BudgetStatus, ttl: int) -> None:
        client = await self._get_client()
        await client.setex(key, ttl, json.dumps(status.to_dict()))

    async def delete_prefix(self, prefix: str) -> None:
        client = await self._get_client()
        keys = [key async for key in client.scan_iter(match=f"{prefix}*")]
        if keys:
            await client.delete(*keys)

    async def clear(self) -> None:
        await self.delete_prefix(KEY_PREFIX)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
        if self._pool is not None:
            await self._pool.disconnect()


def is_fresh(status: BudgetStatus, now: datetime, ttl: int) -> bool:
    """Whether a cached status evaluated at window_end is still usable at now."""
    if ttl <= 0:
        return False
    age = (now - status.window_end).total_seconds()
    return 0 <= age < ttl


def build_cache(backend: str, redis_url: str, max_connections: int = 10) -> BudgetCache:
    """Create the configured cache backend."""
    if backend == "redis":
        return RedisBudgetCache(redis_url, max_connections=max_connections)
    return MemoryBudgetCache()
