"""Async Redis client for records, leases, throttles and queues.

Thin wrapper around redis.asyncio with connection pooling and concurrency control.
Text mode (decode_responses=True): every value stored by this service is a
string (encoded record fields, JSON payloads, lease tokens).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence

import redis.asyncio as aioredis

__all__ = [
    'RedisClient',
]

logger = logging.getLogger(__name__)

# Delete key only if it still holds our token (lease release)
_COMPARE_AND_DELETE = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class RedisClient:
    """Async Redis client with connection pooling and concurrency control.

    All single-command operations are gated by a semaphore so a burst of
    concurrent jobs cannot saturate the pool.
    """

    def __init__(
        self,
        host: str = '127.0.0.1',
        port: int = 6379,
        *,
        db: int = 0,
        max_connections: int = 50,
        max_concurrent: int = 20,
        socket_timeout: float = 30.0,
        socket_connect_timeout: float = 2.0,
    ) -> None:
        pool = aioredis.ConnectionPool(
            host=host,
            port=port,
            db=db,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            decode_responses=True,
        )
        self._client = aioredis.Redis(connection_pool=pool)
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def ping(self) -> bool:
        """Verify Redis connectivity."""
        return await self._client.ping()

    # --- Key/value operations (leases, throttles, counters) ---

    async def get(self, name: str) -> str | None:
        async with self._semaphore:
            return await self._client.get(name)

    async def set(self, name: str, value: str, *, nx: bool = False, ex: int | None = None) -> bool:
        """Set with optional NX and TTL. Returns False when NX blocked the write."""
        async with self._semaphore:
            return bool(await self._client.set(name, value, nx=nx, ex=ex))

    async def incr(self, name: str, amount: int = 1) -> int:
        async with self._semaphore:
            return await self._client.incrby(name, amount)

    async def compare_and_delete(self, name: str, value: str) -> bool:
        """Delete key only if its value still equals `value`."""
        async with self._semaphore:
            return bool(await self._client.eval(_COMPARE_AND_DELETE, 1, name, value))

    # --- Hash operations (records, uniqueness indexes) ---

    async def hset(self, name: str, mapping: Mapping[str, str]) -> int:
        async with self._semaphore:
            return await self._client.hset(name, mapping=dict(mapping))

    async def hgetall(self, name: str) -> Mapping[str, str]:
        async with self._semaphore:
            return await self._client.hgetall(name)

    async def hget(self, name: str, field: str) -> str | None:
        async with self._semaphore:
            return await self._client.hget(name, field)

    async def hsetnx(self, name: str, field: str, value: str) -> bool:
        """Set hash field only if absent. Returns True when written."""
        async with self._semaphore:
            return bool(await self._client.hsetnx(name, field, value))

    async def hdel(self, name: str, *fields: str) -> int:
        async with self._semaphore:
            return await self._client.hdel(name, *fields)

    # --- Set operations ---

    async def sadd(self, name: str, *values: str) -> int:
        async with self._semaphore:
            return await self._client.sadd(name, *values)

    async def srem(self, name: str, *values: str) -> int:
        async with self._semaphore:
            return await self._client.srem(name, *values)

    async def smembers(self, name: str) -> set[str]:
        async with self._semaphore:
            return await self._client.smembers(name)

    # --- Sorted set operations (id-ordered indexes, job schedule, ref queue) ---

    async def zadd(self, name: str, mapping: Mapping[str, float], *, nx: bool = False) -> int:
        async with self._semaphore:
            return await self._client.zadd(name, dict(mapping), nx=nx)

    async def zrem(self, name: str, *values: str) -> int:
        async with self._semaphore:
            return await self._client.zrem(name, *values)

    async def zrangebyscore(
        self,
        name: str,
        min: float | str,
        max: float | str,
        *,
        start: int | None = None,
        num: int | None = None,
    ) -> Sequence[str]:
        """Members with score in [min, max]. Prefix a bound with '(' to exclude it."""
        async with self._semaphore:
            return await self._client.zrangebyscore(name, min, max, start=start, num=num)

    async def zcard(self, name: str) -> int:
        async with self._semaphore:
            return await self._client.zcard(name)

    # --- List operations (event bus) ---

    async def lpush(self, name: str, *values: str) -> int:
        async with self._semaphore:
            return await self._client.lpush(name, *values)

    async def brpop(self, name: str, timeout: float) -> str | None:
        """Blocking pop from the tail. Returns None on timeout.

        Not gated by the semaphore: a blocking pop would hold a slot
        for the whole wait.
        """
        result = await self._client.brpop([name], timeout=timeout)
        if result is None:
            return None
        _, value = result
        return value

    # --- Key management ---

    async def delete(self, *names: str) -> int:
        """Delete one or more keys."""
        async with self._semaphore:
            return await self._client.delete(*names)

    def pipeline(self, *, transaction: bool = False) -> aioredis.client.Pipeline:
        """Get a pipeline for batching multiple commands in one round-trip.

        Caller is responsible for executing the pipeline. The semaphore is
        NOT held; pipelines manage their own connection lifecycle.
        """
        return self._client.pipeline(transaction=transaction)

    async def close(self) -> None:
        """Close connection pool."""
        await self._client.aclose()
