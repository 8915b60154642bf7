"""Exclusive per-key lease over Redis.

SET NX EX with a random token; release deletes the key only if it still
holds our token, so a lease that expired and was re-acquired by someone
else is never released by us. Acquisition retries a bounded number of
times, then raises LockContentionError.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import tenacity

from code_index.clients.redis import RedisClient
from code_index.errors import LockContentionError

__all__ = [
    'ExclusiveLease',
]

logger = logging.getLogger(__name__)

PREFIX = 'code_index:lease'


class ExclusiveLease:
    def __init__(
        self,
        redis: RedisClient,
        *,
        ttl_seconds: int,
        attempts: int = 3,
        wait_seconds: float = 1.0,
    ) -> None:
        self._redis = redis
        self._ttl_seconds = ttl_seconds
        self._attempts = attempts
        self._wait_seconds = wait_seconds

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[str]:
        """Hold the lease for the duration of the block.

        Raises:
            LockContentionError: Lease still busy after all attempts.
        """
        token = await self.acquire(key)
        try:
            yield token
        finally:
            await self.release(key, token)

    async def acquire(self, key: str) -> str:
        token = uuid.uuid4().hex
        retrying = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception_type(LockContentionError),
            stop=tenacity.stop_after_attempt(self._attempts),
            wait=tenacity.wait_exponential(multiplier=self._wait_seconds, max=self._wait_seconds * 4),
            before_sleep=_log_lease_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if not await self._redis.set(f'{PREFIX}:{key}', token, nx=True, ex=self._ttl_seconds):
                    raise LockContentionError(key)
        logger.debug(f'[LEASE] Acquired {key}')
        return token

    async def release(self, key: str, token: str) -> bool:
        released = await self._redis.compare_and_delete(f'{PREFIX}:{key}', token)
        if not released:
            logger.warning(f'[LEASE] {key} expired before release')
        return released


def _log_lease_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return
    logger.info(f'[LEASE] Attempt {retry_state.attempt_number} failed: {exc}')
