"""Redis-backed delayed job queue.

Jobs live in one sorted set scored by their run-at unix time. Workers claim
due jobs with ZREM: only the caller whose ZREM removed the member runs it.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Sequence

from code_index.clients.redis import RedisClient
from code_index.schemas.events import Job

__all__ = [
    'RedisJobQueue',
]

logger = logging.getLogger(__name__)

JOBS_KEY = 'code_index:jobs'


class RedisJobQueue:
    """JobScheduler plus the claiming side used by the runtime."""

    def __init__(self, redis: RedisClient) -> None:
        self._redis = redis

    async def perform_async(self, job: str, *args: int) -> str:
        return await self.perform_in(0, job, *args)

    async def perform_in(self, delay_seconds: float, job: str, *args: int) -> str:
        """Schedule a job to run delay_seconds from now. Returns its jid."""
        entry = Job(job=job, args=list(args), jid=uuid.uuid4().hex)
        await self._redis.zadd(JOBS_KEY, {entry.model_dump_json(): time.time() + delay_seconds})
        logger.debug(f'[JOBS] Scheduled {job}{tuple(args)} in {delay_seconds}s (jid={entry.jid})')
        return entry.jid

    async def pop_due(self, *, limit: int, now: float | None = None) -> Sequence[Job]:
        """Claim up to limit jobs whose run-at time has passed."""
        members = await self._redis.zrangebyscore(
            JOBS_KEY,
            '-inf',
            now if now is not None else time.time(),
            start=0,
            num=limit,
        )
        claimed: list[Job] = []
        for member in members:
            if await self._redis.zrem(JOBS_KEY, member):
                claimed.append(Job.model_validate_json(member))
        return claimed

    async def size(self) -> int:
        return await self._redis.zcard(JOBS_KEY)
