"""Redis-backed downstream ref queue.

Content hashes emitted by the indexer are queued here for the embedding
pipeline. The queue is sharded by project id so one huge repository cannot
starve the others.

Key pattern:
    code_index:ref_queue:{shard}        zset member "{project_id}:{hash}", score = per-shard sequence
    code_index:ref_queue:{shard}:seq    per-shard counter
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from code_index.clients.redis import RedisClient

__all__ = [
    'RedisRefTracker',
]

logger = logging.getLogger(__name__)

PREFIX = 'code_index:ref_queue'


class RedisRefTracker:
    """RefTracker writing to per-shard sorted sets.

    Scores come from a per-shard counter, so consumers read refs in the
    order they were tracked. A ref already queued keeps its position.
    """

    def __init__(self, redis: RedisClient, *, shards: int = 16) -> None:
        self._redis = redis
        self._shards = shards

    def shard_for(self, project_id: int) -> int:
        return project_id % self._shards

    async def track(self, project_id: int, refs: Sequence[str]) -> None:
        if not refs:
            return
        shard = self.shard_for(project_id)
        # Reserve a contiguous score range for this batch
        last = await self._redis.incr(f'{PREFIX}:{shard}:seq', len(refs))
        first = last - len(refs) + 1
        mapping = {f'{project_id}:{ref}': float(first + i) for i, ref in enumerate(refs)}
        await self._redis.zadd(f'{PREFIX}:{shard}', mapping, nx=True)

    async def queued(self, shard: int, *, limit: int | None = None) -> Sequence[tuple[int, str]]:
        """Queued (project_id, ref) pairs in tracking order."""
        members = await self._redis.zrangebyscore(
            f'{PREFIX}:{shard}',
            '-inf',
            '+inf',
            start=0 if limit is not None else None,
            num=limit,
        )
        pairs: list[tuple[int, str]] = []
        for member in members:
            project_id, _, ref = member.partition(':')
            pairs.append((int(project_id), ref))
        return pairs

    async def size(self, shard: int) -> int:
        return await self._redis.zcard(f'{PREFIX}:{shard}')
