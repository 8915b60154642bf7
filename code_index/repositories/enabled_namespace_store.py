"""Redis-backed EnabledNamespace records.

Key pattern:
    code_index:enabled_namespace:{id}                       hash
    code_index:enabled_namespace:seq                        id sequence
    code_index:enabled_namespaces                           zset of all ids
    code_index:enabled_namespaces:state:pending             zset of pending ids
    code_index:enabled_namespaces:by_namespace_connection   hash {namespace_id}:{connection_id} -> id
    code_index:enabled_namespaces:connection:{id}           set of ids
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime

from code_index.clients.redis import RedisClient
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.records import EnabledNamespace, EnabledNamespaceState

__all__ = [
    'EnabledNamespaceStore',
]

logger = logging.getLogger(__name__)

PREFIX = 'code_index:enabled_namespace'
INDEX = 'code_index:enabled_namespaces'


class EnabledNamespaceStore:
    """EnabledNamespace persistence. Deleting a row detaches its repositories."""

    def __init__(self, redis: RedisClient, repositories: RepositoryStore) -> None:
        self._redis = redis
        self._repositories = repositories

    async def get(self, enabled_namespace_id: int) -> EnabledNamespace | None:
        raw = await self._redis.hgetall(_key(enabled_namespace_id))
        if not raw:
            return None
        return _decode_enabled_namespace(raw)

    async def find(self, namespace_id: int, connection_id: int) -> EnabledNamespace | None:
        raw_id = await self._redis.hget(f'{INDEX}:by_namespace_connection', f'{namespace_id}:{connection_id}')
        if raw_id is None:
            return None
        return await self.get(int(raw_id))

    async def enabled_namespace_ids(self, namespace_ids: Sequence[int], connection_id: int) -> set[int]:
        """Subset of namespace ids that already have a row on the connection."""
        if not namespace_ids:
            return set()
        pipe = self._redis.pipeline()
        for namespace_id in namespace_ids:
            pipe.hget(f'{INDEX}:by_namespace_connection', f'{namespace_id}:{connection_id}')
        results = await pipe.execute()
        return {namespace_id for namespace_id, raw in zip(namespace_ids, results) if raw is not None}

    async def scan(self, *, after: int | None, limit: int) -> Sequence[EnabledNamespace]:
        """One page of rows in ascending id order."""
        members = await self._redis.zrangebyscore(INDEX, _exclusive_min(after), '+inf', start=0, num=limit)
        return await self._get_many([int(m) for m in members])

    async def scan_pending(self, *, after: int | None, limit: int) -> Sequence[EnabledNamespace]:
        members = await self._redis.zrangebyscore(
            f'{INDEX}:state:pending', _exclusive_min(after), '+inf', start=0, num=limit
        )
        return await self._get_many([int(m) for m in members])

    async def has_pending(self) -> bool:
        return await self._redis.zcard(f'{INDEX}:state:pending') > 0

    async def create(self, namespace_id: int, connection_id: int) -> EnabledNamespace | None:
        """Insert a pending row. Returns None if the namespace is already enabled on the connection."""
        enabled_namespace_id = await self._redis.incr(f'{PREFIX}:seq')
        unique_field = f'{namespace_id}:{connection_id}'
        if not await self._redis.hsetnx(f'{INDEX}:by_namespace_connection', unique_field, str(enabled_namespace_id)):
            return None

        now = datetime.now(UTC)
        enabled_namespace = EnabledNamespace(
            id=enabled_namespace_id,
            namespace_id=namespace_id,
            connection_id=connection_id,
            created_at=now,
            updated_at=now,
        )
        member = str(enabled_namespace_id)
        pipe = self._redis.pipeline(transaction=True)
        pipe.hset(_key(enabled_namespace_id), mapping=_encode_enabled_namespace(enabled_namespace))
        pipe.zadd(INDEX, {member: float(enabled_namespace_id)})
        pipe.zadd(f'{INDEX}:state:pending', {member: float(enabled_namespace_id)})
        pipe.sadd(f'{INDEX}:connection:{connection_id}', member)
        await pipe.execute()
        return enabled_namespace

    async def save(self, enabled_namespace: EnabledNamespace) -> None:
        member = str(enabled_namespace.id)
        pipe = self._redis.pipeline(transaction=True)
        pipe.hset(_key(enabled_namespace.id), mapping=_encode_enabled_namespace(enabled_namespace))
        if enabled_namespace.state == EnabledNamespaceState.PENDING:
            pipe.zadd(f'{INDEX}:state:pending', {member: float(enabled_namespace.id)})
        else:
            pipe.zrem(f'{INDEX}:state:pending', member)
        await pipe.execute()

    async def delete(self, enabled_namespace_id: int) -> bool:
        """Remove a row. Returns False if it was already gone."""
        enabled_namespace = await self.get(enabled_namespace_id)
        if enabled_namespace is None:
            return False

        await self._repositories.nullify_enabled_namespace(enabled_namespace_id)

        member = str(enabled_namespace_id)
        pipe = self._redis.pipeline(transaction=True)
        pipe.delete(_key(enabled_namespace_id))
        pipe.zrem(INDEX, member)
        pipe.zrem(f'{INDEX}:state:pending', member)
        pipe.srem(f'{INDEX}:connection:{enabled_namespace.connection_id}', member)
        pipe.hdel(
            f'{INDEX}:by_namespace_connection',
            f'{enabled_namespace.namespace_id}:{enabled_namespace.connection_id}',
        )
        await pipe.execute()
        return True

    async def delete_for_connection(self, connection_id: int) -> int:
        members = await self._redis.smembers(f'{INDEX}:connection:{connection_id}')
        deleted = 0
        for member in sorted(int(m) for m in members):
            deleted += await self.delete(member)
        return deleted

    async def _get_many(self, ids: Sequence[int]) -> Sequence[EnabledNamespace]:
        if not ids:
            return []
        pipe = self._redis.pipeline()
        for enabled_namespace_id in ids:
            pipe.hgetall(_key(enabled_namespace_id))
        results = await pipe.execute()
        return [_decode_enabled_namespace(raw) for raw in results if raw]


def _key(enabled_namespace_id: int) -> str:
    return f'{PREFIX}:{enabled_namespace_id}'


def _exclusive_min(after: int | None) -> str:
    return '-inf' if after is None else f'({after}'


def _encode_enabled_namespace(enabled_namespace: EnabledNamespace) -> Mapping[str, str]:
    return {
        'id': str(enabled_namespace.id),
        'namespace_id': str(enabled_namespace.namespace_id),
        'connection_id': str(enabled_namespace.connection_id),
        'state': enabled_namespace.state.value,
        'created_at': enabled_namespace.created_at.isoformat(),
        'updated_at': enabled_namespace.updated_at.isoformat(),
    }


def _decode_enabled_namespace(raw: Mapping[str, str]) -> EnabledNamespace:
    return EnabledNamespace(
        id=int(raw['id']),
        namespace_id=int(raw['namespace_id']),
        connection_id=int(raw['connection_id']),
        state=EnabledNamespaceState(raw['state']),
        created_at=datetime.fromisoformat(raw['created_at']),
        updated_at=datetime.fromisoformat(raw['updated_at']),
    )
