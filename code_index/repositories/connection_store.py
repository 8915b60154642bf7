"""Redis-backed Connection records.

Connections carry nested options, so each one is stored as a JSON document.

Key pattern:
    code_index:connection:{id}      JSON
    code_index:connection:seq       id sequence
    code_index:connection:active    id of the single active connection
    code_index:connections          zset of ids
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from code_index.clients.redis import RedisClient
from code_index.repositories.enabled_namespace_store import EnabledNamespaceStore
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.records import AdapterName, Connection, ConnectionOptions

__all__ = [
    'ConnectionStore',
]

logger = logging.getLogger(__name__)

PREFIX = 'code_index:connection'
INDEX = 'code_index:connections'


class ConnectionStore:
    """Connection persistence. At most one connection is active."""

    def __init__(
        self,
        redis: RedisClient,
        repositories: RepositoryStore,
        enabled_namespaces: EnabledNamespaceStore,
    ) -> None:
        self._redis = redis
        self._repositories = repositories
        self._enabled_namespaces = enabled_namespaces

    async def get(self, connection_id: int) -> Connection | None:
        raw = await self._redis.get(f'{PREFIX}:{connection_id}')
        if raw is None:
            return None
        connection = Connection.model_validate_json(raw)
        active_id = await self._active_id()
        return connection.model_copy(update={'active': connection.id == active_id})

    async def active(self) -> Connection | None:
        active_id = await self._active_id()
        if active_id is None:
            return None
        return await self.get(active_id)

    async def list_all(self) -> Sequence[Connection]:
        members = await self._redis.zrangebyscore(INDEX, '-inf', '+inf')
        connections = [await self.get(int(m)) for m in members]
        return [c for c in connections if c is not None]

    async def create(
        self,
        *,
        name: str,
        adapter: AdapterName,
        options: ConnectionOptions,
        active: bool = False,
    ) -> Connection:
        connection_id = await self._redis.incr(f'{PREFIX}:seq')
        connection = Connection(
            id=connection_id,
            name=name,
            adapter=adapter,
            options=options,
            created_at=datetime.now(UTC),
        )
        pipe = self._redis.pipeline(transaction=True)
        pipe.set(f'{PREFIX}:{connection_id}', connection.model_dump_json())
        pipe.zadd(INDEX, {str(connection_id): float(connection_id)})
        await pipe.execute()
        logger.info(f'[STORE] Created {adapter} connection {connection_id} ({name})')

        if active:
            await self.activate(connection_id)
        return await self.get(connection_id) or connection

    async def activate(self, connection_id: int) -> None:
        """Make this the single active connection."""
        await self._redis.set(f'{PREFIX}:active', str(connection_id))

    async def delete(self, connection_id: int) -> bool:
        """Remove a connection, its enabled namespaces, and detach its repositories."""
        if await self._redis.get(f'{PREFIX}:{connection_id}') is None:
            return False

        await self._enabled_namespaces.delete_for_connection(connection_id)
        detached = await self._repositories.nullify_connection(connection_id)

        if await self._active_id() == connection_id:
            await self._redis.delete(f'{PREFIX}:active')
        await self._redis.delete(f'{PREFIX}:{connection_id}')
        await self._redis.zrem(INDEX, str(connection_id))
        logger.info(f'[STORE] Deleted connection {connection_id}, detached {detached} repositories')
        return True

    async def _active_id(self) -> int | None:
        raw = await self._redis.get(f'{PREFIX}:active')
        return int(raw) if raw else None
