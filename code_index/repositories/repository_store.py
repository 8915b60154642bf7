"""Redis-backed Repository records.

Each repository is a Redis hash; secondary indexes are sorted sets scored by
repository id so every scan is ascending-id and cursor-resumable.

Key pattern:
    code_index:repository:{id}                          hash (record fields)
    code_index:repository:seq                           id sequence
    code_index:repositories:state:{state}               zset of ids
    code_index:repositories:partition:{n}               zset of ids, n = project_id // partition_size
    code_index:repositories:partitions                  set of partition numbers
    code_index:repositories:by_project_connection       hash {project_id}:{connection_id} -> id
    code_index:repositories:enabled_namespace:{id}      set of ids
    code_index:repositories:connection:{id}             set of ids

Writes validate first and are applied in one MULTI/EXEC, so a refused record
never leaves a partial update behind.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime

import pydantic

from code_index.clients.redis import RedisClient
from code_index.errors import RecordInvalidError
from code_index.schemas.records import DeleteReason, Repository, RepositoryState

__all__ = [
    'RepositoryStore',
]

logger = logging.getLogger(__name__)

PREFIX = 'code_index:repository'
INDEX_PREFIX = 'code_index:repositories'


class RepositoryStore:
    """Repository persistence with id-ordered state and partition indexes."""

    def __init__(self, redis: RedisClient, *, partition_size: int = 1_000_000) -> None:
        self._redis = redis
        self._partition_size = partition_size

    # --- Reads ---

    async def get(self, repository_id: int) -> Repository | None:
        raw = await self._redis.hgetall(_key(repository_id))
        if not raw:
            return None
        return _decode_repository(raw)

    async def get_many(self, repository_ids: Sequence[int]) -> Sequence[Repository]:
        """Load records in one round-trip, preserving order and skipping missing ids."""
        if not repository_ids:
            return []
        pipe = self._redis.pipeline()
        for repository_id in repository_ids:
            pipe.hgetall(_key(repository_id))
        results = await pipe.execute()
        return [_decode_repository(raw) for raw in results if raw]

    async def find_by_project_and_connection(self, project_id: int, connection_id: int) -> Repository | None:
        raw_id = await self._redis.hget(f'{INDEX_PREFIX}:by_project_connection', f'{project_id}:{connection_id}')
        if raw_id is None:
            return None
        return await self.get(int(raw_id))

    async def ids_in_state(
        self,
        state: RepositoryState,
        *,
        after: int | None = None,
        limit: int | None = None,
    ) -> Sequence[int]:
        """Ids in the given state, ascending, strictly after the cursor."""
        members = await self._redis.zrangebyscore(
            f'{INDEX_PREFIX}:state:{state.value}',
            _exclusive_min(after),
            '+inf',
            start=0 if limit is not None else None,
            num=limit,
        )
        return [int(m) for m in members]

    async def count_in_state(self, state: RepositoryState) -> int:
        return await self._redis.zcard(f'{INDEX_PREFIX}:state:{state.value}')

    async def partitions(self) -> Sequence[int]:
        """Table partitions holding at least one repository, ascending."""
        return sorted(int(p) for p in await self._redis.smembers(f'{INDEX_PREFIX}:partitions'))

    async def scan_partition(self, partition: int, *, after: int | None, limit: int) -> Sequence[Repository]:
        """One page of a partition's repositories in ascending id order."""
        return await self.get_many(await self._partition_ids(partition, after, limit))

    async def scan_partitions(self, *, after: int | None, limit: int) -> Sequence[Repository]:
        """One page across all partitions in ascending id order.

        Ids are global while partitions split by project id, so pages are
        merged: the lowest `limit` ids after the cursor are always among the
        first `limit` of each partition.
        """
        ids: list[int] = []
        for partition in await self.partitions():
            ids.extend(await self._partition_ids(partition, after, limit))
        return await self.get_many(sorted(ids)[:limit])

    def partition_for(self, project_id: int) -> int:
        return project_id // self._partition_size

    async def _partition_ids(self, partition: int, after: int | None, limit: int) -> Sequence[int]:
        members = await self._redis.zrangebyscore(
            f'{INDEX_PREFIX}:partition:{partition}',
            _exclusive_min(after),
            '+inf',
            start=0,
            num=limit,
        )
        return [int(m) for m in members]

    # --- Writes ---

    async def create(
        self,
        *,
        project_id: int,
        connection_id: int,
        enabled_namespace_id: int | None = None,
    ) -> Repository:
        """Insert a pending repository.

        Raises:
            RecordInvalidError: A repository for this project already exists on the connection.
        """
        repository_id = await self._redis.incr(f'{PREFIX}:seq')
        unique_field = f'{project_id}:{connection_id}'
        if not await self._redis.hsetnx(f'{INDEX_PREFIX}:by_project_connection', unique_field, str(repository_id)):
            raise RecordInvalidError(f'Repository for project {project_id} already exists on connection {connection_id}')

        now = datetime.now(UTC)
        repository = Repository(
            id=repository_id,
            project_id=project_id,
            connection_id=connection_id,
            enabled_namespace_id=enabled_namespace_id,
            created_at=now,
            updated_at=now,
        )
        await self._write(repository, previous=None)
        logger.debug(f'[STORE] Created repository {repository_id} for project {project_id}')
        return repository

    async def save(self, repository: Repository) -> Repository:
        """Validate and persist.

        Raises:
            RecordInvalidError: Record failed validation; stored record untouched.
        """
        validated = _validate(repository)
        previous = await self.get(repository.id)
        await self._write(validated, previous=previous)
        return validated

    async def mark_as_pending_deletion_with_reason(
        self,
        repository_ids: Sequence[int],
        reason: DeleteReason,
    ) -> int:
        """Bulk-mark repositories pending_deletion, keeping their other metadata.

        Rows already in a delete state are left alone. Returns the number marked.
        """
        marked = 0
        for repository in await self.get_many(repository_ids):
            if repository.in_delete_state:
                continue
            await self.save(repository.mark_pending_deletion(reason))
            marked += 1
        return marked

    async def update_last_queried_timestamp(self, repository_id: int, now: datetime | None = None) -> None:
        repository = await self.get(repository_id)
        if repository is None:
            return
        await self.save(repository.touch_queried(now or datetime.now(UTC)))

    async def nullify_enabled_namespace(self, enabled_namespace_id: int) -> int:
        """Detach repositories from a removed enabled namespace."""
        members = await self._redis.smembers(f'{INDEX_PREFIX}:enabled_namespace:{enabled_namespace_id}')
        repositories = await self.get_many(sorted(int(m) for m in members))
        for repository in repositories:
            await self.save(repository.model_copy(update={'enabled_namespace_id': None}))
        return len(repositories)

    async def nullify_connection(self, connection_id: int) -> int:
        """Detach repositories from a removed connection; the records are kept."""
        members = await self._redis.smembers(f'{INDEX_PREFIX}:connection:{connection_id}')
        repositories = await self.get_many(sorted(int(m) for m in members))
        for repository in repositories:
            await self.save(repository.model_copy(update={'connection_id': None, 'enabled_namespace_id': None}))
            await self._redis.hdel(f'{INDEX_PREFIX}:by_project_connection', f'{repository.project_id}:{connection_id}')
        return len(repositories)

    # --- Private ---

    async def _write(self, repository: Repository, *, previous: Repository | None) -> None:
        pipe = self._redis.pipeline(transaction=True)
        pipe.hset(_key(repository.id), mapping=_encode_repository(repository))

        member = str(repository.id)
        score = float(repository.id)
        if previous is None or previous.state != repository.state:
            if previous is not None:
                pipe.zrem(f'{INDEX_PREFIX}:state:{previous.state.value}', member)
            pipe.zadd(f'{INDEX_PREFIX}:state:{repository.state.value}', {member: score})

        if previous is None:
            partition = self.partition_for(repository.project_id)
            pipe.zadd(f'{INDEX_PREFIX}:partition:{partition}', {member: score})
            pipe.sadd(f'{INDEX_PREFIX}:partitions', str(partition))

        old_namespace = previous.enabled_namespace_id if previous else None
        if old_namespace != repository.enabled_namespace_id:
            if old_namespace is not None:
                pipe.srem(f'{INDEX_PREFIX}:enabled_namespace:{old_namespace}', member)
            if repository.enabled_namespace_id is not None:
                pipe.sadd(f'{INDEX_PREFIX}:enabled_namespace:{repository.enabled_namespace_id}', member)

        old_connection = previous.connection_id if previous else None
        if old_connection != repository.connection_id:
            if old_connection is not None:
                pipe.srem(f'{INDEX_PREFIX}:connection:{old_connection}', member)
            if repository.connection_id is not None:
                pipe.sadd(f'{INDEX_PREFIX}:connection:{repository.connection_id}', member)

        await pipe.execute()


def _key(repository_id: int) -> str:
    return f'{PREFIX}:{repository_id}'


def _exclusive_min(after: int | None) -> str:
    return '-inf' if after is None else f'({after}'


def _validate(repository: Repository) -> Repository:
    try:
        return Repository.model_validate(repository.model_dump())
    except pydantic.ValidationError as e:
        raise RecordInvalidError(f'Repository {repository.id} is invalid: {e}') from e


# --- Encode/decode helpers ---


def _encode_repository(repository: Repository) -> Mapping[str, str]:
    """Encode Repository to Redis hash fields (all string values, '' for null)."""
    return {
        'id': str(repository.id),
        'project_id': str(repository.project_id),
        'connection_id': _opt(repository.connection_id),
        'enabled_namespace_id': _opt(repository.enabled_namespace_id),
        'state': repository.state.value,
        'last_commit': repository.last_commit or '',
        'initial_indexing_last_queued_item': repository.initial_indexing_last_queued_item or '',
        'incremental_indexing_last_queued_item': repository.incremental_indexing_last_queued_item or '',
        'last_error': repository.last_error or '',
        'delete_reason': repository.delete_reason.value if repository.delete_reason else '',
        'last_queried_at': repository.last_queried_at.isoformat() if repository.last_queried_at else '',
        'created_at': repository.created_at.isoformat(),
        'updated_at': repository.updated_at.isoformat(),
    }


def _decode_repository(raw: Mapping[str, str]) -> Repository:
    """Decode Redis hash fields to Repository."""
    return Repository(
        id=int(raw['id']),
        project_id=int(raw['project_id']),
        connection_id=_opt_int(raw.get('connection_id', '')),
        enabled_namespace_id=_opt_int(raw.get('enabled_namespace_id', '')),
        state=RepositoryState(raw['state']),
        last_commit=raw.get('last_commit') or None,
        initial_indexing_last_queued_item=raw.get('initial_indexing_last_queued_item') or None,
        incremental_indexing_last_queued_item=raw.get('incremental_indexing_last_queued_item') or None,
        last_error=raw.get('last_error') or None,
        delete_reason=DeleteReason(raw['delete_reason']) if raw.get('delete_reason') else None,
        last_queried_at=datetime.fromisoformat(raw['last_queried_at']) if raw.get('last_queried_at') else None,
        created_at=datetime.fromisoformat(raw['created_at']),
        updated_at=datetime.fromisoformat(raw['updated_at']),
    )


def _opt(value: int | None) -> str:
    return '' if value is None else str(value)


def _opt_int(value: str) -> int | None:
    return int(value) if value else None
