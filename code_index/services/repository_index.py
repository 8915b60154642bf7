"""RepositoryIndexService: fans repository ids out to jobs.

Pure dispatcher. No locking and no state changes; the workers own both.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from code_index.clients.protocols import JobScheduler
from code_index.repositories.connection_store import ConnectionStore
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.records import RepositoryState

__all__ = [
    'REPOSITORY_DELETE_JOB',
    'REPOSITORY_INDEX_JOB',
    'RepositoryIndexService',
]

logger = logging.getLogger(__name__)

REPOSITORY_INDEX_JOB = 'repository_index'
REPOSITORY_DELETE_JOB = 'repository_delete'

# Ids loaded per round-trip while filtering by connection
SELECT_BATCH_SIZE = 500


class RepositoryIndexService:
    def __init__(
        self,
        repositories: RepositoryStore,
        connections: ConnectionStore,
        jobs: JobScheduler,
    ) -> None:
        self._repositories = repositories
        self._connections = connections
        self._jobs = jobs

    async def enqueue_pending_jobs(self, *, limit: int | None = None) -> int:
        """One index job per pending repository on the active connection."""
        ids = await self._ids_on_active_connection(RepositoryState.PENDING, limit)
        return await self._schedule(REPOSITORY_INDEX_JOB, ids)

    async def enqueue_ready_jobs(self, *, limit: int | None = None) -> int:
        """One incremental index job per ready repository on the active connection."""
        ids = await self._ids_on_active_connection(RepositoryState.READY, limit)
        return await self._schedule(REPOSITORY_INDEX_JOB, ids)

    async def enqueue_pending_deletion_jobs(self, *, limit: int | None = None) -> int:
        """One delete job per pending_deletion repository on the active connection."""
        ids = await self._ids_on_active_connection(RepositoryState.PENDING_DELETION, limit)
        return await self._schedule(REPOSITORY_DELETE_JOB, ids)

    async def _ids_on_active_connection(self, state: RepositoryState, limit: int | None) -> Sequence[int]:
        connection = await self._connections.active()
        if connection is None:
            logger.info(f'[DISPATCH] No active connection, skipping {state.value} repositories')
            return []

        selected: list[int] = []
        cursor: int | None = None
        while limit is None or len(selected) < limit:
            ids = await self._repositories.ids_in_state(state, after=cursor, limit=SELECT_BATCH_SIZE)
            if not ids:
                break
            for repository in await self._repositories.get_many(ids):
                if repository.connection_id == connection.id and repository.state == state:
                    selected.append(repository.id)
            cursor = ids[-1]
            if len(ids) < SELECT_BATCH_SIZE:
                break
        return selected if limit is None else selected[:limit]

    async def _schedule(self, job: str, ids: Sequence[int]) -> int:
        for repository_id in ids:
            await self._jobs.perform_async(job, repository_id)
        if ids:
            logger.info(f'[DISPATCH] Scheduled {len(ids)} {job} jobs')
        return len(ids)
