"""RepositoryIndexWorker: one indexing pass for one repository id.

Runs under the repository's exclusive lease. A busy lease is a normal
outcome: the job is rescheduled and nothing runs.
"""

from __future__ import annotations

import logging

from code_index.clients.protocols import JobScheduler
from code_index.errors import LockContentionError
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.records import RepositoryState
from code_index.services.capability import IndexingCapability
from code_index.services.indexing import IncrementalIndexingService, InitialIndexingService
from code_index.services.lease import ExclusiveLease
from code_index.services.repository_index import REPOSITORY_INDEX_JOB

__all__ = [
    'LEASE_SCOPE',
    'RepositoryIndexWorker',
]

logger = logging.getLogger(__name__)

# Shared by index and delete workers: one Indexer/Deleter run per repository at a time
LEASE_SCOPE = 'repository'


class RepositoryIndexWorker:
    def __init__(
        self,
        *,
        capability: IndexingCapability,
        lease: ExclusiveLease,
        repositories: RepositoryStore,
        jobs: JobScheduler,
        initial: InitialIndexingService,
        incremental: IncrementalIndexingService,
        reschedule_delay_seconds: float = 60,
        identity: str = LEASE_SCOPE,
    ) -> None:
        self._capability = capability
        self._lease = lease
        self._repositories = repositories
        self._jobs = jobs
        self._initial = initial
        self._incremental = incremental
        self._reschedule_delay_seconds = reschedule_delay_seconds
        self._identity = identity

    async def perform(self, repository_id: int) -> bool:
        """Index the repository if its state calls for it.

        Returns:
            True if an indexing service ran.
        """
        if not self._capability.indexing_enabled():
            return False

        try:
            async with self._lease.hold(f'{self._identity}:{repository_id}'):
                return await self._dispatch(repository_id)
        except LockContentionError:
            logger.info(
                f'[WORKER] Repository {repository_id} is busy, '
                f'rescheduling in {self._reschedule_delay_seconds}s'
            )
            await self._jobs.perform_in(self._reschedule_delay_seconds, REPOSITORY_INDEX_JOB, repository_id)
            return False

    async def _dispatch(self, repository_id: int) -> bool:
        repository = await self._repositories.get(repository_id)
        if repository is None:
            logger.info(f'[WORKER] Repository {repository_id} no longer exists')
            return False

        match repository.state:
            case RepositoryState.PENDING:
                await self._initial.execute(repository)
            case RepositoryState.READY:
                await self._incremental.execute(repository)
            case _:
                logger.debug(f'[WORKER] Repository {repository_id} in state {repository.state}, nothing to do')
                return False
        return True
