"""RepositoryDeleteWorker: removes one pending_deletion repository from the index."""

from __future__ import annotations

import logging

from code_index.clients.protocols import JobScheduler
from code_index.errors import LockContentionError
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.records import RepositoryState
from code_index.services.capability import IndexingCapability
from code_index.services.deleter import Deleter
from code_index.services.lease import ExclusiveLease
from code_index.services.repository_index import REPOSITORY_DELETE_JOB
from code_index.workers.repository_index import LEASE_SCOPE

__all__ = [
    'RepositoryDeleteWorker',
]

logger = logging.getLogger(__name__)


class RepositoryDeleteWorker:
    def __init__(
        self,
        *,
        capability: IndexingCapability,
        lease: ExclusiveLease,
        repositories: RepositoryStore,
        jobs: JobScheduler,
        deleter: Deleter,
        reschedule_delay_seconds: float = 60,
        identity: str = LEASE_SCOPE,
    ) -> None:
        self._capability = capability
        self._lease = lease
        self._repositories = repositories
        self._jobs = jobs
        self._deleter = deleter
        self._reschedule_delay_seconds = reschedule_delay_seconds
        self._identity = identity

    async def perform(self, repository_id: int) -> bool:
        """Delete the repository's index content and mark it deleted.

        Returns:
            True if the Deleter ran and the repository is now deleted.

        Raises:
            Exception: Deleter failure, after last_error was recorded. The
                repository stays pending_deletion for the next attempt.
        """
        if not self._capability.indexing_enabled():
            return False

        try:
            async with self._lease.hold(f'{self._identity}:{repository_id}'):
                return await self._delete(repository_id)
        except LockContentionError:
            logger.info(
                f'[WORKER] Repository {repository_id} is busy, '
                f'rescheduling delete in {self._reschedule_delay_seconds}s'
            )
            await self._jobs.perform_in(self._reschedule_delay_seconds, REPOSITORY_DELETE_JOB, repository_id)
            return False

    async def _delete(self, repository_id: int) -> bool:
        repository = await self._repositories.get(repository_id)
        if repository is None or repository.state != RepositoryState.PENDING_DELETION:
            return False

        try:
            await self._deleter.run(repository)
        except Exception as e:
            await self._repositories.save(repository.record_error(str(e) or type(e).__name__))
            raise

        await self._repositories.save(repository.mark_deleted())
        return True
