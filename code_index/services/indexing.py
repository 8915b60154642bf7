"""IndexingService family: Indexer + ref tracking + repository state.

- IndexingService: non-streaming. Collects every hash, tracks them in one
  bulk call, then moves pending -> embedding_indexing_in_progress.
- InitialIndexingService: streams each hash to the tracker as it arrives,
  then pending -> embedding_indexing_in_progress.
- IncrementalIndexingService: streams, leaves ready as ready and only moves
  the incremental cursor.

Streaming makes progress on a huge repository durable even if the job is
killed mid-run. Any failure is recorded on the repository once, here, and
re-raised for the job framework.
"""

from __future__ import annotations

import logging

from code_index.clients.protocols import RefTracker
from code_index.errors import InvalidTransitionError
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.records import Repository, RepositoryState
from code_index.services.indexer import Indexer

__all__ = [
    'IncrementalIndexingService',
    'IndexingService',
    'InitialIndexingService',
]

logger = logging.getLogger(__name__)


class IndexingService:
    """Generic bulk indexing pass for administrative use.

    Accepts pending repositories (which move on to embedding) and ready ones
    (which stay ready with an advanced incremental cursor).
    """

    def __init__(self, indexer: Indexer, repositories: RepositoryStore, tracker: RefTracker) -> None:
        self._indexer = indexer
        self._repositories = repositories
        self._tracker = tracker

    async def execute(self, repository: Repository) -> Repository:
        """Run one pass and persist the resulting state.

        Raises:
            Exception: Whatever the indexer or tracker raised, after the
                repository was saved as failed.
        """
        try:
            indexed, last_queued = await self._index(repository)
            return await self._repositories.save(self._complete(indexed, last_queued))
        except Exception as e:
            await self._record_failure(repository, e)
            raise

    async def _index(self, repository: Repository) -> tuple[Repository, str | None]:
        hashes: list[str] = []

        async def collect(content_hash: str) -> None:
            hashes.append(content_hash)

        indexed = await self._indexer.run(repository, collect)
        if hashes:
            await self._tracker.track(repository.project_id, hashes)
        logger.info(f'[INDEXING] Repository {repository.id}: tracked {len(hashes)} refs in bulk')
        return indexed, hashes[-1] if hashes else None

    def _complete(self, indexed: Repository, last_queued: str | None) -> Repository:
        if indexed.state == RepositoryState.READY:
            return indexed.continue_incremental(last_queued)
        return indexed.start_embedding(last_queued)

    async def _record_failure(self, repository: Repository, error: Exception) -> None:
        message = str(error) or type(error).__name__
        current = await self._repositories.get(repository.id) or repository
        try:
            failed = current.fail(message)
        except InvalidTransitionError:
            failed = current.record_error(message)
        await self._repositories.save(failed)
        logger.error(f'[INDEXING] Repository {repository.id} failed: {type(error).__name__}: {message}')


class InitialIndexingService(IndexingService):
    """First pass of a pending repository, streaming refs as they arrive."""

    async def _index(self, repository: Repository) -> tuple[Repository, str | None]:
        last_queued: str | None = None
        tracked = 0

        async def track(content_hash: str) -> None:
            nonlocal last_queued, tracked
            await self._tracker.track(repository.project_id, [content_hash])
            last_queued = content_hash
            tracked += 1

        indexed = await self._indexer.run(repository, track)
        logger.info(f'[INDEXING] Repository {repository.id}: streamed {tracked} refs')
        return indexed, last_queued


class IncrementalIndexingService(InitialIndexingService):
    """Follow-up pass of a ready repository."""

    def _complete(self, indexed: Repository, last_queued: str | None) -> Repository:
        return indexed.continue_incremental(last_queued)
