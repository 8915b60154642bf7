"""Runtime: wires every component from Settings and drives the job/event loop.

The dispatch loop is the error boundary. A failed job or sweep is logged
with its traceback (state was already recorded on the repository where it
applies) and the loop keeps serving.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import typing
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from code_index.clients.git import GitPythonBackend
from code_index.clients.platform import PlatformClient
from code_index.clients.process import AsyncProcessRunner
from code_index.clients.protocols import EligibilityOracle, GitBackend, ProcessRunner, ProjectDirectory
from code_index.clients.redis import RedisClient
from code_index.errors import ArgumentError
from code_index.repositories.connection_store import ConnectionStore
from code_index.repositories.enabled_namespace_store import EnabledNamespaceStore
from code_index.repositories.event_store import RedisEventStore
from code_index.repositories.job_queue import RedisJobQueue
from code_index.repositories.ref_queue import RedisRefTracker
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.config import Settings
from code_index.schemas.events import Event, Job
from code_index.services.capability import IndexingCapability
from code_index.services.deleter import Deleter
from code_index.services.indexer import Indexer, IndexerInvocation
from code_index.services.indexing import IncrementalIndexingService, IndexingService, InitialIndexingService
from code_index.services.lease import ExclusiveLease
from code_index.services.repository_index import REPOSITORY_DELETE_JOB, REPOSITORY_INDEX_JOB, RepositoryIndexService
from code_index.services.scheduling import SchedulingService, default_tasks
from code_index.workers.create_enabled_namespace import CreateEnabledNamespaceEventWorker
from code_index.workers.mark_repository_as_pending_deletion import MarkRepositoryAsPendingDeletionEventWorker
from code_index.workers.process_invalid_enabled_namespace import ProcessInvalidEnabledNamespaceEventWorker
from code_index.workers.process_pending_enabled_namespace import ProcessPendingEnabledNamespaceEventWorker
from code_index.workers.repository_delete import RepositoryDeleteWorker
from code_index.workers.repository_index import RepositoryIndexWorker
from code_index.workers.sweep import SweepWorker

__all__ = [
    'Runtime',
    'configure_logging',
]

logger = logging.getLogger(__name__)

T = typing.TypeVar('T')


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
    )
    # Silence noisy third-party loggers
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('git').setLevel(logging.WARNING)


@dataclass
class Runtime:
    """Container for all components - created once per process."""

    settings: Settings
    redis: RedisClient

    repositories: RepositoryStore
    enabled_namespaces: EnabledNamespaceStore
    connections: ConnectionStore
    events: RedisEventStore
    jobs: RedisJobQueue
    refs: RedisRefTracker

    index_service: RepositoryIndexService
    bulk_indexing: IndexingService
    scheduling: SchedulingService

    index_worker: RepositoryIndexWorker
    delete_worker: RepositoryDeleteWorker
    sweep_workers: Mapping[str, SweepWorker]

    # Owned platform client, None when collaborators were injected
    platform: PlatformClient | None = None

    @classmethod
    def create(
        cls,
        settings: Settings,
        *,
        redis: RedisClient | None = None,
        runner: ProcessRunner | None = None,
        git: GitBackend | None = None,
        projects: ProjectDirectory | None = None,
        oracle: EligibilityOracle | None = None,
    ) -> typing.Self:
        """Build the runtime. Collaborators default to the production clients.

        Must be called from async context so semaphores bind to the running loop.
        """
        redis = redis or RedisClient(settings.redis.host, settings.redis.port, db=settings.redis.db)
        platform: PlatformClient | None = None
        if projects is None or oracle is None:
            platform = PlatformClient(
                settings.platform.base_url,
                token=settings.platform.token,
                timeout_seconds=settings.platform.timeout_seconds,
            )
            projects = projects or platform
            oracle = oracle or platform
        runner = runner or AsyncProcessRunner()
        git = git or GitPythonBackend(Path(settings.repositories_root))

        capability = IndexingCapability(settings.indexing_enabled)
        repositories = RepositoryStore(redis, partition_size=settings.repository_partition_size)
        enabled_namespaces = EnabledNamespaceStore(redis, repositories)
        connections = ConnectionStore(redis, repositories, enabled_namespaces)
        events = RedisEventStore(redis)
        jobs = RedisJobQueue(redis)
        refs = RedisRefTracker(redis, shards=settings.ref_queue_shards)

        invocation = IndexerInvocation(settings.indexer, connections)
        indexer = Indexer(invocation, repositories=repositories, projects=projects, git=git, runner=runner)
        deleter = Deleter(invocation, runner=runner)
        lease = ExclusiveLease(
            redis,
            ttl_seconds=settings.lease.ttl_seconds,
            attempts=settings.lease.attempts,
            wait_seconds=settings.lease.wait_seconds,
        )

        index_service = RepositoryIndexService(repositories, connections, jobs)
        scheduling = SchedulingService(
            redis,
            events,
            default_tasks(index_service=index_service, enabled_namespaces=enabled_namespaces),
            development=settings.development,
        )

        index_worker = RepositoryIndexWorker(
            capability=capability,
            lease=lease,
            repositories=repositories,
            jobs=jobs,
            initial=InitialIndexingService(indexer, repositories, refs),
            incremental=IncrementalIndexingService(indexer, repositories, refs),
            reschedule_delay_seconds=settings.lease.reschedule_delay_seconds,
        )
        delete_worker = RepositoryDeleteWorker(
            capability=capability,
            lease=lease,
            repositories=repositories,
            jobs=jobs,
            deleter=deleter,
            reschedule_delay_seconds=settings.lease.reschedule_delay_seconds,
        )
        sweep_workers: Mapping[str, SweepWorker] = {
            'create_enabled_namespace': CreateEnabledNamespaceEventWorker(
                capability=capability,
                publisher=events,
                enabled_namespaces=enabled_namespaces,
                connections=connections,
                projects=projects,
                oracle=oracle,
                saas=settings.saas,
            ),
            'process_invalid_enabled_namespace': ProcessInvalidEnabledNamespaceEventWorker(
                capability=capability,
                publisher=events,
                enabled_namespaces=enabled_namespaces,
                oracle=oracle,
                saas=settings.saas,
            ),
            'mark_repository_as_pending_deletion': MarkRepositoryAsPendingDeletionEventWorker(
                capability=capability,
                publisher=events,
                repositories=repositories,
                oracle=oracle,
            ),
            'process_pending_enabled_namespace': ProcessPendingEnabledNamespaceEventWorker(
                capability=capability,
                publisher=events,
                enabled_namespaces=enabled_namespaces,
                repositories=repositories,
                projects=projects,
            ),
        }

        return cls(
            settings=settings,
            redis=redis,
            repositories=repositories,
            enabled_namespaces=enabled_namespaces,
            connections=connections,
            events=events,
            jobs=jobs,
            refs=refs,
            index_service=index_service,
            bulk_indexing=IndexingService(indexer, repositories, refs),
            scheduling=scheduling,
            index_worker=index_worker,
            delete_worker=delete_worker,
            sweep_workers=sweep_workers,
            platform=platform,
        )

    # --- Dispatch ---

    async def perform_job(self, job: Job) -> bool:
        if job.job == REPOSITORY_INDEX_JOB:
            return await self.index_worker.perform(*job.args)
        if job.job == REPOSITORY_DELETE_JOB:
            return await self.delete_worker.perform(*job.args)
        raise ArgumentError(f'Unknown job: {job.job!r}')

    async def handle_event(self, event: Event) -> bool:
        worker = self.sweep_workers.get(event.type)
        if worker is None:
            raise ArgumentError(f'No worker for event: {event.type!r}')
        return await worker.handle_event(event)

    async def work(self, *, once: bool = False, poll_interval: float = 1.0) -> int:
        """Serve due jobs and queued events until cancelled.

        With once=True, drains what is currently due and returns the number
        of jobs and events handled.
        """
        semaphore = asyncio.Semaphore(self.settings.worker_concurrency)
        handled = 0

        async def run_job(job: Job) -> None:
            async with semaphore:
                await self._guarded(f'{job.job}{tuple(job.args)}', self.perform_job(job))

        while True:
            due = await self.jobs.pop_due(limit=self.settings.worker_concurrency)
            if due:
                await asyncio.gather(*(run_job(job) for job in due))
                handled += len(due)

            event = await self.events.next_event(timeout=0.1 if once or due else poll_interval)
            if event is not None:
                await self._guarded(event.type, self.handle_event(event))
                handled += 1

            if once and not due and event is None:
                return handled

    async def run_task(self, task_name: str, *, force: bool = False) -> bool:
        return await self.scheduling.execute(task_name, without_cache=force)

    async def schedule(self) -> Mapping[str, bool]:
        """Run every registered task once, honouring throttles."""
        results: dict[str, bool] = {}
        for name in self.scheduling.task_names:
            results[name] = await self._guarded(name, self.scheduling.execute(name)) or False
        return results

    async def close(self) -> None:
        if self.platform is not None:
            await self.platform.close()
        await self.redis.close()

    async def _guarded(self, label: str, work: typing.Awaitable[T]) -> T | None:
        try:
            return await work
        except Exception:
            logger.exception(f'[RUNTIME] {label} failed')
            return None
