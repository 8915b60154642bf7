"""SchedulingService: throttled named tasks.

Each task may have a period, a condition, an event to dispatch and a body to
execute. With a period, the task runs at most once per period across all
processes (SET NX EX on a cache key); without one it runs on every call.
Development mode disables the throttle.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta

from code_index.clients.protocols import EventPublisher
from code_index.clients.redis import RedisClient
from code_index.errors import ArgumentError
from code_index.repositories.enabled_namespace_store import EnabledNamespaceStore
from code_index.schemas.events import (
    CreateEnabledNamespaceEvent,
    Event,
    MarkRepositoryAsPendingDeletionEvent,
    ProcessInvalidEnabledNamespaceEvent,
    ProcessPendingEnabledNamespaceEvent,
    SweepData,
)
from code_index.services.repository_index import RepositoryIndexService

__all__ = [
    'DispatchSpec',
    'SchedulingService',
    'TaskSpec',
    'default_tasks',
]

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = 'code_index:scheduling_service:execute_every'


@dataclass(frozen=True)
class DispatchSpec:
    """Event to publish. data builds the payload; default is an empty cursor."""

    event: Callable[..., Event]
    data: Callable[[], Awaitable[SweepData]] | None = None


@dataclass(frozen=True)
class TaskSpec:
    period: timedelta | None = None
    condition: Callable[[], Awaitable[bool]] | None = None
    dispatch: DispatchSpec | None = None
    execute: Callable[[], Awaitable[object]] | None = None


class SchedulingService:
    def __init__(
        self,
        redis: RedisClient,
        publisher: EventPublisher,
        tasks: Mapping[str, TaskSpec],
        *,
        development: bool = False,
    ) -> None:
        self._redis = redis
        self._publisher = publisher
        self._tasks = tasks
        self._development = development

    @property
    def task_names(self) -> list[str]:
        return list(self._tasks)

    def cache_period(self, task_name: str) -> timedelta | None:
        spec = self._tasks.get(task_name)
        return spec.period if spec else None

    def cache_key(self, task_name: str) -> str:
        period = self.cache_period(task_name)
        period_part = str(int(period.total_seconds())) if period else '-'
        return f'{CACHE_KEY_PREFIX}:{period_part}:{task_name}'

    async def execute(self, task_name: str, *, without_cache: bool = False) -> bool:
        """Run a task if its period allows.

        Returns:
            True if the task body ran, False if throttled or its condition was false.

        Raises:
            ArgumentError: Unknown task.
            NotImplementedError: Task has neither dispatch nor execute.
        """
        spec = self._tasks.get(task_name)
        if spec is None:
            raise ArgumentError(f'Unknown task: {task_name!r}')

        key = self.cache_key(task_name)
        if without_cache:
            await self._redis.delete(key)

        if spec.period is not None and not self._development:
            acquired = await self._redis.set(key, '1', nx=True, ex=int(spec.period.total_seconds()))
            if not acquired:
                logger.debug(f'[SCHEDULE] {task_name}: already ran this period')
                return False

        return await self._run(task_name, spec)

    async def _run(self, task_name: str, spec: TaskSpec) -> bool:
        if spec.condition is not None and not await spec.condition():
            logger.info(f'[SCHEDULE] {task_name}: Condition not met')
            return False

        if spec.dispatch is None and spec.execute is None:
            raise NotImplementedError(f'Task {task_name!r} has neither dispatch nor execute')

        if spec.dispatch is not None:
            data = await spec.dispatch.data() if spec.dispatch.data else SweepData()
            event = spec.dispatch.event(data=data)
            await self._publisher.publish(event)
            logger.info(f'[SCHEDULE] {task_name}: dispatched {event.type}')

        if spec.execute is not None:
            result = await spec.execute()
            logger.info(f'[SCHEDULE] {task_name}: executed ({result})')

        return True


def default_tasks(
    *,
    index_service: RepositoryIndexService,
    enabled_namespaces: EnabledNamespaceStore,
) -> Mapping[str, TaskSpec]:
    """Production registry: the sweeps, the pending-namespace processor, and job dispatch."""
    hourly = timedelta(hours=1)
    return {
        'create_enabled_namespaces': TaskSpec(
            period=hourly,
            dispatch=DispatchSpec(event=CreateEnabledNamespaceEvent),
        ),
        'process_invalid_enabled_namespaces': TaskSpec(
            period=hourly,
            dispatch=DispatchSpec(event=ProcessInvalidEnabledNamespaceEvent),
        ),
        'mark_repositories_for_deletion': TaskSpec(
            period=hourly,
            dispatch=DispatchSpec(event=MarkRepositoryAsPendingDeletionEvent),
        ),
        'process_pending_enabled_namespaces': TaskSpec(
            period=timedelta(minutes=10),
            condition=enabled_namespaces.has_pending,
            dispatch=DispatchSpec(event=ProcessPendingEnabledNamespaceEvent),
        ),
        'index_repositories': TaskSpec(
            execute=index_service.enqueue_pending_jobs,
        ),
        'incremental_index_repositories': TaskSpec(
            period=timedelta(minutes=10),
            execute=index_service.enqueue_ready_jobs,
        ),
        'delete_repositories': TaskSpec(
            execute=index_service.enqueue_pending_deletion_jobs,
        ),
    }
