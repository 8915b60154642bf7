"""Sweep: materialize repositories for newly enabled namespaces.

For each pending enabled namespace, every project in it gets a pending
repository on the namespace's connection. Repositories left in a delete
state by an earlier removal are reset to pending. The namespace is then
marked ready. One namespace counts as one action.
"""

from __future__ import annotations

import logging

from code_index.clients.protocols import EventPublisher, ProjectDirectory
from code_index.repositories.enabled_namespace_store import EnabledNamespaceStore
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.events import ProcessPendingEnabledNamespaceEvent
from code_index.schemas.records import EnabledNamespace
from code_index.services.capability import IndexingCapability
from code_index.workers.sweep import ScanOutcome, SweepWorker, act_within_limit

__all__ = [
    'ProcessPendingEnabledNamespaceEventWorker',
]

logger = logging.getLogger(__name__)


class ProcessPendingEnabledNamespaceEventWorker(SweepWorker):
    LIMIT = 100
    BATCH_SIZE = 10

    event_type = ProcessPendingEnabledNamespaceEvent

    def __init__(
        self,
        *,
        capability: IndexingCapability,
        publisher: EventPublisher,
        enabled_namespaces: EnabledNamespaceStore,
        repositories: RepositoryStore,
        projects: ProjectDirectory,
        limit: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        super().__init__(capability=capability, publisher=publisher, limit=limit, batch_size=batch_size)
        self._enabled_namespaces = enabled_namespaces
        self._repositories = repositories
        self._projects = projects

    async def scan_batch(self, cursor: int | None, remaining: int) -> ScanOutcome:
        rows = await self._enabled_namespaces.scan_pending(after=cursor, limit=self.batch_size)
        selected, outcome = act_within_limit(
            rows,
            row_id=lambda r: r.id,
            is_actionable=lambda r: True,
            remaining=remaining,
            page_size=self.batch_size,
            cursor=cursor,
        )
        for enabled_namespace in selected:
            await self._process(enabled_namespace)
        return outcome

    async def _process(self, enabled_namespace: EnabledNamespace) -> None:
        created = reset = 0
        for project in await self._projects.projects_in_namespace(enabled_namespace.namespace_id):
            repository = await self._repositories.find_by_project_and_connection(
                project.id, enabled_namespace.connection_id
            )
            if repository is None:
                await self._repositories.create(
                    project_id=project.id,
                    connection_id=enabled_namespace.connection_id,
                    enabled_namespace_id=enabled_namespace.id,
                )
                created += 1
            elif repository.in_delete_state:
                await self._repositories.save(repository.reset(enabled_namespace_id=enabled_namespace.id))
                reset += 1
            elif repository.enabled_namespace_id != enabled_namespace.id:
                await self._repositories.save(
                    repository.model_copy(update={'enabled_namespace_id': enabled_namespace.id})
                )

        await self._enabled_namespaces.save(enabled_namespace.mark_ready())
        logger.info(
            f'[SWEEP] Namespace {enabled_namespace.namespace_id} ready: '
            f'{created} repositories created, {reset} reset'
        )
