"""Sweep: enable root namespaces that became eligible for indexing.

SaaS: a namespace is eligible when the platform reports a valid
subscription with AI settings enabled. Instance mode: eligibility is
decided for the whole instance; an ineligible instance skips the sweep
entirely and an eligible one enables every root namespace.

Rows are created pending on the active connection. Existing rows are left alone.
"""

from __future__ import annotations

import logging

from code_index.clients.protocols import EligibilityOracle, EventPublisher, ProjectDirectory
from code_index.repositories.connection_store import ConnectionStore
from code_index.repositories.enabled_namespace_store import EnabledNamespaceStore
from code_index.schemas.events import CreateEnabledNamespaceEvent
from code_index.services.capability import IndexingCapability
from code_index.workers.sweep import ScanOutcome, SweepWorker, act_within_limit

__all__ = [
    'CreateEnabledNamespaceEventWorker',
]

logger = logging.getLogger(__name__)


class CreateEnabledNamespaceEventWorker(SweepWorker):
    LIMIT = 1000
    BATCH_SIZE = 100

    event_type = CreateEnabledNamespaceEvent

    def __init__(
        self,
        *,
        capability: IndexingCapability,
        publisher: EventPublisher,
        enabled_namespaces: EnabledNamespaceStore,
        connections: ConnectionStore,
        projects: ProjectDirectory,
        oracle: EligibilityOracle,
        saas: bool,
        limit: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        super().__init__(capability=capability, publisher=publisher, limit=limit, batch_size=batch_size)
        self._enabled_namespaces = enabled_namespaces
        self._connections = connections
        self._projects = projects
        self._oracle = oracle
        self._saas = saas

    async def should_process(self) -> bool:
        if await self._connections.active() is None:
            logger.info('[SWEEP] No active connection, skipping namespace enablement')
            return False
        if self._saas:
            return True
        return await self._oracle.instance_eligible()

    async def scan_batch(self, cursor: int | None, remaining: int) -> ScanOutcome:
        connection = await self._connections.active()
        if connection is None:
            return ScanOutcome(actions=0, last_id=cursor, exhausted=True)

        namespaces = await self._projects.root_namespaces(after=cursor, limit=self.batch_size)
        ids = [ns.id for ns in namespaces]
        existing = await self._enabled_namespaces.enabled_namespace_ids(ids, connection.id)
        candidates = [i for i in ids if i not in existing]

        if self._saas and candidates:
            eligible = await self._oracle.eligible_namespaces(candidates)
        else:
            eligible = set(candidates)

        selected, outcome = act_within_limit(
            namespaces,
            row_id=lambda ns: ns.id,
            is_actionable=lambda ns: ns.id in eligible,
            remaining=remaining,
            page_size=self.batch_size,
            cursor=cursor,
        )
        for namespace in selected:
            await self._enabled_namespaces.create(namespace.id, connection.id)
        if selected:
            logger.info(f'[SWEEP] Enabled {len(selected)} namespaces on connection {connection.id}')
        return outcome
