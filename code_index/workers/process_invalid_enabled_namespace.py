"""Sweep: remove enabled namespaces that are no longer eligible.

SaaS: each row's namespace is rechecked with the platform. Instance mode:
a valid instance means every row stays (the sweep is a no-op); an invalid
instance means every row goes.
"""

from __future__ import annotations

import logging

from code_index.clients.protocols import EligibilityOracle, EventPublisher
from code_index.repositories.enabled_namespace_store import EnabledNamespaceStore
from code_index.schemas.events import ProcessInvalidEnabledNamespaceEvent
from code_index.services.capability import IndexingCapability
from code_index.workers.sweep import ScanOutcome, SweepWorker, act_within_limit

__all__ = [
    'ProcessInvalidEnabledNamespaceEventWorker',
]

logger = logging.getLogger(__name__)


class ProcessInvalidEnabledNamespaceEventWorker(SweepWorker):
    LIMIT = 1000
    BATCH_SIZE = 100

    event_type = ProcessInvalidEnabledNamespaceEvent

    def __init__(
        self,
        *,
        capability: IndexingCapability,
        publisher: EventPublisher,
        enabled_namespaces: EnabledNamespaceStore,
        oracle: EligibilityOracle,
        saas: bool,
        limit: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        super().__init__(capability=capability, publisher=publisher, limit=limit, batch_size=batch_size)
        self._enabled_namespaces = enabled_namespaces
        self._oracle = oracle
        self._saas = saas

    async def should_process(self) -> bool:
        if self._saas:
            return True
        # Instance mode only has work to do when the instance lost eligibility
        return not await self._oracle.instance_eligible()

    async def scan_batch(self, cursor: int | None, remaining: int) -> ScanOutcome:
        rows = await self._enabled_namespaces.scan(after=cursor, limit=self.batch_size)

        if self._saas and rows:
            eligible = await self._oracle.eligible_namespaces(sorted({r.namespace_id for r in rows}))
        else:
            eligible = set()

        selected, outcome = act_within_limit(
            rows,
            row_id=lambda r: r.id,
            is_actionable=lambda r: r.namespace_id not in eligible,
            remaining=remaining,
            page_size=self.batch_size,
            cursor=cursor,
        )
        for enabled_namespace in selected:
            await self._enabled_namespaces.delete(enabled_namespace.id)
        if selected:
            logger.info(f'[SWEEP] Removed {len(selected)} enabled namespaces')
        return outcome
