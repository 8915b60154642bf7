"""Resumable eligibility sweeps.

A sweep scans candidates in ascending id order, in pages of BATCH_SIZE, and
counts every corrective action against one LIMIT. The instant LIMIT is
reached it stops (mid-page) and republishes its own event
with last_processed_id set to the last row it examined. A scan that runs out
of candidates first publishes nothing.

Every action is idempotent, so overlapping or repeated sweeps are safe and
no locks are taken.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from code_index.clients.protocols import EventPublisher
from code_index.schemas.events import Event, SweepData
from code_index.services.capability import IndexingCapability

__all__ = [
    'ScanOutcome',
    'SweepResult',
    'SweepWorker',
    'act_within_limit',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class ScanOutcome:
    """Result of one page.

    last_id is the last row examined (None if the page was empty);
    exhausted means no rows remain after this page.
    """

    actions: int
    last_id: int | None
    exhausted: bool


@dataclass(frozen=True)
class SweepResult:
    actions: int
    # Cursor of the published continuation, None when the scan completed
    continued_from: int | None


class SweepWorker(ABC):
    """Shared sweep loop. Subclasses supply the gate and one page of work."""

    LIMIT = 1000
    BATCH_SIZE = 100

    # Event type republished for continuation
    event_type: Callable[..., Event]

    def __init__(
        self,
        *,
        capability: IndexingCapability,
        publisher: EventPublisher,
        limit: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._capability = capability
        self._publisher = publisher
        self.limit = limit or self.LIMIT
        self.batch_size = batch_size or self.BATCH_SIZE

    async def handle_event(self, event: Event) -> bool:
        """Run one sweep invocation.

        Returns:
            False if the kill switch or the worker's mode gate skipped it.
        """
        if not self._capability.indexing_enabled():
            return False
        if not await self.should_process():
            return False

        result = await self.process_in_batches(event.data.last_processed_id)
        if result.actions:
            logger.info(f'[SWEEP] {type(self).__name__}: {result.actions} actions')
        return True

    async def process_in_batches(self, last_processed_id: int | None) -> SweepResult:
        remaining = self.limit
        actions = 0

        cursor = last_processed_id
        while True:
            outcome = await self.scan_batch(cursor, remaining)
            actions += outcome.actions
            remaining -= outcome.actions
            if outcome.last_id is not None:
                cursor = outcome.last_id

            if remaining <= 0:
                await self._publisher.publish(self.event_type(data=SweepData(last_processed_id=cursor)))
                logger.info(f'[SWEEP] {type(self).__name__}: limit {self.limit} reached at id {cursor}, continuing')
                return SweepResult(actions=actions, continued_from=cursor)

            if outcome.exhausted:
                break

        return SweepResult(actions=actions, continued_from=None)

    async def should_process(self) -> bool:
        """Deployment-mode gate. Default: always."""
        return True

    @abstractmethod
    async def scan_batch(self, cursor: int | None, remaining: int) -> ScanOutcome:
        """Examine one page after cursor, taking at most `remaining` actions."""
        ...


def act_within_limit(
    rows: Sequence[T],
    row_id: Callable[[T], int],
    is_actionable: Callable[[T], bool],
    remaining: int,
    page_size: int,
    cursor: int | None,
) -> tuple[Sequence[T], ScanOutcome]:
    """Pick actionable rows from a page without exceeding the remaining limit.

    Returns the rows to act on and the page outcome. When the limit is hit
    mid-page, the outcome's last_id is the last row selected.
    """
    selected: list[T] = []
    for row in rows:
        if is_actionable(row):
            selected.append(row)
            if len(selected) >= remaining:
                return selected, ScanOutcome(actions=len(selected), last_id=row_id(row), exhausted=False)
    last_id = row_id(rows[-1]) if rows else cursor
    return selected, ScanOutcome(actions=len(selected), last_id=last_id, exhausted=len(rows) < page_size)
