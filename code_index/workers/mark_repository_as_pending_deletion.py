"""Sweep: mark repositories that lost eligibility as pending_deletion.

Each candidate gets exactly one reason, the first that matches:

1. without_enabled_namespace: its enabled namespace is gone
2. duo_features_disabled: AI features disabled for the project or its namespace
3. no_recent_activity: not queried within LAST_ACTIVITY_CUTOFF

Pages merge every table partition in ascending id order, so one id cursor
resumes the whole scan.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta

from code_index.clients.protocols import EligibilityOracle, EventPublisher
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.events import MarkRepositoryAsPendingDeletionEvent
from code_index.schemas.records import LAST_ACTIVITY_CUTOFF, DeleteReason, Repository
from code_index.services.capability import IndexingCapability
from code_index.workers.sweep import ScanOutcome, SweepWorker, act_within_limit

__all__ = [
    'MarkRepositoryAsPendingDeletionEventWorker',
    'deletion_reason',
]

logger = logging.getLogger(__name__)


def deletion_reason(
    repository: Repository,
    *,
    duo_disabled_projects: set[int],
    now: datetime,
    cutoff: timedelta = LAST_ACTIVITY_CUTOFF,
) -> DeleteReason | None:
    """Highest-priority reason this repository should be deleted, if any."""
    if repository.in_delete_state:
        return None
    if repository.enabled_namespace_id is None:
        return DeleteReason.WITHOUT_ENABLED_NAMESPACE
    if repository.project_id in duo_disabled_projects:
        return DeleteReason.DUO_FEATURES_DISABLED
    if repository.no_recent_activity(now, cutoff):
        return DeleteReason.NO_RECENT_ACTIVITY
    return None


class MarkRepositoryAsPendingDeletionEventWorker(SweepWorker):
    LIMIT = 1000
    BATCH_SIZE = 100

    event_type = MarkRepositoryAsPendingDeletionEvent

    def __init__(
        self,
        *,
        capability: IndexingCapability,
        publisher: EventPublisher,
        repositories: RepositoryStore,
        oracle: EligibilityOracle,
        cutoff: timedelta = LAST_ACTIVITY_CUTOFF,
        limit: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        super().__init__(capability=capability, publisher=publisher, limit=limit, batch_size=batch_size)
        self._repositories = repositories
        self._oracle = oracle
        self._cutoff = cutoff

    async def scan_batch(self, cursor: int | None, remaining: int) -> ScanOutcome:
        rows = await self._repositories.scan_partitions(after=cursor, limit=self.batch_size)

        # Only ask the oracle about rows the first predicate did not already claim
        to_check = [r.project_id for r in rows if not r.in_delete_state and r.enabled_namespace_id is not None]
        duo_disabled = await self._oracle.duo_disabled_projects(to_check) if to_check else set()

        now = datetime.now(UTC)
        reasons: Mapping[int, DeleteReason | None] = {
            r.id: deletion_reason(r, duo_disabled_projects=duo_disabled, now=now, cutoff=self._cutoff) for r in rows
        }
        selected, outcome = act_within_limit(
            rows,
            row_id=lambda r: r.id,
            is_actionable=lambda r: reasons[r.id] is not None,
            remaining=remaining,
            page_size=self.batch_size,
            cursor=cursor,
        )

        by_reason: defaultdict[DeleteReason, list[int]] = defaultdict(list)
        for repository in selected:
            reason = reasons[repository.id]
            assert reason is not None
            by_reason[reason].append(repository.id)
        for reason, ids in by_reason.items():
            await self._repositories.mark_as_pending_deletion_with_reason(ids, reason)
            logger.info(f'[SWEEP] {len(ids)} repositories pending deletion ({reason})')

        return outcome
