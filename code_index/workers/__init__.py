"""Job and event workers."""

from __future__ import annotations

from code_index.workers.create_enabled_namespace import CreateEnabledNamespaceEventWorker
from code_index.workers.mark_repository_as_pending_deletion import MarkRepositoryAsPendingDeletionEventWorker
from code_index.workers.process_invalid_enabled_namespace import ProcessInvalidEnabledNamespaceEventWorker
from code_index.workers.process_pending_enabled_namespace import ProcessPendingEnabledNamespaceEventWorker
from code_index.workers.repository_delete import RepositoryDeleteWorker
from code_index.workers.repository_index import RepositoryIndexWorker
from code_index.workers.sweep import ScanOutcome, SweepResult, SweepWorker

__all__ = [
    'CreateEnabledNamespaceEventWorker',
    'MarkRepositoryAsPendingDeletionEventWorker',
    'ProcessInvalidEnabledNamespaceEventWorker',
    'ProcessPendingEnabledNamespaceEventWorker',
    'RepositoryDeleteWorker',
    'RepositoryIndexWorker',
    'ScanOutcome',
    'SweepResult',
    'SweepWorker',
]
