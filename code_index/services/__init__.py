"""Domain services for code index synchronization."""

from __future__ import annotations

from code_index.services.capability import IndexingCapability
from code_index.services.deleter import Deleter
from code_index.services.indexer import Indexer, IndexerInvocation
from code_index.services.indexing import IncrementalIndexingService, IndexingService, InitialIndexingService
from code_index.services.lease import ExclusiveLease
from code_index.services.repository_index import (
    REPOSITORY_DELETE_JOB,
    REPOSITORY_INDEX_JOB,
    RepositoryIndexService,
)
from code_index.services.scheduling import DispatchSpec, SchedulingService, TaskSpec, default_tasks
from code_index.services.stream_parser import StreamParser, parse_lines

__all__ = [
    'REPOSITORY_DELETE_JOB',
    'REPOSITORY_INDEX_JOB',
    'Deleter',
    'DispatchSpec',
    'ExclusiveLease',
    'IncrementalIndexingService',
    'Indexer',
    'IndexerInvocation',
    'IndexingCapability',
    'IndexingService',
    'InitialIndexingService',
    'RepositoryIndexService',
    'SchedulingService',
    'StreamParser',
    'TaskSpec',
    'default_tasks',
    'parse_lines',
]
