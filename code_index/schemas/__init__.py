"""Pydantic schemas for code index synchronization."""

from __future__ import annotations

from code_index.schemas.base import JsonDatetime, StrictModel
from code_index.schemas.config import (
    CONFIG_PATH,
    IndexerSettings,
    LeaseSettings,
    PlatformSettings,
    RedisSettings,
    Settings,
    load_settings,
    save_settings,
)
from code_index.schemas.events import (
    CreateEnabledNamespaceEvent,
    Event,
    MarkRepositoryAsPendingDeletionEvent,
    ProcessInvalidEnabledNamespaceEvent,
    ProcessPendingEnabledNamespaceEvent,
    SweepData,
    event_adapter,
)
from code_index.schemas.indexer import (
    ConnectionDescriptor,
    GitalyConfig,
    IndexerOptions,
    IndexingRange,
)
from code_index.schemas.records import (
    EMPTY_TREE_SHA,
    LAST_ACTIVITY_CUTOFF,
    Connection,
    ConnectionOptions,
    DeleteReason,
    EnabledNamespace,
    EnabledNamespaceState,
    Repository,
    RepositoryState,
    UrlParts,
)

__all__ = [
    'CONFIG_PATH',
    'EMPTY_TREE_SHA',
    'LAST_ACTIVITY_CUTOFF',
    'Connection',
    'ConnectionDescriptor',
    'ConnectionOptions',
    'CreateEnabledNamespaceEvent',
    'DeleteReason',
    'EnabledNamespace',
    'EnabledNamespaceState',
    'Event',
    'GitalyConfig',
    'IndexerOptions',
    'IndexerSettings',
    'IndexingRange',
    'JsonDatetime',
    'LeaseSettings',
    'MarkRepositoryAsPendingDeletionEvent',
    'PlatformSettings',
    'ProcessInvalidEnabledNamespaceEvent',
    'ProcessPendingEnabledNamespaceEvent',
    'RedisSettings',
    'Repository',
    'RepositoryState',
    'Settings',
    'StrictModel',
    'SweepData',
    'UrlParts',
    'event_adapter',
    'load_settings',
    'save_settings',
]
