"""Repositories for data persistence."""

from __future__ import annotations

from code_index.repositories.connection_store import ConnectionStore
from code_index.repositories.enabled_namespace_store import EnabledNamespaceStore
from code_index.repositories.event_store import RedisEventStore
from code_index.repositories.job_queue import RedisJobQueue
from code_index.repositories.ref_queue import RedisRefTracker
from code_index.repositories.repository_store import RepositoryStore

__all__ = [
    'ConnectionStore',
    'EnabledNamespaceStore',
    'RedisEventStore',
    'RedisJobQueue',
    'RedisRefTracker',
    'RepositoryStore',
]
