"""Clients for external systems: Redis, subprocesses, git, platform API."""

from __future__ import annotations

from code_index.clients.git import GitPythonBackend
from code_index.clients.platform import PlatformClient
from code_index.clients.process import AsyncProcessRunner
from code_index.clients.protocols import (
    EligibilityOracle,
    EventPublisher,
    GitBackend,
    JobScheduler,
    LineSink,
    ProcessRunner,
    ProjectDirectory,
    RefTracker,
)
from code_index.clients.redis import RedisClient

__all__ = [
    'AsyncProcessRunner',
    'EligibilityOracle',
    'EventPublisher',
    'GitBackend',
    'GitPythonBackend',
    'JobScheduler',
    'LineSink',
    'PlatformClient',
    'ProcessRunner',
    'ProjectDirectory',
    'RedisClient',
    'RefTracker',
]
