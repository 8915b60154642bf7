"""Shared fixtures: stores over the in-memory Redis and an active connection."""

from __future__ import annotations

import pytest

from code_index.repositories.connection_store import ConnectionStore
from code_index.repositories.enabled_namespace_store import EnabledNamespaceStore
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.config import IndexerSettings
from code_index.schemas.records import Connection, ConnectionOptions
from code_index.services.capability import IndexingCapability
from tests.code_index import fakes


@pytest.fixture
def redis() -> fakes.FakeRedisClient:
    return fakes.FakeRedisClient()


@pytest.fixture
def repositories(redis: fakes.FakeRedisClient) -> RepositoryStore:
    return RepositoryStore(redis, partition_size=fakes.PARTITION_SIZE)  # type: ignore[arg-type]


@pytest.fixture
def enabled_namespaces(redis: fakes.FakeRedisClient, repositories: RepositoryStore) -> EnabledNamespaceStore:
    return EnabledNamespaceStore(redis, repositories)  # type: ignore[arg-type]


@pytest.fixture
def connections(
    redis: fakes.FakeRedisClient,
    repositories: RepositoryStore,
    enabled_namespaces: EnabledNamespaceStore,
) -> ConnectionStore:
    return ConnectionStore(redis, repositories, enabled_namespaces)  # type: ignore[arg-type]


@pytest.fixture
async def connection(connections: ConnectionStore) -> Connection:
    return await connections.create(
        name='primary',
        adapter='elasticsearch',
        options=ConnectionOptions(url=['http://es.internal:9200'], user='indexer', password='secret'),
        active=True,
    )


@pytest.fixture
def capability() -> IndexingCapability:
    return IndexingCapability(True)


@pytest.fixture
def indexer_settings() -> IndexerSettings:
    return IndexerSettings(binary_path='/opt/indexer/bin/indexer', timeout_seconds=60)
