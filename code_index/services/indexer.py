"""Indexer: runs the external indexer over one repository's commit range.

Range selection against the repository's HEAD:

- last_commit unset or the empty tree: index from the empty tree (or
  last_commit) to HEAD, no forced reindex.
- last_commit still in history and an ancestor of HEAD: normal incremental
  pass from last_commit to HEAD.
- otherwise (history rewritten, force-pushed, gc'd): full reindex from the
  empty tree with force_reindex so stale content is dropped.

last_commit is advanced only after the process exits 0, so a failed run
recomputes the same range on retry.
"""

from __future__ import annotations

import logging
from typing import TypeAlias
from collections.abc import Awaitable, Callable, Mapping, Sequence

from code_index.clients.protocols import GitBackend, ProcessRunner, ProjectDirectory
from code_index.errors import ConfigurationError, ProjectNotFoundError, SubprocessError
from code_index.repositories.connection_store import ConnectionStore
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.config import IndexerSettings
from code_index.schemas.indexer import (
    ConnectionDescriptor,
    GitalyConfig,
    IndexerOptions,
    IndexingRange,
    Operation,
)
from code_index.schemas.platform import Project
from code_index.schemas.records import EMPTY_TREE_SHA, Connection, Repository
from code_index.services.stream_parser import StreamParser

__all__ = [
    'INDEXER_ENV',
    'SUPPORTED_ADAPTERS',
    'HashSink',
    'Indexer',
    'IndexerInvocation',
]

logger = logging.getLogger(__name__)

HashSink: TypeAlias = Callable[[str], Awaitable[None]]

# Selects line-streamed (chunked) output from the indexer
INDEXER_ENV: Mapping[str, str] = {'INDEXER_OUTPUT_MODE': 'chunked'}

SUPPORTED_ADAPTERS = frozenset({'elasticsearch', 'opensearch', 'postgresql'})


class IndexerInvocation:
    """Connection and command wiring shared by Indexer and Deleter."""

    def __init__(self, settings: IndexerSettings, connections: ConnectionStore) -> None:
        self._settings = settings
        self._connections = connections

    @property
    def timeout_seconds(self) -> int:
        return self._settings.timeout_seconds

    async def resolve_connection(self, repository: Repository) -> Connection:
        """Active connection for the repository.

        Raises:
            ConfigurationError: No connection, inactive connection, or unknown adapter.
        """
        if repository.connection_id is None:
            raise ConfigurationError(f'Repository {repository.id} has no connection')
        connection = await self._connections.get(repository.connection_id)
        if connection is None or not connection.active:
            raise ConfigurationError(f'No active connection {repository.connection_id} for repository {repository.id}')
        if connection.adapter not in SUPPORTED_ADAPTERS:
            raise ConfigurationError(f'Unsupported adapter {connection.adapter!r}')
        return connection

    def binary(self) -> str:
        if not self._settings.binary_path:
            raise ConfigurationError('Indexer binary path is not configured')
        return self._settings.binary_path

    def options(self, project_id: int, operation: Operation, **extra: object) -> IndexerOptions:
        return IndexerOptions(
            project_id=project_id,
            partition_name=self._settings.collection_name,
            partition_number=project_id % self._settings.number_of_partitions,
            timeout=f'{self._settings.timeout_seconds}s',
            operation=operation,
            **extra,
        )

    def command(self, binary: str, connection: Connection, options: IndexerOptions) -> Sequence[str]:
        return [
            binary,
            '-adapter',
            connection.adapter,
            '-connection',
            connection_descriptor(connection).model_dump_json(exclude_none=True),
            '-options',
            options.model_dump_json(exclude_none=True),
        ]

    def gitaly_config(self, project: Project) -> GitalyConfig:
        return GitalyConfig(
            storage=project.repository_storage,
            relative_path=project.disk_path,
            project_path=project.path_with_namespace,
            address=self._settings.gitaly_address,
            token=self._settings.gitaly_token,
        )


def connection_descriptor(connection: Connection) -> ConnectionDescriptor:
    """Normalize connection options to the indexer's -connection shape."""
    options = connection.options
    descriptor = ConnectionDescriptor(
        url=list(options.normalized_urls()),
        user=options.user,
        password=options.password,
    )
    if not options.aws:
        return descriptor
    return descriptor.model_copy(
        update={
            'aws': True,
            'aws_region': options.aws_region,
            'aws_access_key': options.aws_access_key,
            'aws_secret_access_key': options.aws_secret_access_key,
        }
    )


class Indexer:
    """Computes the range, streams hashes to the caller, advances last_commit."""

    def __init__(
        self,
        invocation: IndexerInvocation,
        *,
        repositories: RepositoryStore,
        projects: ProjectDirectory,
        git: GitBackend,
        runner: ProcessRunner,
    ) -> None:
        self._invocation = invocation
        self._repositories = repositories
        self._projects = projects
        self._git = git
        self._runner = runner

    async def run(self, repository: Repository, on_hash: HashSink) -> Repository:
        """Index the repository, awaiting on_hash for each emitted content hash.

        Returns:
            The repository with last_commit advanced, as persisted.

        Raises:
            ConfigurationError: Connection or binary not configured (nothing was run).
            ProjectNotFoundError: The project no longer exists.
            SubprocessError: Indexer exited nonzero or timed out.
        """
        connection = await self._invocation.resolve_connection(repository)
        binary = self._invocation.binary()

        project = await self._projects.find_project(repository.project_id)
        if project is None:
            raise ProjectNotFoundError(repository.project_id)

        indexing_range = await self.compute_range(repository, project)
        options = self._invocation.options(
            repository.project_id,
            'index',
            from_sha=indexing_range.from_sha,
            to_sha=indexing_range.to_sha,
            force_reindex=indexing_range.force_reindex,
            gitaly_config=self._invocation.gitaly_config(project),
        )

        parser = StreamParser()

        async def on_line(line: str) -> None:
            content_hash = parser.feed(line)
            if content_hash is not None:
                await on_hash(content_hash)

        logger.info(
            f'[INDEXER] Repository {repository.id} (project {repository.project_id}): '
            f'{indexing_range.from_sha[:8]}..{indexing_range.to_sha[:8]} force_reindex={indexing_range.force_reindex}'
        )
        result = await self._runner.run(
            self._invocation.command(binary, connection, options),
            env=INDEXER_ENV,
            timeout=self._invocation.timeout_seconds,
            on_line=on_line,
        )

        if not result.success:
            stderr = result.stderr.strip()
            logger.error(
                f'[INDEXER] Repository {repository.id} failed '
                f'(exit={result.exit_status}, timed_out={result.timed_out}): {stderr}'
            )
            raise SubprocessError(
                f'Indexer failed for repository {repository.id} with exit status {result.exit_status}: {stderr}',
                output=result.stderr,
                exit_status=result.exit_status,
            )

        logger.info(f'[INDEXER] Repository {repository.id} indexed up to {indexing_range.to_sha[:8]}')
        return await self._repositories.save(repository.with_last_commit(indexing_range.to_sha))

    async def compute_range(self, repository: Repository, project: Project) -> IndexingRange:
        relative_path = project.disk_path
        head = await self._git.head(relative_path) or EMPTY_TREE_SHA
        last_commit = repository.last_commit

        if last_commit is None or last_commit == EMPTY_TREE_SHA:
            return IndexingRange(from_sha=last_commit or EMPTY_TREE_SHA, to_sha=head, force_reindex=False)

        if await self._git.commit_exists(relative_path, last_commit) and await self._git.is_ancestor(
            relative_path, last_commit, head
        ):
            return IndexingRange(from_sha=last_commit, to_sha=head, force_reindex=False)

        logger.warning(
            f'[INDEXER] Repository {repository.id}: last_commit {last_commit[:8]} '
            f'not an ancestor of HEAD {head[:8]}, forcing full reindex'
        )
        return IndexingRange(from_sha=EMPTY_TREE_SHA, to_sha=head, force_reindex=True)
