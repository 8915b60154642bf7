"""Tests for Indexer range selection, invocation and output streaming."""

from __future__ import annotations

import json

import pytest

from code_index.errors import ConfigurationError, ProjectNotFoundError, SubprocessError
from code_index.repositories.connection_store import ConnectionStore
from code_index.repositories.repository_store import RepositoryStore
from code_index.schemas.config import IndexerSettings
from code_index.schemas.platform import Project
from code_index.schemas.records import EMPTY_TREE_SHA, Connection, ConnectionOptions, Repository, UrlParts
from code_index.services.indexer import INDEXER_ENV, Indexer, IndexerInvocation, connection_descriptor
from code_index.services.stream_parser import SECTION_MARKER
from tests.code_index import fakes

PROJECT_ID = 1234
HEAD = 'c' * 40
OLD = 'a' * 40
H1 = fakes.content_hash(1)
H2 = fakes.content_hash(2)


def chunked_output(*hashes: str) -> list[str]:
    return [SECTION_MARKER, 'version,build_time', 'v5.2.0,2025-01-01T00:00:00Z', SECTION_MARKER, 'id', *hashes]


def build_indexer(
    settings: IndexerSettings,
    connections: ConnectionStore,
    repositories: RepositoryStore,
    *,
    runner: fakes.FakeProcessRunner,
    git: fakes.FakeGitBackend | None = None,
    projects: fakes.FakeProjectDirectory | None = None,
) -> Indexer:
    return Indexer(
        IndexerInvocation(settings, connections),
        repositories=repositories,
        projects=projects or fakes.FakeProjectDirectory([fakes.make_project(PROJECT_ID)]),
        git=git or fakes.FakeGitBackend(head=HEAD),
        runner=runner,
    )


@pytest.fixture
async def repository(repositories: RepositoryStore, connection: Connection) -> Repository:
    return await repositories.create(project_id=PROJECT_ID, connection_id=connection.id)


class TestComputeRange:
    """Incremental when last_commit is a reachable ancestor, full reindex otherwise."""

    @pytest.fixture
    def project(self) -> Project:
        return fakes.make_project(PROJECT_ID)

    async def test_first_pass_starts_from_empty_tree(
        self, indexer_settings, connections, repositories, repository, project
    ) -> None:
        indexer = build_indexer(indexer_settings, connections, repositories, runner=fakes.FakeProcessRunner())

        result = await indexer.compute_range(repository, project)

        assert (result.from_sha, result.to_sha, result.force_reindex) == (EMPTY_TREE_SHA, HEAD, False)

    async def test_empty_tree_last_commit_is_not_forced(
        self, indexer_settings, connections, repositories, repository, project
    ) -> None:
        indexer = build_indexer(indexer_settings, connections, repositories, runner=fakes.FakeProcessRunner())

        result = await indexer.compute_range(repository.with_last_commit(EMPTY_TREE_SHA), project)

        assert (result.from_sha, result.force_reindex) == (EMPTY_TREE_SHA, False)

    async def test_reachable_ancestor_is_incremental(
        self, indexer_settings, connections, repositories, repository, project
    ) -> None:
        git = fakes.FakeGitBackend(head=HEAD, commits={OLD, HEAD}, ancestors={(OLD, HEAD)})
        indexer = build_indexer(indexer_settings, connections, repositories, runner=fakes.FakeProcessRunner(), git=git)

        result = await indexer.compute_range(repository.with_last_commit(OLD), project)

        assert (result.from_sha, result.to_sha, result.force_reindex) == (OLD, HEAD, False)

    @pytest.mark.parametrize(
        ('commits', 'ancestors'),
        [
            pytest.param({HEAD}, set(), id='commit-gone'),
            pytest.param({OLD, HEAD}, set(), id='force-pushed'),
        ],
    )
    async def test_unreachable_last_commit_forces_full_reindex(
        self, indexer_settings, connections, repositories, repository, project, commits, ancestors
    ) -> None:
        git = fakes.FakeGitBackend(head=HEAD, commits=commits, ancestors=ancestors)
        indexer = build_indexer(indexer_settings, connections, repositories, runner=fakes.FakeProcessRunner(), git=git)

        result = await indexer.compute_range(repository.with_last_commit(OLD), project)

        assert (result.from_sha, result.to_sha, result.force_reindex) == (EMPTY_TREE_SHA, HEAD, True)

    async def test_empty_repository_targets_empty_tree(
        self, indexer_settings, connections, repositories, repository, project
    ) -> None:
        git = fakes.FakeGitBackend(head=None)
        indexer = build_indexer(indexer_settings, connections, repositories, runner=fakes.FakeProcessRunner(), git=git)

        result = await indexer.compute_range(repository, project)

        assert result.to_sha == EMPTY_TREE_SHA


class TestRun:
    async def test_streams_hashes_and_advances_last_commit(
        self, indexer_settings, connections, repositories, repository
    ) -> None:
        runner = fakes.FakeProcessRunner(chunked_output(H1, H2))
        indexer = build_indexer(indexer_settings, connections, repositories, runner=runner)
        received: list[str] = []

        async def on_hash(content_hash: str) -> None:
            received.append(content_hash)

        updated = await indexer.run(repository, on_hash)

        assert received == [H1, H2]
        assert updated.last_commit == HEAD
        stored = await repositories.get(repository.id)
        assert stored is not None
        assert stored.last_commit == HEAD

    async def test_each_hash_is_handled_before_next_line_is_read(
        self, indexer_settings, connections, repositories, repository
    ) -> None:
        runner = fakes.FakeProcessRunner(chunked_output(H1, H2))
        indexer = build_indexer(indexer_settings, connections, repositories, runner=runner)
        lines_read_at_delivery: list[int] = []

        async def on_hash(content_hash: str) -> None:
            lines_read_at_delivery.append(len(runner.emitted))

        await indexer.run(repository, on_hash)

        # H1 is line 6 and H2 line 7: nothing further was read while each was handled
        assert lines_read_at_delivery == [6, 7]

    async def test_invocation_shape(
        self, indexer_settings, connections, repositories, repository
    ) -> None:
        runner = fakes.FakeProcessRunner()
        indexer = build_indexer(indexer_settings, connections, repositories, runner=runner)

        await indexer.run(repository, ignore_hash)

        (call,) = runner.calls
        assert call.env == dict(INDEXER_ENV)
        assert call.timeout == indexer_settings.timeout_seconds
        assert not call.merge_stderr

        binary, flag_adapter, adapter, flag_connection, connection_json, flag_options, options_json = call.command
        assert binary == indexer_settings.binary_path
        assert (flag_adapter, adapter) == ('-adapter', 'elasticsearch')
        assert flag_connection == '-connection'
        assert flag_options == '-options'

        assert json.loads(connection_json) == {
            'url': ['http://es.internal:9200'],
            'user': 'indexer',
            'password': 'secret',
        }
        options = json.loads(options_json)
        assert options['project_id'] == PROJECT_ID
        assert options['operation'] == 'index'
        assert options['partition_name'] == indexer_settings.collection_name
        assert options['partition_number'] == PROJECT_ID % indexer_settings.number_of_partitions
        assert options['timeout'] == f'{indexer_settings.timeout_seconds}s'
        assert (options['from_sha'], options['to_sha'], options['force_reindex']) == (EMPTY_TREE_SHA, HEAD, False)
        assert options['gitaly_config']['relative_path'] == fakes.make_project(PROJECT_ID).disk_path

    async def test_failure_raises_with_stderr_and_keeps_last_commit(
        self, indexer_settings, connections, repositories, repository
    ) -> None:
        runner = fakes.FakeProcessRunner(chunked_output(H1), exit_status=1, stderr='disk full\n')
        indexer = build_indexer(indexer_settings, connections, repositories, runner=runner)

        with pytest.raises(SubprocessError) as exc_info:
            await indexer.run(repository, ignore_hash)

        assert 'disk full' in str(exc_info.value)
        assert exc_info.value.exit_status == 1
        stored = await repositories.get(repository.id)
        assert stored is not None
        assert stored.last_commit is None

    async def test_timeout_is_a_failure(self, indexer_settings, connections, repositories, repository) -> None:
        runner = fakes.FakeProcessRunner(exit_status=None, stderr='Timed out after 60s', timed_out=True)
        indexer = build_indexer(indexer_settings, connections, repositories, runner=runner)

        with pytest.raises(SubprocessError) as exc_info:
            await indexer.run(repository, ignore_hash)

        assert exc_info.value.exit_status is None

    async def test_missing_binary_runs_nothing(self, connections, repositories, repository) -> None:
        runner = fakes.FakeProcessRunner()
        indexer = build_indexer(IndexerSettings(binary_path=None), connections, repositories, runner=runner)

        with pytest.raises(ConfigurationError):
            await indexer.run(repository, ignore_hash)

        assert runner.calls == []

    async def test_inactive_connection_runs_nothing(
        self, indexer_settings, connections, repositories, repository
    ) -> None:
        other = await connections.create(name='standby', adapter='opensearch', options=ConnectionOptions())
        await connections.activate(other.id)
        runner = fakes.FakeProcessRunner()
        indexer = build_indexer(indexer_settings, connections, repositories, runner=runner)

        with pytest.raises(ConfigurationError):
            await indexer.run(repository, ignore_hash)

        assert runner.calls == []

    async def test_missing_project(self, indexer_settings, connections, repositories, repository) -> None:
        indexer = build_indexer(
            indexer_settings,
            connections,
            repositories,
            runner=fakes.FakeProcessRunner(),
            projects=fakes.FakeProjectDirectory(),
        )

        with pytest.raises(ProjectNotFoundError):
            await indexer.run(repository, ignore_hash)


class TestConnectionDescriptor:
    def test_aws_fields_only_when_enabled(self) -> None:
        connection = Connection(
            id=1,
            name='aws',
            adapter='opensearch',
            options=ConnectionOptions(
                url=[UrlParts(scheme='https', host='search.aws', port=443)],
                aws=True,
                aws_region='eu-west-1',
                aws_access_key='AKIA',
                aws_secret_access_key='shh',
            ),
            created_at=fakes.make_repository().created_at,
        )

        descriptor = json.loads(connection_descriptor(connection).model_dump_json(exclude_none=True))

        assert descriptor == {
            'url': ['https://search.aws:443'],
            'aws': True,
            'aws_region': 'eu-west-1',
            'aws_access_key': 'AKIA',
            'aws_secret_access_key': 'shh',
        }


async def ignore_hash(content_hash: str) -> None:
    pass
