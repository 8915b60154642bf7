"""Tests for PlatformClient over an in-process httpx transport."""

from __future__ import annotations

import json
from typing import TypeAlias
from collections.abc import Callable

import httpx
import pytest

from code_index.clients._retry import is_retryable_platform_error
from code_index.clients.platform import PlatformClient

BASE_URL = 'http://platform.test/api/internal/code_index'

Handler: TypeAlias = Callable[[httpx.Request], httpx.Response]


def project_json(project_id: int, *, namespace_id: int = 1) -> dict[str, object]:
    return {
        'id': project_id,
        'path_with_namespace': f'group/project-{project_id}',
        'root_namespace_id': namespace_id,
        'repository_storage': 'default',
        'disk_path': f'@hashed/{project_id:02x}/{project_id}',
    }


def make_client(handler: Handler) -> PlatformClient:
    return PlatformClient(BASE_URL, token='token-1', transport=httpx.MockTransport(handler))


class TestProjectDirectory:
    async def test_find_project(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=project_json(42, namespace_id=9))

        project = await make_client(handler).find_project(42)

        assert project is not None
        assert project.root_namespace_id == 9
        assert seen[0].url.path == '/api/internal/code_index/projects/42'
        assert seen[0].headers['Authorization'] == 'Bearer token-1'

    async def test_missing_project_is_none(self) -> None:
        client = make_client(lambda request: httpx.Response(404, json={'message': 'Not found'}))

        assert await client.find_project(42) is None

    async def test_client_error_propagates(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(403, json={'message': 'Forbidden'})

        with pytest.raises(httpx.HTTPStatusError):
            await make_client(handler).find_project(42)

        assert len(calls) == 1

    async def test_projects_in_namespace_follows_pages(self) -> None:
        pages = {None: [1, 2], '2': [3, 4], '4': [5]}
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            ids = pages[request.url.params.get('after')]
            return httpx.Response(200, json={'projects': [project_json(i) for i in ids]})

        client = make_client(handler)
        client.MAX_IDS_PER_REQUEST = 2

        projects = await client.projects_in_namespace(7)

        assert [p.id for p in projects] == [1, 2, 3, 4, 5]
        assert {r.url.params['namespace_id'] for r in requests} == {'7'}

    async def test_root_namespaces(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params['after'] == '10'
            assert request.url.params['limit'] == '2'
            return httpx.Response(
                200,
                json={'namespaces': [{'id': 11, 'full_path': 'alpha'}, {'id': 12, 'full_path': 'beta'}]},
            )

        namespaces = await make_client(handler).root_namespaces(after=10, limit=2)

        assert [n.full_path for n in namespaces] == ['alpha', 'beta']


class TestEligibilityOracle:
    async def test_eligible_namespaces_batches_ids(self) -> None:
        bodies: list[list[int]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            ids = json.loads(request.content)['namespace_ids']
            bodies.append(ids)
            return httpx.Response(200, json={'eligible_namespace_ids': [i for i in ids if i % 2 == 0]})

        client = make_client(handler)
        client.MAX_IDS_PER_REQUEST = 3

        assert await client.eligible_namespaces([1, 2, 3, 4, 5]) == {2, 4}
        assert bodies == [[1, 2, 3], [4, 5]]

    async def test_duo_disabled_projects(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith('/projects/duo_features_disabled')
            return httpx.Response(200, json={'disabled_project_ids': [8]})

        assert await make_client(handler).duo_disabled_projects([7, 8]) == {8}

    async def test_no_ids_makes_no_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError('unexpected request')

        assert await make_client(handler).eligible_namespaces([]) == set()

    async def test_instance_eligible(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={'eligible': True}))

        assert await client.instance_eligible()


class TestRetry:
    async def test_transient_status_is_retried(self) -> None:
        responses = [httpx.Response(503), httpx.Response(200, json={'eligible': False})]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        assert not await make_client(handler).instance_eligible()
        assert responses == []

    async def test_transport_error_is_retried(self) -> None:
        attempts: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError('connection refused', request=request)
            return httpx.Response(200, json=project_json(3))

        project = await make_client(handler).find_project(3)

        assert project is not None
        assert len(attempts) == 2


def status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request('GET', f'{BASE_URL}/instance/ai_eligibility')
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f'HTTP {status_code}', request=request, response=response)


class TestRetryPredicate:
    @pytest.mark.parametrize(
        ('error', 'retryable'),
        [
            pytest.param(httpx.ReadTimeout('slow'), True, id='timeout'),
            pytest.param(httpx.ConnectError('refused'), True, id='network'),
            pytest.param(httpx.RemoteProtocolError('garbled'), True, id='remote-protocol'),
            pytest.param(status_error(429), True, id='rate-limited'),
            pytest.param(status_error(502), True, id='bad-gateway'),
            pytest.param(status_error(404), False, id='not-found'),
            pytest.param(httpx.UnsupportedProtocol('ftp'), False, id='bad-url'),
            pytest.param(ValueError('bug'), False, id='other'),
        ],
    )
    def test_classification(self, error: BaseException, retryable: bool) -> None:
        assert is_retryable_platform_error(error) is retryable
