"""Platform API client.

Thin wrapper around the platform's internal code-index API: project lookup,
namespace paging and eligibility checks. Handles API calls only; eligibility
rules are computed by the platform and returned as id sets.

Satisfies both ProjectDirectory and EligibilityOracle.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import httpx
import tenacity

from code_index.clients import _retry
from code_index.schemas.platform import (
    DuoDisabledRequest,
    DuoDisabledResponse,
    EligibilityRequest,
    EligibilityResponse,
    InstanceEligibility,
    NamespacePage,
    Project,
    ProjectPage,
    RootNamespace,
)

__all__ = [
    'PlatformClient',
]


class PlatformClient:
    """Low-level platform API client over a pooled httpx.AsyncClient.

    Transient errors (timeouts, network, 429/5xx) retry with backoff and
    count toward the circuit breaker. 404 on project lookup means the
    project is gone and is not an error.
    """

    DEFAULT_MAX_CONNECTIONS = 20
    # Upper bound on ids per eligibility request
    MAX_IDS_PER_REQUEST = 500

    def __init__(
        self,
        base_url: str,
        *,
        token: str,
        timeout_seconds: float = 30.0,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                'Authorization': f'Bearer {token}',
                'Content-Type': 'application/json',
            },
            timeout=timeout_seconds,
            limits=httpx.Limits(max_connections=max_connections),
            transport=transport,
        )

    # --- ProjectDirectory ---

    async def find_project(self, project_id: int) -> Project | None:
        response = await self._get(f'/projects/{project_id}', allow_not_found=True)
        if response is None:
            return None
        return Project.model_validate_json(response.content)

    async def projects_in_namespace(self, namespace_id: int) -> Sequence[Project]:
        """All projects under a root namespace, following id-cursor pages."""
        projects: list[Project] = []
        after: int | None = None
        while True:
            params: dict[str, Any] = {'namespace_id': namespace_id, 'limit': self.MAX_IDS_PER_REQUEST}
            if after is not None:
                params['after'] = after
            response = await self._get('/projects', params=params)
            assert response is not None
            page = ProjectPage.model_validate_json(response.content).projects
            projects.extend(page)
            if len(page) < self.MAX_IDS_PER_REQUEST:
                return projects
            after = page[-1].id

    async def root_namespaces(self, *, after: int | None, limit: int) -> Sequence[RootNamespace]:
        params: dict[str, Any] = {'limit': limit}
        if after is not None:
            params['after'] = after
        response = await self._get('/namespaces/root', params=params)
        assert response is not None
        return NamespacePage.model_validate_json(response.content).namespaces

    # --- EligibilityOracle ---

    async def eligible_namespaces(self, namespace_ids: Sequence[int]) -> set[int]:
        eligible: set[int] = set()
        for batch in _batched(namespace_ids, self.MAX_IDS_PER_REQUEST):
            body = EligibilityRequest(namespace_ids=batch).model_dump(mode='json')
            response = await self._post('/namespaces/eligibility', body)
            eligible.update(EligibilityResponse.model_validate_json(response.content).eligible_namespace_ids)
        return eligible

    async def duo_disabled_projects(self, project_ids: Sequence[int]) -> set[int]:
        disabled: set[int] = set()
        for batch in _batched(project_ids, self.MAX_IDS_PER_REQUEST):
            body = DuoDisabledRequest(project_ids=batch).model_dump(mode='json')
            response = await self._post('/projects/duo_features_disabled', body)
            disabled.update(DuoDisabledResponse.model_validate_json(response.content).disabled_project_ids)
        return disabled

    async def instance_eligible(self) -> bool:
        response = await self._get('/instance/ai_eligibility')
        assert response is not None
        return InstanceEligibility.model_validate_json(response.content).eligible

    async def close(self) -> None:
        await self._client.aclose()

    # --- Private ---

    @_retry.platform_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_platform_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_platform_retry,
        reraise=True,
    )
    async def _get(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> httpx.Response | None:
        response = await self._client.get(path, params=params)
        if allow_not_found and response.status_code == 404:
            return None
        response.raise_for_status()
        return response

    @_retry.platform_breaker
    @tenacity.retry(
        retry=tenacity.retry_if_exception(_retry.is_retryable_platform_error),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=5),
        before_sleep=_retry.log_platform_retry,
        reraise=True,
    )
    async def _post(self, path: str, body: Mapping[str, Any]) -> httpx.Response:
        response = await self._client.post(path, json=body)
        response.raise_for_status()
        return response


def _batched(ids: Sequence[int], size: int) -> Sequence[Sequence[int]]:
    return [ids[i : i + size] for i in range(0, len(ids), size)]
