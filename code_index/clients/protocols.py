"""Ports for external collaborators.

Services depend on these protocols, never on concrete clients, so tests can
substitute in-memory fakes and deployments can swap transports.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Protocol, TypeAlias

from code_index.schemas.events import Event
from code_index.schemas.indexer import ProcessResult
from code_index.schemas.platform import Project, RootNamespace

__all__ = [
    'EligibilityOracle',
    'EventPublisher',
    'GitBackend',
    'JobScheduler',
    'LineSink',
    'ProcessRunner',
    'ProjectDirectory',
    'RefTracker',
]

LineSink: TypeAlias = Callable[[str], Awaitable[None]]


class ProcessRunner(Protocol):
    """Runs an external binary, streaming stdout lines as they arrive."""

    async def run(
        self,
        command: Sequence[str],
        *,
        env: Mapping[str, str],
        timeout: float,
        on_line: LineSink | None = None,
        merge_stderr: bool = False,
    ) -> ProcessResult:
        """Run command to completion or timeout.

        Args:
            command: argv, binary first.
            env: Variables merged over the current process environment.
            timeout: Seconds before the process is killed.
            on_line: Awaited once per stdout line before the next line is read.
            merge_stderr: Capture stderr interleaved with stdout into `output`.
        """
        ...


class GitBackend(Protocol):
    """Commit-ancestry oracle for one storage."""

    async def head(self, relative_path: str) -> str | None:
        """HEAD commit sha, None for an empty repository."""
        ...

    async def commit_exists(self, relative_path: str, sha: str) -> bool: ...

    async def is_ancestor(self, relative_path: str, ancestor: str, descendant: str) -> bool: ...


class RefTracker(Protocol):
    """Downstream embedding queue, routed by project id."""

    async def track(self, project_id: int, refs: Sequence[str]) -> None: ...


class ProjectDirectory(Protocol):
    async def find_project(self, project_id: int) -> Project | None: ...

    async def projects_in_namespace(self, namespace_id: int) -> Sequence[Project]: ...

    async def root_namespaces(self, *, after: int | None, limit: int) -> Sequence[RootNamespace]:
        """Root namespaces with id > after, ascending by id."""
        ...


class EligibilityOracle(Protocol):
    """Billing-derived eligibility, consumed as booleans."""

    async def eligible_namespaces(self, namespace_ids: Sequence[int]) -> set[int]: ...

    async def duo_disabled_projects(self, project_ids: Sequence[int]) -> set[int]: ...

    async def instance_eligible(self) -> bool: ...


class EventPublisher(Protocol):
    async def publish(self, event: Event) -> None: ...


class JobScheduler(Protocol):
    async def perform_async(self, job: str, *args: int) -> str: ...

    async def perform_in(self, delay_seconds: float, job: str, *args: int) -> str: ...
