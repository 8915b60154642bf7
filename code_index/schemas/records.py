"""Persisted record schemas: Repository, EnabledNamespace, Connection.

Records are frozen. State transitions are methods that match on the current
state and return a new record; the store decides when to persist it.

Repository lifecycle:

    pending ──initial pass──▶ embedding_indexing_in_progress ──(downstream)──▶ ready
       │                                                                       │
       └────────────── failed ◀──────── unhandled error ──────────────────────┘
    any (not deleted) ──sweep──▶ pending_deletion ──Deleter──▶ deleted ──reset──▶ pending
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Annotated, Literal, TypeAlias

import pydantic

from code_index.errors import InvalidTransitionError
from code_index.schemas.base import JsonDatetime, StrictModel

__all__ = [
    'EMPTY_TREE_SHA',
    'LAST_ACTIVITY_CUTOFF',
    'MAX_ERROR_LENGTH',
    'AdapterName',
    'Connection',
    'ConnectionOptions',
    'DeleteReason',
    'EnabledNamespace',
    'EnabledNamespaceState',
    'Repository',
    'RepositoryState',
    'UrlParts',
]

# git's well-known hash of an empty tree
EMPTY_TREE_SHA = '4b825dc642cb6eb9a060e54bf8d69288fbee4904'

# Repositories not queried for this long are scheduled for deletion
LAST_ACTIVITY_CUTOFF = timedelta(days=90)

# last_error is stored on the record; keep it bounded
MAX_ERROR_LENGTH = 2000

CommitSha = Annotated[str, pydantic.Field(pattern=r'^[0-9a-f]{40}([0-9a-f]{24})?$')]

AdapterName: TypeAlias = Literal['elasticsearch', 'opensearch', 'postgresql']


class RepositoryState(StrEnum):
    PENDING = 'pending'
    EMBEDDING_INDEXING_IN_PROGRESS = 'embedding_indexing_in_progress'
    READY = 'ready'
    FAILED = 'failed'
    PENDING_DELETION = 'pending_deletion'
    DELETED = 'deleted'


DELETE_STATES = frozenset({RepositoryState.PENDING_DELETION, RepositoryState.DELETED})


class DeleteReason(StrEnum):
    WITHOUT_ENABLED_NAMESPACE = 'without_enabled_namespace'
    DUO_FEATURES_DISABLED = 'duo_features_disabled'
    NO_RECENT_ACTIVITY = 'no_recent_activity'


class EnabledNamespaceState(StrEnum):
    PENDING = 'pending'
    READY = 'ready'


class Repository(StrictModel):
    """One project's indexed repository on one connection."""

    id: int
    project_id: int
    connection_id: int | None
    enabled_namespace_id: int | None = None
    state: RepositoryState = RepositoryState.PENDING
    last_commit: CommitSha | None = None

    # Cursors: last content hash queued for embedding
    initial_indexing_last_queued_item: str | None = None
    incremental_indexing_last_queued_item: str | None = None

    last_error: Annotated[str, pydantic.Field(max_length=MAX_ERROR_LENGTH)] | None = None
    delete_reason: DeleteReason | None = None
    last_queried_at: JsonDatetime | None = None
    created_at: JsonDatetime
    updated_at: JsonDatetime

    @property
    def in_delete_state(self) -> bool:
        return self.state in DELETE_STATES

    def no_recent_activity(self, now: datetime, cutoff: timedelta = LAST_ACTIVITY_CUTOFF) -> bool:
        """Not queried since the cutoff; never-queried rows count from creation."""
        reference = self.last_queried_at or self.created_at
        return reference < now - cutoff

    # --- Transitions ---

    def start_embedding(self, last_queued_item: str | None) -> Repository:
        match self.state:
            case RepositoryState.PENDING:
                return self._update(
                    state=RepositoryState.EMBEDDING_INDEXING_IN_PROGRESS,
                    initial_indexing_last_queued_item=last_queued_item,
                )
            case _:
                raise self._invalid('start_embedding')

    def continue_incremental(self, last_queued_item: str | None) -> Repository:
        match self.state:
            case RepositoryState.READY:
                if last_queued_item is None:
                    return self._update()
                return self._update(incremental_indexing_last_queued_item=last_queued_item)
            case _:
                raise self._invalid('continue_incremental')

    def mark_ready(self) -> Repository:
        match self.state:
            case RepositoryState.EMBEDDING_INDEXING_IN_PROGRESS | RepositoryState.READY:
                return self._update(state=RepositoryState.READY)
            case _:
                raise self._invalid('mark_ready')

    def fail(self, message: str) -> Repository:
        match self.state:
            case RepositoryState.PENDING | RepositoryState.READY:
                return self._update(state=RepositoryState.FAILED, last_error=message[:MAX_ERROR_LENGTH])
            case _:
                raise self._invalid('fail')

    def mark_pending_deletion(self, reason: DeleteReason) -> Repository:
        match self.state:
            case RepositoryState.DELETED:
                raise self._invalid('mark_pending_deletion')
            case _:
                return self._update(state=RepositoryState.PENDING_DELETION, delete_reason=reason)

    def mark_deleted(self) -> Repository:
        match self.state:
            case RepositoryState.PENDING_DELETION:
                return self._update(state=RepositoryState.DELETED)
            case _:
                raise self._invalid('mark_deleted')

    def reset(self, *, enabled_namespace_id: int | None = None) -> Repository:
        """Re-enable: back to pending with delete_reason and last_error cleared."""
        match self.state:
            case RepositoryState.FAILED | RepositoryState.PENDING_DELETION | RepositoryState.DELETED:
                return self._update(
                    state=RepositoryState.PENDING,
                    delete_reason=None,
                    last_error=None,
                    enabled_namespace_id=enabled_namespace_id
                    if enabled_namespace_id is not None
                    else self.enabled_namespace_id,
                )
            case _:
                raise self._invalid('reset')

    def record_error(self, message: str) -> Repository:
        """Set last_error without changing state."""
        return self._update(last_error=message[:MAX_ERROR_LENGTH])

    def with_last_commit(self, sha: str) -> Repository:
        return self._update(last_commit=sha)

    def touch_queried(self, now: datetime) -> Repository:
        return self._update(last_queried_at=now)

    def _update(self, **changes: object) -> Repository:
        return self.model_copy(update={**changes, 'updated_at': datetime.now(UTC)})

    def _invalid(self, transition: str) -> InvalidTransitionError:
        return InvalidTransitionError(f'Repository {self.id}', self.state.value, transition)


class EnabledNamespace(StrictModel):
    """Top-level namespace entitled to indexing on one connection."""

    id: int
    namespace_id: int
    connection_id: int
    state: EnabledNamespaceState = EnabledNamespaceState.PENDING
    created_at: JsonDatetime
    updated_at: JsonDatetime

    def mark_ready(self) -> EnabledNamespace:
        return self.model_copy(update={'state': EnabledNamespaceState.READY, 'updated_at': datetime.now(UTC)})


class UrlParts(StrictModel):
    """Structured URL form accepted in connection options."""

    scheme: str = 'http'
    host: str
    port: int | None = None
    path: str | None = None
    user: str | None = None
    password: str | None = None

    def to_url(self) -> str:
        auth = ''
        if self.user:
            auth = self.user if self.password is None else f'{self.user}:{self.password}'
            auth += '@'
        port = f':{self.port}' if self.port is not None else ''
        path = self.path or ''
        if path and not path.startswith('/'):
            path = '/' + path
        return f'{self.scheme}://{auth}{self.host}{port}{path}'


class ConnectionOptions(StrictModel):
    """Backend cluster options. URLs may be plain strings or structured parts."""

    url: Sequence[str | UrlParts] = ()
    user: str | None = None
    password: str | None = None
    aws: bool = False
    aws_region: str | None = None
    aws_access_key: str | None = None
    aws_secret_access_key: str | None = None

    def normalized_urls(self) -> Sequence[str]:
        return [u if isinstance(u, str) else u.to_url() for u in self.url]


class Connection(StrictModel):
    """Vector search backend connection (adapter + cluster)."""

    id: int
    name: str
    adapter: AdapterName
    options: ConnectionOptions = ConnectionOptions()
    active: bool = False
    created_at: JsonDatetime
