"""Tests for Repository state transitions and record validation."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pydantic
import pytest

from code_index.errors import InvalidTransitionError
from code_index.schemas.records import (
    MAX_ERROR_LENGTH,
    ConnectionOptions,
    DeleteReason,
    RepositoryState,
    UrlParts,
)
from tests.code_index import fakes

S = RepositoryState


class TestTransitions:
    """Each transition is only legal from its source states."""

    def test_start_embedding_from_pending(self) -> None:
        repository = fakes.make_repository(state=S.PENDING)

        updated = repository.start_embedding('h2')

        assert updated.state == S.EMBEDDING_INDEXING_IN_PROGRESS
        assert updated.initial_indexing_last_queued_item == 'h2'
        assert updated.updated_at >= repository.updated_at

    @pytest.mark.parametrize('state', [S.READY, S.FAILED, S.EMBEDDING_INDEXING_IN_PROGRESS, S.DELETED])
    def test_start_embedding_rejected_elsewhere(self, state: RepositoryState) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            fakes.make_repository(state=state).start_embedding('h')

        assert exc_info.value.transition == 'start_embedding'

    def test_continue_incremental_moves_cursor_only(self) -> None:
        repository = fakes.make_repository(state=S.READY, incremental_indexing_last_queued_item='old')

        assert repository.continue_incremental('new').incremental_indexing_last_queued_item == 'new'
        assert repository.continue_incremental('new').state == S.READY
        # No hashes this pass: cursor unchanged
        assert repository.continue_incremental(None).incremental_indexing_last_queued_item == 'old'

    def test_continue_incremental_rejected_from_pending(self) -> None:
        with pytest.raises(InvalidTransitionError):
            fakes.make_repository(state=S.PENDING).continue_incremental('h')

    @pytest.mark.parametrize('state', [S.PENDING, S.READY])
    def test_fail_records_error(self, state: RepositoryState) -> None:
        failed = fakes.make_repository(state=state).fail('disk full')

        assert failed.state == S.FAILED
        assert failed.last_error == 'disk full'

    def test_fail_truncates_long_errors(self) -> None:
        failed = fakes.make_repository().fail('x' * (MAX_ERROR_LENGTH + 500))

        assert len(failed.last_error or '') == MAX_ERROR_LENGTH

    @pytest.mark.parametrize('state', [S.EMBEDDING_INDEXING_IN_PROGRESS, S.PENDING_DELETION, S.DELETED])
    def test_fail_rejected_elsewhere(self, state: RepositoryState) -> None:
        with pytest.raises(InvalidTransitionError):
            fakes.make_repository(state=state).fail('boom')

    @pytest.mark.parametrize('state', [S.PENDING, S.READY, S.FAILED, S.EMBEDDING_INDEXING_IN_PROGRESS])
    def test_mark_pending_deletion_keeps_metadata(self, state: RepositoryState) -> None:
        repository = fakes.make_repository(state=state, last_commit='a' * 40, enabled_namespace_id=7)

        marked = repository.mark_pending_deletion(DeleteReason.NO_RECENT_ACTIVITY)

        assert marked.state == S.PENDING_DELETION
        assert marked.delete_reason == DeleteReason.NO_RECENT_ACTIVITY
        assert marked.last_commit == 'a' * 40
        assert marked.enabled_namespace_id == 7

    def test_mark_pending_deletion_rejected_when_deleted(self) -> None:
        with pytest.raises(InvalidTransitionError):
            fakes.make_repository(state=S.DELETED).mark_pending_deletion(DeleteReason.NO_RECENT_ACTIVITY)

    def test_mark_deleted_only_from_pending_deletion(self) -> None:
        assert fakes.make_repository(state=S.PENDING_DELETION).mark_deleted().state == S.DELETED
        with pytest.raises(InvalidTransitionError):
            fakes.make_repository(state=S.READY).mark_deleted()

    @pytest.mark.parametrize('state', [S.FAILED, S.PENDING_DELETION, S.DELETED])
    def test_reset_clears_reason_and_error(self, state: RepositoryState) -> None:
        repository = fakes.make_repository(
            state=state,
            delete_reason=DeleteReason.WITHOUT_ENABLED_NAMESPACE,
            last_error='old failure',
            enabled_namespace_id=None,
        )

        reset = repository.reset(enabled_namespace_id=3)

        assert reset.state == S.PENDING
        assert reset.delete_reason is None
        assert reset.last_error is None
        assert reset.enabled_namespace_id == 3

    def test_reset_rejected_from_ready(self) -> None:
        with pytest.raises(InvalidTransitionError):
            fakes.make_repository(state=S.READY).reset()

    def test_record_error_keeps_state(self) -> None:
        repository = fakes.make_repository(state=S.PENDING_DELETION)

        updated = repository.record_error('deleter crashed')

        assert updated.state == S.PENDING_DELETION
        assert updated.last_error == 'deleter crashed'

    def test_records_are_immutable(self) -> None:
        repository = fakes.make_repository()

        with pytest.raises(pydantic.ValidationError):
            repository.state = S.READY  # type: ignore[misc]


class TestActivity:
    def test_never_queried_counts_from_creation(self) -> None:
        now = datetime.now(UTC)
        old = fakes.make_repository(created_at=now - timedelta(days=120), updated_at=now)
        fresh = fakes.make_repository(created_at=now - timedelta(days=10), updated_at=now)

        assert old.no_recent_activity(now)
        assert not fresh.no_recent_activity(now)

    def test_recent_query_keeps_repository_active(self) -> None:
        now = datetime.now(UTC)
        repository = fakes.make_repository(
            created_at=now - timedelta(days=365),
            updated_at=now,
            last_queried_at=now - timedelta(days=1),
        )

        assert not repository.no_recent_activity(now)


class TestValidation:
    def test_last_commit_must_be_hex_sha(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            fakes.make_repository(last_commit='main')

    def test_sha256_commit_is_accepted(self) -> None:
        assert fakes.make_repository(last_commit='b' * 64).last_commit == 'b' * 64


class TestConnectionOptions:
    def test_structured_urls_are_normalized(self) -> None:
        options = ConnectionOptions(
            url=[
                'http://plain:9200',
                UrlParts(scheme='https', host='es.example.com', port=443, path='search', user='u', password='p'),
                UrlParts(host='local'),
            ]
        )

        assert options.normalized_urls() == [
            'http://plain:9200',
            'https://u:p@es.example.com:443/search',
            'http://local',
        ]
