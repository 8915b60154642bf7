"""Sweep events.

Each sweep event carries an optional cursor. A sweep that stops at its
action limit republishes the same event type with the cursor set to the last
row it examined; that payload is the only continuation state.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Annotated, Literal, TypeAlias

from pydantic import Field, TypeAdapter

from code_index.schemas.base import StrictModel

__all__ = [
    'CreateEnabledNamespaceEvent',
    'Event',
    'EventType',
    'Job',
    'MarkRepositoryAsPendingDeletionEvent',
    'ProcessInvalidEnabledNamespaceEvent',
    'ProcessPendingEnabledNamespaceEvent',
    'SweepData',
    'event_adapter',
]

EventType: TypeAlias = Literal[
    'create_enabled_namespace',
    'process_invalid_enabled_namespace',
    'mark_repository_as_pending_deletion',
    'process_pending_enabled_namespace',
]


class SweepData(StrictModel):
    last_processed_id: int | None = None


class CreateEnabledNamespaceEvent(StrictModel):
    type: Literal['create_enabled_namespace'] = 'create_enabled_namespace'
    data: SweepData = SweepData()


class ProcessInvalidEnabledNamespaceEvent(StrictModel):
    type: Literal['process_invalid_enabled_namespace'] = 'process_invalid_enabled_namespace'
    data: SweepData = SweepData()


class MarkRepositoryAsPendingDeletionEvent(StrictModel):
    type: Literal['mark_repository_as_pending_deletion'] = 'mark_repository_as_pending_deletion'
    data: SweepData = SweepData()


class ProcessPendingEnabledNamespaceEvent(StrictModel):
    type: Literal['process_pending_enabled_namespace'] = 'process_pending_enabled_namespace'
    data: SweepData = SweepData()


Event: TypeAlias = (
    CreateEnabledNamespaceEvent
    | ProcessInvalidEnabledNamespaceEvent
    | MarkRepositoryAsPendingDeletionEvent
    | ProcessPendingEnabledNamespaceEvent
)

# Deserializes any event from the bus by its type tag
event_adapter: TypeAdapter[
    CreateEnabledNamespaceEvent
    | ProcessInvalidEnabledNamespaceEvent
    | MarkRepositoryAsPendingDeletionEvent
    | ProcessPendingEnabledNamespaceEvent
] = TypeAdapter(
    Annotated[
        CreateEnabledNamespaceEvent
        | ProcessInvalidEnabledNamespaceEvent
        | MarkRepositoryAsPendingDeletionEvent
        | ProcessPendingEnabledNamespaceEvent,
        Field(discriminator='type'),
    ]
)


class Job(StrictModel):
    """Scheduled job as stored in the job queue."""

    job: str
    args: Sequence[int]
    jid: str
