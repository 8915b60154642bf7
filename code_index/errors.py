"""Error taxonomy for code index synchronization.

Layered the same way throughout the package:

- ConfigurationError: wiring is wrong (no adapter, no binary). Raised before
  any subprocess starts.
- SubprocessError: the external indexer exited nonzero or timed out. Carries
  the captured diagnostic output. Always logged before raising.
- LockContentionError: another job holds the repository lease. Recovered
  locally by rescheduling, never surfaced as a job failure.
- RecordInvalidError: a record failed validation on save. The stored record
  is left untouched.
- InvalidTransitionError: a state transition not permitted from the
  record's current state.
"""

from __future__ import annotations

__all__ = [
    'ArgumentError',
    'CodeIndexError',
    'ConfigurationError',
    'InvalidTransitionError',
    'LockContentionError',
    'ProjectNotFoundError',
    'RecordInvalidError',
    'SubprocessError',
]


class CodeIndexError(Exception):
    """Base class for all code index errors."""


class ConfigurationError(CodeIndexError):
    """Adapter, connection or indexer binary is not configured."""


class SubprocessError(CodeIndexError):
    """External indexer process failed.

    Attributes:
        output: Captured stderr (index) or combined output (delete).
        exit_status: Process exit status, None when killed on timeout.
    """

    def __init__(self, message: str, *, output: str = '', exit_status: int | None = None) -> None:
        super().__init__(message)
        self.output = output
        self.exit_status = exit_status


class LockContentionError(CodeIndexError):
    """Exclusive lease is held by another job."""

    def __init__(self, key: str) -> None:
        super().__init__(f'Lease is busy: {key}')
        self.key = key


class RecordInvalidError(CodeIndexError):
    """Record failed validation and was not saved."""


class InvalidTransitionError(CodeIndexError):
    """State transition not allowed from the current state."""

    def __init__(self, record: str, state: str, transition: str) -> None:
        super().__init__(f'{record} cannot {transition} from state {state!r}')
        self.state = state
        self.transition = transition


class ProjectNotFoundError(CodeIndexError):
    """Project referenced by a repository no longer exists."""

    def __init__(self, project_id: int) -> None:
        super().__init__(f'Project {project_id} not found')
        self.project_id = project_id


class ArgumentError(CodeIndexError, ValueError):
    """Unknown name passed to a registry lookup."""
