"""External indexer invocation payloads.

The indexer binary is called as:

    <binary> -adapter <name> -connection <json> -options <json>

with INDEXER_OUTPUT_MODE=chunked in its environment. These models are the
JSON bodies of -connection and -options.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal, TypeAlias

from code_index.schemas.base import StrictModel

__all__ = [
    'ConnectionDescriptor',
    'GitalyConfig',
    'IndexerOptions',
    'IndexingRange',
    'Operation',
    'ProcessResult',
]

Operation: TypeAlias = Literal['index', 'delete']


class ConnectionDescriptor(StrictModel):
    """Backend cluster as the indexer sees it. URLs already normalized to strings."""

    url: Sequence[str]
    user: str | None = None
    password: str | None = None
    aws: bool | None = None
    aws_region: str | None = None
    aws_access_key: str | None = None
    aws_secret_access_key: str | None = None


class GitalyConfig(StrictModel):
    """Git storage access for the indexer."""

    storage: str
    relative_path: str
    project_path: str
    address: str
    token: str


class IndexingRange(StrictModel):
    """Commit range for one indexing pass."""

    from_sha: str
    to_sha: str
    force_reindex: bool


class IndexerOptions(StrictModel):
    project_id: int
    partition_name: str
    partition_number: int
    timeout: str
    operation: Operation

    # index only
    from_sha: str | None = None
    to_sha: str | None = None
    force_reindex: bool | None = None
    gitaly_config: GitalyConfig | None = None


class ProcessResult(StrictModel):
    """Outcome of one external process run."""

    exit_status: int | None
    stderr: str = ''
    # stdout+stderr interleaved, only when run with merged output
    output: str = ''
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.exit_status == 0 and not self.timed_out
