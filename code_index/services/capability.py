"""Global indexing kill switch."""

from __future__ import annotations

__all__ = [
    'IndexingCapability',
]


class IndexingCapability:
    """Answers whether indexing work may run at all.

    Entry points (workers, sweeps) query it once per invocation and no-op
    when it is off.
    """

    def __init__(self, enabled: bool) -> None:
        self._enabled = enabled

    def indexing_enabled(self) -> bool:
        return self._enabled
