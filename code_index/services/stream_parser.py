"""Line classifier for the indexer's chunked stdout.

The indexer writes sections, each introduced by a marker line followed by a
header line:

    --section-start--
    version,build_time
    v5.2.0,2025-01-01T00:00:00Z
    --section-start--
    id
    <64 hex chars>
    <64 hex chars>

Only hashes inside an `id` section are emitted. Everything else (blank or
malformed lines, JSON log lines, unknown sections, text before the first
marker) is dropped. The hash pattern is tied to the indexer's hash
algorithm and must change with it.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from enum import StrEnum

__all__ = [
    'HASH_PATTERN',
    'SECTION_MARKER',
    'StreamParser',
    'parse_lines',
]

logger = logging.getLogger(__name__)

SECTION_MARKER = '--section-start--'
HASH_PATTERN = re.compile(r'^[0-9a-f]{64}$')


class _Section(StrEnum):
    NONE = 'none'
    AWAITING_HEADER = 'awaiting_header'
    VERSION = 'version,build_time'
    ID = 'id'
    UNKNOWN = 'unknown'


class StreamParser:
    """Stateful per-run classifier. Feed lines in order; get hashes back."""

    def __init__(self) -> None:
        self._section = _Section.NONE
        self.version: str | None = None
        self.build_time: str | None = None

    def feed(self, line: str) -> str | None:
        """Classify one line. Returns the content hash if the line is one."""
        text = line.strip()
        if text == SECTION_MARKER:
            self._section = _Section.AWAITING_HEADER
            return None
        if not text:
            return None

        match self._section:
            case _Section.AWAITING_HEADER:
                if text == _Section.VERSION.value:
                    self._section = _Section.VERSION
                elif text == _Section.ID.value:
                    self._section = _Section.ID
                elif text.startswith('{'):
                    # JSON log line; the header is still to come
                    return None
                else:
                    logger.debug(f'[INDEXER] Skipping unknown section {text[:80]!r}')
                    self._section = _Section.UNKNOWN
            case _Section.VERSION:
                version, sep, build_time = text.partition(',')
                if sep and self.version is None:
                    self.version, self.build_time = version, build_time
                    logger.debug(f'[INDEXER] Indexer version {version} built {build_time}')
            case _Section.ID:
                if HASH_PATTERN.match(text):
                    return text
        return None


def parse_lines(lines: Iterable[str]) -> Sequence[str]:
    """All hashes in a complete output, in order."""
    parser = StreamParser()
    return [h for h in map(parser.feed, lines) if h is not None]
