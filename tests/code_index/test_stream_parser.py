"""Tests for the indexer output line classifier."""

from __future__ import annotations

import pytest

from code_index.services.stream_parser import SECTION_MARKER, StreamParser, parse_lines
from tests.code_index import fakes

H1 = fakes.content_hash(1)
H2 = fakes.content_hash(2)


class TestParseLines:
    """Whole-output classification."""

    def test_emits_only_id_section_hashes_in_order(self) -> None:
        output = [
            SECTION_MARKER,
            'version,build_time',
            'v5.2.0,2025-01-01T00:00:00Z',
            SECTION_MARKER,
            'id',
            H1,
            '{"level":"info","msg":"indexed blob","time":"2025-01-01T00:00:01Z"}',
            H2,
        ]

        assert parse_lines(output) == [H1, H2]

    def test_hashes_before_first_marker_are_dropped(self) -> None:
        assert parse_lines([H1, SECTION_MARKER, 'id', H2]) == [H2]

    def test_hashes_in_version_section_are_dropped(self) -> None:
        assert parse_lines([SECTION_MARKER, 'version,build_time', H1]) == []

    def test_unknown_section_is_skipped_until_next_marker(self) -> None:
        output = [SECTION_MARKER, 'stats', H1, SECTION_MARKER, 'id', H2]

        assert parse_lines(output) == [H2]

    def test_log_line_before_header_keeps_the_section(self) -> None:
        output = [SECTION_MARKER, '{"level":"debug","msg":"opening repository"}', 'id', H1, H2]

        assert parse_lines(output) == [H1, H2]

    @pytest.mark.parametrize(
        'line',
        [
            'A' * 64,
            'a' * 63,
            'a' * 65,
            'g' * 64,
            'a' * 40,
            '',
            '   ',
            'not a hash',
        ],
    )
    def test_malformed_lines_in_id_section_are_dropped(self, line: str) -> None:
        assert parse_lines([SECTION_MARKER, 'id', line]) == []

    def test_surrounding_whitespace_is_tolerated(self) -> None:
        assert parse_lines([f'  {SECTION_MARKER}  ', ' id ', f'{H1}\r']) == [H1]

    def test_empty_output(self) -> None:
        assert parse_lines([]) == []


class TestStreamParser:
    """Incremental feeding."""

    def test_feed_returns_hash_per_line(self) -> None:
        parser = StreamParser()

        assert parser.feed(SECTION_MARKER) is None
        assert parser.feed('id') is None
        assert parser.feed(H1) == H1
        assert parser.feed('') is None
        assert parser.feed(H2) == H2

    def test_records_version_header(self) -> None:
        parser = StreamParser()
        for line in [SECTION_MARKER, 'version,build_time', 'v5.2.0,2025-01-01T00:00:00Z']:
            parser.feed(line)

        assert parser.version == 'v5.2.0'
        assert parser.build_time == '2025-01-01T00:00:00Z'

    def test_id_section_can_be_reopened(self) -> None:
        output = [SECTION_MARKER, 'id', H1, SECTION_MARKER, 'version,build_time', 'v1,t', SECTION_MARKER, 'id', H2]

        assert parse_lines(output) == [H1, H2]
