"""Tests for AsyncProcessRunner against real child processes."""

from __future__ import annotations

import asyncio

import pytest

from code_index.clients.process import AsyncProcessRunner


def sh(script: str) -> list[str]:
    return ['/bin/sh', '-c', script]


class TestAsyncProcessRunner:
    async def test_streams_stdout_lines_in_order(self) -> None:
        lines: list[str] = []

        async def on_line(line: str) -> None:
            lines.append(line)

        result = await AsyncProcessRunner().run(sh('printf "one\\ntwo\\nthree\\n"'), env={}, timeout=10, on_line=on_line)

        assert result.success
        assert lines == ['one', 'two', 'three']

    async def test_slow_sink_still_sees_every_line(self) -> None:
        lines: list[str] = []

        async def on_line(line: str) -> None:
            await asyncio.sleep(0.01)
            lines.append(line)

        await AsyncProcessRunner().run(sh('for i in 1 2 3 4 5; do echo $i; done'), env={}, timeout=10, on_line=on_line)

        assert lines == ['1', '2', '3', '4', '5']

    async def test_nonzero_exit_captures_stderr(self) -> None:
        result = await AsyncProcessRunner().run(sh('echo "disk full" >&2; exit 3'), env={}, timeout=10)

        assert not result.success
        assert result.exit_status == 3
        assert result.stderr == 'disk full\n'
        assert not result.timed_out

    async def test_merged_output(self) -> None:
        result = await AsyncProcessRunner().run(
            sh('echo progress; echo "index missing" >&2; exit 1'), env={}, timeout=10, merge_stderr=True
        )

        assert result.exit_status == 1
        assert 'progress' in result.output
        assert 'index missing' in result.output

    async def test_environment_is_passed(self) -> None:
        lines: list[str] = []

        async def on_line(line: str) -> None:
            lines.append(line)

        await AsyncProcessRunner().run(
            sh('echo "$INDEXER_OUTPUT_MODE"'), env={'INDEXER_OUTPUT_MODE': 'chunked'}, timeout=10, on_line=on_line
        )

        assert lines == ['chunked']

    async def test_timeout_kills_process(self) -> None:
        result = await AsyncProcessRunner().run(sh('exec sleep 30'), env={}, timeout=0.2)

        assert result.timed_out
        assert result.exit_status is None
        assert not result.success
        assert 'Timed out after 0.2s' in result.stderr

    async def test_sink_failure_propagates(self) -> None:
        async def on_line(line: str) -> None:
            raise ValueError(f'cannot handle {line}')

        with pytest.raises(ValueError, match='cannot handle first'):
            await AsyncProcessRunner().run(sh('echo first; exec sleep 30'), env={}, timeout=10, on_line=on_line)
