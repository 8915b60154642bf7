"""Async subprocess runner with line streaming.

stdout is consumed one line at a time and each line is awaited through the
caller's sink before the next is read. The OS pipe buffer then applies
back-pressure: the child blocks on write while the caller is busy.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping, Sequence

from code_index.clients.protocols import LineSink
from code_index.schemas.indexer import ProcessResult

__all__ = [
    'AsyncProcessRunner',
]

logger = logging.getLogger(__name__)

# Max bytes per stdout line before StreamReader raises
STREAM_LINE_LIMIT = 1024 * 1024


class AsyncProcessRunner:
    """ProcessRunner backed by asyncio.create_subprocess_exec."""

    async def run(
        self,
        command: Sequence[str],
        *,
        env: Mapping[str, str],
        timeout: float,
        on_line: LineSink | None = None,
        merge_stderr: bool = False,
    ) -> ProcessResult:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
            env={**os.environ, **env},
            limit=STREAM_LINE_LIMIT,
        )
        assert process.stdout is not None

        captured: list[str] = []
        stderr_task = None if merge_stderr else asyncio.create_task(_read_all(process.stderr))

        try:
            await asyncio.wait_for(
                _pump(process, on_line, captured if merge_stderr else None),
                timeout=timeout,
            )
        except TimeoutError:
            logger.warning(f'[PROCESS] {command[0]} timed out after {timeout}s, killing pid {process.pid}')
            await _kill(process)
            stderr = await stderr_task if stderr_task else ''
            note = f'Timed out after {timeout}s'
            return ProcessResult(
                exit_status=None,
                stderr=f'{stderr}{note}' if not stderr or stderr.endswith('\n') else f'{stderr}\n{note}',
                output='\n'.join([*captured, note]) if merge_stderr else '',
                timed_out=True,
            )
        except BaseException:
            # Sink failure or cancellation: never leave the child running
            await _kill(process)
            if stderr_task:
                stderr_task.cancel()
            raise

        return ProcessResult(
            exit_status=process.returncode,
            stderr=await stderr_task if stderr_task else '',
            output='\n'.join(captured),
        )


async def _pump(
    process: asyncio.subprocess.Process,
    on_line: LineSink | None,
    captured: list[str] | None,
) -> None:
    assert process.stdout is not None
    async for raw in process.stdout:
        line = raw.decode('utf-8', errors='replace').rstrip('\r\n')
        if captured is not None:
            captured.append(line)
        if on_line is not None:
            await on_line(line)
    await process.wait()


async def _read_all(stream: asyncio.StreamReader | None) -> str:
    if stream is None:
        return ''
    data = await stream.read()
    return data.decode('utf-8', errors='replace')


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()
