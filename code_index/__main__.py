"""Command line entry point.

Usage:
    python -m code_index work [--once]
    python -m code_index run-task NAME [--force]
    python -m code_index schedule
    python -m code_index enqueue {pending,ready,deletion}
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from code_index.runtime import Runtime, configure_logging
from code_index.schemas.config import load_settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='code_index',
        description='Keep the code embedding index in sync with tenant repositories.',
    )
    parser.add_argument('--config', type=Path, default=None, help='Settings JSON (default: $CODE_INDEX_CONFIG)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    work = sub.add_parser('work', help='Serve jobs and sweep events')
    work.add_argument('--once', action='store_true', help='Drain what is due, then exit')

    run_task = sub.add_parser('run-task', help='Run one scheduled task')
    run_task.add_argument('name')
    run_task.add_argument('--force', action='store_true', help='Ignore the period throttle')

    sub.add_parser('schedule', help='Run every scheduled task once (throttled)')

    enqueue = sub.add_parser('enqueue', help='Fan out repository jobs')
    enqueue.add_argument('kind', choices=['pending', 'ready', 'deletion'])
    enqueue.add_argument('--limit', type=int, default=None)
    return parser


async def _run(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    runtime = Runtime.create(settings)
    try:
        match args.command:
            case 'work':
                handled = await runtime.work(once=args.once)
                logger.info(f'Handled {handled} jobs and events')
            case 'run-task':
                ran = await runtime.run_task(args.name, force=args.force)
                print(f'{args.name}: {"ran" if ran else "skipped"}')
            case 'schedule':
                for name, ran in (await runtime.schedule()).items():
                    print(f'{name}: {"ran" if ran else "skipped"}')
            case 'enqueue':
                match args.kind:
                    case 'pending':
                        count = await runtime.index_service.enqueue_pending_jobs(limit=args.limit)
                    case 'ready':
                        count = await runtime.index_service.enqueue_ready_jobs(limit=args.limit)
                    case _:
                        count = await runtime.index_service.enqueue_pending_deletion_jobs(limit=args.limit)
                print(f'Scheduled {count} jobs')
    finally:
        await runtime.close()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    try:
        return asyncio.run(_run(args))
    except ValueError as e:
        # Invalid config or unknown task name
        print(f'Error: {e}', file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == '__main__':
    sys.exit(main())
