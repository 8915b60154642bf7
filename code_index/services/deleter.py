"""Deleter: removes one repository's documents from the index partition.

Needs no git access and no project record: the partition is a pure function
of the project id, so deletion works after the project itself is gone.
The caller owns the state transition.
"""

from __future__ import annotations

import logging

from code_index.clients.protocols import ProcessRunner
from code_index.errors import SubprocessError
from code_index.schemas.records import Repository
from code_index.services.indexer import INDEXER_ENV, IndexerInvocation

__all__ = [
    'Deleter',
]

logger = logging.getLogger(__name__)


class Deleter:
    def __init__(self, invocation: IndexerInvocation, *, runner: ProcessRunner) -> None:
        self._invocation = invocation
        self._runner = runner

    async def run(self, repository: Repository) -> None:
        """Delete the repository's indexed content.

        Raises:
            ConfigurationError: Connection or binary not configured.
            SubprocessError: Process exited nonzero or timed out; carries combined output.
        """
        connection = await self._invocation.resolve_connection(repository)
        binary = self._invocation.binary()
        options = self._invocation.options(repository.project_id, 'delete')

        result = await self._runner.run(
            self._invocation.command(binary, connection, options),
            env=INDEXER_ENV,
            timeout=self._invocation.timeout_seconds,
            merge_stderr=True,
        )

        if not result.success:
            output = result.output.strip()
            logger.error(
                f'[DELETER] Repository {repository.id} (project {repository.project_id}) failed '
                f'(exit={result.exit_status}, timed_out={result.timed_out}): {output}'
            )
            raise SubprocessError(
                f'Deleter failed for repository {repository.id} with exit status {result.exit_status}: {output}',
                output=result.output,
                exit_status=result.exit_status,
            )

        logger.info(f'[DELETER] Repository {repository.id} (project {repository.project_id}) removed from index')
