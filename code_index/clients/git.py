"""Commit-ancestry oracle over local repositories via GitPython.

GitPython is synchronous; every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import git

__all__ = [
    'GitPythonBackend',
]

logger = logging.getLogger(__name__)


class GitPythonBackend:
    """GitBackend over repositories stored under one root directory."""

    def __init__(self, repositories_root: Path) -> None:
        self._root = repositories_root

    async def head(self, relative_path: str) -> str | None:
        return await asyncio.to_thread(self._head_sync, relative_path)

    async def commit_exists(self, relative_path: str, sha: str) -> bool:
        return await asyncio.to_thread(self._commit_exists_sync, relative_path, sha)

    async def is_ancestor(self, relative_path: str, ancestor: str, descendant: str) -> bool:
        return await asyncio.to_thread(self._is_ancestor_sync, relative_path, ancestor, descendant)

    # --- Private (run in thread) ---

    def _open(self, relative_path: str) -> git.Repo:
        return git.Repo(self._root / relative_path)

    def _head_sync(self, relative_path: str) -> str | None:
        repo = self._open(relative_path)
        try:
            return repo.head.commit.hexsha
        except ValueError:
            # Unborn HEAD: repository has no commits yet
            return None

    def _commit_exists_sync(self, relative_path: str, sha: str) -> bool:
        repo = self._open(relative_path)
        try:
            repo.git.cat_file('-e', f'{sha}^{{commit}}')
        except git.GitCommandError:
            return False
        return True

    def _is_ancestor_sync(self, relative_path: str, ancestor: str, descendant: str) -> bool:
        repo = self._open(relative_path)
        try:
            return repo.is_ancestor(ancestor, descendant)
        except git.GitCommandError as e:
            logger.debug(f'[GIT] merge-base {ancestor}..{descendant} failed in {relative_path}: {e}')
            return False
