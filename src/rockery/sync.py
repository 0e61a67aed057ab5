"""Content backup through git.

Commits the content directory, pulls upstream changes with the content
stashed away (so upstream never clobbers it) and pushes the result.
"""

import logging
import shutil
import subprocess
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from rockery.config import CACHE_DIRNAME

logger = logging.getLogger(__name__)

DEFAULT_REMOTE = "origin"

Runner = Callable[..., "subprocess.CompletedProcess[Any]"]


class SyncError(Exception):
    """A git command failed during sync."""


class ContentSync:
    """Git operations on a project with a content directory."""

    def __init__(self, root_dir: Path, content_dir: Path, *, run: Runner = subprocess.run) -> None:
        """Initialize the sync helper.

        Args:
            root_dir: Git working tree root
            content_dir: Content directory inside root_dir (may be a symlink)
            run: Command runner, subprocess.run by default
        """
        self._root_dir = root_dir
        self._content_dir = content_dir
        self._run = run

    @property
    def stash_dir(self) -> Path:
        return self._root_dir / CACHE_DIRNAME / "content-stash"

    def stash(self) -> None:
        """Move the content directory out of the working tree."""
        if self.stash_dir.exists() or self.stash_dir.is_symlink():
            _remove(self.stash_dir)
        self.stash_dir.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(self._content_dir, self.stash_dir)
        logger.debug(f"Stashed {self._content_dir} to {self.stash_dir}")

    def pop(self) -> None:
        """Move stashed content back, replacing whatever is in its place."""
        if not (self.stash_dir.exists() or self.stash_dir.is_symlink()):
            raise SyncError(f"No stashed content in {self.stash_dir}")
        if self._content_dir.exists() or self._content_dir.is_symlink():
            _remove(self._content_dir)
        shutil.move(self.stash_dir, self._content_dir)
        logger.debug(f"Restored {self._content_dir} from {self.stash_dir}")

    def restore(self) -> None:
        """Restore content stashed by an interrupted sync."""
        self.pop()

    def sync(
        self,
        *,
        commit: bool = True,
        message: str | None = None,
        pull: bool = True,
        push: bool = True,
        remote: str = DEFAULT_REMOTE,
        branch: str | None = None,
    ) -> None:
        """Commit content, pull upstream and push.

        Args:
            commit: Commit all changes first
            message: Commit message, timestamped default otherwise
            pull: Pull from remote with the content stashed
            push: Push the current branch to remote
            remote: Git remote name
            branch: Branch to pull, the upstream of the current branch by default

        Raises:
            SyncError: If pulling or pushing fails
        """
        if commit:
            self._commit(message or f"Rockery sync: {datetime.now():%b %d, %Y, %I:%M %p}")

        self.stash()
        if pull:
            logger.info("Pulling updates from your repository")
            try:
                self.git_pull(remote, branch)
            except SyncError:
                self.pop()
                raise
        self.pop()

        if push:
            logger.info("Pushing your changes")
            current = self._git("rev-parse", "--abbrev-ref", "HEAD", capture=True).strip()
            self._git("push", "-uf", remote, current)

    def git_pull(self, remote: str, branch: str | None = None) -> None:
        """Pull preferring local changes on conflict."""
        args = ["pull", "--no-rebase", "--autostash", "-s", "recursive", "-X", "ours", "--no-edit", remote]
        if branch is not None:
            args.append(branch)
        self._git(*args)

    def _commit(self, message: str) -> None:
        dereferenced = self._content_dir.is_symlink()
        if dereferenced:
            logger.warning("Detected symlink, trying to dereference before committing")
            target = self._content_dir.resolve()
            self.stash()
            shutil.copytree(target, self._content_dir)

        try:
            self._git("add", ".")
            self._git("commit", "-m", message, check=False)
        finally:
            if dereferenced:
                self.pop()

    def _git(self, *args: str, capture: bool = False, check: bool = True) -> str:
        logger.debug(f"Running git {' '.join(args)}")
        result = self._run(
            ["git", *args],
            cwd=self._root_dir,
            capture_output=capture,
            text=True,
        )
        if check and result.returncode != 0:
            raise SyncError(f"git {args[0]} failed with exit code {result.returncode}")
        return (result.stdout or "") if capture else ""


def _remove(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    else:
        shutil.rmtree(path)
