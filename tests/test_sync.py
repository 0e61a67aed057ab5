"""Tests for git content sync."""

import subprocess
from pathlib import Path
from typing import Any

import pytest
from rockery.sync import ContentSync, SyncError


class FakeGit:
    """Command runner recording git invocations."""

    def __init__(self, content_dir: Path, *, failing: str | None = None) -> None:
        self.content_dir = content_dir
        self.failing = failing
        self.commands: list[list[str]] = []
        self.content_present_during_pull: bool | None = None

    def __call__(self, args: list[str], **kwargs: Any) -> "subprocess.CompletedProcess[str]":
        self.commands.append(args)
        if args[1] == "pull":
            self.content_present_during_pull = self.content_dir.exists()
        returncode = 1 if args[1] == self.failing else 0
        stdout = "main\n" if kwargs.get("capture_output") else None
        return subprocess.CompletedProcess(args, returncode, stdout=stdout)


@pytest.fixture
def note(content_dir: Path) -> Path:
    path = content_dir / "note.md"
    path.write_text("Hello\n")
    return path


class TestSync:
    """Tests for ContentSync.sync()."""

    def test__sync__commits_pulls_and_pushes(self, tmp_path: Path, content_dir: Path, note: Path) -> None:
        """Run git commands in order with the content stashed during pull."""
        git = FakeGit(content_dir)
        content_sync = ContentSync(tmp_path, content_dir, run=git)

        content_sync.sync(message="Backup")

        assert git.commands == [
            ["git", "add", "."],
            ["git", "commit", "-m", "Backup"],
            ["git", "pull", "--no-rebase", "--autostash", "-s", "recursive", "-X", "ours", "--no-edit", "origin"],
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            ["git", "push", "-uf", "origin", "main"],
        ]
        assert git.content_present_during_pull is False
        assert note.read_text() == "Hello\n"
        assert not content_sync.stash_dir.exists()

    def test__default_message__is_timestamped(self, tmp_path: Path, content_dir: Path, note: Path) -> None:
        """Generate a commit message when none is given."""
        git = FakeGit(content_dir)

        ContentSync(tmp_path, content_dir, run=git).sync(pull=False, push=False)

        assert git.commands[1][:3] == ["git", "commit", "-m"]
        assert git.commands[1][3].startswith("Rockery sync: ")

    def test__failed_commit__is_not_fatal(self, tmp_path: Path, content_dir: Path, note: Path) -> None:
        """Carry on when there is nothing to commit."""
        git = FakeGit(content_dir, failing="commit")

        ContentSync(tmp_path, content_dir, run=git).sync(push=False)

        assert git.commands[-1][1] == "pull"

    def test__failed_pull__restores_content_and_raises(
        self, tmp_path: Path, content_dir: Path, note: Path
    ) -> None:
        """Put content back and skip pushing when the pull fails."""
        git = FakeGit(content_dir, failing="pull")
        content_sync = ContentSync(tmp_path, content_dir, run=git)

        with pytest.raises(SyncError, match="git pull failed"):
            content_sync.sync()

        assert note.read_text() == "Hello\n"
        assert all(command[1] != "push" for command in git.commands)

    def test__no_commit_no_pull__only_pushes(self, tmp_path: Path, content_dir: Path, note: Path) -> None:
        """Skip disabled steps."""
        git = FakeGit(content_dir)

        ContentSync(tmp_path, content_dir, run=git).sync(commit=False, pull=False)

        assert [command[1] for command in git.commands] == ["rev-parse", "push"]


class TestStash:
    """Tests for stash(), pop() and restore()."""

    def test__stash_and_pop__move_content(self, tmp_path: Path, content_dir: Path, note: Path) -> None:
        """Move content to the cache and back."""
        content_sync = ContentSync(tmp_path, content_dir, run=FakeGit(content_dir))

        content_sync.stash()
        assert not content_dir.exists()
        assert (content_sync.stash_dir / "note.md").is_file()

        content_sync.pop()
        assert note.read_text() == "Hello\n"

    def test__restore_without_stash__raises(self, tmp_path: Path, content_dir: Path) -> None:
        """Refuse to restore when nothing was stashed."""
        content_sync = ContentSync(tmp_path, content_dir, run=FakeGit(content_dir))

        with pytest.raises(SyncError, match="No stashed content"):
            content_sync.restore()

    def test__restore__replaces_content(self, tmp_path: Path, content_dir: Path, note: Path) -> None:
        """Replace whatever is in place with the stashed content."""
        content_sync = ContentSync(tmp_path, content_dir, run=FakeGit(content_dir))
        content_sync.stash()
        content_dir.mkdir()
        (content_dir / "upstream.md").write_text("theirs")

        content_sync.restore()

        assert note.read_text() == "Hello\n"
        assert not (content_dir / "upstream.md").exists()
