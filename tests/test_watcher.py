"""Tests for the change watcher."""

import asyncio
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import pytest
from rockery.build.orchestrator import BuildError
from rockery.config import Config
from rockery.core.pipeline import ChangeEvent, ChangeType
from rockery.core.types import FilePath
from rockery.live.watcher import ChangeWatcher
from watchfiles import Change


class FakeOrchestrator:
    """Orchestrator recording rebuild requests."""

    def __init__(self) -> None:
        self.requests: list[tuple[list[ChangeEvent], bool]] = []

    async def rebuild(self, changes: Sequence[ChangeEvent] = (), *, hard: bool = False) -> bool:
        self.requests.append((list(changes), hard))
        return True


@pytest.fixture
def orchestrator() -> FakeOrchestrator:
    return FakeOrchestrator()


@pytest.fixture
def watcher(orchestrator: FakeOrchestrator, test_config: Config) -> ChangeWatcher:
    """Create a watcher for the test project layout."""
    return ChangeWatcher.from_config(orchestrator, test_config)  # type: ignore[arg-type]


class TestClassify:
    """Tests for ChangeWatcher.classify()."""

    def test__content_changes__become_events(self, watcher: ChangeWatcher, content_dir: Path) -> None:
        """Map content files to change events relative to the content dir."""
        events, hard = watcher.classify(
            [
                (Change.added, str(content_dir / "notes" / "a.md")),
                (Change.deleted, str(content_dir / "b.png")),
                (Change.modified, str(content_dir / "c.md")),
            ],
        )

        assert not hard
        assert events == [
            ChangeEvent(type=ChangeType.DELETE, path=FilePath("b.png")),
            ChangeEvent(type=ChangeType.CHANGE, path=FilePath("c.md")),
            ChangeEvent(type=ChangeType.ADD, path=FilePath("notes/a.md")),
        ]

    def test__config_file__requests_hard_rebuild(self, watcher: ChangeWatcher, tmp_path: Path) -> None:
        """Treat the config file as tooling."""
        events, hard = watcher.classify([(Change.modified, str(tmp_path / "rockery.toml"))])

        assert events == []
        assert hard

    @pytest.mark.parametrize("relative", ["plugin.py", "plugins/deep/transform.py"])
    def test__python_source__requests_hard_rebuild(
        self, watcher: ChangeWatcher, tmp_path: Path, relative: str
    ) -> None:
        """Match Python files at any depth below the root."""
        _, hard = watcher.classify([(Change.modified, str(tmp_path / relative))])

        assert hard

    def test__output_and_cache_dirs__are_ignored(self, watcher: ChangeWatcher, tmp_path: Path) -> None:
        """Skip changes the build itself produces."""
        events, hard = watcher.classify(
            [
                (Change.added, str(tmp_path / "public" / "index.html")),
                (Change.added, str(tmp_path / ".rockery-cache" / "x.py")),
                (Change.modified, str(tmp_path / ".git" / "index")),
            ],
        )

        assert events == []
        assert not hard

    def test__unrelated_file__is_ignored(self, watcher: ChangeWatcher, tmp_path: Path) -> None:
        """Skip files that are neither content nor tooling."""
        events, hard = watcher.classify([(Change.modified, str(tmp_path / "README.txt"))])

        assert events == []
        assert not hard

    def test__existing_directory__is_skipped(self, watcher: ChangeWatcher, content_dir: Path) -> None:
        """Report files, not the directories containing them."""
        (content_dir / "notes").mkdir()

        events, _ = watcher.classify([(Change.added, str(content_dir / "notes"))])

        assert events == []

    def test__content_outside_root__is_watched(
        self, orchestrator: FakeOrchestrator, tmp_path: Path
    ) -> None:
        """Watch the content directory separately when it lies outside the root."""
        root = tmp_path / "project"
        content = tmp_path / "vault"
        watcher = ChangeWatcher(orchestrator, root, content)  # type: ignore[arg-type]

        assert watcher.watch_paths == [root, content]


class TestHandle:
    """Tests for ChangeWatcher.handle()."""

    @pytest.mark.asyncio
    async def test__relevant_changes__request_rebuild(
        self, watcher: ChangeWatcher, orchestrator: FakeOrchestrator, content_dir: Path, tmp_path: Path
    ) -> None:
        """Forward content events and the hard flag together."""
        requested = await watcher.handle(
            {
                (Change.modified, str(content_dir / "a.md")),
                (Change.modified, str(tmp_path / "rockery.toml")),
            },
        )

        assert requested
        assert orchestrator.requests == [
            ([ChangeEvent(type=ChangeType.CHANGE, path=FilePath("a.md"))], True),
        ]

    @pytest.mark.asyncio
    async def test__irrelevant_changes__do_nothing(
        self, watcher: ChangeWatcher, orchestrator: FakeOrchestrator, tmp_path: Path
    ) -> None:
        """Skip batches without content or tooling changes."""
        requested = await watcher.handle({(Change.added, str(tmp_path / "public" / "a.html"))})

        assert not requested
        assert orchestrator.requests == []


class BlockingOrchestrator:
    """Orchestrator whose rebuilds wait until released."""

    def __init__(self, error: Exception | None = None) -> None:
        self.started: list[list[ChangeEvent]] = []
        self.release = asyncio.Event()
        self.error = error

    async def rebuild(self, changes: Sequence[ChangeEvent] = (), *, hard: bool = False) -> bool:
        self.started.append(list(changes))
        if self.error is not None:
            raise self.error
        await self.release.wait()
        return True


def _fake_awatch(*batches: set[tuple[Change, str]]):
    async def awatch(*paths: Path, stop_event: asyncio.Event) -> AsyncIterator[set[tuple[Change, str]]]:
        for batch in batches:
            yield batch
        await stop_event.wait()

    return awatch


class TestRun:
    """Tests for ChangeWatcher.run()."""

    @pytest.mark.asyncio
    async def test__batches_during_rebuild__are_requested_immediately(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path, content_dir: Path
    ) -> None:
        """Hand every batch to the orchestrator without waiting for running rebuilds."""
        monkeypatch.setattr(
            "rockery.live.watcher.awatch",
            _fake_awatch(
                {(Change.modified, str(content_dir / "a.md"))},
                {(Change.modified, str(content_dir / "b.md"))},
            ),
        )
        orchestrator = BlockingOrchestrator()
        watcher = ChangeWatcher(orchestrator, tmp_path, content_dir)  # type: ignore[arg-type]

        await watcher.start()
        for _ in range(100):
            if len(orchestrator.started) == 2:
                break
            await asyncio.sleep(0.01)

        assert orchestrator.started == [
            [ChangeEvent(type=ChangeType.CHANGE, path=FilePath("a.md"))],
            [ChangeEvent(type=ChangeType.CHANGE, path=FilePath("b.md"))],
        ]
        orchestrator.release.set()
        await watcher.stop()

    @pytest.mark.asyncio
    async def test__build_error__stops_watching(
        self,
        monkeypatch: pytest.MonkeyPatch,
        tmp_path: Path,
        content_dir: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Stop the watch loop once a rebuild failed."""
        monkeypatch.setattr(
            "rockery.live.watcher.awatch",
            _fake_awatch({(Change.modified, str(content_dir / "a.md"))}),
        )
        orchestrator = BlockingOrchestrator(error=BuildError("boom"))
        watcher = ChangeWatcher(orchestrator, tmp_path, content_dir)  # type: ignore[arg-type]

        await asyncio.wait_for(watcher.run(), timeout=5)

        assert "Rebuild failed, no longer watching: boom" in caplog.text
