"""File watching for incremental rebuilds.

Turns filesystem change batches into content change events or hard rebuild
requests and hands them to the build orchestrator.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from watchfiles import Change, awatch

from rockery.build.orchestrator import BuildError, BuildOrchestrator, create_orchestrator
from rockery.config import CACHE_DIRNAME, Config
from rockery.core.pipeline import ChangeEvent, ChangeType
from rockery.core.types import FilePath

logger = logging.getLogger(__name__)

_CHANGE_TYPES = {
    Change.added: ChangeType.ADD,
    Change.modified: ChangeType.CHANGE,
    Change.deleted: ChangeType.DELETE,
}


class ChangeWatcher:
    """Watches the project and requests rebuilds from the orchestrator.

    Changes inside the content directory become content change events.
    Changes matching a tooling pattern (configuration, Python plugins)
    request a hard rebuild. Everything under ``ignore_dirs`` is skipped.
    """

    def __init__(
        self,
        orchestrator: BuildOrchestrator,
        root_dir: Path,
        content_dir: Path,
        *,
        tooling_patterns: Iterable[str] = (),
        ignore_dirs: Iterable[Path] = (),
    ) -> None:
        """Initialize the watcher.

        Args:
            orchestrator: Orchestrator receiving rebuild requests
            root_dir: Project root, tooling patterns are relative to it
            content_dir: Content directory
            tooling_patterns: Glob patterns that trigger a hard rebuild
            ignore_dirs: Directories whose changes are ignored (output, caches)
        """
        self._orchestrator = orchestrator
        self._root_dir = root_dir
        self._content_dir = content_dir
        self._tooling_patterns = list(tooling_patterns)
        self._ignore_dirs = list(ignore_dirs)
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._requests: set[asyncio.Task[bool]] = set()

    @classmethod
    def from_config(cls, orchestrator: BuildOrchestrator, config: Config) -> "ChangeWatcher":
        """Create a watcher for the configured project layout."""
        root_dir = config.root_dir
        return cls(
            orchestrator,
            root_dir,
            config.build.content_dir,
            tooling_patterns=config.tooling_patterns,
            ignore_dirs=[config.build.output_dir, root_dir / ".git", root_dir / CACHE_DIRNAME],
        )

    @property
    def watch_paths(self) -> list[Path]:
        if self._content_dir.is_relative_to(self._root_dir):
            return [self._root_dir]
        return [self._root_dir, self._content_dir]

    async def start(self) -> None:
        """Start watching in a background task."""
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Stop the background task and wait for requested rebuilds."""
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._requests:
            await asyncio.gather(*self._requests, return_exceptions=True)

    async def run(self) -> None:
        """Watch until stopped or until a rebuild fails.

        Every batch is handed to the orchestrator right away, so batches
        arriving during a rebuild are stamped immediately and coalesced.
        """
        paths = self.watch_paths
        logger.info(f"Watching for changes in {', '.join(str(p) for p in paths)}")
        async for changes in awatch(*paths, stop_event=self._stop_event):
            request = asyncio.create_task(self.handle(changes))
            self._requests.add(request)
            request.add_done_callback(self._request_done)

    def _request_done(self, request: "asyncio.Task[bool]") -> None:
        self._requests.discard(request)
        if request.cancelled():
            return
        error = request.exception()
        if error is None:
            return
        if isinstance(error, BuildError):
            logger.error(f"Rebuild failed, no longer watching: {error}")
        else:
            logger.error(f"Handling changes failed, no longer watching: {error!r}")
        self._stop_event.set()

    async def handle(self, changes: set[tuple[Change, str]]) -> bool:
        """Request a rebuild for one batch of filesystem changes.

        Returns:
            True if a rebuild was requested
        """
        events, hard = self.classify(changes)
        if not events and not hard:
            return False
        await self._orchestrator.rebuild(events, hard=hard)
        return True

    def classify(self, changes: Iterable[tuple[Change, str]]) -> tuple[list[ChangeEvent], bool]:
        """Split a change batch into content events and a hard rebuild flag.

        Args:
            changes: (change, absolute path) pairs as reported by watchfiles

        Returns:
            Tuple of (content change events, whether tooling changed)
        """
        events: dict[FilePath, ChangeEvent] = {}
        hard = False

        for change, path_str in sorted(changes, key=lambda c: c[1]):
            path = Path(path_str)
            if any(path.is_relative_to(d) for d in self._ignore_dirs):
                continue
            if change != Change.deleted and path.is_dir():
                continue

            if path.is_relative_to(self._content_dir):
                file_path = FilePath(path.relative_to(self._content_dir).as_posix())
                events[file_path] = ChangeEvent(type=_CHANGE_TYPES[change], path=file_path)
                continue

            if self._is_tooling(path):
                logger.debug(f"Tooling file changed: {path}")
                hard = True

        return list(events.values()), hard

    def _is_tooling(self, path: Path) -> bool:
        if not path.is_relative_to(self._root_dir):
            return False
        relative = path.relative_to(self._root_dir)
        for pattern in self._tooling_patterns:
            if relative.match(pattern):
                return True
            # "**/*.py" should also match files at the root
            if pattern.startswith("**/") and relative.match(pattern[3:]):
                return True
        return False


def run_watch(config: Config, *, reload_config: Callable[[], Config] | None = None) -> None:
    """Build once, then rebuild on every change until interrupted or a build fails.

    Raises:
        BuildError: If a build fails
    """

    async def watch() -> None:
        orchestrator = create_orchestrator(config, reload_config=reload_config)
        watcher = ChangeWatcher.from_config(orchestrator, config)
        try:
            await orchestrator.rebuild()
            await watcher.start()
            await orchestrator.wait_for_failure()
        finally:
            await watcher.stop()
            await orchestrator.close()

    asyncio.run(watch())
