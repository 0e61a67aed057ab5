"""Incremental build orchestration.

Serializes rebuilds and HTTP reads behind one lock, drops rebuild requests
superseded by a newer one and notifies listeners once per completed rebuild.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from rockery.config import Config
from rockery.core.pipeline import ChangeEvent, ContentPipeline, PipelineLoader
from rockery.core.types import FilePath

logger = logging.getLogger(__name__)

RebuildListener = Callable[[], Awaitable[None]]


class BuildError(Exception):
    """Content pipeline failed; the reason is the exception message."""


@dataclass
class BuildState:
    """Mutable state shared by every rebuild request."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_request: int = 0
    last_generation: int = 0
    pending_changes: dict[FilePath, ChangeEvent] = field(default_factory=dict)
    hard_requested: bool = False
    failure: BuildError | None = None

    def stamp(self) -> int:
        """Issue a request stamp strictly greater than every previous one."""
        self.last_request = max(time.monotonic_ns(), self.last_request + 1)
        return self.last_request


class BuildOrchestrator:
    """Runs the content pipeline on demand.

    Every call to :meth:`rebuild` takes a fresh stamp before waiting for the
    lock. Once the lock is held, a request whose stamp is no longer the newest
    gives up without building: the newest request will cover its changes.
    """

    def __init__(
        self,
        pipeline_factory: Callable[[], ContentPipeline],
        *,
        state: BuildState | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            pipeline_factory: Creates a fresh pipeline (first build and hard rebuilds)
            state: Shared build state, a new one by default
        """
        self._factory = pipeline_factory
        self._state = state or BuildState()
        self._pipeline: ContentPipeline | None = None
        self._listeners: list[RebuildListener] = []
        self._failed = asyncio.Event()

    @property
    def state(self) -> BuildState:
        return self._state

    @property
    def pipeline(self) -> ContentPipeline | None:
        return self._pipeline

    def add_listener(self, listener: RebuildListener) -> None:
        """Register a coroutine called after every completed rebuild."""
        self._listeners.append(listener)

    async def rebuild(self, changes: Iterable[ChangeEvent] = (), *, hard: bool = False) -> bool:
        """Request a rebuild.

        Args:
            changes: Content changes that triggered the request
            hard: Recreate the pipeline from scratch (tooling changed)

        Returns:
            True if a build ran, False if a newer request superseded this one

        Raises:
            BuildError: If the pipeline failed (now or in an earlier rebuild)
        """
        state = self._state
        if state.failure is not None:
            raise state.failure

        stamp = state.stamp()
        for change in changes:
            state.pending_changes[change.path] = change
        state.hard_requested = state.hard_requested or hard

        async with state.lock:
            if state.last_request > stamp:
                logger.debug(f"Skipping rebuild {stamp}, superseded by {state.last_request}")
                return False

            pending = list(state.pending_changes.values())
            hard_rebuild = state.hard_requested
            state.pending_changes.clear()
            state.hard_requested = False

            start = time.perf_counter()
            try:
                await self._run(pending, hard=hard_rebuild)
            except Exception as e:
                error = BuildError(str(e) or type(e).__name__)
                state.failure = error
                self._failed.set()
                raise error from e

            state.last_generation = stamp
            elapsed = time.perf_counter() - start
            logger.info(f"Done rebuilding in {elapsed * 1000:.0f}ms")

        await self._notify()
        return True

    async def _run(self, changes: list[ChangeEvent], *, hard: bool) -> None:
        if hard and self._pipeline is not None:
            logger.warning("Detected a source code change, doing a hard rebuild...")
            await asyncio.to_thread(self._pipeline.dispose)
            self._pipeline = None

        if self._pipeline is None:
            self._pipeline = await asyncio.to_thread(self._factory)
            await asyncio.to_thread(self._pipeline.build_all)
            return

        if changes:
            logger.info(f"Detected {len(changes)} content changes, rebuilding...")
            emitted = await asyncio.to_thread(self._pipeline.build_changed, changes)
            if emitted is not None:
                return

        await asyncio.to_thread(self._pipeline.build_all)

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            await listener()

    @asynccontextmanager
    async def serving(self) -> AsyncIterator[None]:
        """Hold the build lock while reading output."""
        async with self._state.lock:
            yield

    async def wait_for_failure(self) -> None:
        """Block until a rebuild fails, then raise its BuildError."""
        await self._failed.wait()
        raise self._state.failure or BuildError("Rebuild failed")

    async def close(self) -> None:
        """Dispose the current pipeline."""
        async with self._state.lock:
            if self._pipeline is not None:
                await asyncio.to_thread(self._pipeline.dispose)
                self._pipeline = None


def create_orchestrator(
    config: Config,
    *,
    reload_config: Callable[[], Config] | None = None,
    live_reload_path: str | None = None,
) -> BuildOrchestrator:
    """Create an orchestrator for the configured pipeline.

    Args:
        config: Application configuration
        reload_config: Re-reads configuration on hard rebuilds
        live_reload_path: WebSocket path injected into pages, None to disable

    Returns:
        BuildOrchestrator instance
    """
    loader = PipelineLoader(config, reload_config=reload_config, live_reload_path=live_reload_path)
    return BuildOrchestrator(loader)
