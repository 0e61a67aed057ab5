"""aiohttp dev server for Rockery.

Serves the output directory with pretty URLs while the build orchestrator
keeps it up to date.
"""

import asyncio
import logging
import posixpath
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from aiohttp import web

from rockery.app_keys import base_dir_key, live_reload_key, orchestrator_key, output_dir_key, watcher_key
from rockery.build.orchestrator import BuildOrchestrator, create_orchestrator
from rockery.config import Config
from rockery.live.reload import LIVE_RELOAD_PATH, LiveReloadManager, create_live_reload_routes
from rockery.live.watcher import ChangeWatcher

logger = logging.getLogger(__name__)

CONTENT_TYPE_OVERRIDES = {
    ".webp": "image/webp",
    ".avif": "image/avif",
}


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a request path against the output directory."""

    action: Literal["serve", "redirect"]
    path: str


def resolve_request_path(output_dir: Path, fp: str) -> Resolution:
    """Map a request path to a file to serve or a pretty-URL redirect.

    ``/a/`` serves ``a/index.html`` when it exists, otherwise redirects to
    ``/a`` when ``a.html`` exists. ``/a`` serves ``a.html`` when it exists,
    otherwise redirects to ``/a/`` when ``a/index.html`` exists. Anything
    else is served literally (and may 404).

    Args:
        output_dir: Build output directory
        fp: Request path without base dir and query string

    Returns:
        Resolution
    """
    if fp.endswith("/"):
        if _exists(output_dir, posixpath.join(fp, "index.html")):
            return Resolution("serve", fp)

        base = fp[:-1]
        if posixpath.splitext(base)[1] == "":
            base += ".html"
        if base and _exists(output_dir, base):
            return Resolution("redirect", fp[:-1])
    else:
        base = fp
        if posixpath.splitext(base)[1] == "":
            base += ".html"
        if _exists(output_dir, base):
            return Resolution("serve", fp)

        if _exists(output_dir, posixpath.join(fp, "index.html")):
            return Resolution("redirect", fp + "/")

    return Resolution("serve", fp)


def locate_file(output_dir: Path, fp: str) -> Path | None:
    """Find the file served for a path: exact, then ``.html``, then ``index.html``."""
    relative = fp.strip("/")
    candidates = [f"{relative}/index.html" if relative else "index.html"]
    if relative and not fp.endswith("/"):
        candidates = [relative, f"{relative}.html", *candidates]

    for candidate in candidates:
        path = _within(output_dir, candidate)
        if path is not None and path.is_file():
            return path
    return None


def _exists(output_dir: Path, fp: str) -> bool:
    path = _within(output_dir, fp.lstrip("/"))
    return path is not None and path.exists()


def _within(output_dir: Path, relative: str) -> Path | None:
    root = output_dir.resolve()
    path = (root / relative).resolve()
    if not path.is_relative_to(root):
        return None
    return path


def headers_for(path: Path) -> dict[str, str]:
    """Extra response headers for a served file.

    Content-Type is only set for extensions whose type must be forced,
    otherwise the file response guesses it.
    """
    headers = {"Content-Disposition": "inline"}
    override = CONTENT_TYPE_OVERRIDES.get(path.suffix.lower())
    if override is not None:
        headers["Content-Type"] = override
    return headers


def strip_base_dir(base_dir: str, url_path: str) -> str | None:
    """Remove the base dir prefix, or None if the path lies outside it."""
    if not base_dir:
        return url_path
    if url_path == base_dir:
        return "/"
    if url_path.startswith(base_dir + "/"):
        return url_path[len(base_dir) :]
    return None


async def handle_request(request: web.Request) -> web.StreamResponse:
    """Serve a file from the output directory."""
    base_dir = request.app[base_dir_key]
    output_dir = request.app[output_dir_key]
    orchestrator = request.app[orchestrator_key]

    fp = strip_base_dir(base_dir, request.path)
    if fp is None:
        logger.warning(f"[404] {request.path} (link outside of site, this is likely a bug)")
        raise web.HTTPNotFound()

    async with orchestrator.serving():
        resolution = resolve_request_path(output_dir, fp)
        if resolution.action == "redirect":
            location = base_dir + resolution.path
            logger.info(f"[302] {request.path} -> {location}")
            raise web.HTTPFound(location)

        response = await _serve_file(output_dir, resolution.path)
        # File body is sent under the build lock
        await response.prepare(request)

    logger.info(f"[{response.status}] {request.path}")
    return response


async def _serve_file(output_dir: Path, fp: str) -> web.StreamResponse:
    path = locate_file(output_dir, fp)
    status = 200
    if path is None:
        path = locate_file(output_dir, "/404.html")
        status = 404
        if path is None:
            return web.Response(status=404, text="404: Not Found")

    return web.FileResponse(path, status=status, headers=headers_for(path))


def create_app(
    config: Config,
    orchestrator: BuildOrchestrator,
    *,
    live_reload: LiveReloadManager | None = None,
    watcher: ChangeWatcher | None = None,
) -> web.Application:
    """Create aiohttp application.

    Args:
        config: Application configuration
        orchestrator: Orchestrator owning the build lock
        live_reload: Live reload manager, None to disable the WebSocket endpoint
        watcher: File watcher started and stopped with the application

    Returns:
        Configured aiohttp application
    """
    app = web.Application()

    app[orchestrator_key] = orchestrator
    app[output_dir_key] = config.build.output_dir
    app[base_dir_key] = config.server.base_dir

    # Live reload WebSocket endpoint (must be registered before the catch-all route)
    if live_reload is not None:
        app[live_reload_key] = live_reload
        app.router.add_routes(create_live_reload_routes(live_reload))
        orchestrator.add_listener(live_reload.broadcast)
        app.on_cleanup.append(_stop_live_reload)

    if watcher is not None:
        app[watcher_key] = watcher
        app.on_startup.append(_start_watcher)
        app.on_cleanup.append(_stop_watcher)

    app.router.add_get("/{path:.*}", handle_request)

    return app


async def _start_watcher(app: web.Application) -> None:
    """Start watching on application startup."""
    await app[watcher_key].start()


async def _stop_watcher(app: web.Application) -> None:
    """Stop watching on application cleanup."""
    await app[watcher_key].stop()


async def _stop_live_reload(app: web.Application) -> None:
    """Close live reload connections on application cleanup."""
    await app[live_reload_key].stop()


def run_server(config: Config, *, reload_config: Callable[[], Config] | None = None) -> None:
    """Build the site, then serve and rebuild it until a build fails.

    Args:
        config: Application configuration
        reload_config: Re-reads configuration on hard rebuilds

    Raises:
        BuildError: If a build fails
    """
    asyncio.run(_serve(config, reload_config))


async def _serve(config: Config, reload_config: Callable[[], Config] | None) -> None:
    live_reload = LiveReloadManager() if config.live_reload.enabled else None
    orchestrator = create_orchestrator(
        config,
        reload_config=reload_config,
        live_reload_path=LIVE_RELOAD_PATH if live_reload is not None else None,
    )
    watcher = ChangeWatcher.from_config(orchestrator, config)
    app = create_app(config, orchestrator, live_reload=live_reload, watcher=watcher)

    await orchestrator.rebuild()

    runner = web.AppRunner(app)
    await runner.setup()
    try:
        site = web.TCPSite(runner, config.server.host, config.server.port)
        await site.start()
        logger.info(
            f"Started a Rockery server listening at "
            f"http://{config.server.host}:{config.server.port}{config.server.base_dir}",
        )
        await orchestrator.wait_for_failure()
    finally:
        await runner.cleanup()
        await orchestrator.close()
