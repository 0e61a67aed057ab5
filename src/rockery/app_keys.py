"""Application keys for type-safe app configuration access."""

from pathlib import Path

from aiohttp import web

from rockery.build.orchestrator import BuildOrchestrator
from rockery.live.reload import LiveReloadManager
from rockery.live.watcher import ChangeWatcher

orchestrator_key = web.AppKey("orchestrator", BuildOrchestrator)
output_dir_key = web.AppKey("output_dir", Path)
base_dir_key = web.AppKey("base_dir", str)
live_reload_key = web.AppKey("live_reload", LiveReloadManager)
watcher_key = web.AppKey("watcher", ChangeWatcher)
