"""Live reload and file watching for development mode."""

from rockery.live.reload import LiveReloadManager
from rockery.live.watcher import ChangeWatcher

__all__ = ["ChangeWatcher", "LiveReloadManager"]
