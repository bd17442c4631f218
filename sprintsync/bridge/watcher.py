"""Directory watcher service using watchfiles.

Runs one background task per watched bridge folder and invokes a callback
whenever one of the bridge data files changes.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Hashable, Iterable

from watchfiles import Change, awatch

logger = logging.getLogger("sprintsync.watcher")

OnChange = Callable[[], Awaitable[None]]


class DirectoryWatcher:
    """Background directory watchers keyed by owner (project id).

    Uses `watchfiles` (Rust-accelerated) for OS change notification.
    """

    def __init__(self, filenames: Iterable[str]):
        self._filenames = frozenset(filenames)
        self._tasks: dict[Hashable, asyncio.Task] = {}

    def start(self, key: Hashable, directory: Path, on_change: OnChange) -> None:
        """Start watching ``directory`` in a background task."""
        if self.is_watching(key):
            logger.warning(f"Watcher for {key} already running")
            return

        self._tasks[key] = asyncio.create_task(self._watch_loop(key, directory, on_change))
        logger.info(f"Watcher started for {directory}")

    async def stop(self, key: Hashable) -> None:
        task = self._tasks.pop(key, None)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def stop_all(self) -> None:
        """Stop every watcher and release the OS watch handles."""
        for key in list(self._tasks):
            await self.stop(key)
        logger.info("All watchers stopped")

    def is_watching(self, key: Hashable) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def _matches(self, change: Change, path: str) -> bool:
        return change != Change.deleted and Path(path).name in self._filenames

    async def _watch_loop(self, key: Hashable, directory: Path, on_change: OnChange) -> None:
        """Main watching loop for a single directory."""
        if not directory.exists():
            logger.warning(f"Watch path {directory} does not exist, nothing to monitor")
            return

        try:
            async for changes in awatch(directory, watch_filter=self._matches):
                logger.debug(f"Detected {len(changes)} change(s) in {directory}")
                try:
                    await on_change()
                except Exception as e:
                    logger.error(f"Error handling change in {directory}: {e}")
        except asyncio.CancelledError:
            logger.info(f"Watcher for {key} cancelled")
            raise
        except Exception as e:
            logger.error(f"Watcher error for {directory}: {e}")
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                self._tasks.pop(key, None)
