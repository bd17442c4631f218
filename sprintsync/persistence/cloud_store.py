"""Cloud-replicated object store collaborator.

The engine only needs atomic read/write by name plus change notification
filtered by filename. ``FolderCloudStore`` provides that on top of a folder
replicated by a sync client (iCloud Drive, Dropbox, Syncthing, ...), using
watchfiles for push notification.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import AsyncIterator, Optional, Protocol

from watchfiles import Change, awatch

from sprintsync.file_io import read_bytes, write_atomic

logger = logging.getLogger("sprintsync.cloud")


class CloudStore(Protocol):
    def read(self, name: str) -> Optional[bytes]:
        """Return the object's bytes, None when absent. May raise OSError."""

    def write(self, name: str, data: bytes) -> None:
        """Atomically replace the object. May raise OSError."""

    def changes(self, name: str) -> AsyncIterator[None]:
        """Yield once per batch of remote changes to ``name``."""


class FolderCloudStore:
    """CloudStore backed by a replicated folder."""

    def __init__(self, root: Path):
        self.root = root

    def path_for(self, name: str) -> Path:
        return self.root / name

    def read(self, name: str) -> Optional[bytes]:
        return read_bytes(self.path_for(name))

    def write(self, name: str, data: bytes) -> None:
        write_atomic(self.path_for(name), data)

    async def changes(self, name: str) -> AsyncIterator[None]:
        self.root.mkdir(parents=True, exist_ok=True)

        def _matches(change: Change, path: str) -> bool:
            return change != Change.deleted and Path(path).name == name

        logger.info(f"Watching cloud folder {self.root} for {name}")
        async for _changes in awatch(self.root, watch_filter=_matches):
            yield
