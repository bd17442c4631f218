"""Snapshot persistence: debounced writes, last-writer-wins load, cloud monitoring.

Two copies of the snapshot document exist: a local cache file and a
cloud-replicated copy with the same name. Both are written on every save;
on load the copy with the greater timestamp wins (ties favour local).

Every I/O or decode failure is logged and treated as "no data"; nothing is
raised to callers.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from sprintsync import config
from sprintsync.codec import DecodeError, dumps_snapshot, loads_snapshot
from sprintsync.debounce import Debouncer
from sprintsync.file_io import read_bytes, write_atomic
from sprintsync.models import Snapshot
from sprintsync.persistence.cloud_store import CloudStore

logger = logging.getLogger("sprintsync.persistence")

OnChange = Callable[[Snapshot], None]


def choose_latest(local: Optional[Snapshot], cloud: Optional[Snapshot]) -> Optional[Snapshot]:
    """Pick the replica with the greater timestamp; ties go to local."""
    if local is None:
        return cloud
    if cloud is None:
        return local
    if cloud.timestamp > local.timestamp:
        return cloud
    return local


class PersistenceEngine:
    def __init__(
        self,
        cloud: CloudStore,
        local_dir: Path = config.DATA_DIR,
        filename: str = config.SNAPSHOT_FILENAME,
        debounce_seconds: float = config.SAVE_DEBOUNCE_SECONDS,
        poll_interval_seconds: float = config.CLOUD_POLL_INTERVAL_SECONDS,
        max_retries: int = config.CLOUD_MAX_RETRIES,
        retry_base_seconds: float = config.CLOUD_RETRY_BASE_SECONDS,
        on_change: Optional[OnChange] = None,
    ):
        self.cloud = cloud
        self.local_path = local_dir / filename
        self.filename = filename
        self._poll_interval = poll_interval_seconds
        self._max_retries = max_retries
        self._retry_base = retry_base_seconds
        self._debouncer: Debouncer[Snapshot] = Debouncer(
            debounce_seconds, self._write_to_stores, name="snapshot-save"
        )
        self._write_lock = asyncio.Lock()
        self.on_change: Optional[OnChange] = on_change
        self._monitor_tasks: list[asyncio.Task] = []

    # ── Saving ──────────────────────────────────────────────────────

    def save(self, snapshot: Snapshot) -> None:
        """Queue a debounced write; only the newest snapshot in the window is written."""
        self._debouncer.submit(snapshot)

    async def save_immediately(self, snapshot: Snapshot) -> None:
        """Write both copies now, superseding any queued debounced write."""
        self._debouncer.cancel()
        await self._write_to_stores(snapshot)

    async def flush(self) -> None:
        """Fire any pending debounced write and wait for in-flight writes."""
        self._debouncer.flush()
        await self._debouncer.drain()

    async def _write_to_stores(self, snapshot: Snapshot) -> None:
        async with self._write_lock:
            await asyncio.to_thread(self._save_local, snapshot)
            await self._upload(snapshot)

    async def _upload(self, snapshot: Snapshot) -> None:
        attempt = 0
        while True:
            try:
                newer_remote = await asyncio.to_thread(self._upload_once, snapshot)
                break
            except OSError as e:
                if attempt >= self._max_retries:
                    logger.error(f"Cloud upload failed after {attempt + 1} attempts, giving up: {e}")
                    return
                delay = self._retry_base * (2 ** attempt)
                attempt += 1
                logger.warning(
                    f"Cloud upload failed ({e}); retrying in {delay:.0f}s ({attempt}/{self._max_retries})"
                )
                await asyncio.sleep(delay)

        if newer_remote is not None:
            logger.info("Upload conflict: cloud copy is newer, adopting it")
            await asyncio.to_thread(self._save_local, newer_remote)
            self._notify(newer_remote)

    def _upload_once(self, snapshot: Snapshot) -> Optional[Snapshot]:
        """Write to the cloud unless the cloud copy is strictly newer; return that copy if so."""
        remote = self._load_cloud()
        if remote is not None and remote.timestamp > snapshot.timestamp:
            return remote
        self.cloud.write(self.filename, dumps_snapshot(snapshot))
        return None

    # ── Loading ─────────────────────────────────────────────────────

    async def load(self) -> Optional[Snapshot]:
        local = await asyncio.to_thread(self._load_local)
        cloud = await asyncio.to_thread(self._load_cloud)
        chosen = choose_latest(local, cloud)
        if chosen is not None:
            source = "cloud" if chosen is cloud else "local"
            logger.info(f"Loaded snapshot from {source} ({chosen.timestamp.isoformat()})")
        return chosen

    def _load_local(self) -> Optional[Snapshot]:
        try:
            raw = read_bytes(self.local_path)
        except OSError as e:
            logger.warning(f"Failed to read local cache {self.local_path}: {e}")
            return None
        return self._decode(raw, "local cache")

    def _load_cloud(self) -> Optional[Snapshot]:
        try:
            raw = self.cloud.read(self.filename)
        except OSError as e:
            logger.warning(f"Failed to read cloud copy: {e}")
            return None
        return self._decode(raw, "cloud copy")

    @staticmethod
    def _decode(raw: Optional[bytes], label: str) -> Optional[Snapshot]:
        if raw is None:
            return None
        try:
            return loads_snapshot(raw)
        except DecodeError as e:
            logger.warning(f"Ignoring unreadable {label}: {e}")
            return None

    def _save_local(self, snapshot: Snapshot) -> None:
        try:
            write_atomic(self.local_path, dumps_snapshot(snapshot))
        except OSError as e:
            logger.error(f"Failed to write local cache {self.local_path}: {e}")

    # ── Monitoring ──────────────────────────────────────────────────

    @property
    def is_monitoring(self) -> bool:
        return any(not task.done() for task in self._monitor_tasks)

    def start_monitoring(self, on_change: Optional[OnChange] = None) -> None:
        """Subscribe to cloud pushes plus a periodic fallback poll."""
        if on_change is not None:
            self.on_change = on_change
        if self.is_monitoring:
            logger.warning("Cloud monitoring already running")
            return
        self._monitor_tasks = [
            asyncio.create_task(self._push_loop()),
            asyncio.create_task(self._poll_loop()),
        ]
        logger.info(f"Cloud monitoring started (poll every {self._poll_interval:.0f}s)")

    async def stop_monitoring(self) -> None:
        for task in self._monitor_tasks:
            task.cancel()
        for task in self._monitor_tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._monitor_tasks = []
        logger.info("Cloud monitoring stopped")

    async def fetch_latest(self) -> Optional[Snapshot]:
        """Adopt the cloud copy if it is strictly newer than the local cache."""
        local = await asyncio.to_thread(self._load_local)
        remote = await asyncio.to_thread(self._load_cloud)
        if remote is None:
            return None
        if local is not None and remote.timestamp <= local.timestamp:
            return None

        logger.info(f"Cloud copy is newer ({remote.timestamp.isoformat()}), updating local cache")
        await asyncio.to_thread(self._save_local, remote)
        self._notify(remote)
        return remote

    def _notify(self, snapshot: Snapshot) -> None:
        if self.on_change is not None:
            self.on_change(snapshot)

    async def _push_loop(self) -> None:
        try:
            async for _ in self.cloud.changes(self.filename):
                await self.fetch_latest()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Cloud change subscription failed, relying on polling: {e}")

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                await self.fetch_latest()
            except Exception as e:
                logger.error(f"Cloud poll failed: {e}")
