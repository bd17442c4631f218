"""Sync orchestrator: wires the domain store to persistence and the bridge.

Owns the DomainStore and is the only thing that mutates it in response to
external input. Change signals from the store become debounced writes to
both persistence backends; external input (cloud snapshot, bridge events)
is applied under write suppression so it never echoes back to its origin.

All methods run on the event loop that called ``load_and_start_sync``;
blocking file work is pushed to threads and its results come back through
``await`` or through the bridge event queue.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional, Protocol

from sprintsync import config
from sprintsync.bridge import BridgeEvent, ProjectFileBridge, ProjectPatched, TasksReplaced
from sprintsync.debounce import Debouncer
from sprintsync.models import Project, Snapshot, Sprint
from sprintsync.persistence import FolderCloudStore, PersistenceEngine
from sprintsync.store import DomainStore
from sprintsync.suppression import WriteSuppression

logger = logging.getLogger("sprintsync.sync")


class VersionScanner(Protocol):
    def scan(self, path: str) -> Optional[str]:
        """Return the version found in the source tree at ``path``, if any."""


class SyncOrchestrator:
    def __init__(
        self,
        persistence: PersistenceEngine,
        bridge: ProjectFileBridge,
        store: Optional[DomainStore] = None,
        scanner: Optional[VersionScanner] = None,
        suppression: Optional[WriteSuppression] = None,
        restore_cooldown_seconds: float = config.RESTORE_COOLDOWN_SECONDS,
        bridge_debounce_seconds: float = config.SAVE_DEBOUNCE_SECONDS,
        watch_bridge: bool = config.BRIDGE_WATCHING_ENABLED,
        monitor_cloud: bool = config.CLOUD_MONITORING_ENABLED,
    ):
        self.store = store or DomainStore()
        self.persistence = persistence
        self.bridge = bridge
        self.suppression = suppression or WriteSuppression()
        self._scanner = scanner
        self._restore_cooldown = restore_cooldown_seconds
        self._watch_bridge = watch_bridge
        self._monitor_cloud = monitor_cloud
        self._bridge_debouncer: Debouncer[Snapshot] = Debouncer(
            bridge_debounce_seconds, self._write_bridge_files, name="bridge-save"
        )
        self._events: asyncio.Queue[BridgeEvent] = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        self._watched_paths: dict[uuid.UUID, str] = {}
        self._started = False

        self.store.add_listener(self._on_store_changed)
        self.bridge.on_event = self.post_event
        self.persistence.on_change = self.restore

    @classmethod
    def from_config(cls, scanner: Optional[VersionScanner] = None) -> "SyncOrchestrator":
        persistence = PersistenceEngine(FolderCloudStore(config.CLOUD_DIR))
        return cls(persistence, ProjectFileBridge(), scanner=scanner)

    @property
    def is_running(self) -> bool:
        return self._started

    # ── Startup / shutdown ──────────────────────────────────────────

    async def load_and_start_sync(self) -> None:
        snapshot = await self.persistence.load()
        created = self.restore(snapshot, migrate_legacy=True) if snapshot is not None else []
        self.store.recompute_derived()
        if created:
            self.persistence.save(self.store.snapshot())

        current = self.store.snapshot()
        await asyncio.to_thread(self.bridge.save_all, current.projects, current.tasks)

        self._consumer = asyncio.create_task(self._consume_events())
        self._started = True
        if self._watch_bridge:
            watched = set(await self.bridge.start_watching_all(current.projects))
            self._watched_paths = {p.id: p.sourcePath for p in current.projects if p.id in watched}
        if self._monitor_cloud:
            self.persistence.start_monitoring()
        if self._scanner is not None:
            self._spawn(self.refresh_project_versions())

        logger.info(
            f"Sync started ({len(self.store.projects)} projects, {len(self.store.tasks)} tasks, "
            f"{len(self.store.sprints)} sprints)"
        )

    async def stop(self) -> None:
        """Tear down watchers, monitoring and the event consumer.

        Writes already handed to the persistence engine are left to finish.
        """
        self._started = False
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        for task in list(self._background):
            task.cancel()
        await self.bridge.stop_all()
        self._watched_paths.clear()
        await self.persistence.stop_monitoring()
        logger.info("Sync stopped")

    # ── Saving ──────────────────────────────────────────────────────

    def _on_store_changed(self) -> None:
        self.save()

    def save(self) -> bool:
        """Queue a debounced write to both backends unless saves are suppressed."""
        if not self.suppression.allows_save():
            logger.debug(f"Save skipped ({self.suppression.state.value})")
            return False
        snapshot = self.store.snapshot()
        self.persistence.save(snapshot)
        self._bridge_debouncer.submit(snapshot)
        return True

    async def save_immediately(self) -> None:
        """Write the current state to every backend now (shutdown path)."""
        snapshot = self.store.snapshot()
        self._bridge_debouncer.cancel()
        await self.persistence.save_immediately(snapshot)
        await asyncio.to_thread(self.bridge.save_all, snapshot.projects, snapshot.tasks)

    async def _write_bridge_files(self, snapshot: Snapshot) -> None:
        await asyncio.to_thread(self.bridge.save_all, snapshot.projects, snapshot.tasks)
        if self._started and self._watch_bridge:
            await self._sync_watchers(snapshot.projects)

    # ── External input ──────────────────────────────────────────────

    def restore(self, snapshot: Snapshot, migrate_legacy: bool = False) -> list[Sprint]:
        """Replace the whole domain state; saves stay suppressed for the cooldown.

        Returns the sprints synthesized from legacy names (startup only).
        """
        with self.suppression.restoring(cooldown=self._restore_cooldown):
            created = self.store.restore(snapshot, migrate_legacy=migrate_legacy)
        logger.info(
            f"Restored snapshot {snapshot.timestamp.isoformat()} "
            f"(projects: {len(self.store.projects)}, cooldown {self._restore_cooldown:.1f}s)"
        )
        if self._started and self._watch_bridge:
            self._spawn(self._sync_watchers(self.store.snapshot().projects))
        return created

    def post_event(self, event: BridgeEvent) -> None:
        """Hand a bridge event to the coordination loop."""
        self._events.put_nowait(event)

    async def _consume_events(self) -> None:
        while True:
            event = await self._events.get()
            try:
                self.apply_bridge_event(event)
            except Exception as e:
                logger.error(f"Failed to apply bridge event for {event.project_id}: {e}")
            finally:
                self._events.task_done()

    def apply_bridge_event(self, event: BridgeEvent) -> bool:
        """Apply an external bridge edit, then push it to the cloud (never back to the bridge)."""
        if isinstance(event, TasksReplaced):
            if self.store.get_project(event.project_id) is None:
                logger.debug(f"Ignoring task file for unknown project {event.project_id}")
                return False
            with self.suppression.restoring():
                self.store.replace_project_tasks(event.project_id, event.tasks)
            applied = True
        elif isinstance(event, ProjectPatched):
            with self.suppression.restoring():
                applied = self.store.apply_project_patch(event.patch, event.modified_at)
            if applied and self._started and self._watch_bridge:
                self._spawn(self._sync_watchers(self.store.snapshot().projects))
        else:
            raise TypeError(f"Unknown bridge event {type(event).__name__}")

        if applied:
            self.persistence.save(self.store.snapshot())
        return applied

    async def fetch_latest(self) -> Optional[Snapshot]:
        """Explicit cloud check (manual refresh / app became active); a newer copy is restored."""
        return await self.persistence.fetch_latest()

    async def reload_all_task_files(self) -> int:
        """Re-read every project's tasks.json and apply it as a full replace."""
        reloaded = 0
        for project in self.store.snapshot().projects:
            tasks = await asyncio.to_thread(self.bridge.load_tasks, project)
            if tasks is None:
                continue
            if self.apply_bridge_event(TasksReplaced(project_id=project.id, tasks=tasks)):
                reloaded += 1
        return reloaded

    # ── Version rescan ──────────────────────────────────────────────

    async def refresh_project_versions(self) -> int:
        """Rescan each project's source tree for its version; save once if any changed."""
        if self._scanner is None:
            return 0
        targets = [(p.id, p.sourcePath) for p in self.store.projects if p.sourcePath]
        found: dict[uuid.UUID, str] = {}
        for project_id, path in targets:
            try:
                version = await asyncio.to_thread(self._scanner.scan, path)
            except Exception as e:
                logger.warning(f"Version scan failed for {path}: {e}")
                continue
            if version:
                found[project_id] = version
        return self.store.update_project_versions(found)

    # ── Watchers ────────────────────────────────────────────────────

    async def _sync_watchers(self, projects: list[Project]) -> None:
        """Start/stop bridge watchers so they match the projects' source paths."""
        desired = {p.id: p for p in projects if p.sourcePath}
        for project_id, path in list(self._watched_paths.items()):
            project = desired.get(project_id)
            if project is None or project.sourcePath != path or not self.bridge.is_watching(project_id):
                await self.bridge.stop_watching(project_id)
                del self._watched_paths[project_id]
        for project_id, project in desired.items():
            if project_id in self._watched_paths:
                continue
            if await self.bridge.start_watching(project):
                self._watched_paths[project_id] = project.sourcePath

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
