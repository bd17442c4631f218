"""Per-project bridge files.

Each project with a source directory gets a hidden ``.sprintsync/`` folder
inside it so external tools can read and edit its state directly:

    <sourcePath>/
    └── .sprintsync/
        ├── _schema.json   descriptive, written once, never read back
        ├── project.json   full project on write, sparse patch on read
        └── tasks.json     the project's task array, always replaced whole

The bridge remembers when it last wrote each file and only reports a change
when the file's mtime is at least ``self_write_margin`` seconds later, so its
own writes landing on disk are never mistaken for external edits.
Filesystem errors are logged and swallowed.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from sprintsync import config
from sprintsync.bridge.schema import build_schema
from sprintsync.bridge.watcher import DirectoryWatcher
from sprintsync.codec import DecodeError, dumps, dumps_project, dumps_tasks, loads_project_patch, loads_tasks
from sprintsync.date_utils import file_mtime, mtime_to_datetime
from sprintsync.file_io import read_bytes, write_atomic
from sprintsync.models import Project, ProjectPatch, TaskItem

logger = logging.getLogger("sprintsync.bridge")

TASKS_FILE = config.BRIDGE_TASKS_FILENAME
PROJECT_FILE = config.BRIDGE_PROJECT_FILENAME
SCHEMA_FILE = config.BRIDGE_SCHEMA_FILENAME


@dataclass(frozen=True)
class TasksReplaced:
    """tasks.json changed externally: replace every task of ``project_id``."""

    project_id: uuid.UUID
    tasks: list[TaskItem]


@dataclass(frozen=True)
class ProjectPatched:
    """project.json changed externally: merge ``patch`` into the project."""

    project_id: uuid.UUID
    patch: ProjectPatch
    modified_at: datetime


BridgeEvent = Union[TasksReplaced, ProjectPatched]
EventSink = Callable[[BridgeEvent], None]


class ProjectFileBridge:
    def __init__(
        self,
        on_event: Optional[EventSink] = None,
        dir_name: str = config.BRIDGE_DIR_NAME,
        settle_seconds: float = config.BRIDGE_SETTLE_SECONDS,
        self_write_margin: float = config.BRIDGE_SELF_WRITE_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.on_event = on_event
        self.dir_name = dir_name
        self._settle_seconds = settle_seconds
        self._margin = self_write_margin
        self._clock = clock
        self._lock = threading.Lock()
        # (project id, filename) -> epoch seconds
        self._last_writes: dict[tuple[uuid.UUID, str], float] = {}
        self._last_seen_mtimes: dict[tuple[uuid.UUID, str], float] = {}
        self._watcher = DirectoryWatcher([TASKS_FILE, PROJECT_FILE])

    # ── Paths ───────────────────────────────────────────────────────

    def bridge_dir(self, project: Project, create: bool = True) -> Optional[Path]:
        """Return the project's bridge folder, or None when it has no usable source path."""
        if not project.sourcePath:
            return None
        source = Path(project.sourcePath).expanduser()
        if not source.is_dir():
            return None
        directory = source / self.dir_name
        if create:
            try:
                directory.mkdir(exist_ok=True)
            except OSError as e:
                logger.warning(f"Cannot create bridge folder {directory}: {e}")
                return None
        return directory

    # ── Saving ──────────────────────────────────────────────────────

    def save_all(self, projects: Iterable[Project], tasks: Iterable[TaskItem]) -> None:
        """Write bridge files for every project that has a source path."""
        by_project: dict[uuid.UUID, list[TaskItem]] = {}
        for task in tasks:
            if task.projectId is not None:
                by_project.setdefault(task.projectId, []).append(task)
        for project in projects:
            if not project.sourcePath:
                continue
            self.save(project, by_project.get(project.id, []))

    def save(self, project: Project, tasks: list[TaskItem]) -> None:
        directory = self.bridge_dir(project)
        if directory is None:
            return

        self._write(project.id, directory / PROJECT_FILE, dumps_project(project))
        self._write(project.id, directory / TASKS_FILE, dumps_tasks(tasks))

        schema_path = directory / SCHEMA_FILE
        if not schema_path.exists():
            try:
                write_atomic(schema_path, dumps(build_schema(project)))
            except OSError as e:
                logger.warning(f"Failed to write {schema_path}: {e}")

    def _write(self, project_id: uuid.UUID, path: Path, data: bytes) -> bool:
        if self._has_pending_external_edit(project_id, path):
            logger.info(f"Skipping write to {path}: an external edit has not been picked up yet")
            return False
        try:
            write_atomic(path, data)
        except OSError as e:
            logger.warning(f"Failed to write {path}: {e}")
            return False
        key = (project_id, path.name)
        written_at = self._clock()
        mtime = file_mtime(path)
        with self._lock:
            self._last_writes[key] = written_at
            if mtime is not None:
                self._last_seen_mtimes[key] = mtime
        return True

    def last_self_write(self, project_id: uuid.UUID, filename: str) -> Optional[float]:
        with self._lock:
            return self._last_writes.get((project_id, filename))

    # ── Loading ─────────────────────────────────────────────────────

    def load_tasks(self, project: Project) -> Optional[list[TaskItem]]:
        directory = self.bridge_dir(project, create=False)
        if directory is None:
            return None
        try:
            raw = read_bytes(directory / TASKS_FILE)
            if raw is None:
                return None
            return loads_tasks(raw)
        except (OSError, DecodeError) as e:
            logger.warning(f"Failed to read tasks for {project.name}: {e}")
            return None

    # ── Change detection ────────────────────────────────────────────

    def check_for_external_change(self, project_id: uuid.UUID, directory: Path) -> list[BridgeEvent]:
        """Re-read bridge files whose mtime shows an external write."""
        events: list[BridgeEvent] = []

        tasks_path = directory / TASKS_FILE
        mtime = self._external_mtime(project_id, tasks_path)
        if mtime is not None:
            tasks = self._read(tasks_path, loads_tasks)
            if tasks is not None:
                scoped = [task.model_copy(update={"projectId": project_id}) for task in tasks]
                logger.info(
                    f"External change detected: {directory.parent.name} ({len(scoped)} tasks)"
                )
                events.append(TasksReplaced(project_id=project_id, tasks=scoped))

        project_path = directory / PROJECT_FILE
        mtime = self._external_mtime(project_id, project_path)
        if mtime is not None:
            patch = self._read(project_path, loads_project_patch)
            if patch is not None:
                if patch.id != project_id:
                    logger.warning(f"Ignoring {project_path}: id {patch.id} does not match {project_id}")
                else:
                    logger.info(f"External project metadata change detected: {directory.parent.name}")
                    events.append(
                        ProjectPatched(project_id=project_id, patch=patch, modified_at=mtime_to_datetime(mtime))
                    )

        return events

    def _has_pending_external_edit(self, project_id: uuid.UUID, path: Path) -> bool:
        """True when a file seen earlier this session was changed by someone else since."""
        key = (project_id, path.name)
        with self._lock:
            last_seen = self._last_seen_mtimes.get(key)
            last_write = self._last_writes.get(key)
        if last_seen is None:
            return False
        mtime = file_mtime(path)
        if mtime is None or mtime == last_seen:
            return False
        return last_write is None or mtime - last_write >= self._margin

    def _external_mtime(self, project_id: uuid.UUID, path: Path) -> Optional[float]:
        mtime = file_mtime(path)
        if mtime is None:
            return None
        key = (project_id, path.name)
        with self._lock:
            last_write = self._last_writes.get(key)
            last_seen = self._last_seen_mtimes.get(key)
            if last_seen is not None and mtime == last_seen:
                return None
            if last_write is not None and mtime - last_write < self._margin:
                return None
            self._last_seen_mtimes[key] = mtime
        return mtime

    @staticmethod
    def _read(path: Path, loader):
        try:
            raw = read_bytes(path)
        except OSError as e:
            logger.warning(f"Failed to read {path}: {e}")
            return None
        if raw is None:
            return None
        try:
            return loader(raw)
        except DecodeError as e:
            logger.warning(f"Ignoring unreadable {path}: {e}")
            return None

    # ── Watching ────────────────────────────────────────────────────

    async def start_watching_all(self, projects: Iterable[Project]) -> list[uuid.UUID]:
        """Replace all watchers with one per project; returns the ids now watched."""
        await self.stop_all()
        watched = []
        for project in projects:
            if await self.start_watching(project):
                watched.append(project.id)
        return watched

    async def start_watching(self, project: Project) -> bool:
        directory = await asyncio.to_thread(self.bridge_dir, project)
        if directory is None:
            return False

        tasks_path = directory / TASKS_FILE
        if not tasks_path.exists():
            await asyncio.to_thread(self._write, project.id, tasks_path, dumps_tasks([]))

        project_id = project.id

        async def _on_change() -> None:
            await self._handle_change(project_id, directory)

        self._watcher.start(project_id, directory, _on_change)
        return True

    async def stop_watching(self, project_id: uuid.UUID) -> None:
        await self._watcher.stop(project_id)

    async def stop_all(self) -> None:
        await self._watcher.stop_all()

    def is_watching(self, project_id: uuid.UUID) -> bool:
        return self._watcher.is_watching(project_id)

    async def _handle_change(self, project_id: uuid.UUID, directory: Path) -> None:
        # External writers are not always atomic; let the file settle first.
        await asyncio.sleep(self._settle_seconds)
        events = await asyncio.to_thread(self.check_for_external_change, project_id, directory)
        for event in events:
            self._emit(event)

    def _emit(self, event: BridgeEvent) -> None:
        if self.on_event is not None:
            self.on_event(event)
