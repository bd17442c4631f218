import asyncio
import json
import os
import tempfile
import time
import unittest
import uuid
from pathlib import Path

from sprintsync.bridge import ProjectFileBridge, ProjectPatched, TasksReplaced
from sprintsync.codec import encode_task
from sprintsync.date_utils import mtime_to_datetime
from sprintsync.models import Project, TaskItem, TaskStatus


def _touch(path: Path, mtime: float) -> None:
    os.utime(path, (mtime, mtime))


class _BridgeTestCase(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.source = Path(tmp.name) / "app"
        self.source.mkdir()
        self.project = Project(name="App", sourcePath=str(self.source))
        self.tasks = [
            TaskItem(projectId=self.project.id, title="Write docs"),
            TaskItem(projectId=self.project.id, title="Fix crash", status=TaskStatus.TODO),
        ]
        self.bridge = ProjectFileBridge(settle_seconds=0.0)
        self.folder = self.source / ".sprintsync"


class BridgeWriteTests(_BridgeTestCase):
    def test_save_writes_project_tasks_and_schema(self) -> None:
        self.bridge.save(self.project, self.tasks)

        tasks = json.loads((self.folder / "tasks.json").read_text(encoding="utf-8"))
        self.assertEqual([t["title"] for t in tasks], ["Write docs", "Fix crash"])
        project = json.loads((self.folder / "project.json").read_text(encoding="utf-8"))
        self.assertEqual(project["id"], str(self.project.id))
        schema = json.loads((self.folder / "_schema.json").read_text(encoding="utf-8"))
        self.assertEqual(schema["_projectId"], str(self.project.id))
        self.assertIsNotNone(self.bridge.last_self_write(self.project.id, "tasks.json"))

    def test_schema_is_written_only_once(self) -> None:
        self.bridge.save(self.project, self.tasks)
        schema_path = self.folder / "_schema.json"
        schema_path.write_text("{}", encoding="utf-8")
        self.bridge.save(self.project, self.tasks)
        self.assertEqual(schema_path.read_text(encoding="utf-8"), "{}")

    def test_save_all_groups_tasks_and_skips_projects_without_source(self) -> None:
        other = Project(name="No source")
        stray = TaskItem(projectId=other.id, title="Elsewhere")
        self.bridge.save_all([self.project, other], self.tasks + [stray])

        tasks = json.loads((self.folder / "tasks.json").read_text(encoding="utf-8"))
        self.assertEqual(len(tasks), 2)

    def test_missing_source_directory_is_a_no_op(self) -> None:
        project = Project(name="Gone", sourcePath=str(self.source / "missing"))
        self.bridge.save(project, [])
        self.assertFalse((self.source / "missing").exists())
        self.assertIsNone(self.bridge.bridge_dir(project))

    def test_load_tasks_reads_back_written_file(self) -> None:
        self.bridge.save(self.project, self.tasks)
        loaded = self.bridge.load_tasks(self.project)
        self.assertEqual([t.id for t in loaded], [t.id for t in self.tasks])
        self.assertIsNone(self.bridge.load_tasks(Project(name="Unlinked")))


class BridgeChangeDetectionTests(_BridgeTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.bridge.save(self.project, self.tasks)

    def _edit_tasks(self, payload, mtime_offset: float = 5.0) -> None:
        path = self.folder / "tasks.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        _touch(path, time.time() + mtime_offset)

    def test_own_write_is_not_reported(self) -> None:
        self.assertEqual(self.bridge.check_for_external_change(self.project.id, self.folder), [])

    def test_external_tasks_edit_replaces_project_tasks(self) -> None:
        foreign = TaskItem(projectId=uuid.uuid4(), title="Added by agent")
        self._edit_tasks([encode_task(foreign)])

        events = self.bridge.check_for_external_change(self.project.id, self.folder)

        self.assertEqual(len(events), 1)
        event = events[0]
        self.assertIsInstance(event, TasksReplaced)
        self.assertEqual(event.project_id, self.project.id)
        self.assertEqual([t.title for t in event.tasks], ["Added by agent"])
        self.assertEqual(event.tasks[0].projectId, self.project.id)

    def test_same_external_edit_is_reported_once(self) -> None:
        self._edit_tasks([])
        self.assertEqual(len(self.bridge.check_for_external_change(self.project.id, self.folder)), 1)
        self.assertEqual(self.bridge.check_for_external_change(self.project.id, self.folder), [])

    def test_external_project_edit_becomes_sparse_patch(self) -> None:
        path = self.folder / "project.json"
        path.write_text(json.dumps({"id": str(self.project.id), "name": "Renamed"}), encoding="utf-8")
        _touch(path, time.time() + 5)

        events = self.bridge.check_for_external_change(self.project.id, self.folder)

        self.assertEqual(len(events), 1)
        event = events[0]
        self.assertIsInstance(event, ProjectPatched)
        self.assertEqual(event.patch.present_fields(), {"name": "Renamed"})
        self.assertEqual(event.modified_at, mtime_to_datetime(path.stat().st_mtime))

    def test_project_edit_with_foreign_id_is_ignored(self) -> None:
        path = self.folder / "project.json"
        path.write_text(json.dumps({"id": str(uuid.uuid4()), "name": "Other"}), encoding="utf-8")
        _touch(path, time.time() + 5)
        self.assertEqual(self.bridge.check_for_external_change(self.project.id, self.folder), [])

    def test_unreadable_edit_produces_no_event(self) -> None:
        path = self.folder / "tasks.json"
        path.write_text("[{broken", encoding="utf-8")
        _touch(path, time.time() + 5)
        self.assertEqual(self.bridge.check_for_external_change(self.project.id, self.folder), [])

    def test_pending_external_edit_is_not_overwritten(self) -> None:
        self._edit_tasks([])
        self.bridge.save(self.project, self.tasks)
        self.assertEqual(json.loads((self.folder / "tasks.json").read_text(encoding="utf-8")), [])

        self.bridge.check_for_external_change(self.project.id, self.folder)
        self.bridge.save(self.project, self.tasks)
        tasks = json.loads((self.folder / "tasks.json").read_text(encoding="utf-8"))
        self.assertEqual(len(tasks), 2)


class SelfWriteMarginTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.source = Path(tmp.name)
        self.project = Project(name="App", sourcePath=str(self.source))
        self.now = 1_800_000_000.0
        self.bridge = ProjectFileBridge(self_write_margin=0.5, clock=lambda: self.now)
        self.bridge.save(self.project, [])
        self.folder = self.source / ".sprintsync"

    def test_mtime_inside_margin_is_treated_as_own_write(self) -> None:
        _touch(self.folder / "tasks.json", self.now + 0.3)
        self.assertEqual(self.bridge.check_for_external_change(self.project.id, self.folder), [])

    def test_mtime_past_margin_is_external(self) -> None:
        _touch(self.folder / "tasks.json", self.now + 0.6)
        events = self.bridge.check_for_external_change(self.project.id, self.folder)
        self.assertEqual([type(e) for e in events], [TasksReplaced])


class BridgeWatchTests(unittest.IsolatedAsyncioTestCase):
    async def test_start_watching_creates_empty_tasks_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            project = Project(name="Fresh", sourcePath=tmpdir)
            bridge = ProjectFileBridge()

            self.assertTrue(await bridge.start_watching(project))
            self.assertTrue(bridge.is_watching(project.id))
            tasks_path = Path(tmpdir) / ".sprintsync" / "tasks.json"
            self.assertEqual(json.loads(tasks_path.read_text(encoding="utf-8")), [])

            await bridge.stop_all()
            self.assertFalse(bridge.is_watching(project.id))

    async def test_project_without_source_is_not_watched(self) -> None:
        bridge = ProjectFileBridge()
        self.assertFalse(await bridge.start_watching(Project(name="Nowhere")))

    async def test_start_watching_all_reports_watched_projects(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            watched = Project(name="Local", sourcePath=tmpdir)
            bridge = ProjectFileBridge()
            try:
                ids = await bridge.start_watching_all([watched, Project(name="Nowhere")])
                self.assertEqual(ids, [watched.id])
                self.assertTrue(bridge.is_watching(watched.id))
            finally:
                await bridge.stop_all()

    async def test_external_edit_is_emitted_while_watching(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            project = Project(name="Live", sourcePath=tmpdir)
            events = []
            bridge = ProjectFileBridge(on_event=events.append, settle_seconds=0.1)
            try:
                await bridge.start_watching(project)
                # Past the self-write margin of the tasks.json created above.
                await asyncio.sleep(0.8)
                edited = [encode_task(TaskItem(title="Typed in an editor"))]
                tasks_path = Path(tmpdir) / ".sprintsync" / "tasks.json"
                tasks_path.write_text(json.dumps(edited), encoding="utf-8")

                for _ in range(60):
                    if events:
                        break
                    await asyncio.sleep(0.1)
            finally:
                await bridge.stop_all()

        self.assertEqual(len(events), 1)
        self.assertIsInstance(events[0], TasksReplaced)
        self.assertEqual([t.title for t in events[0].tasks], ["Typed in an editor"])


if __name__ == "__main__":
    unittest.main()
