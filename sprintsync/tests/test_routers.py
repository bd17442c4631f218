import tempfile
import types
import unittest
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from fastapi import HTTPException
from fastapi.testclient import TestClient

from sprintsync.bridge import ProjectFileBridge
from sprintsync.date_utils import format_iso
from sprintsync.main import app
from sprintsync.models import TaskStatus
from sprintsync.orchestrator import SyncOrchestrator
from sprintsync.persistence import PersistenceEngine
from sprintsync.routers import activity as activity_api
from sprintsync.routers import projects as projects_api
from sprintsync.routers import sprints as sprints_api
from sprintsync.routers import sync as sync_api
from sprintsync.routers import tasks as tasks_api


class _MemoryCloudStore:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    def read(self, name: str) -> Optional[bytes]:
        return self.objects.get(name)

    def write(self, name: str, data: bytes) -> None:
        self.objects[name] = data

    async def changes(self, name: str):
        return
        yield


class RouterTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        persistence = PersistenceEngine(_MemoryCloudStore(), local_dir=Path(tmp.name), debounce_seconds=0.01)
        self.orchestrator = SyncOrchestrator(
            persistence,
            ProjectFileBridge(),
            bridge_debounce_seconds=0.01,
            watch_bridge=False,
            monitor_cloud=False,
        )
        self.request = types.SimpleNamespace(
            app=types.SimpleNamespace(state=types.SimpleNamespace(orchestrator=self.orchestrator))
        )

    async def _project(self, name: str = "Atlas") -> dict:
        return await projects_api.add_project(self.request, {"name": name, "color": "34D399"})

    async def test_missing_orchestrator_is_503(self) -> None:
        request = types.SimpleNamespace(app=types.SimpleNamespace(state=types.SimpleNamespace()))
        with self.assertRaises(HTTPException) as ctx:
            await projects_api.list_projects(request)
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_add_and_list_projects(self) -> None:
        created = await self._project()
        listed = await projects_api.list_projects(self.request)

        self.assertEqual([p["name"] for p in listed], ["Atlas"])
        self.assertEqual(listed[0]["id"], created["id"])
        self.assertEqual(listed[0]["color"], "34D399")
        self.assertEqual(listed[0]["totalTasks"], 0)

    async def test_unknown_project_is_404(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await projects_api.get_project(self.request, uuid.uuid4())
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_schedule_update(self) -> None:
        created = await self._project()
        updated = await projects_api.update_project_schedule(
            self.request,
            uuid.UUID(created["id"]),
            projects_api.ScheduleRequest(startWeek=2, durationWeeks=6),
        )
        self.assertEqual((updated["startWeek"], updated["durationWeeks"]), (2, 6))

    async def test_task_for_unknown_project_is_404(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await tasks_api.add_task(self.request, {"title": "Lost", "projectId": str(uuid.uuid4())})
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_malformed_task_is_422(self) -> None:
        created = await self._project()
        with self.assertRaises(HTTPException) as ctx:
            await tasks_api.add_task(self.request, {"projectId": created["id"], "priority": "urgent"})
        self.assertEqual(ctx.exception.status_code, 422)

    async def test_task_status_change_updates_progress(self) -> None:
        created = await self._project()
        task = await tasks_api.add_task(self.request, {"title": "Ship", "projectId": created["id"]})
        await tasks_api.add_task(self.request, {"title": "Test", "projectId": created["id"]})

        updated = await tasks_api.update_task_status(
            self.request, uuid.UUID(task["id"]), tasks_api.StatusUpdate(status=TaskStatus.DONE)
        )
        project = await projects_api.get_project(self.request, uuid.UUID(created["id"]))
        done = await tasks_api.list_tasks(self.request, projectId=uuid.UUID(created["id"]), status=TaskStatus.DONE)

        self.assertEqual(updated["status"], "done")
        self.assertEqual(project["progress"], 50.0)
        self.assertEqual([t["title"] for t in done], ["Ship"])

    async def test_assigning_unknown_sprint_is_400(self) -> None:
        created = await self._project()
        task = await tasks_api.add_task(self.request, {"title": "Ship", "projectId": created["id"]})
        with self.assertRaises(HTTPException) as ctx:
            await tasks_api.assign_task_to_sprint(
                self.request, uuid.UUID(task["id"]), tasks_api.SprintAssignment(sprintName="Nope")
            )
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_sprint_lifecycle_drives_project_label(self) -> None:
        created = await self._project()
        sprint = await sprints_api.add_sprint(self.request, {"projectId": created["id"], "name": "Sprint 1"})
        task = await tasks_api.add_task(self.request, {"title": "Ship", "projectId": created["id"]})
        await tasks_api.assign_task_to_sprint(
            self.request, uuid.UUID(task["id"]), tasks_api.SprintAssignment(sprintName="Sprint 1")
        )
        project = await projects_api.get_project(self.request, uuid.UUID(created["id"]))
        self.assertEqual(project["sprint"], "Sprint 1")

        await sprints_api.complete_sprint(self.request, uuid.UUID(sprint["id"]))
        project = await projects_api.get_project(self.request, uuid.UUID(created["id"]))
        self.assertEqual(project["sprint"], "Completed")

        with self.assertRaises(HTTPException) as ctx:
            await sprints_api.add_sprint(self.request, {"projectId": created["id"], "name": "Sprint 1"})
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_activity_feed_is_newest_first_and_limited(self) -> None:
        await activity_api.add_activity(self.request, {"text": "Created project", "icon": "plus"})
        added = await activity_api.add_activity(self.request, {"text": "Closed sprint"})
        listed = await activity_api.list_activities(self.request)
        latest = await activity_api.list_activities(self.request, limit=1)

        self.assertEqual([a["text"] for a in listed], ["Closed sprint", "Created project"])
        self.assertEqual([a["id"] for a in latest], [added["id"]])

    async def test_team_member_is_added_with_its_color(self) -> None:
        added = await activity_api.add_team_member(self.request, {"name": "Ada", "color": "#f472b6", "workload": 60})
        listed = await activity_api.list_team_members(self.request)

        self.assertEqual(added["color"], "F472B6")
        self.assertEqual([(m["name"], m["workload"]) for m in listed], [("Ada", 60)])
        self.assertEqual([m.name for m in self.orchestrator.store.snapshot().teamMembers], ["Ada"])

    async def test_malformed_team_member_is_422(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await activity_api.add_team_member(self.request, {"name": "Ada", "color": "pink"})
        self.assertEqual(ctx.exception.status_code, 422)

    async def test_sprint_payload_reports_days_remaining(self) -> None:
        created = await self._project()
        now = datetime.now(timezone.utc)
        await sprints_api.add_sprint(
            self.request,
            {
                "projectId": created["id"],
                "name": "Sprint 1",
                "startDate": format_iso(now),
                "endDate": format_iso(now + timedelta(days=5)),
            },
        )
        listed = await sprints_api.list_sprints(self.request, projectId=uuid.UUID(created["id"]))
        self.assertEqual(listed[0]["daysRemaining"], 5)

    async def test_snapshot_export_and_restore(self) -> None:
        await self._project("Exported")
        exported = await sync_api.export_snapshot(self.request)
        await projects_api.add_project(self.request, {"name": "Transient"})

        result = await sync_api.restore(self.request, exported)
        listed = await projects_api.list_projects(self.request)
        status = await sync_api.sync_status(self.request)

        self.assertTrue(result["restored"])
        self.assertEqual([p["name"] for p in listed], ["Exported"])
        self.assertEqual(status["suppression"], "cooldown")
        self.assertFalse(status["running"])

    async def test_restore_rejects_malformed_snapshot(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await sync_api.restore(self.request, {"projects": []})
        self.assertEqual(ctx.exception.status_code, 422)


class HealthEndpointTests(unittest.TestCase):
    def test_health_reports_stopped_sync_before_startup(self) -> None:
        client = TestClient(app)
        response = client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "sync": "stopped", "cloudMonitoring": False})

    def test_activity_routes_need_a_running_orchestrator(self) -> None:
        client = TestClient(app)
        self.assertEqual(client.get("/api/activities").status_code, 503)
        self.assertEqual(client.get("/api/team-members").status_code, 503)


if __name__ == "__main__":
    unittest.main()
