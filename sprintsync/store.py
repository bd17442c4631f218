"""Domain store: the canonical in-memory collections and their mutations.

Every mutation recomputes the derived project fields and then notifies the
registered listeners. The store itself knows nothing about persistence or
loop prevention; the orchestrator decides what a change signal triggers.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional

from sprintsync import config
from sprintsync.date_utils import add_weeks, start_of_day, utcnow
from sprintsync.models import (
    PATCHABLE_PROJECT_FIELDS,
    ActivityItem,
    Priority,
    Project,
    ProjectPatch,
    Snapshot,
    Sprint,
    TaskItem,
    TaskStatus,
    TeamMember,
    VelocityPoint,
)

logger = logging.getLogger("sprintsync.store")

SPRINT_LABEL_COMPLETED = "Completed"

Listener = Callable[[], None]


def derive_sprint_label(sprints: Iterable[Sprint]) -> str:
    """Active-sprint label for a project's sprint set."""
    sprints = list(sprints)
    if not sprints:
        return ""
    active = sorted((s for s in sprints if s.isActive), key=lambda s: (s.startDate, s.name))
    if not active:
        return SPRINT_LABEL_COMPLETED
    if len(active) == 1:
        return active[0].name
    return f"{active[0].name} +{len(active) - 1} more"


def derive_progress(total: int, done: int) -> float:
    if total == 0:
        return 0.0
    return done / total * 100


class DomainStore:
    def __init__(
        self,
        default_sprint_weeks: int = config.DEFAULT_SPRINT_WEEKS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._default_sprint_weeks = default_sprint_weeks
        self._clock = clock
        self.projects: list[Project] = []
        self.tasks: list[TaskItem] = []
        self.sprints: list[Sprint] = []
        self.velocity_data: list[VelocityPoint] = []
        self.activities: list[ActivityItem] = []
        self.team_members: list[TeamMember] = []
        self.burndown_ideal: list[float] = []
        self.burndown_actual: list[float] = []
        self._listeners: list[Listener] = []

    # ── Change notification ─────────────────────────────────────────

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        self.recompute_derived()
        for listener in list(self._listeners):
            listener()

    # ── Queries ─────────────────────────────────────────────────────

    def get_project(self, project_id: uuid.UUID) -> Optional[Project]:
        return next((p for p in self.projects if p.id == project_id), None)

    def get_task(self, task_id: uuid.UUID) -> Optional[TaskItem]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def get_sprint(self, sprint_id: uuid.UUID) -> Optional[Sprint]:
        return next((s for s in self.sprints if s.id == sprint_id), None)

    def tasks_for_project(self, project_id: uuid.UUID, status: Optional[TaskStatus] = None) -> list[TaskItem]:
        return [
            t for t in self.tasks
            if t.projectId == project_id and (status is None or t.status == status)
        ]

    def sprints_for_project(self, project_id: uuid.UUID) -> list[Sprint]:
        return [s for s in self.sprints if s.projectId == project_id]

    def available_sprints_for_task(self, task_id: uuid.UUID) -> list[Sprint]:
        task = self._require_task(task_id)
        if task.projectId is None:
            return []
        return sorted(
            (s for s in self.sprints_for_project(task.projectId) if not s.isHidden),
            key=lambda s: (not s.isActive, s.startDate, s.name),
        )

    def _require_project(self, project_id: uuid.UUID) -> Project:
        project = self.get_project(project_id)
        if project is None:
            raise KeyError(f"Project {project_id} not found")
        return project

    def _require_task(self, task_id: uuid.UUID) -> TaskItem:
        task = self.get_task(task_id)
        if task is None:
            raise KeyError(f"Task {task_id} not found")
        return task

    def _require_sprint(self, sprint_id: uuid.UUID) -> Sprint:
        sprint = self.get_sprint(sprint_id)
        if sprint is None:
            raise KeyError(f"Sprint {sprint_id} not found")
        return sprint

    def _find_sprint(self, project_id: uuid.UUID, name: str) -> Optional[Sprint]:
        return next((s for s in self.sprints if s.key == (project_id, name)), None)

    # ── Project mutations ───────────────────────────────────────────

    def add_project(self, project: Project) -> Project:
        project.lastModified = self._clock()
        self.projects.append(project)
        self._changed()
        return project

    def update_project(self, project: Project) -> Project:
        """Replace a project's editable fields; derived fields are left to recomputation."""
        current = self._require_project(project.id)
        for name in PATCHABLE_PROJECT_FIELDS:
            setattr(current, name, getattr(project, name))
        current.lastModified = self._clock()
        self._changed()
        return current

    def update_project_schedule(
        self, project_id: uuid.UUID, start_week: int, duration_weeks: Optional[int] = None
    ) -> Project:
        project = self._require_project(project_id)
        project.startWeek = start_week
        if duration_weeks is not None:
            project.durationWeeks = duration_weeks
        project.lastModified = self._clock()
        self._changed()
        return project

    def update_project_versions(self, versions: dict[uuid.UUID, str]) -> int:
        """Apply scanned versions; notifies once if anything changed."""
        changed = 0
        for project_id, version in versions.items():
            project = self.get_project(project_id)
            if project is None or not version or project.version == version:
                continue
            project.version = version
            project.lastModified = self._clock()
            changed += 1
        if changed:
            self._changed()
        return changed

    def delete_project(self, project_id: uuid.UUID) -> None:
        self._require_project(project_id)
        self.projects = [p for p in self.projects if p.id != project_id]
        self.sprints = [s for s in self.sprints if s.projectId != project_id]
        self.tasks = [t for t in self.tasks if t.projectId != project_id]
        self._changed()

    # ── Task mutations ──────────────────────────────────────────────

    def add_task(self, task: TaskItem) -> TaskItem:
        if task.projectId is not None:
            self._require_project(task.projectId)
        self.tasks.append(task)
        self._changed()
        return task

    def update_task(self, task: TaskItem) -> TaskItem:
        current = self._require_task(task.id)
        index = next(i for i, t in enumerate(self.tasks) if t.id == current.id)
        self.tasks[index] = task
        self._changed()
        return task

    def update_task_status(self, task_id: uuid.UUID, status: TaskStatus) -> TaskItem:
        task = self._require_task(task_id)
        task.status = status
        self._changed()
        return task

    def update_task_priority(self, task_id: uuid.UUID, priority: Priority) -> TaskItem:
        task = self._require_task(task_id)
        task.priority = priority
        self._changed()
        return task

    def delete_task(self, task_id: uuid.UUID) -> None:
        self._require_task(task_id)
        self.tasks = [t for t in self.tasks if t.id != task_id]
        self._changed()

    def assign_task_to_sprint(self, task_id: uuid.UUID, sprint_name: Optional[str]) -> TaskItem:
        """Set the task's sprint name; ``None`` unassigns it."""
        task = self._require_task(task_id)
        if sprint_name is None:
            task.sprint = ""
        else:
            if task.projectId is None or self._find_sprint(task.projectId, sprint_name) is None:
                raise ValueError(f"Sprint {sprint_name!r} does not exist for the task's project")
            task.sprint = sprint_name
        self._changed()
        return task

    # ── Sprint mutations ────────────────────────────────────────────

    def add_sprint(self, sprint: Sprint) -> Sprint:
        self._require_project(sprint.projectId)
        if self._find_sprint(sprint.projectId, sprint.name) is not None:
            raise ValueError(f"Sprint {sprint.name!r} already exists in this project")
        self.sprints.append(sprint)
        self._changed()
        return sprint

    def update_sprint(self, sprint: Sprint) -> Sprint:
        current = self._require_sprint(sprint.id)
        if sprint.projectId != current.projectId:
            raise ValueError("A sprint cannot move to another project")
        if sprint.name != current.name:
            if self._find_sprint(sprint.projectId, sprint.name) is not None:
                raise ValueError(f"Sprint {sprint.name!r} already exists in this project")
            for task in self.tasks_for_project(current.projectId):
                if task.sprint == current.name:
                    task.sprint = sprint.name
        index = next(i for i, s in enumerate(self.sprints) if s.id == current.id)
        self.sprints[index] = sprint
        self._changed()
        return sprint

    def complete_sprint(self, sprint_id: uuid.UUID) -> Sprint:
        sprint = self._require_sprint(sprint_id)
        sprint.isActive = False
        self._changed()
        return sprint

    def delete_sprint(self, sprint_id: uuid.UUID) -> None:
        sprint = self._require_sprint(sprint_id)
        for task in self.tasks_for_project(sprint.projectId):
            if task.sprint == sprint.name:
                task.sprint = ""
        self.sprints = [s for s in self.sprints if s.id != sprint_id]
        self._changed()

    # ── Ancillary mutations ─────────────────────────────────────────

    def add_activity(self, activity: ActivityItem) -> ActivityItem:
        self.activities.insert(0, activity)
        self._changed()
        return activity

    def add_team_member(self, member: TeamMember) -> TeamMember:
        self.team_members.append(member)
        self._changed()
        return member

    # ── Derived fields ──────────────────────────────────────────────

    def recompute_derived(self) -> None:
        """Recompute sprint label, task counts and progress for every project."""
        totals: dict[uuid.UUID, int] = {}
        done: dict[uuid.UUID, int] = {}
        for task in self.tasks:
            if task.projectId is None:
                continue
            totals[task.projectId] = totals.get(task.projectId, 0) + 1
            if task.status.is_terminal:
                done[task.projectId] = done.get(task.projectId, 0) + 1

        sprints_by_project: dict[uuid.UUID, list[Sprint]] = {}
        for sprint in self.sprints:
            sprints_by_project.setdefault(sprint.projectId, []).append(sprint)

        for project in self.projects:
            total = totals.get(project.id, 0)
            completed = done.get(project.id, 0)
            project.sprint = derive_sprint_label(sprints_by_project.get(project.id, []))
            project.totalTasks = total
            project.doneTasks = completed
            project.progress = derive_progress(total, completed)

    # ── Legacy migration ────────────────────────────────────────────

    def migrate_legacy_sprints(self) -> list[Sprint]:
        """Create Sprint entities for sprint names only embedded in projects/tasks.

        A project's ``sprint`` string that already equals the label derived
        from its sprint set is a derived value, not legacy data, and is
        skipped. Returns the sprints created (empty once all pairs exist).
        """
        project_ids = {p.id for p in self.projects}
        existing = {s.key for s in self.sprints}
        wanted: list[tuple[uuid.UUID, str]] = []

        def _want(project_id: uuid.UUID, name: str) -> None:
            key = (project_id, name)
            if name.strip() and key not in existing and key not in wanted:
                wanted.append(key)

        for project in self.projects:
            if project.sprint and project.sprint != derive_sprint_label(self.sprints_for_project(project.id)):
                _want(project.id, project.sprint)
        for task in self.tasks:
            if task.projectId in project_ids and task.sprint:
                _want(task.projectId, task.sprint)

        start = start_of_day(self._clock())
        created = [
            Sprint(
                projectId=project_id,
                name=name,
                isActive=True,
                startDate=start,
                endDate=add_weeks(start, self._default_sprint_weeks),
            )
            for project_id, name in wanted
        ]
        self.sprints.extend(created)
        if created:
            logger.info(f"Migrated {len(created)} legacy sprint name(s) into sprints")
        return created

    # ── Snapshot / restore-type operations ──────────────────────────

    def snapshot(self) -> Snapshot:
        return Snapshot(
            timestamp=self._clock(),
            projects=[p.model_copy(deep=True) for p in self.projects],
            tasks=[t.model_copy(deep=True) for t in self.tasks],
            sprints=[s.model_copy(deep=True) for s in self.sprints],
            velocityData=[v.model_copy(deep=True) for v in self.velocity_data],
            activities=[a.model_copy(deep=True) for a in self.activities],
            teamMembers=[m.model_copy(deep=True) for m in self.team_members],
            burndownIdeal=list(self.burndown_ideal),
            burndownActual=list(self.burndown_actual),
        )

    def restore(self, snapshot: Snapshot, migrate_legacy: bool = False) -> list[Sprint]:
        """Replace every collection with the snapshot's contents.

        With ``migrate_legacy`` the legacy sprint names are migrated before
        derived fields are recomputed, so a project-only name survives.
        Returns the sprints created by that migration.
        """
        self.projects = [p.model_copy(deep=True) for p in snapshot.projects]
        self.tasks = [t.model_copy(deep=True) for t in snapshot.tasks]
        self.sprints = [s.model_copy(deep=True) for s in snapshot.sprints]
        self.velocity_data = [v.model_copy(deep=True) for v in snapshot.velocityData]
        self.activities = [a.model_copy(deep=True) for a in snapshot.activities]
        self.team_members = [m.model_copy(deep=True) for m in snapshot.teamMembers]
        self.burndown_ideal = list(snapshot.burndownIdeal)
        self.burndown_actual = list(snapshot.burndownActual)
        created = self.migrate_legacy_sprints() if migrate_legacy else []
        self._changed()
        return created

    def replace_project_tasks(self, project_id: uuid.UUID, tasks: Iterable[TaskItem]) -> None:
        """Replace all tasks of one project; other projects' tasks are untouched.

        Task ids are unique across the store: an incoming task whose id is
        held by another project (or repeated in the list) is dropped.
        """
        others = [t for t in self.tasks if t.projectId != project_id]
        taken = {t.id for t in others}
        replacement: list[TaskItem] = []
        for task in tasks:
            if task.id in taken:
                logger.warning(f"Dropping task {task.id} from {project_id}: id already in use")
                continue
            taken.add(task.id)
            replacement.append(task.model_copy(update={"projectId": project_id}))
        self.tasks = others + replacement
        self._changed()

    def apply_project_patch(self, patch: ProjectPatch, modified_at: Optional[datetime] = None) -> bool:
        """Merge the patch's present fields into its project.

        Returns False without touching anything when the project is unknown
        or the patch's ``lastModified`` is older than the project's.
        """
        project = self.get_project(patch.id)
        if project is None:
            logger.debug(f"Ignoring patch for unknown project {patch.id}")
            return False
        if patch.lastModified is not None and patch.lastModified < project.lastModified:
            logger.debug(
                f"Rejecting stale patch for {project.name}: "
                f"{patch.lastModified.isoformat()} < {project.lastModified.isoformat()}"
            )
            return False

        for name, value in patch.present_fields().items():
            setattr(project, name, value)
        if patch.lastModified is not None:
            project.lastModified = patch.lastModified
        else:
            project.lastModified = max(project.lastModified, modified_at or self._clock())
        self._changed()
        return True
