"""Pydantic models for the synchronized domain state."""
from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, Field

from sprintsync.date_utils import EPOCH, days_between, utcnow


class Color(NamedTuple):
    r: int
    g: int
    b: int


DEFAULT_COLOR = Color(0x4F, 0xAC, 0xFE)


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskStatus(str, Enum):
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @property
    def is_terminal(self) -> bool:
        return self is TaskStatus.DONE


# ── Project ────────────────────────────────────────────────────────

class Project(BaseModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str
    icon: str = ""
    desc: str = ""
    color: Color = DEFAULT_COLOR
    startWeek: int = 0       # 0-based week offset for the timeline
    durationWeeks: int = 4
    sourcePath: str = ""     # absolute in memory, "" when the project has no source tree
    version: str = ""
    landingURL: str = ""
    appStoreURL: str = ""
    languages: list[str] = Field(default_factory=list)
    lastModified: datetime = EPOCH

    # Derived from the task/sprint sets; recomputed by the store, never set by callers.
    sprint: str = ""
    totalTasks: int = 0
    doneTasks: int = 0
    progress: float = 0.0


# Fields a ProjectPatch may carry (everything except identity and derived fields).
PATCHABLE_PROJECT_FIELDS = (
    "name",
    "icon",
    "desc",
    "color",
    "startWeek",
    "durationWeeks",
    "sourcePath",
    "version",
    "landingURL",
    "appStoreURL",
    "languages",
)


class ProjectPatch(BaseModel):
    """Sparse view of a Project decoded from an externally edited project.json."""

    id: uuid.UUID
    name: Optional[str] = None
    icon: Optional[str] = None
    desc: Optional[str] = None
    color: Optional[Color] = None
    startWeek: Optional[int] = None
    durationWeeks: Optional[int] = None
    sourcePath: Optional[str] = None
    version: Optional[str] = None
    landingURL: Optional[str] = None
    appStoreURL: Optional[str] = None
    languages: Optional[list[str]] = None
    lastModified: Optional[datetime] = None

    def present_fields(self) -> dict:
        """Return only the patchable fields that were present and non-null."""
        return {
            name: getattr(self, name)
            for name in PATCHABLE_PROJECT_FIELDS
            if name in self.model_fields_set and getattr(self, name) is not None
        }


# ── Sprint ─────────────────────────────────────────────────────────

class Sprint(BaseModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    projectId: uuid.UUID
    name: str
    goal: str = ""
    targetVersion: str = ""
    isActive: bool = True
    isHidden: bool = False
    startDate: datetime = Field(default_factory=utcnow)
    endDate: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> tuple[uuid.UUID, str]:
        return (self.projectId, self.name)

    @property
    def daysRemaining(self) -> int:
        return max(0, days_between(utcnow(), self.endDate))


# ── Task ───────────────────────────────────────────────────────────

class TaskItem(BaseModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    projectId: Optional[uuid.UUID] = None  # weak back-reference, lookup only
    title: str
    tags: list[str] = Field(default_factory=list)
    priority: Priority = Priority.MEDIUM
    storyPoints: int = 3
    assignee: str = ""
    assigneeColor: Color = DEFAULT_COLOR
    status: TaskStatus = TaskStatus.BACKLOG
    sprint: str = ""  # denormalized sprint name, "" when unassigned


# ── Ancillary ──────────────────────────────────────────────────────

class VelocityPoint(BaseModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    sprint: str
    planned: int = 0
    completed: int = 0


class ActivityItem(BaseModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    icon: str = ""
    text: str = ""
    highlightedText: str = ""
    time: str = ""


class TeamMember(BaseModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str
    color: Color = DEFAULT_COLOR
    workload: float = 0.0  # 0-100


# ── Snapshot ───────────────────────────────────────────────────────

class Snapshot(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    projects: list[Project] = Field(default_factory=list)
    tasks: list[TaskItem] = Field(default_factory=list)
    sprints: list[Sprint] = Field(default_factory=list)
    velocityData: list[VelocityPoint] = Field(default_factory=list)
    activities: list[ActivityItem] = Field(default_factory=list)
    teamMembers: list[TeamMember] = Field(default_factory=list)
    burndownIdeal: list[float] = Field(default_factory=list)
    burndownActual: list[float] = Field(default_factory=list)
