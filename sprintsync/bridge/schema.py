"""Descriptive ``_schema.json`` written once per bridge folder for external editors."""
from __future__ import annotations

from typing import Any

from sprintsync import config
from sprintsync.models import PATCHABLE_PROJECT_FIELDS, Priority, Project, TaskStatus

EXAMPLE_TASK_ID = "550e8400-e29b-41d4-a716-446655440000"


def build_schema(project: Project) -> dict[str, Any]:
    project_id = str(project.id)
    priorities = " | ".join(p.value for p in Priority)
    statuses = " | ".join(s.value for s in TaskStatus)
    return {
        "_description": "SprintSync project data",
        "_note": (
            f"Edits to {config.BRIDGE_TASKS_FILENAME} and {config.BRIDGE_PROJECT_FILENAME} "
            "are picked up by SprintSync automatically."
        ),
        "_project": project.name,
        "_projectId": project_id,
        "task_fields": {
            "id": "UUID string (generate a new UUID for a new task)",
            "projectId": f"{project_id} (always use this project's id)",
            "title": "string - task title",
            "tags": 'string[] - e.g. ["Feature", "UI", "Backend", "Bug", "Core", "Refactor"]',
            "priority": f"string - {priorities}",
            "storyPoints": "integer - story points (1, 2, 3, 5, 8, 13)",
            "assignee": "string - 2-letter initials (e.g. JK)",
            "assigneeColor": "string - 6-digit hex color (e.g. 4FACFE, 34D399)",
            "status": f"string - {statuses}",
            "sprint": "string - sprint name, empty when unassigned",
        },
        "project_fields": {
            "id": f"{project_id} (required, never change it)",
            "editable": list(PATCHABLE_PROJECT_FIELDS),
            "lastModified": (
                "ISO-8601 timestamp; edits carrying a value older than the app's copy are ignored"
            ),
            "sourcePath": "paths under the home directory are written as ~/...",
        },
        "example": {
            "id": EXAMPLE_TASK_ID,
            "projectId": project_id,
            "title": "Example task",
            "tags": ["Feature", "Backend"],
            "priority": Priority.HIGH.value,
            "storyPoints": 5,
            "assignee": "JK",
            "assigneeColor": "4FACFE",
            "status": TaskStatus.BACKLOG.value,
            "sprint": "",
        },
        "usage": [
            f"1. Read {config.BRIDGE_TASKS_FILENAME}",
            "2. Add, edit or remove tasks (the file is always replaced as a whole)",
            "3. Save; SprintSync applies the change within a second",
            f"4. New tasks need a fresh UUID id and projectId {project_id}",
            f"5. Only keys present in {config.BRIDGE_PROJECT_FILENAME} are applied to the project",
        ],
    }
