"""API router for project management."""
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from sprintsync.codec import decode_project, encode_project, encode_task
from sprintsync.routers.common import domain_errors, get_orchestrator, sprint_payload

projects_router = APIRouter(prefix="/api/projects", tags=["projects"])


class ScheduleRequest(BaseModel):
    startWeek: int
    durationWeeks: Optional[int] = None


@projects_router.get("")
async def list_projects(request: Request):
    """List all projects with their derived progress fields."""
    store = get_orchestrator(request).store
    return [encode_project(p) for p in store.projects]


@projects_router.post("")
async def add_project(request: Request, payload: dict[str, Any]):
    """Add a new project."""
    orchestrator = get_orchestrator(request)
    with domain_errors():
        project = orchestrator.store.add_project(decode_project(payload))
    return encode_project(project)


@projects_router.get("/{project_id}")
async def get_project(request: Request, project_id: uuid.UUID):
    project = get_orchestrator(request).store.get_project(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return encode_project(project)


@projects_router.put("/{project_id}")
async def update_project(request: Request, project_id: uuid.UUID, payload: dict[str, Any]):
    """Update an existing project's editable fields."""
    orchestrator = get_orchestrator(request)
    with domain_errors():
        project = decode_project({**payload, "id": str(project_id)})
        updated = orchestrator.store.update_project(project)
    return encode_project(updated)


@projects_router.patch("/{project_id}/schedule")
async def update_project_schedule(request: Request, project_id: uuid.UUID, body: ScheduleRequest):
    orchestrator = get_orchestrator(request)
    with domain_errors():
        project = orchestrator.store.update_project_schedule(project_id, body.startWeek, body.durationWeeks)
    return encode_project(project)


@projects_router.delete("/{project_id}")
async def delete_project(request: Request, project_id: uuid.UUID):
    """Delete a project together with its sprints and tasks."""
    orchestrator = get_orchestrator(request)
    with domain_errors():
        orchestrator.store.delete_project(project_id)
    return {"deleted": str(project_id)}


@projects_router.get("/{project_id}/tasks")
async def list_project_tasks(request: Request, project_id: uuid.UUID):
    store = get_orchestrator(request).store
    return [encode_task(t) for t in store.tasks_for_project(project_id)]


@projects_router.get("/{project_id}/sprints")
async def list_project_sprints(request: Request, project_id: uuid.UUID):
    store = get_orchestrator(request).store
    return [sprint_payload(s) for s in store.sprints_for_project(project_id)]
