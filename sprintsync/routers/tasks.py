"""API router for kanban tasks."""
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from sprintsync.codec import decode_task, encode_task
from sprintsync.models import Priority, TaskStatus
from sprintsync.routers.common import domain_errors, get_orchestrator, sprint_payload

tasks_router = APIRouter(prefix="/api/tasks", tags=["tasks"])


class StatusUpdate(BaseModel):
    status: TaskStatus


class PriorityUpdate(BaseModel):
    priority: Priority


class SprintAssignment(BaseModel):
    sprintName: Optional[str] = None


@tasks_router.get("")
async def list_tasks(
    request: Request,
    projectId: Optional[uuid.UUID] = None,
    status: Optional[TaskStatus] = None,
):
    """List tasks, optionally filtered by project and status."""
    store = get_orchestrator(request).store
    tasks = store.tasks
    if projectId is not None:
        tasks = store.tasks_for_project(projectId)
    if status is not None:
        tasks = [t for t in tasks if t.status == status]
    return [encode_task(t) for t in tasks]


@tasks_router.post("")
async def add_task(request: Request, payload: dict[str, Any]):
    orchestrator = get_orchestrator(request)
    with domain_errors():
        task = orchestrator.store.add_task(decode_task(payload))
    return encode_task(task)


@tasks_router.get("/{task_id}")
async def get_task(request: Request, task_id: uuid.UUID):
    task = get_orchestrator(request).store.get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return encode_task(task)


@tasks_router.put("/{task_id}")
async def update_task(request: Request, task_id: uuid.UUID, payload: dict[str, Any]):
    orchestrator = get_orchestrator(request)
    with domain_errors():
        task = orchestrator.store.update_task(decode_task({**payload, "id": str(task_id)}))
    return encode_task(task)


@tasks_router.patch("/{task_id}/status")
async def update_task_status(request: Request, task_id: uuid.UUID, body: StatusUpdate):
    orchestrator = get_orchestrator(request)
    with domain_errors():
        task = orchestrator.store.update_task_status(task_id, body.status)
    return encode_task(task)


@tasks_router.patch("/{task_id}/priority")
async def update_task_priority(request: Request, task_id: uuid.UUID, body: PriorityUpdate):
    orchestrator = get_orchestrator(request)
    with domain_errors():
        task = orchestrator.store.update_task_priority(task_id, body.priority)
    return encode_task(task)


@tasks_router.put("/{task_id}/sprint")
async def assign_task_to_sprint(request: Request, task_id: uuid.UUID, body: SprintAssignment):
    """Assign the task to a sprint of its project by name; null unassigns."""
    orchestrator = get_orchestrator(request)
    with domain_errors():
        task = orchestrator.store.assign_task_to_sprint(task_id, body.sprintName)
    return encode_task(task)


@tasks_router.get("/{task_id}/available-sprints")
async def available_sprints(request: Request, task_id: uuid.UUID):
    store = get_orchestrator(request).store
    with domain_errors():
        sprints = store.available_sprints_for_task(task_id)
    return [sprint_payload(s) for s in sprints]


@tasks_router.delete("/{task_id}")
async def delete_task(request: Request, task_id: uuid.UUID):
    orchestrator = get_orchestrator(request)
    with domain_errors():
        orchestrator.store.delete_task(task_id)
    return {"deleted": str(task_id)}
