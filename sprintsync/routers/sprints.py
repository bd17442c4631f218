"""API router for sprints."""
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, Request

from sprintsync.codec import decode_sprint
from sprintsync.routers.common import domain_errors, get_orchestrator, sprint_payload

sprints_router = APIRouter(prefix="/api/sprints", tags=["sprints"])


@sprints_router.get("")
async def list_sprints(request: Request, projectId: Optional[uuid.UUID] = None, includeHidden: bool = True):
    store = get_orchestrator(request).store
    sprints = store.sprints if projectId is None else store.sprints_for_project(projectId)
    if not includeHidden:
        sprints = [s for s in sprints if not s.isHidden]
    return [sprint_payload(s) for s in sprints]


@sprints_router.post("")
async def add_sprint(request: Request, payload: dict[str, Any]):
    orchestrator = get_orchestrator(request)
    with domain_errors():
        sprint = orchestrator.store.add_sprint(decode_sprint(payload))
    return sprint_payload(sprint)


@sprints_router.put("/{sprint_id}")
async def update_sprint(request: Request, sprint_id: uuid.UUID, payload: dict[str, Any]):
    """Update a sprint; a rename is carried over to the project's tasks."""
    orchestrator = get_orchestrator(request)
    with domain_errors():
        sprint = orchestrator.store.update_sprint(decode_sprint({**payload, "id": str(sprint_id)}))
    return sprint_payload(sprint)


@sprints_router.post("/{sprint_id}/complete")
async def complete_sprint(request: Request, sprint_id: uuid.UUID):
    orchestrator = get_orchestrator(request)
    with domain_errors():
        sprint = orchestrator.store.complete_sprint(sprint_id)
    return sprint_payload(sprint)


@sprints_router.delete("/{sprint_id}")
async def delete_sprint(request: Request, sprint_id: uuid.UUID):
    orchestrator = get_orchestrator(request)
    with domain_errors():
        orchestrator.store.delete_sprint(sprint_id)
    return {"deleted": str(sprint_id)}
