"""API router for the activity feed and team roster."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from sprintsync.codec import decode_activity, decode_team_member, encode_activity, encode_team_member
from sprintsync.routers.common import domain_errors, get_orchestrator

activity_router = APIRouter(prefix="/api", tags=["activity"])


@activity_router.get("/activities")
async def list_activities(request: Request, limit: int = 50):
    """Most recent activity first."""
    store = get_orchestrator(request).store
    return [encode_activity(a) for a in store.activities[: max(limit, 0)]]


@activity_router.post("/activities")
async def add_activity(request: Request, payload: dict[str, Any]):
    orchestrator = get_orchestrator(request)
    with domain_errors():
        activity = orchestrator.store.add_activity(decode_activity(payload))
    return encode_activity(activity)


@activity_router.get("/team-members")
async def list_team_members(request: Request):
    store = get_orchestrator(request).store
    return [encode_team_member(m) for m in store.team_members]


@activity_router.post("/team-members")
async def add_team_member(request: Request, payload: dict[str, Any]):
    orchestrator = get_orchestrator(request)
    with domain_errors():
        member = orchestrator.store.add_team_member(decode_team_member(payload))
    return encode_team_member(member)
