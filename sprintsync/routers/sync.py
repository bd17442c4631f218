"""Sync control API: explicit save, refresh, snapshot export and restore."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request

from sprintsync.codec import decode_snapshot, encode_snapshot
from sprintsync.routers.common import domain_errors, get_orchestrator

logger = logging.getLogger("sprintsync.api")

sync_router = APIRouter(prefix="/api/sync", tags=["sync"])


@sync_router.get("/status")
async def sync_status(request: Request):
    orchestrator = get_orchestrator(request)
    return {
        "running": orchestrator.is_running,
        "suppression": orchestrator.suppression.state.value,
        "cloudMonitoring": orchestrator.persistence.is_monitoring,
        "watchedProjects": [
            str(p.id) for p in orchestrator.store.projects if orchestrator.bridge.is_watching(p.id)
        ],
    }


@sync_router.post("/save")
async def save(request: Request, immediate: bool = False):
    """Queue a debounced save, or write everything now with ``immediate=true``."""
    orchestrator = get_orchestrator(request)
    if immediate:
        await orchestrator.save_immediately()
        return {"saved": True, "immediate": True}
    return {"saved": orchestrator.save(), "immediate": False}


@sync_router.post("/refresh")
async def refresh(request: Request):
    """Check the cloud copy now and adopt it if newer."""
    snapshot = await get_orchestrator(request).fetch_latest()
    return {"updated": snapshot is not None}


@sync_router.get("/snapshot")
async def export_snapshot(request: Request):
    return encode_snapshot(get_orchestrator(request).store.snapshot())


@sync_router.post("/restore")
async def restore(request: Request, payload: dict[str, Any]):
    """Replace the whole state with the given snapshot document."""
    orchestrator = get_orchestrator(request)
    with domain_errors():
        snapshot = decode_snapshot(payload)
    orchestrator.restore(snapshot)
    logger.info(f"Snapshot restored via API ({len(snapshot.projects)} projects)")
    return {"restored": True, "projects": len(snapshot.projects), "tasks": len(snapshot.tasks)}


@sync_router.post("/reload-task-files")
async def reload_task_files(request: Request):
    reloaded = await get_orchestrator(request).reload_all_task_files()
    return {"reloaded": reloaded}


@sync_router.post("/refresh-versions")
async def refresh_versions(request: Request):
    changed = await get_orchestrator(request).refresh_project_versions()
    return {"changed": changed}
