"""Helpers shared by the API routers."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, Request

from sprintsync.codec import DecodeError, encode_sprint
from sprintsync.models import Sprint
from sprintsync.orchestrator import SyncOrchestrator


def get_orchestrator(request: Request) -> SyncOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if not orchestrator:
        raise HTTPException(status_code=503, detail="Sync orchestrator not initialized")
    return orchestrator


def sprint_payload(sprint: Sprint) -> dict:
    """Wire form of a sprint plus the days left until its end date."""
    return {**encode_sprint(sprint), "daysRemaining": sprint.daysRemaining}


@contextmanager
def domain_errors() -> Iterator[None]:
    """Map store/codec errors onto HTTP status codes."""
    try:
        yield
    except DecodeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e).strip("'\""))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
