"""SprintSync FastAPI service: application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sprintsync import config
from sprintsync.orchestrator import SyncOrchestrator
from sprintsync.routers.activity import activity_router
from sprintsync.routers.projects import projects_router
from sprintsync.routers.sprints import sprints_router
from sprintsync.routers.sync import sync_router
from sprintsync.routers.tasks import tasks_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("sprintsync")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("SprintSync starting up")

    orchestrator = SyncOrchestrator.from_config()
    app.state.orchestrator = orchestrator
    await orchestrator.load_and_start_sync()

    yield

    logger.info("SprintSync shutting down")
    try:
        await orchestrator.save_immediately()
    except OSError as e:
        logger.error(f"Final save failed: {e}")
    await orchestrator.stop()


app = FastAPI(
    title="SprintSync API",
    description="Local-first sync service for the sprint/task tracker",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects_router)
app.include_router(tasks_router)
app.include_router(sprints_router)
app.include_router(activity_router)
app.include_router(sync_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    orchestrator = getattr(app.state, "orchestrator", None)
    return {
        "status": "ok",
        "sync": "running" if orchestrator and orchestrator.is_running else "stopped",
        "cloudMonitoring": bool(orchestrator and orchestrator.persistence.is_monitoring),
    }
