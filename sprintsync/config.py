"""SprintSync Configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    value = os.getenv(name)
    if not value:
        return default
    return Path(value).expanduser()


# Local cache + cloud-replicated folder
DATA_DIR = _env_path("SPRINTSYNC_DATA_DIR", Path.home() / ".sprintsync")
CLOUD_DIR = _env_path("SPRINTSYNC_CLOUD_DIR", DATA_DIR / "cloud")
SNAPSHOT_FILENAME = os.getenv("SPRINTSYNC_SNAPSHOT_FILENAME", "SprintSyncData.json")

# Per-project bridge folder (hidden, inside each project's source path)
BRIDGE_DIR_NAME = os.getenv("SPRINTSYNC_BRIDGE_DIR_NAME", ".sprintsync")
BRIDGE_TASKS_FILENAME = "tasks.json"
BRIDGE_PROJECT_FILENAME = "project.json"
BRIDGE_SCHEMA_FILENAME = "_schema.json"

# Sync timing
SAVE_DEBOUNCE_SECONDS = _env_float("SPRINTSYNC_SAVE_DEBOUNCE_SECONDS", 1.0)
RESTORE_COOLDOWN_SECONDS = _env_float("SPRINTSYNC_RESTORE_COOLDOWN_SECONDS", 1.0)
BRIDGE_SETTLE_SECONDS = _env_float("SPRINTSYNC_BRIDGE_SETTLE_SECONDS", 0.3)
BRIDGE_SELF_WRITE_MARGIN_SECONDS = _env_float("SPRINTSYNC_BRIDGE_SELF_WRITE_MARGIN_SECONDS", 0.5)
CLOUD_POLL_INTERVAL_SECONDS = _env_float("SPRINTSYNC_CLOUD_POLL_INTERVAL_SECONDS", 15.0)
CLOUD_MAX_RETRIES = _env_int("SPRINTSYNC_CLOUD_MAX_RETRIES", 5)
CLOUD_RETRY_BASE_SECONDS = _env_float("SPRINTSYNC_CLOUD_RETRY_BASE_SECONDS", 1.0)

# Domain defaults
DEFAULT_SPRINT_WEEKS = _env_int("SPRINTSYNC_DEFAULT_SPRINT_WEEKS", 2)

# Feature flags
CLOUD_MONITORING_ENABLED = _env_bool("SPRINTSYNC_CLOUD_MONITORING_ENABLED", True)
BRIDGE_WATCHING_ENABLED = _env_bool("SPRINTSYNC_BRIDGE_WATCHING_ENABLED", True)

# CORS
FRONTEND_ORIGIN = os.getenv("SPRINTSYNC_FRONTEND_ORIGIN", "http://localhost:3000")
