"""Per-project bridge files watched for external edits."""

from sprintsync.bridge.project_files import (
    BridgeEvent,
    ProjectFileBridge,
    ProjectPatched,
    TasksReplaced,
)
from sprintsync.bridge.watcher import DirectoryWatcher

__all__ = [
    "BridgeEvent",
    "DirectoryWatcher",
    "ProjectFileBridge",
    "ProjectPatched",
    "TasksReplaced",
]
