"""Snapshot persistence (local cache + cloud-replicated copy)."""

from sprintsync.persistence.cloud_store import CloudStore, FolderCloudStore
from sprintsync.persistence.engine import PersistenceEngine, choose_latest

__all__ = [
    "CloudStore",
    "FolderCloudStore",
    "PersistenceEngine",
    "choose_latest",
]
