"""Atomic file helpers shared by the local cache, cloud folder and bridge."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional


def write_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via a temp file + rename in the same directory.

    Readers never observe a partially written file. Raises OSError on failure.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.stem}_",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


def read_bytes(path: Path) -> Optional[bytes]:
    """Return the file's bytes, or None when it is missing."""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
