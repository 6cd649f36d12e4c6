"""Filesystem helpers for atomic writes."""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

from gtasks.errors import StorageWriteFailedError

PRIVATE_FILE_MODE = 0o600
PRIVATE_DIR_MODE = 0o700


def ensure_private_dir(path: Path) -> None:
    """Create a directory (and parents) readable only by the owner."""
    path.mkdir(parents=True, exist_ok=True, mode=PRIVATE_DIR_MODE)


def atomic_write_text(path: Path, data: str, *, mode: int = PRIVATE_FILE_MODE) -> None:
    """Atomically write text data to a file with fsync."""
    atomic_write_bytes(path, data.encode("utf-8"), mode=mode)


def atomic_write_bytes(path: Path, data: bytes, *, mode: int = PRIVATE_FILE_MODE) -> None:
    """Write to a sibling temp file, fsync, then replace ``path``.

    Readers see either the old file or the complete new one. On failure
    the temp file is removed and ``StorageWriteFailedError`` is raised.
    """
    try:
        ensure_private_dir(path.parent)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as exc:
        raise StorageWriteFailedError(f"Could not prepare write of {path}: {exc}") from exc

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            if hasattr(os, "fchmod"):
                os.fchmod(handle.fileno(), mode)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        with contextlib.suppress(OSError):
            tmp_path.unlink()
        raise StorageWriteFailedError(f"Failed to write {path}: {exc}") from exc

    _fsync_directory(path.parent)


def _fsync_directory(path: Path) -> None:
    """Best-effort fsync on a directory after atomic replace."""
    try:
        fd = os.open(path, os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
