"""Locked, atomic JSON file persistence shared by the registry and settings stores."""

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator


try:
    import fcntl
except ImportError:  # pragma: no cover - unavailable on non-POSIX
    fcntl = None

try:
    import msvcrt
except ImportError:  # pragma: no cover - unavailable on non-Windows
    msvcrt = None


def lock_path_for(path: Path) -> Path:
    return path.parent / f"{path.name}.lock"


@contextmanager
def exclusive_lock(path: Path) -> Iterator[None]:
    """Hold an exclusive lock on ``<path>.lock`` for the duration of the block.

    Uses fcntl.flock (Unix) or msvcrt.locking (Windows). The lock file sits
    next to the data file so every process sharing the data path contends on it.

    Raises:
        PermissionError: If the lock file cannot be opened.
        RuntimeError: If no supported locking backend is available.
    """
    with lock_path_for(path).open("a+b") as lock_file:
        if fcntl is not None:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            return

        if msvcrt is not None:
            if lock_file.seek(0, 2) == 0:
                lock_file.write(b"\0")
                lock_file.flush()
            lock_file.seek(0)
            msvcrt.locking(lock_file.fileno(), msvcrt.LK_LOCK, 1)
            try:
                yield
            finally:
                lock_file.seek(0)
                msvcrt.locking(lock_file.fileno(), msvcrt.LK_UNLCK, 1)
            return

        message = "No supported file-lock backend available for this platform"
        raise RuntimeError(message)


def write_json_atomic(path: Path, data: Any) -> None:
    """Write ``data`` as JSON via temp file, fsync and rename.

    Readers never observe a partially written file.
    """
    with tempfile.NamedTemporaryFile(
        "w", delete=False, dir=path.parent, encoding="utf-8", suffix=".tmp"
    ) as temp:
        json.dump(data, temp, indent=2)
        temp.flush()
        os.fsync(temp.fileno())
        temp_path = temp.name
    Path(temp_path).replace(path)
