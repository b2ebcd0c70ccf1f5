"""
Advisory file locking for read-modify-write sections.

Locks are taken on a sidecar ".lock" file, never on the data file
itself, because the data file is swapped out by rename while the lock
is held. Acquisition polls a non-blocking lock until a deadline so a
stuck writer costs at most timeout_seconds.
"""

import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

POLL_INTERVAL_SECONDS = 0.01


def _try_lock(fd: int) -> bool:
    try:
        if sys.platform == "win32":
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
        else:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        return True
    except OSError:
        return False


def _unlock(fd: int) -> None:
    if sys.platform == "win32":
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(fd, fcntl.LOCK_UN)


@contextmanager
def file_lock(lock_path: str | Path, timeout_seconds: float = 2.0) -> Generator[None, None, None]:
    """
    Hold an exclusive advisory lock on lock_path.

    Args:
        lock_path: Sidecar file to lock (created if missing)
        timeout_seconds: Give up after this long

    Raises:
        TimeoutError: If the lock is not acquired in time
    """
    fd = os.open(str(lock_path), os.O_RDWR | os.O_CREAT, 0o644)
    try:
        deadline = time.monotonic() + timeout_seconds
        while not _try_lock(fd):
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Could not acquire lock on {lock_path}")
            time.sleep(POLL_INTERVAL_SECONDS)
        try:
            yield
        finally:
            _unlock(fd)
    finally:
        os.close(fd)
