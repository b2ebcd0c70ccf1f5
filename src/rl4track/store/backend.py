"""
Storage backends for the metadata directory.

The content store, path index and activity log never touch the
filesystem directly. They go through a StorageBackend, which offers the
three write disciplines the shared on-disk state needs:

    - create(): atomic create-if-absent (blobs are written once per key)
    - update(): locked read-modify-write persisted by atomic replace
      (file_index.json)
    - append(): single-write append on an O_APPEND descriptor
      (activity.jsonl)

Keys are forward-slash paths relative to the metadata directory, e.g.
"snapshots/file_index.json".

FileBackend is what the hook uses. MemoryBackend honours the same
contracts in process memory and is meant for tests and embedding.
"""

import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from rl4track.store.locking import file_lock
from rl4track.workspace import resolve_under_root

# Receives the current bytes (None if absent); returns new bytes, or None to leave as is
Updater = Callable[[bytes | None], bytes | None]


class StorageBackend(ABC):
    """
    Abstract key/value view of a metadata directory.

    Subclasses must implement every primitive with the atomicity
    described in the module docstring. Implementations raise OSError
    (or a subclass) on I/O failure and TimeoutError when update() cannot
    get exclusive access in time.
    """

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Whether a value is stored under key."""
        ...

    @abstractmethod
    def read(self, key: str) -> bytes | None:
        """Return the stored bytes, or None if absent."""
        ...

    @abstractmethod
    def create(self, key: str, data: bytes) -> bool:
        """
        Store data under key unless something is already there.

        Returns:
            True if this call wrote the value, False if it already existed
        """
        ...

    @abstractmethod
    def update(self, key: str, updater: Updater) -> bytes | None:
        """
        Run updater on the current value under an exclusive lock.

        Returns:
            The value stored after the update
        """
        ...

    @abstractmethod
    def append(self, key: str, data: bytes) -> None:
        """Append data to the value under key, creating it if needed."""
        ...

    @abstractmethod
    def list_keys(self, prefix: str) -> list[str]:
        """List keys directly under a directory-style prefix, sorted."""
        ...


class FileBackend(StorageBackend):
    """
    Filesystem backend rooted at a metadata directory.

    Usage:
        backend = FileBackend(workspace.metadata_dir)
        backend.append("evidence/activity.jsonl", b'{"t": ...}\\n')

    Attributes:
        base_dir: The metadata directory (e.g. <root>/.rl4)
        lock_timeout_seconds: Budget for acquiring update() locks
    """

    def __init__(self, base_dir: str | Path, lock_timeout_seconds: float = 2.0) -> None:
        self.base_dir = Path(base_dir).resolve()
        self.lock_timeout_seconds = lock_timeout_seconds

    def path_for(self, key: str) -> Path:
        """Absolute path of a key; raises PathTraversalError if it escapes base_dir."""
        return resolve_under_root(self.base_dir, *key.split("/"))

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def read(self, key: str) -> bytes | None:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def create(self, key: str, data: bytes) -> bool:
        path = self.path_for(key)
        if path.exists():
            return False
        path.parent.mkdir(parents=True, exist_ok=True)

        tmp = self._write_temp(path, data)
        try:
            # link() fails if the target exists, so concurrent creators cannot clobber
            os.link(tmp, path)
            return True
        except FileExistsError:
            return False
        finally:
            os.unlink(tmp)

    def update(self, key: str, updater: Updater) -> bytes | None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        lock_path = path.with_name(path.name + ".lock")

        with file_lock(lock_path, self.lock_timeout_seconds):
            try:
                current = path.read_bytes()
            except FileNotFoundError:
                current = None

            new = updater(current)
            if new is None or new == current:
                return current

            tmp = self._write_temp(path, new)
            try:
                os.replace(tmp, path)
            except OSError:
                os.unlink(tmp)
                raise
            return new

    def append(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(path), os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            view = memoryview(data)
            while view:
                written = os.write(fd, view)
                view = view[written:]
        finally:
            os.close(fd)

    def list_keys(self, prefix: str) -> list[str]:
        directory = self.path_for(prefix) if prefix else self.base_dir
        if not directory.is_dir():
            return []
        base = prefix.rstrip("/")
        return sorted(
            f"{base}/{entry.name}" if base else entry.name
            for entry in directory.iterdir()
            if entry.is_file()
        )

    def _write_temp(self, target: Path, data: bytes) -> str:
        """Write data to a temp file beside target and return its path."""
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
        except OSError:
            os.unlink(tmp)
            raise
        return tmp


class MemoryBackend(StorageBackend):
    """
    In-memory backend with the same contracts as FileBackend.

    Attributes:
        data: Stored values by key
        write_count: Number of physical writes performed (create/update/append)
    """

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.write_count = 0
        self._lock = threading.Lock()

    def exists(self, key: str) -> bool:
        return key in self.data

    def read(self, key: str) -> bytes | None:
        return self.data.get(key)

    def create(self, key: str, data: bytes) -> bool:
        with self._lock:
            if key in self.data:
                return False
            self.data[key] = bytes(data)
            self.write_count += 1
            return True

    def update(self, key: str, updater: Updater) -> bytes | None:
        with self._lock:
            current = self.data.get(key)
            new = updater(current)
            if new is None or new == current:
                return current
            self.data[key] = bytes(new)
            self.write_count += 1
            return new

    def append(self, key: str, data: bytes) -> None:
        with self._lock:
            self.data[key] = self.data.get(key, b"") + bytes(data)
            self.write_count += 1

    def list_keys(self, prefix: str) -> list[str]:
        base = prefix.rstrip("/")
        keys = []
        for key in self.data:
            head, _, name = key.rpartition("/")
            if head == base and name:
                keys.append(key)
        return sorted(keys)
