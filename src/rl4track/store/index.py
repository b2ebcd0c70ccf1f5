"""
Per-path checksum history.

snapshots/file_index.json maps each workspace-relative path to the
digests captured for it, oldest first:

    {"src/a.go":["3b1f...","9c0d..."],"README.md":["77aa..."]}

Older writers stored a single digest string per path; such entries are
turned into one-element lists the first time the path is recorded
again. Other entries are left exactly as found.

Updates are a read-modify-write under the backend's exclusive lock and
land via atomic replace, so concurrent hooks never lose each other's
appends or leave a half-written document behind.
"""

import json
import logging
from pathlib import Path
from typing import Any

from rl4track.errors import IndexCorruptError, IndexLockTimeoutError, IndexWriteError
from rl4track.store.backend import StorageBackend
from rl4track.workspace import normalize_path

logger = logging.getLogger(__name__)

INDEX_KEY = "snapshots/file_index.json"


def _decode(raw: bytes | None) -> dict[str, Any]:
    if raw is None or not raw.strip():
        return {}
    try:
        index = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise IndexCorruptError(index_path=INDEX_KEY, underlying_error=str(e)) from e
    if not isinstance(index, dict):
        raise IndexCorruptError(
            index_path=INDEX_KEY,
            underlying_error=f"expected an object, got {type(index).__name__}",
        )
    return index


def _encode(index: dict[str, Any]) -> bytes:
    return json.dumps(index, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def normalize_entry(value: Any) -> list[str]:
    """Coerce a stored entry (legacy string, list, or junk) into a digest list."""
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str) and item]
    if value is not None:
        logger.warning("Discarding unreadable index entry of type %s", type(value).__name__)
    return []


class PathIndex:
    """
    file_index.json accessor.

    Usage:
        index = PathIndex(backend, root=workspace.root)
        index.record("src/a.go", digest)
        index.history("src/a.go")  # [digest]

    Attributes:
        backend: Where the index document lives
        root: Workspace root used to relativize absolute paths
    """

    def __init__(self, backend: StorageBackend, root: str | Path | None = None) -> None:
        self.backend = backend
        self.root = Path(root) if root is not None else None

    def key_for(self, path: str | Path) -> str:
        return normalize_path(path, self.root)

    def load(self) -> dict[str, list[str]]:
        """
        Read the whole index with every entry normalized.

        Raises:
            IndexCorruptError: If the document is not a JSON object
        """
        index = _decode(self.backend.read(INDEX_KEY))
        return {path: normalize_entry(value) for path, value in index.items()}

    def history(self, path: str | Path) -> list[str]:
        """Digests recorded for a path, oldest first."""
        index = _decode(self.backend.read(INDEX_KEY))
        return normalize_entry(index.get(self.key_for(path)))

    def record(self, path: str | Path, digest: str) -> list[str]:
        """
        Append digest to a path's history unless it is already the latest.

        Args:
            path: File path (normalized before lookup)
            digest: Hex SHA-256 of the captured content

        Returns:
            The path's history after the update

        Raises:
            ValueError: If digest is empty
            IndexCorruptError: If the existing index is unreadable (left untouched)
            IndexLockTimeoutError: If the lock is not acquired in time
            IndexWriteError: If the updated document cannot be persisted
        """
        if not digest:
            raise ValueError("digest must not be empty")

        key = self.key_for(path)
        updated: list[str] = []

        def apply(current: bytes | None) -> bytes:
            index = _decode(current)
            history = normalize_entry(index.get(key))
            if not history or history[-1] != digest:
                history.append(digest)
            index[key] = history
            updated[:] = history
            return _encode(index)

        try:
            self.backend.update(INDEX_KEY, apply)
        except TimeoutError as e:
            raise IndexLockTimeoutError(
                index_path=INDEX_KEY,
                timeout_seconds=getattr(self.backend, "lock_timeout_seconds", 0.0),
            ) from e
        except OSError as e:
            raise IndexWriteError(index_path=INDEX_KEY, underlying_error=str(e)) from e

        logger.debug("Index %s -> %d version(s)", key, len(updated))
        return list(updated)
