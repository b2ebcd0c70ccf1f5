"""
Content-addressed blob storage.

Every captured file version is stored once, gzip-compressed, under the
SHA-256 of its uncompressed bytes:

    snapshots/<sha256>.content.gz

Writes are idempotent: a digest that is already present is never
written again. A blob that cannot be written is logged and skipped; the
digest is still returned because the activity record, not the blob, is
what proves a capture happened.
"""

import gzip
import hashlib
import logging
import zlib
from dataclasses import dataclass
from pathlib import Path

from rl4track.errors import BlobReadError, BlobTooLargeError, BlobWriteError
from rl4track.store.backend import StorageBackend

logger = logging.getLogger(__name__)

SNAPSHOTS_PREFIX = "snapshots"
BLOB_SUFFIX = ".content.gz"
CHUNK_SIZE = 1024 * 1024

# Matches `gzip -c`
COMPRESS_LEVEL = 6


def compute_digest(data: bytes) -> str:
    """Compute the hex SHA-256 of data."""
    return hashlib.sha256(data).hexdigest()


def count_lines(content: bytes | str) -> int:
    """
    Count lines the way an editor shows them.

    A trailing newline does not start a new line, and a final line
    without one still counts: "a\\nb" and "a\\nb\\n" are both 2, "" is 0.

    This intentionally differs from the rl4-track.sh shell hook, which
    uses `wc -l` for whole files (a final unterminated line is not
    counted) and newlines + 1 for edit spans (a trailing newline adds a
    line). Records from the two writers may disagree by one line.
    """
    newline = b"\n" if isinstance(content, bytes) else "\n"
    if not content:
        return 0
    return content.count(newline) + (0 if content.endswith(newline) else 1)


@dataclass(frozen=True)
class FileSnapshot:
    """
    A file's content as seen at capture time.

    Attributes:
        digest: Hex SHA-256 of the bytes
        size: Size in bytes
        line_count: Number of lines (see count_lines)
        data: The bytes, or None when the file was too large to hold
    """

    digest: str
    size: int
    line_count: int
    data: bytes | None = None


@dataclass(frozen=True)
class PutResult:
    """
    Outcome of a content store write.

    Attributes:
        digest: Digest of the content ("" if the file was missing)
        stored: Whether this call physically wrote a blob
        reason: Why nothing was written, if stored is False
        snapshot: The file snapshot the digest came from, if any
    """

    digest: str
    stored: bool = False
    reason: str | None = None
    snapshot: FileSnapshot | None = None


def take_snapshot(path: str | Path, max_bytes: int) -> FileSnapshot | None:
    """
    Read a file for capture.

    Files up to max_bytes are read whole. Larger files are streamed to
    compute digest and line count without keeping their bytes.

    Returns:
        The snapshot, or None if the file does not exist

    Raises:
        OSError: On any read failure other than a missing file
    """
    path = Path(path)
    try:
        size = path.stat().st_size
        if size <= max_bytes:
            data = path.read_bytes()
            return FileSnapshot(
                digest=compute_digest(data),
                size=len(data),
                line_count=count_lines(data),
                data=data,
            )

        hasher = hashlib.sha256()
        newlines = 0
        total = 0
        last = b""
        with path.open("rb") as f:
            while chunk := f.read(CHUNK_SIZE):
                hasher.update(chunk)
                newlines += chunk.count(b"\n")
                total += len(chunk)
                last = chunk[-1:]
    except FileNotFoundError:
        return None

    line_count = newlines + (1 if total and last != b"\n" else 0)
    return FileSnapshot(digest=hasher.hexdigest(), size=total, line_count=line_count)


class ContentStore:
    """
    Deduplicating blob store over a StorageBackend.

    Usage:
        store = ContentStore(backend)
        digest = store.put(b"package a\\n")
        assert store.get(digest) == b"package a\\n"

    Attributes:
        backend: Where blobs are kept
        max_blob_bytes: Content larger than this is hashed but not stored
    """

    def __init__(self, backend: StorageBackend, max_blob_bytes: int = 50 * 1024 * 1024) -> None:
        self.backend = backend
        self.max_blob_bytes = max_blob_bytes

    @staticmethod
    def blob_key(digest: str) -> str:
        return f"{SNAPSHOTS_PREFIX}/{digest}{BLOB_SUFFIX}"

    def exists(self, digest: str) -> bool:
        return bool(digest) and self.backend.exists(self.blob_key(digest))

    def put(self, data: bytes) -> str:
        """Store data if its digest is new. Returns the digest either way."""
        return self.store(data).digest

    def store(self, data: bytes) -> PutResult:
        """Like put(), but reports whether a blob was written."""
        snapshot = FileSnapshot(
            digest=compute_digest(data),
            size=len(data),
            line_count=count_lines(data),
            data=data,
        )
        return self.put_snapshot(snapshot)

    def put_file(self, path: str | Path) -> PutResult:
        """
        Store the current content of a file.

        A missing file yields an empty digest and no blob. Other read
        errors propagate as OSError.
        """
        snapshot = take_snapshot(path, self.max_blob_bytes)
        if snapshot is None:
            return PutResult(digest="", reason="file missing")
        return self.put_snapshot(snapshot)

    def put_snapshot(self, snapshot: FileSnapshot) -> PutResult:
        """Store a snapshot's bytes under its digest, at most once."""
        digest = snapshot.digest

        if snapshot.data is None or snapshot.size > self.max_blob_bytes:
            error = BlobTooLargeError(
                digest=digest,
                actual_size=snapshot.size,
                max_size=self.max_blob_bytes,
            )
            logger.warning("%s", error.message)
            return PutResult(digest=digest, reason="too large", snapshot=snapshot)

        key = self.blob_key(digest)
        if self.backend.exists(key):
            return PutResult(digest=digest, reason="already stored", snapshot=snapshot)

        try:
            compressed = gzip.compress(snapshot.data, compresslevel=COMPRESS_LEVEL, mtime=0)
            stored = self.backend.create(key, compressed)
        except (OSError, ValueError, zlib.error) as e:
            error = BlobWriteError(digest=digest, underlying_error=str(e))
            logger.warning("%s", error.message)
            return PutResult(digest=digest, reason="write failed", snapshot=snapshot)

        if stored:
            logger.debug("Stored blob %s (%d bytes)", digest[:12], snapshot.size)
            return PutResult(digest=digest, stored=True, snapshot=snapshot)
        return PutResult(digest=digest, reason="already stored", snapshot=snapshot)

    def get(self, digest: str) -> bytes | None:
        """
        Return the decompressed content for a digest.

        Returns:
            The original bytes, or None if no blob exists

        Raises:
            BlobReadError: If the blob exists but cannot be decompressed
        """
        raw = self.backend.read(self.blob_key(digest))
        if raw is None:
            return None
        try:
            return gzip.decompress(raw)
        except (OSError, EOFError, zlib.error) as e:
            raise BlobReadError(digest=digest, underlying_error=str(e)) from e

    def digests(self) -> list[str]:
        """Digests of every stored blob."""
        return [
            key[len(SNAPSHOTS_PREFIX) + 1 : -len(BLOB_SUFFIX)]
            for key in self.backend.list_keys(SNAPSHOTS_PREFIX)
            if key.endswith(BLOB_SUFFIX)
        ]
