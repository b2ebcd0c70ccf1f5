"""
Consistency checks across the activity log, path index and blobs.

Captures write blob -> index -> log, so every digest in the activity
log should have an index entry and, unless storage was skipped, a blob.
The reverse is not required: a capture interrupted before its log
append leaves an orphan blob or index entry, which is reported but is
not an error.
"""

from typing import Any

from rl4track.errors import BlobReadError, IndexCorruptError
from rl4track.store import ActivityLog, ContentStore, PathIndex, StorageBackend, compute_digest


def verify_workspace(backend: StorageBackend, check_blobs: bool = True) -> dict[str, Any]:
    """
    Verify the evidence stored in a metadata directory.

    Args:
        backend: Backend over the workspace metadata directory
        check_blobs: Also decompress every blob and recompute its digest

    Returns:
        Dictionary with verification results:
            - valid: Whether no errors were found
            - errors: Dangling references and corrupt data
            - warnings: Degraded but legitimate states (skipped blobs)
            - stats: Summary counts
    """
    errors: list[str] = []
    warnings: list[str] = []

    events = ActivityLog(backend).read_all()
    store = ContentStore(backend)
    stored = set(store.digests())

    try:
        index = PathIndex(backend).load()
    except IndexCorruptError as e:
        errors.append(e.message)
        index = {}

    indexed = {digest for history in index.values() for digest in history}

    # Log -> index and blob
    for position, event in enumerate(events):
        if not event.sha256:
            continue
        if event.sha256 not in index.get(event.path, []):
            errors.append(
                f"Record {position} ({event.path}): digest {event.sha256[:12]} missing from index"
            )
        if event.sha256 not in stored:
            warnings.append(
                f"Record {position} ({event.path}): no blob for {event.sha256[:12]}"
            )

    # Index -> blob
    for path, history in sorted(index.items()):
        for digest in history:
            if digest not in stored:
                warnings.append(f"Index {path}: no blob for {digest[:12]}")

    # Blob contents
    corrupt = 0
    if check_blobs:
        for digest in sorted(stored):
            try:
                content = store.get(digest)
            except BlobReadError as e:
                errors.append(e.message)
                corrupt += 1
                continue
            if content is not None and compute_digest(content) != digest:
                errors.append(f"Blob {digest[:12]}: content does not match its digest")
                corrupt += 1

    logged = {e.sha256 for e in events if e.sha256}
    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "stats": {
            "events": len(events),
            "paths": len(index),
            "blobs": len(stored),
            "orphan_blobs": len(stored - indexed),
            "unlogged_digests": len(indexed - logged),
            "corrupt_blobs": corrupt,
        },
    }
