"""
Storage module for rl4track.

This module provides the three shared on-disk structures under the
workspace metadata directory, all built on a pluggable StorageBackend.

Structures:
    - ContentStore: gzip blobs keyed by SHA-256 (snapshots/<sha>.content.gz)
    - PathIndex: path -> digest history (snapshots/file_index.json)
    - ActivityLog: capture journal (evidence/activity.jsonl)

Design principles:
    - Append-only: history is never rewritten or truncated
    - Idempotent: a blob is written at most once per digest
    - Multi-writer safe: locked updates, atomic replace, atomic append
    - Local-only: plain files, no server, readable by peer integrations
"""

from rl4track.store.activity import ACTIVITY_KEY, ActivityLog
from rl4track.store.backend import FileBackend, MemoryBackend, StorageBackend
from rl4track.store.blobs import (
    BLOB_SUFFIX,
    ContentStore,
    FileSnapshot,
    PutResult,
    compute_digest,
    count_lines,
    take_snapshot,
)
from rl4track.store.index import INDEX_KEY, PathIndex

__all__ = [
    "ACTIVITY_KEY",
    "BLOB_SUFFIX",
    "INDEX_KEY",
    "ActivityLog",
    "ContentStore",
    "FileBackend",
    "FileSnapshot",
    "MemoryBackend",
    "PathIndex",
    "PutResult",
    "StorageBackend",
    "compute_digest",
    "count_lines",
    "take_snapshot",
]
