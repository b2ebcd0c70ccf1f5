"""
Unit tests for error hierarchy.

Tests cover:
- Base Rl4Error behavior
- Per-component errors with context
- Error codes by category
- Error serialization
"""

import pytest

from rl4track.errors import (
    ERROR_BLOB_READ,
    ERROR_BLOB_TOO_LARGE,
    ERROR_BLOB_WRITE,
    ERROR_INDEX_CORRUPT,
    ERROR_INDEX_LOCK_TIMEOUT,
    ERROR_INDEX_WRITE,
    ERROR_LOG_APPEND,
    ERROR_LOG_READ,
    ERROR_TRIGGER_MALFORMED,
    ERROR_WORKSPACE_CREATE,
    ERROR_WORKSPACE_PATH_TRAVERSAL,
    ActivityLogError,
    BlobReadError,
    BlobTooLargeError,
    BlobWriteError,
    ContentStoreError,
    IndexCorruptError,
    IndexLockTimeoutError,
    IndexWriteError,
    LogAppendError,
    LogReadError,
    PathIndexError,
    PathTraversalError,
    Rl4Error,
    TriggerError,
    TriggerMalformedError,
    WorkspaceCreateError,
    WorkspaceError,
)


class TestRl4Error:
    """Tests for base Rl4Error."""

    def test_basic_error(self) -> None:
        """Create a basic error with message."""
        err = Rl4Error(message="Something went wrong", code=9999)
        assert err.message == "Something went wrong"
        assert err.code == 9999
        assert err.suggestion is None
        assert err.context == {}

    def test_str_format(self) -> None:
        """String format includes code and message."""
        err = Rl4Error(message="Test error", code=1234)
        assert str(err) == "[E1234] Test error"

    def test_str_includes_suggestion(self) -> None:
        err = Rl4Error(message="Failed", code=1, suggestion="Try again")
        assert "Suggestion: Try again" in str(err)

    def test_repr_format(self) -> None:
        """Repr includes class name and details."""
        err = Rl4Error(message="Test", code=1)
        assert repr(err).startswith("Rl4Error(")
        assert "message='Test'" in repr(err)

    def test_is_exception(self) -> None:
        with pytest.raises(Rl4Error):
            raise Rl4Error(message="boom", code=1)


class TestTriggerErrors:
    """Tests for trigger parsing errors."""

    def test_malformed(self) -> None:
        err = TriggerMalformedError(tool_name="Write", reason="no file_path")
        assert isinstance(err, TriggerError)
        assert err.code == ERROR_TRIGGER_MALFORMED
        assert "no file_path" in err.message
        assert err.context == {"tool_name": "Write", "reason": "no file_path"}


class TestWorkspaceErrors:
    """Tests for workspace errors."""

    def test_create_error(self) -> None:
        err = WorkspaceCreateError(root="/ro", underlying_error="Read-only file system")
        assert isinstance(err, WorkspaceError)
        assert err.code == ERROR_WORKSPACE_CREATE
        assert "/ro" in err.message
        assert err.suggestion is not None
        assert err.context["underlying_error"] == "Read-only file system"

    def test_path_traversal(self) -> None:
        err = PathTraversalError(root="/ws/.rl4", path="../etc/passwd")
        assert err.code == ERROR_WORKSPACE_PATH_TRAVERSAL
        assert err.context["path"] == "../etc/passwd"
        assert err.context["root"] == "/ws/.rl4"


class TestContentStoreErrors:
    """Tests for blob errors."""

    def test_write_error_truncates_digest(self) -> None:
        err = BlobWriteError(digest="a" * 64, underlying_error="No space left on device")
        assert isinstance(err, ContentStoreError)
        assert err.code == ERROR_BLOB_WRITE
        assert "a" * 12 in err.message
        assert "a" * 13 not in err.message
        assert err.context["digest"] == "a" * 64

    def test_read_error(self) -> None:
        err = BlobReadError(digest="b" * 64, underlying_error="Not a gzipped file")
        assert err.code == ERROR_BLOB_READ
        assert err.suggestion is not None

    def test_too_large(self) -> None:
        err = BlobTooLargeError(digest="c" * 64, actual_size=200, max_size=100)
        assert err.code == ERROR_BLOB_TOO_LARGE
        assert "200 > 100" in err.message
        assert err.context["actual_size"] == 200
        assert err.context["max_size"] == 100


class TestPathIndexErrors:
    """Tests for path index errors."""

    def test_corrupt(self) -> None:
        err = IndexCorruptError(index_path="snapshots/file_index.json", underlying_error="bad json")
        assert isinstance(err, PathIndexError)
        assert err.code == ERROR_INDEX_CORRUPT
        assert err.context["index_path"] == "snapshots/file_index.json"

    def test_write(self) -> None:
        assert IndexWriteError(underlying_error="x").code == ERROR_INDEX_WRITE

    def test_lock_timeout(self) -> None:
        err = IndexLockTimeoutError(timeout_seconds=2.0)
        assert err.code == ERROR_INDEX_LOCK_TIMEOUT
        assert "2.0s" in err.message


class TestActivityLogErrors:
    """Tests for activity log errors."""

    def test_append(self) -> None:
        err = LogAppendError(log_path="evidence/activity.jsonl", underlying_error="EIO")
        assert isinstance(err, ActivityLogError)
        assert err.code == ERROR_LOG_APPEND

    def test_read(self) -> None:
        assert LogReadError(underlying_error="EACCES").code == ERROR_LOG_READ


class TestErrorSerialization:
    """Tests for to_dict()."""

    def test_to_dict(self) -> None:
        err = IndexLockTimeoutError(index_path="snapshots/file_index.json", timeout_seconds=0.5)
        data = err.to_dict()
        assert data["error_type"] == "IndexLockTimeoutError"
        assert data["code"] == ERROR_INDEX_LOCK_TIMEOUT
        assert data["context"]["timeout_seconds"] == 0.5
        assert data["suggestion"] == err.suggestion

    def test_explicit_message_kept(self) -> None:
        err = BlobWriteError(message="custom", digest="d")
        assert err.message == "custom"
        assert err.code == ERROR_BLOB_WRITE

    def test_codes_are_grouped_by_component(self) -> None:
        assert 1000 <= ERROR_TRIGGER_MALFORMED < 2000
        assert 2000 <= ERROR_WORKSPACE_CREATE < 3000
        assert 3000 <= ERROR_BLOB_WRITE < 4000
        assert 4000 <= ERROR_INDEX_CORRUPT < 5000
        assert 5000 <= ERROR_LOG_APPEND < 6000
