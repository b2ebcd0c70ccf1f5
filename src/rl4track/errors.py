"""
Exception hierarchy for rl4track.

All rl4track exceptions inherit from Rl4Error, allowing callers to catch
every capture-specific failure with a single except clause.

Exception Categories:
    - TriggerMalformedError: Hook payload could not be understood
    - WorkspaceError: Metadata directory could not be located or created
    - ContentStoreError: Blob could not be written or read
    - PathIndexError: file_index.json could not be updated
    - ActivityLogError: activity.jsonl could not be appended to

The capture orchestrator never lets any of these escape to the hook
caller. They exist so the storage components can report precisely what
went wrong, and so the orchestrator can log it with a stable code.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Trigger errors: 1xxx
ERROR_TRIGGER_MALFORMED = 1001

# Workspace errors: 2xxx
ERROR_WORKSPACE_CREATE = 2001
ERROR_WORKSPACE_PATH_TRAVERSAL = 2002

# Content store errors: 3xxx
ERROR_BLOB_WRITE = 3001
ERROR_BLOB_READ = 3002
ERROR_BLOB_TOO_LARGE = 3003

# Path index errors: 4xxx
ERROR_INDEX_CORRUPT = 4001
ERROR_INDEX_WRITE = 4002
ERROR_INDEX_LOCK_TIMEOUT = 4003

# Activity log errors: 5xxx
ERROR_LOG_APPEND = 5001
ERROR_LOG_READ = 5002


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class Rl4Error(Exception):
    """
    Base exception for all rl4track errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Trigger Errors
# =============================================================================


@dataclass
class TriggerError(Rl4Error):
    """
    Raised when a hook payload cannot be turned into a trigger event.

    Attributes:
        tool_name: The tool_name field of the payload, if any
    """

    tool_name: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["tool_name"] = self.tool_name


@dataclass
class TriggerMalformedError(TriggerError):
    """Raised when the payload is not valid JSON or misses required fields."""

    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Malformed trigger payload: {self.reason}"
        if self.code == 0:
            self.code = ERROR_TRIGGER_MALFORMED
        super().__post_init__()
        self.context["reason"] = self.reason


# =============================================================================
# Workspace Errors
# =============================================================================


@dataclass
class WorkspaceError(Rl4Error):
    """
    Base class for workspace resolution errors.

    Attributes:
        root: The workspace root involved
    """

    root: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["root"] = self.root


@dataclass
class WorkspaceCreateError(WorkspaceError):
    """Raised when the metadata directory cannot be materialized."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot create workspace metadata under {self.root}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_WORKSPACE_CREATE
        if not self.suggestion:
            self.suggestion = "Check that the working directory is writable"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class PathTraversalError(WorkspaceError):
    """Raised when a metadata path would escape the workspace root."""

    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Path traversal not allowed: {self.path}"
        if self.code == 0:
            self.code = ERROR_WORKSPACE_PATH_TRAVERSAL
        super().__post_init__()
        self.context["path"] = self.path


# =============================================================================
# Content Store Errors
# =============================================================================


@dataclass
class ContentStoreError(Rl4Error):
    """
    Base class for blob storage errors.

    Attributes:
        digest: SHA-256 digest of the blob involved
    """

    digest: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["digest"] = self.digest


@dataclass
class BlobWriteError(ContentStoreError):
    """Raised when a blob cannot be compressed or persisted."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Blob write failed for {self.digest[:12]}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_BLOB_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class BlobReadError(ContentStoreError):
    """Raised when a stored blob cannot be read back or decompressed."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Blob read failed for {self.digest[:12]}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_BLOB_READ
        if not self.suggestion:
            self.suggestion = "The blob may be truncated; it is safe to delete it and re-capture the file"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class BlobTooLargeError(ContentStoreError):
    """Raised when content exceeds max_blob_bytes and is not stored."""

    actual_size: int = 0
    max_size: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Blob too large: {self.actual_size} > {self.max_size} bytes"
        if self.code == 0:
            self.code = ERROR_BLOB_TOO_LARGE
        if not self.suggestion:
            self.suggestion = "Increase max_blob_bytes in the capture config"
        super().__post_init__()
        self.context.update({
            "actual_size": self.actual_size,
            "max_size": self.max_size,
        })


# =============================================================================
# Path Index Errors
# =============================================================================


@dataclass
class PathIndexError(Rl4Error):
    """
    Base class for file_index.json errors.

    Attributes:
        index_path: Location of the index document
    """

    index_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["index_path"] = self.index_path


@dataclass
class IndexCorruptError(PathIndexError):
    """Raised when the existing index is not a JSON object."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Path index is corrupt: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_INDEX_CORRUPT
        if not self.suggestion:
            self.suggestion = "Inspect or restore file_index.json; it is left untouched until fixed"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class IndexWriteError(PathIndexError):
    """Raised when the updated index cannot be persisted."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Path index write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_INDEX_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class IndexLockTimeoutError(PathIndexError):
    """Raised when the index lock is not acquired within the latency budget."""

    timeout_seconds: float = 0.0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Could not lock path index within {self.timeout_seconds}s"
        if self.code == 0:
            self.code = ERROR_INDEX_LOCK_TIMEOUT
        if not self.suggestion:
            self.suggestion = "Increase lock_timeout_seconds or look for a stuck writer"
        super().__post_init__()
        self.context["timeout_seconds"] = self.timeout_seconds


# =============================================================================
# Activity Log Errors
# =============================================================================


@dataclass
class ActivityLogError(Rl4Error):
    """
    Base class for activity.jsonl errors.

    Attributes:
        log_path: Location of the activity log
    """

    log_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["log_path"] = self.log_path


@dataclass
class LogAppendError(ActivityLogError):
    """Raised when an event record cannot be appended."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Activity log append failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_LOG_APPEND
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class LogReadError(ActivityLogError):
    """Raised when the activity log cannot be opened for reading."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Activity log read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_LOG_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error
