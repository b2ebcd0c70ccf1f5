"""
Schema definitions for rl4track.

This module defines the Pydantic models used throughout rl4track:
- Trigger events: the closed set of editing actions a hook can report
- ActivityEvent: one line of .rl4/evidence/activity.jsonl
- CaptureConfig: tunables for workspace discovery, storage and logging

Design Decisions:
    - Trigger events are a closed union; anything unrecognized becomes
      an explicit IgnoredTrigger instead of a loose dict
    - ActivityEvent keeps the on-disk camelCase keys (linesAdded,
      linesRemoved) via aliases so IDE peers read the same records
    - Models are immutable (frozen=True)
"""

import json
import os
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from rl4track.errors import TriggerMalformedError


# =============================================================================
# Enums
# =============================================================================


class TriggerKind(str, Enum):
    """Editing operations the hook understands, keyed by tool_name."""

    WRITE = "Write"
    EDIT = "Edit"
    MULTI_EDIT = "MultiEdit"
    IGNORED = "ignored"


class EventKind(str, Enum):
    """Kinds of activity records this package writes."""

    # Covers edits and full overwrites alike
    SAVE = "save"


# =============================================================================
# Timestamps
# =============================================================================


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with millisecond precision and a Z suffix."""
    moment = moment.astimezone(UTC)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def now_iso() -> str:
    """Get current UTC time in activity-log format."""
    return format_timestamp(datetime.now(UTC))


# =============================================================================
# Trigger Models
# =============================================================================


class EditSpan(BaseModel):
    """
    One replaced span of a partial edit.

    Attributes:
        old_string: Text that was replaced
        new_string: Text that was inserted in its place
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    old_string: str = Field(default="", description="Text that was replaced")
    new_string: str = Field(default="", description="Text that was inserted")


class FileTrigger(BaseModel):
    """
    Fields shared by every file-write-class trigger.

    Attributes:
        file_path: Target file, absolute or relative to cwd
        session_id: Editing session identifier, used to derive burst_id
        cwd: Working directory of the editing agent at trigger time
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    file_path: str = Field(..., min_length=1, description="Target file path")
    session_id: str = Field(default="", description="Editing session identifier")
    cwd: str = Field(default="", description="Working directory at trigger time")

    @property
    def is_full_replacement(self) -> bool:
        return False

    def spans(self) -> list[EditSpan]:
        """Replaced spans, empty for full replacements."""
        return []


class WriteTrigger(FileTrigger):
    """A full-file write (new file or overwrite)."""

    kind: Literal[TriggerKind.WRITE] = TriggerKind.WRITE

    @property
    def is_full_replacement(self) -> bool:
        return True


class EditTrigger(FileTrigger):
    """A single in-place string replacement."""

    kind: Literal[TriggerKind.EDIT] = TriggerKind.EDIT
    old_string: str = Field(default="", description="Replaced text")
    new_string: str = Field(default="", description="Inserted text")

    def spans(self) -> list[EditSpan]:
        return [EditSpan(old_string=self.old_string, new_string=self.new_string)]


class MultiEditTrigger(FileTrigger):
    """Several replacements applied to one file in a single action."""

    kind: Literal[TriggerKind.MULTI_EDIT] = TriggerKind.MULTI_EDIT
    edits: list[EditSpan] = Field(default_factory=list, description="Replaced spans")

    def spans(self) -> list[EditSpan]:
        return list(self.edits)


class IgnoredTrigger(BaseModel):
    """
    Any operation the hook does not capture (Read, Bash, Grep, ...).

    Attributes:
        tool_name: The tool_name reported by the editing agent
        reason: Why the event is ignored
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal[TriggerKind.IGNORED] = TriggerKind.IGNORED
    tool_name: str = Field(default="", description="Reported tool name")
    reason: str = Field(default="unsupported tool", description="Why it was ignored")


TriggerEvent = WriteTrigger | EditTrigger | MultiEditTrigger | IgnoredTrigger

_TRIGGER_MODELS: dict[str, type[FileTrigger]] = {
    TriggerKind.WRITE.value: WriteTrigger,
    TriggerKind.EDIT.value: EditTrigger,
    TriggerKind.MULTI_EDIT.value: MultiEditTrigger,
}


def parse_trigger(payload: Any) -> TriggerEvent:
    """
    Convert a PostToolUse hook payload into a typed trigger event.

    Args:
        payload: Decoded hook JSON ({"tool_name", "tool_input", "session_id", "cwd"})

    Returns:
        A file trigger for Write/Edit/MultiEdit, IgnoredTrigger otherwise

    Raises:
        TriggerMalformedError: If a recognized tool's payload is unusable
    """
    if not isinstance(payload, dict):
        raise TriggerMalformedError(reason="payload is not a JSON object")

    tool_name = payload.get("tool_name") or ""
    model = _TRIGGER_MODELS.get(tool_name) if isinstance(tool_name, str) else None
    if model is None:
        return IgnoredTrigger(tool_name=str(tool_name))

    tool_input = payload.get("tool_input") or {}
    if not isinstance(tool_input, dict):
        raise TriggerMalformedError(tool_name=tool_name, reason="tool_input is not an object")

    file_path = tool_input.get("file_path")
    if not file_path:
        raise TriggerMalformedError(tool_name=tool_name, reason="tool_input.file_path is missing")

    data: dict[str, Any] = {
        "file_path": file_path,
        "session_id": payload.get("session_id") or "",
        "cwd": payload.get("cwd") or "",
    }
    if model is EditTrigger:
        data["old_string"] = tool_input.get("old_string") or ""
        data["new_string"] = tool_input.get("new_string") or ""
    elif model is MultiEditTrigger:
        data["edits"] = tool_input.get("edits") or []

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise TriggerMalformedError(tool_name=tool_name, reason=str(e)) from e


def parse_trigger_json(content: str) -> TriggerEvent:
    """Parse a raw hook payload string (as read from stdin)."""
    if not content.strip():
        raise TriggerMalformedError(reason="empty payload")
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as e:
        raise TriggerMalformedError(reason=f"invalid JSON: {e}") from e
    return parse_trigger(payload)


# =============================================================================
# Activity Model
# =============================================================================


class ActivityEvent(BaseModel):
    """
    One capture record in evidence/activity.jsonl.

    Field order is the on-disk key order. Unknown keys written by peer
    integrations are ignored on read.

    Attributes:
        t: When the change was captured (UTC, millisecond precision)
        kind: Event kind, "save" for everything this package writes
        path: Workspace-relative path with forward slashes
        sha256: Hex digest of the file content, "" when unavailable
        burst_id: Groups events from the same editing session
        lines_added: Lines inserted (on disk: linesAdded)
        lines_removed: Lines replaced (on disk: linesRemoved)
        persisted_at: When the record was written
        source: Integration that produced the record
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    t: str = Field(..., min_length=1, description="Capture timestamp")
    kind: str = Field(default=EventKind.SAVE.value, description="Event kind")
    path: str = Field(default="", description="Workspace-relative path")
    sha256: str = Field(default="", description="Content digest or empty")
    burst_id: str = Field(default="", description="Editing burst identifier")
    lines_added: int = Field(default=0, alias="linesAdded", ge=0)
    lines_removed: int = Field(default=0, alias="linesRemoved", ge=0)
    persisted_at: str = Field(default="", description="Persistence timestamp")
    source: str = Field(default="", description="Producing integration")

    def to_json_line(self) -> str:
        """Serialize as one compact JSON record without the trailing newline."""
        return self.model_dump_json(by_alias=True)


# =============================================================================
# Configuration
# =============================================================================

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class CaptureConfig(BaseModel):
    """
    Capture configuration.

    Attributes:
        metadata_dir: Name of the reserved directory marking a workspace root
        source: Value written to the source field of every record
        burst_prefix: Prefix of burst_id; the session id is appended
        session_id_length: How many session id characters go into burst_id
        workspace_root: Pin the workspace root instead of walking up from cwd
        lock_timeout_seconds: Budget for acquiring the path index lock
        max_blob_bytes: Files larger than this are hashed but not stored
        log_level: Diagnostic log level for the side channel
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    metadata_dir: str = Field(default=".rl4", min_length=1)
    source: str = Field(default="claude-code", min_length=1)
    burst_prefix: str = Field(default="burst-cli-")
    session_id_length: int = Field(default=12, ge=1)
    workspace_root: str | None = Field(default=None)
    lock_timeout_seconds: float = Field(default=2.0, gt=0, le=60)
    max_blob_bytes: int = Field(default=50 * 1024 * 1024, ge=0)  # 50 MB
    log_level: str = Field(default="WARNING")

    @field_validator("metadata_dir")
    @classmethod
    def validate_metadata_dir(cls, v: str) -> str:
        """The metadata directory must be a single path component."""
        if "/" in v or "\\" in v or v in (".", ".."):
            msg = f"metadata_dir must be a plain directory name: {v}"
            raise ValueError(msg)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            msg = f"Invalid log level: {v}"
            raise ValueError(msg)
        return level

    def burst_id_for(self, session_id: str) -> str:
        """Derive the burst identifier for an editing session."""
        return f"{self.burst_prefix}{session_id[: self.session_id_length] or 'unknown'}"


# =============================================================================
# Loading Helpers
# =============================================================================

ENV_WORKSPACE_ROOT = "RL4_WORKSPACE_ROOT"
ENV_SOURCE = "RL4_SOURCE"
ENV_LOG_LEVEL = "RL4_LOG_LEVEL"


def load_config(path: Path | str) -> CaptureConfig:
    """
    Load a capture config from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated CaptureConfig object

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the YAML doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        data = yaml.safe_load(f)

    return CaptureConfig.model_validate(data or {})


def load_config_from_string(content: str) -> CaptureConfig:
    """Load a capture config from a YAML string."""
    data = yaml.safe_load(content)
    return CaptureConfig.model_validate(data or {})


def config_from_env(
    config: CaptureConfig | None = None,
    environ: Mapping[str, str] | None = None,
) -> CaptureConfig:
    """
    Apply RL4_* environment overrides on top of a config.

    Args:
        config: Base config (defaults to CaptureConfig())
        environ: Environment mapping (defaults to os.environ)

    Returns:
        A new validated CaptureConfig
    """
    config = config or CaptureConfig()
    environ = os.environ if environ is None else environ

    updates: dict[str, Any] = {}
    if environ.get(ENV_WORKSPACE_ROOT):
        updates["workspace_root"] = environ[ENV_WORKSPACE_ROOT]
    if environ.get(ENV_SOURCE):
        updates["source"] = environ[ENV_SOURCE]
    if environ.get(ENV_LOG_LEVEL):
        updates["log_level"] = environ[ENV_LOG_LEVEL]

    if not updates:
        return config
    return CaptureConfig.model_validate({**config.model_dump(), **updates})
