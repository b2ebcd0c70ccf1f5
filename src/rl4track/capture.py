"""
Capture orchestrator for rl4track.

The orchestrator turns one editing event into durable evidence. It is
called from a PostToolUse hook after every file-modifying action and
must never slow down or break the editing agent, so it never raises.

Capture Flow:
    1. VALIDATING: parse the payload, drop non-write operations, resolve
       the target to an absolute path, require it to exist as a file
    2. CAPTURING: resolve the workspace, then in fixed order
        a. content store: hash and store the file blob
        b. path index: append the digest to the path's history
        c. activity log: append the event record
    3. DONE: return a CaptureResult describing what happened

Every CAPTURING step is attempted even if an earlier one failed. A step
failure becomes an ERROR StepOutcome and a log message on the
rl4track logger; it is never raised to the caller. Because the log is
appended last, a digest seen in the activity log had its blob and index
entry written first (unless those steps themselves failed).
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, TypeVar

from rl4track.errors import Rl4Error, TriggerMalformedError
from rl4track.schema import (
    ActivityEvent,
    CaptureConfig,
    EventKind,
    FileTrigger,
    IgnoredTrigger,
    TriggerEvent,
    now_iso,
    parse_trigger,
    parse_trigger_json,
)
from rl4track.store import (
    ActivityLog,
    ContentStore,
    FileBackend,
    FileSnapshot,
    PathIndex,
    PutResult,
    StorageBackend,
    count_lines,
)
from rl4track.workspace import Workspace, absolute_path, resolve_workspace

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Steps slower than this are reported; nothing is retried
STEP_LATENCY_BUDGET_MS = 500.0

BackendFactory = Callable[[Workspace, CaptureConfig], StorageBackend]


def file_backend(workspace: Workspace, config: CaptureConfig) -> StorageBackend:
    """Default backend: the workspace's metadata directory on disk."""
    return FileBackend(workspace.metadata_dir, lock_timeout_seconds=config.lock_timeout_seconds)


class CaptureState(str, Enum):
    """Orchestrator states. DONE is terminal for captures and no-ops alike."""

    IDLE = "idle"
    VALIDATING = "validating"
    CAPTURING = "capturing"
    DONE = "done"


class StepStatus(str, Enum):
    """Outcome of one capture step."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class StepOutcome:
    """
    Result of one capture step.

    Attributes:
        step: Step name ("workspace", "content", "index", "log")
        status: What happened
        detail: Extra information (skip reason, store outcome)
        error: Error message if status is ERROR
        code: Rl4Error code when the failure was a known one
        duration_ms: Time spent in the step
    """

    step: str
    status: StepStatus
    detail: str | None = None
    error: str | None = None
    code: int | None = None
    duration_ms: float = 0.0

    @classmethod
    def ok(cls, step: str, detail: str | None = None, duration_ms: float = 0.0) -> "StepOutcome":
        return cls(step=step, status=StepStatus.SUCCESS, detail=detail, duration_ms=duration_ms)

    @classmethod
    def skip(cls, step: str, reason: str) -> "StepOutcome":
        return cls(step=step, status=StepStatus.SKIPPED, detail=reason)

    @classmethod
    def fail(
        cls,
        step: str,
        error: str,
        code: int | None = None,
        duration_ms: float = 0.0,
    ) -> "StepOutcome":
        return cls(step=step, status=StepStatus.ERROR, error=error, code=code, duration_ms=duration_ms)


@dataclass
class CaptureResult:
    """
    What a capture did.

    Attributes:
        state: Final orchestrator state (always DONE once returned)
        trigger: The parsed trigger, if parsing succeeded
        skipped_reason: Why the event was a no-op, if it was one
        workspace: The workspace written to, if resolved
        event: The activity record that was built, if capturing got that far
        steps: Outcome of every capture step, in execution order
        duration_ms: Total time spent
    """

    state: CaptureState = CaptureState.IDLE
    trigger: TriggerEvent | None = None
    skipped_reason: str | None = None
    workspace: Workspace | None = None
    event: ActivityEvent | None = None
    steps: list[StepOutcome] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def captured(self) -> bool:
        """Whether an activity record was appended."""
        return any(s.step == "log" and s.status == StepStatus.SUCCESS for s in self.steps)

    @property
    def errors(self) -> list[StepOutcome]:
        return [s for s in self.steps if s.status == StepStatus.ERROR]

    def step(self, name: str) -> StepOutcome | None:
        for outcome in self.steps:
            if outcome.step == name:
                return outcome
        return None


def line_deltas(trigger: FileTrigger, snapshot: FileSnapshot | None) -> tuple[int, int]:
    """
    Lines added and removed by an editing action.

    A full replacement counts every line of the resulting file as added
    and nothing as removed, even when the file shrank. A partial edit
    counts the lines of the inserted and replaced spans.

    Returns:
        (lines_added, lines_removed)
    """
    if trigger.is_full_replacement:
        return (snapshot.line_count if snapshot else 0), 0

    added = removed = 0
    for span in trigger.spans():
        added += count_lines(span.new_string)
        removed += count_lines(span.old_string)
    return added, removed


class CaptureOrchestrator:
    """
    Entry point for capture hooks.

    Usage:
        orchestrator = CaptureOrchestrator(config)
        result = orchestrator.handle(sys.stdin.read())
        # result.state is CaptureState.DONE; nothing was raised

    Attributes:
        config: Capture configuration
        backend_factory: Builds the storage backend for a resolved workspace
        clock: Returns the current time in activity-log format
    """

    def __init__(
        self,
        config: CaptureConfig | None = None,
        backend_factory: BackendFactory | None = None,
        clock: Callable[[], str] | None = None,
    ) -> None:
        self.config = config or CaptureConfig()
        self.backend_factory = backend_factory or file_backend
        self.clock = clock or now_iso

    def handle(self, payload: str | dict[str, Any]) -> CaptureResult:
        """
        Capture the editing action described by a hook payload.

        Args:
            payload: Raw stdin text or an already decoded payload dict

        Returns:
            CaptureResult in state DONE
        """
        started = time.perf_counter()
        result = CaptureResult(state=CaptureState.VALIDATING)
        try:
            try:
                if isinstance(payload, str):
                    trigger = parse_trigger_json(payload)
                else:
                    trigger = parse_trigger(payload)
            except TriggerMalformedError as e:
                logger.info("Ignoring hook payload: %s", e.message)
                result.skipped_reason = e.message
            else:
                self._run(trigger, result)
        except Exception:
            logger.exception("Capture aborted")
        finally:
            result.state = CaptureState.DONE
            result.duration_ms = (time.perf_counter() - started) * 1000
        return result

    def capture(self, trigger: TriggerEvent) -> CaptureResult:
        """Capture an already parsed trigger. Never raises."""
        started = time.perf_counter()
        result = CaptureResult(state=CaptureState.VALIDATING)
        try:
            self._run(trigger, result)
        except Exception:
            logger.exception("Capture aborted")
        finally:
            result.state = CaptureState.DONE
            result.duration_ms = (time.perf_counter() - started) * 1000
        return result

    # =========================================================================
    # States
    # =========================================================================

    def _run(self, trigger: TriggerEvent, result: CaptureResult) -> None:
        result.trigger = trigger

        if isinstance(trigger, IgnoredTrigger):
            result.skipped_reason = f"{trigger.reason}: {trigger.tool_name or '<none>'}"
            logger.debug("Ignoring %s", result.skipped_reason)
            return

        # Symlinks are not followed
        cwd = absolute_path(trigger.cwd or Path.cwd())
        target = absolute_path(cwd / trigger.file_path)

        if not target.is_file():
            result.skipped_reason = f"file not found: {target}"
            logger.info("Ignoring %s", result.skipped_reason)
            return

        result.state = CaptureState.CAPTURING
        self._capture_file(trigger, target, cwd, result)

    def _capture_file(
        self,
        trigger: FileTrigger,
        target: Path,
        cwd: Path,
        result: CaptureResult,
    ) -> None:
        captured_at = self.clock()

        workspace = self._attempt(result, "workspace", lambda: resolve_workspace(cwd, self.config))
        if workspace is None:
            return
        result.workspace = workspace

        backend = self.backend_factory(workspace, self.config)
        rel_path = workspace.relative_path(target)

        # 1. Content store
        put: PutResult | None = self._attempt(
            result,
            "content",
            lambda: ContentStore(backend, self.config.max_blob_bytes).put_file(target),
            detail=lambda r: "stored" if r.stored else r.reason,
        )
        digest = put.digest if put else ""
        lines_added, lines_removed = line_deltas(trigger, put.snapshot if put else None)

        # 2. Path index
        if digest:
            self._attempt(
                result,
                "index",
                lambda: PathIndex(backend, workspace.root).record(rel_path, digest),
                detail=lambda history: f"{len(history)} version(s)",
            )
        else:
            result.steps.append(StepOutcome.skip("index", "no digest"))

        # 3. Activity log
        event = ActivityEvent(
            t=captured_at,
            kind=EventKind.SAVE.value,
            path=rel_path,
            sha256=digest,
            burst_id=self.config.burst_id_for(trigger.session_id),
            lines_added=lines_added,
            lines_removed=lines_removed,
            persisted_at=self.clock(),
            source=self.config.source,
        )
        result.event = event
        self._attempt(result, "log", lambda: ActivityLog(backend).append(event))

    def _attempt(
        self,
        result: CaptureResult,
        step: str,
        action: Callable[[], T],
        detail: Callable[[T], str | None] | None = None,
    ) -> T | None:
        """Run one step, recording its outcome. Returns None on failure."""
        started = time.perf_counter()
        try:
            value = action()
        except Rl4Error as e:
            elapsed = (time.perf_counter() - started) * 1000
            logger.warning("Capture step %s failed: %s", step, e)
            result.steps.append(StepOutcome.fail(step, e.message, code=e.code, duration_ms=elapsed))
            return None
        except Exception as e:
            elapsed = (time.perf_counter() - started) * 1000
            logger.warning("Capture step %s failed: %s", step, e, exc_info=True)
            result.steps.append(StepOutcome.fail(step, str(e), duration_ms=elapsed))
            return None

        elapsed = (time.perf_counter() - started) * 1000
        if elapsed > STEP_LATENCY_BUDGET_MS:
            logger.warning("Capture step %s took %.0fms", step, elapsed)
        result.steps.append(
            StepOutcome.ok(step, detail=detail(value) if detail else None, duration_ms=elapsed)
        )
        return value
