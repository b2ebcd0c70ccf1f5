"""
Append-only activity journal.

evidence/activity.jsonl holds one compact JSON object per line, in the
order captures happened. Records are appended with a single write on an
O_APPEND descriptor, which keeps concurrent appenders from interleaving
partial lines for records under the filesystem's atomic write size.
Nothing here ever rewrites or truncates the file.

Readers scan from the start and skip lines they cannot parse; peer
integrations share this file and may write records with extra fields.
"""

import json
import logging

from pydantic import ValidationError

from rl4track.errors import LogAppendError, LogReadError
from rl4track.schema import ActivityEvent
from rl4track.store.backend import StorageBackend

logger = logging.getLogger(__name__)

ACTIVITY_KEY = "evidence/activity.jsonl"

# POSIX guarantees atomic pipe writes up to PIPE_BUF; regular files behave alike in practice
ATOMIC_APPEND_BYTES = 4096


class ActivityLog:
    """
    Event journal over a StorageBackend.

    Usage:
        log = ActivityLog(backend)
        log.append(event)
        events = log.read_all()
    """

    def __init__(self, backend: StorageBackend) -> None:
        self.backend = backend

    def append(self, event: ActivityEvent) -> ActivityEvent:
        """
        Append one event record.

        Raises:
            LogAppendError: If the record cannot be written
        """
        record = (event.to_json_line() + "\n").encode("utf-8")
        if len(record) > ATOMIC_APPEND_BYTES:
            logger.debug("Activity record for %s is %d bytes; append may not be atomic", event.path, len(record))
        try:
            self.backend.append(ACTIVITY_KEY, record)
        except OSError as e:
            raise LogAppendError(log_path=ACTIVITY_KEY, underlying_error=str(e)) from e
        return event

    def read_all(self) -> list[ActivityEvent]:
        """
        Read every well-formed record in append order.

        Raises:
            LogReadError: If the log exists but cannot be read
        """
        try:
            raw = self.backend.read(ACTIVITY_KEY)
        except OSError as e:
            raise LogReadError(log_path=ACTIVITY_KEY, underlying_error=str(e)) from e
        if not raw:
            return []

        events = []
        for line in raw.decode("utf-8", errors="replace").splitlines():
            line = line.strip()
            if not line.startswith("{"):
                continue
            try:
                events.append(ActivityEvent.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError):
                continue  # Skip malformed lines
        return events

    def tail(self, limit: int) -> list[ActivityEvent]:
        """The last limit records, oldest first."""
        if limit <= 0:
            return []
        return self.read_all()[-limit:]

    def count(self) -> int:
        return len(self.read_all())
