from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass

DEFAULT_LIMIT = 50


class ActivityKind:
    TOOL_START = "tool_start"
    TOOL_COMPLETE = "tool_complete"
    PERMISSION_REQUEST = "permission_request"
    PERMISSION_RESOLVED = "permission_resolved"
    PHASE_CHANGE = "phase_change"
    SESSION_START = "session_start"
    SESSION_END = "session_end"


@dataclass(frozen=True)
class ActivityEntry:
    kind: str
    timestamp: float
    detail: str
    tool_name: str | None = None


class ActivityLog:
    """Bounded per-session history of notable events, newest last."""

    def __init__(self, limit: int = DEFAULT_LIMIT):
        self._limit = max(1, limit)
        self._entries: dict[str, deque[ActivityEntry]] = {}
        self._lock = threading.Lock()

    def record(self, session_id: str, entry: ActivityEntry) -> None:
        with self._lock:
            entries = self._entries.get(session_id)
            if entries is None:
                entries = deque(maxlen=self._limit)
                self._entries[session_id] = entries
            entries.append(entry)

    def entries(self, session_id: str) -> list[ActivityEntry]:
        with self._lock:
            return list(self._entries.get(session_id, ()))

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)
