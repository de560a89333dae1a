from __future__ import annotations

import threading

from loguru import logger


class AutoAllowStore:
    """Tools the user approved for the rest of a session. In memory only."""

    def __init__(self) -> None:
        self._sessions: dict[str, set[str]] = {}
        self._lock = threading.Lock()

    def allow(self, session_id: str, tool_name: str) -> None:
        with self._lock:
            self._sessions.setdefault(session_id, set()).add(tool_name)
        logger.info(f"Auto-allowing {tool_name!r} for session {session_id[:8]}")

    def revoke(self, session_id: str, tool_name: str) -> bool:
        with self._lock:
            tools = self._sessions.get(session_id)
            if not tools or tool_name not in tools:
                return False
            tools.discard(tool_name)
            return True

    def is_allowed(self, session_id: str, tool_name: str | None) -> bool:
        if not tool_name:
            return False
        with self._lock:
            return tool_name in self._sessions.get(session_id, ())

    def tools(self, session_id: str) -> list[str]:
        with self._lock:
            return sorted(self._sessions.get(session_id, ()))

    def clear_session(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
