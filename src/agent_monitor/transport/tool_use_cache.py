from __future__ import annotations

import json
import threading
from collections import OrderedDict, deque

from agent_monitor.protocol import HookEvent

DEFAULT_MAX_ENTRIES = 1000


def cache_key(session_id: str, tool_name: str | None, tool_input: dict | None) -> str:
    serialized = json.dumps(tool_input or {}, sort_keys=True, default=str)
    return f"{session_id}:{tool_name or 'unknown'}:{serialized}"


class ToolUseIdCache:
    """Remembers PreToolUse ids so a later permission frame for the same call can reuse them."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        self._max_entries = max(1, max_entries)
        self._queues: OrderedDict[str, deque[str]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._queues)

    def put(self, event: HookEvent) -> None:
        if not event.tool_use_id:
            return
        key = cache_key(event.session_id, event.tool, event.tool_input)
        with self._lock:
            queue = self._queues.get(key)
            if queue is None:
                queue = deque()
                self._queues[key] = queue
            else:
                self._queues.move_to_end(key)
            queue.append(event.tool_use_id)
            while len(self._queues) > self._max_entries:
                self._queues.popitem(last=False)

    def pop(self, event: HookEvent) -> str | None:
        key = cache_key(event.session_id, event.tool, event.tool_input)
        with self._lock:
            queue = self._queues.get(key)
            if not queue:
                return None
            tool_use_id = queue.popleft()
            if not queue:
                del self._queues[key]
            return tool_use_id

    def clear_session(self, session_id: str) -> None:
        prefix = f"{session_id}:"
        with self._lock:
            for key in [k for k in self._queues if k.startswith(prefix)]:
                del self._queues[key]
