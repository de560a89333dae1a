from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

from agent_monitor.protocol import HookEvent, HookResponse, Phase


class TransitionKind:
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"
    PHASE_CHANGE = "phaseChange"
    PERMISSION_REQUEST = "permissionRequest"
    PERMISSION_RESOLVED = "permissionResolved"


Responder = Callable[[HookResponse], None]


@dataclass(frozen=True)
class QuestionContext:
    question: str
    options: tuple[str, ...] = ()
    header: str | None = None


@dataclass
class PermissionRequest:
    tool_name: str
    tool_input: dict[str, Any]
    tool_use_id: str
    created_at: float
    question: QuestionContext | None = None
    responder: Responder | None = field(default=None, repr=False, compare=False)


@dataclass
class Session:
    session_id: str
    agent: str
    cwd: str
    phase: str
    started_at: float
    last_activity: float
    pid: int | None = None
    tty: str | None = None
    last_message: str | None = None
    last_tool: str | None = None
    pending_permission: PermissionRequest | None = None
    ended_at: float | None = None

    @property
    def display_title(self) -> str:
        name = PurePath(self.cwd).name if self.cwd else ""
        return name or self.session_id[:8]

    @property
    def is_ended(self) -> bool:
        return self.phase == Phase.ENDED


@dataclass(frozen=True)
class SessionChange:
    kind: str
    session: Session
    previous_phase: str | None = None
    # The hook event behind an add, update or phase change; None for engine-driven changes.
    event: HookEvent | None = None


_QUESTION_FIELDS = ("question", "question_text", "text", "message", "prompt", "query")
_OPTION_FIELDS = ("options", "choices", "items")
_HEADER_FIELDS = ("header", "title", "label")


def extract_question(tool_input: dict[str, Any] | None) -> QuestionContext | None:
    """Pull the human-facing question out of a question tool's input."""
    if not tool_input:
        return None

    source: dict[str, Any] = tool_input
    questions = tool_input.get("questions")
    if isinstance(questions, list) and questions and isinstance(questions[0], dict):
        source = questions[0]

    question = next((source[k] for k in _QUESTION_FIELDS if isinstance(source.get(k), str) and source[k]), None)
    if question is None:
        return None

    options: list[str] = []
    raw_options = next((source[k] for k in _OPTION_FIELDS if isinstance(source.get(k), list)), [])
    for option in raw_options:
        if isinstance(option, str):
            options.append(option)
        elif isinstance(option, dict):
            label = option.get("label") or option.get("text") or option.get("value")
            if isinstance(label, str) and label:
                options.append(label)

    header = next((source[k] for k in _HEADER_FIELDS if isinstance(source.get(k), str) and source[k]), None)
    return QuestionContext(question=question, options=tuple(options), header=header)


def format_tool_input(tool_name: str | None, tool_input: dict[str, Any] | None) -> str:
    """One-line summary of a tool call for session lists."""
    if not tool_input:
        return ""
    if tool_name in ("Read", "Write", "Edit"):
        file_path = tool_input.get("file_path")
        if isinstance(file_path, str) and file_path:
            return PurePath(file_path).name
    keyed = {
        "Bash": "command",
        "Grep": "pattern",
        "Glob": "pattern",
        "Task": "description",
        "WebFetch": "url",
        "WebSearch": "query",
    }
    key = keyed.get(tool_name or "")
    if key is not None:
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    for value in tool_input.values():
        if isinstance(value, str) and value:
            return value
    return ""
