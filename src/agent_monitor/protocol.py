"""Wire types shared by the hook adapters, the socket server and the session engine."""

from __future__ import annotations

import json
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

SOCKET_ENV_VAR = "AGENT_MONITOR_SOCKET"
SOCKET_FILE_NAME = "agent-monitor.sock"


class FrameError(ValueError):
    """A line on the channel that is not a usable frame."""


class Agent:
    CLAUDE = "claude"
    GEMINI = "gemini"
    CURSOR = "cursor"

    ALL = frozenset({CLAUDE, GEMINI, CURSOR})


class Phase:
    IDLE = "idle"
    PROCESSING = "processing"
    RUNNING_TOOL = "runningTool"
    WAITING_FOR_INPUT = "waitingForInput"
    WAITING_FOR_APPROVAL = "waitingForApproval"
    COMPACTING = "compacting"
    ERROR = "error"
    ENDED = "ended"

    ALL = frozenset({
        IDLE,
        PROCESSING,
        RUNNING_TOOL,
        WAITING_FOR_INPUT,
        WAITING_FOR_APPROVAL,
        COMPACTING,
        ERROR,
        ENDED,
    })


class CanonicalEvent:
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    PERMISSION_REQUEST = "PermissionRequest"
    NOTIFICATION = "Notification"
    STOP = "Stop"
    SUBAGENT_STOP = "SubagentStop"
    SESSION_START = "SessionStart"
    SESSION_END = "SessionEnd"
    PRE_COMPACT = "PreCompact"


class Decision:
    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"
    # Only the gemini envelope has a block verdict.
    BLOCK = "block"

    ALL = frozenset({ALLOW, DENY, ASK, BLOCK})


@dataclass
class HookEvent:
    session_id: str
    cwd: str
    event: str
    status: str
    agent: str
    pid: int | None = None
    tty: str | None = None
    tool: str | None = None
    tool_input: dict[str, Any] | None = None
    tool_use_id: str | None = None
    notification_type: str | None = None
    message: str | None = None

    @property
    def is_permission_request(self) -> bool:
        return self.status == Phase.WAITING_FOR_APPROVAL

    def to_frame(self) -> dict[str, Any]:
        frame: dict[str, Any] = {
            "sessionId": self.session_id,
            "cwd": self.cwd,
            "event": self.event,
            "status": self.status,
            "agent": self.agent,
        }
        optional = {
            "pid": self.pid,
            "tty": self.tty,
            "tool": self.tool,
            "toolInput": self.tool_input,
            "toolUseId": self.tool_use_id,
            "notificationType": self.notification_type,
            "message": self.message,
        }
        frame.update({k: v for k, v in optional.items() if v is not None})
        return frame

    @classmethod
    def from_frame(cls, frame: dict[str, Any]) -> HookEvent:
        session_id = frame.get("sessionId")
        event = frame.get("event")
        if not isinstance(session_id, str) or not session_id:
            raise FrameError("frame has no sessionId")
        if not isinstance(event, str) or not event:
            raise FrameError(f"frame for {session_id[:8]} has no event")

        tool_input = frame.get("toolInput")
        pid = frame.get("pid")
        return cls(
            session_id=session_id,
            cwd=str(frame.get("cwd") or ""),
            event=event,
            status=str(frame.get("status") or ""),
            agent=str(frame.get("agent") or Agent.CLAUDE),
            pid=pid if isinstance(pid, int) and not isinstance(pid, bool) else None,
            tty=_optional_str(frame.get("tty")),
            tool=_optional_str(frame.get("tool")),
            tool_input=tool_input if isinstance(tool_input, dict) else None,
            tool_use_id=_optional_str(frame.get("toolUseId")),
            notification_type=_optional_str(frame.get("notificationType")),
            message=_optional_str(frame.get("message")),
        )


@dataclass
class HookResponse:
    decision: str
    reason: str | None = None
    updated_input: dict[str, Any] | None = None
    interrupt: bool = False

    @classmethod
    def ask(cls) -> HookResponse:
        return cls(decision=Decision.ASK)

    def to_frame(self) -> dict[str, Any]:
        frame: dict[str, Any] = {"decision": self.decision}
        if self.reason:
            frame["reason"] = self.reason
        if self.updated_input is not None:
            frame["updatedInput"] = self.updated_input
        if self.interrupt:
            frame["interrupt"] = True
        return frame

    @classmethod
    def from_frame(cls, frame: dict[str, Any]) -> HookResponse:
        decision = frame.get("decision")
        if decision not in Decision.ALL:
            raise FrameError(f"unknown decision: {decision!r}")
        updated_input = frame.get("updatedInput")
        return cls(
            decision=decision,
            reason=_optional_str(frame.get("reason")),
            updated_input=updated_input if isinstance(updated_input, dict) else None,
            interrupt=frame.get("interrupt") is True,
        )


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def encode_frame(frame: dict[str, Any]) -> bytes:
    return (json.dumps(frame, ensure_ascii=False, separators=(",", ":")) + "\n").encode("utf-8")


def decode_frame(line: bytes | str) -> dict[str, Any]:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    try:
        frame = json.loads(line)
    except json.JSONDecodeError as ex:
        raise FrameError(f"malformed frame: {ex.msg}") from ex
    if not isinstance(frame, dict):
        raise FrameError("frame is not a JSON object")
    return frame


def default_socket_path() -> Path:
    override = os.environ.get(SOCKET_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser()
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR", "").strip()
    if runtime_dir and Path(runtime_dir).is_dir():
        return Path(runtime_dir) / SOCKET_FILE_NAME
    return Path(tempfile.gettempdir()) / f"agent-monitor-{os.getuid()}.sock"


def generate_tool_use_id(agent: str, session_id: str, tool_name: str, now: float | None = None) -> str:
    """Correlation id for agents that do not supply one.

    Pre and post events of one tool call land in the same one-second bucket, so
    separate adapter processes derive the same id without sharing state.
    """
    bucket = int(time.time() if now is None else now)
    return f"{agent}_{session_id[:8]}_{tool_name}_{bucket}"
