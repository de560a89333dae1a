from __future__ import annotations

from dataclasses import dataclass, field


class MessageKind:
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_CALL = "toolCall"
    THINKING = "thinking"
    INTERRUPTED = "interrupted"


@dataclass
class ToolCallItem:
    id: str
    name: str
    input: dict[str, str] = field(default_factory=dict)
    status: str = "running"


@dataclass
class ChatHistoryItem:
    id: str
    kind: str
    timestamp: float
    text: str | None = None
    tool: ToolCallItem | None = None


@dataclass
class ToolResult:
    content: str | None
    stdout: str | None
    stderr: str | None
    is_error: bool
    is_interrupted: bool


@dataclass
class ConversationInfo:
    summary: str | None = None
    last_message: str | None = None
    last_message_role: str | None = None
    last_tool_name: str | None = None
    first_user_message: str | None = None
    last_user_message_date: float | None = None


@dataclass
class SubagentToolInfo:
    id: str
    name: str
    input: dict[str, str]
    is_completed: bool
    timestamp: str | None = None
