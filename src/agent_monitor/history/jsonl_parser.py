"""Reader for Claude's per-session JSONL conversation logs.

``parse_incremental`` keeps a byte-offset checkpoint per session and only
decodes what was appended since the previous call. ``parse`` answers the
cheaper "what is this session about" question from the whole file and caches
the answer until the file's mtime changes.
"""

from __future__ import annotations

import json
import os
import re
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from agent_monitor.history.models import (
    ChatHistoryItem,
    ConversationInfo,
    MessageKind,
    SubagentToolInfo,
    ToolCallItem,
    ToolResult,
)
from agent_monitor.history.structured_results import StructuredResult, parse_structured_result
from agent_monitor.sessions.models import format_tool_input

DEFAULT_PROJECTS_DIR = Path("~/.claude/projects")

CLEAR_MARKER = "<command-name>/clear</command-name>"
TOOL_RESULT_MARKER = '"tool_result"'
TOOL_USE_MARKER = '"tool_use"'
INTERRUPT_MESSAGE_PREFIX = "[Request interrupted by user"
INTERRUPT_PHRASES = (
    "Interrupted by user",
    "interrupted by user",
    "user doesn't want to proceed",
    INTERRUPT_MESSAGE_PREFIX,
)
COMMAND_ECHO_PREFIXES = ("<command-name>", "<local-command", "Caveat:")

_MESSAGE_TYPE_RE = re.compile(r'"type"\s*:\s*"(?:user|assistant)"')


def project_dir_name(cwd: str) -> str:
    return cwd.replace("/", "-").replace(".", "-")


def is_interrupt_content(content: str | None) -> bool:
    if not content:
        return False
    return any(phrase in content for phrase in INTERRUPT_PHRASES)


def truncate_message(message: str | None, max_length: int = 80) -> str | None:
    if not message:
        return None
    cleaned = message.strip().replace("\n", " ")
    if len(cleaned) > max_length:
        return cleaned[: max_length - 3] + "..."
    return cleaned


def stringify_input(raw: object) -> dict[str, str]:
    """Scalar tool arguments as display strings; nested values are dropped."""
    if not isinstance(raw, dict):
        return {}
    result: dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(value, bool):
            result[key] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            result[key] = str(value)
    return result


def _parse_timestamp(value: object) -> float | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def _result_text(content: object) -> str | None:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [
            block["text"]
            for block in content
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
        ]
        return "\n".join(texts) if texts else None
    return None


def _is_command_echo(text: str) -> bool:
    return text.startswith(COMMAND_ECHO_PREFIXES)


@dataclass
class IncrementalParseState:
    last_offset: int = 0
    messages: list[ChatHistoryItem] = field(default_factory=list)
    seen_tool_ids: set[str] = field(default_factory=set)
    tool_names: dict[str, str] = field(default_factory=dict)
    completed_tool_ids: set[str] = field(default_factory=set)
    tool_results: dict[str, ToolResult] = field(default_factory=dict)
    structured_results: dict[str, StructuredResult] = field(default_factory=dict)
    last_clear_offset: int = 0
    clear_pending: bool = False

    def clear_conversation(self) -> None:
        self.messages = []
        self.seen_tool_ids.clear()
        self.tool_names.clear()
        self.completed_tool_ids.clear()
        self.tool_results.clear()
        self.structured_results.clear()

    def reset(self) -> None:
        self.clear_conversation()
        self.last_offset = 0
        self.last_clear_offset = 0


@dataclass
class IncrementalParseResult:
    new_messages: list[ChatHistoryItem] = field(default_factory=list)
    all_messages: list[ChatHistoryItem] = field(default_factory=list)
    completed_tool_ids: set[str] = field(default_factory=set)
    tool_results: dict[str, ToolResult] = field(default_factory=dict)
    structured_results: dict[str, StructuredResult] = field(default_factory=dict)
    clear_detected: bool = False
    interrupt_detected: bool = False


class JsonlParser:
    def __init__(self, projects_dir: str | Path | None = None):
        self._projects_dir = Path(projects_dir or DEFAULT_PROJECTS_DIR).expanduser()
        self._states: dict[str, IncrementalParseState] = {}
        self._info_cache: dict[Path, tuple[int, ConversationInfo]] = {}
        self._lock = threading.Lock()

    @property
    def projects_dir(self) -> Path:
        return self._projects_dir

    def session_file_path(self, session_id: str, cwd: str) -> Path:
        return self._projects_dir / project_dir_name(cwd) / f"{session_id}.jsonl"

    def agent_file_path(self, agent_id: str, cwd: str) -> Path:
        return self._projects_dir / project_dir_name(cwd) / f"agent-{agent_id}.jsonl"

    # -- incremental --

    def parse_incremental(self, session_id: str, cwd: str) -> IncrementalParseResult:
        path = self.session_file_path(session_id, cwd)
        if not path.exists():
            return IncrementalParseResult()

        with self._lock:
            state = self._states.setdefault(session_id, IncrementalParseState())

        new_messages, interrupt_detected = self._read_new_lines(path, state)
        clear_detected = state.clear_pending
        state.clear_pending = False

        return IncrementalParseResult(
            new_messages=new_messages,
            all_messages=list(state.messages),
            completed_tool_ids=set(state.completed_tool_ids),
            tool_results=dict(state.tool_results),
            structured_results=dict(state.structured_results),
            clear_detected=clear_detected,
            interrupt_detected=interrupt_detected,
        )

    def _read_new_lines(self, path: Path, state: IncrementalParseState) -> tuple[list[ChatHistoryItem], bool]:
        try:
            with open(path, "rb") as f:
                size = os.fstat(f.fileno()).st_size
                if size < state.last_offset:
                    logger.debug(f"{path.name} shrank from {state.last_offset} to {size} bytes, re-reading")
                    state.reset()
                if size == state.last_offset:
                    return [], False
                f.seek(state.last_offset)
                chunk = f.read(size - state.last_offset)
        except OSError as ex:
            logger.debug(f"Cannot read {path}: {ex}")
            return [], False

        # Only whole lines are committed; a writer may be mid-line.
        cut = chunk.rfind(b"\n") + 1
        body, tail = chunk[:cut], chunk[cut:]
        consumed = cut
        if tail.strip():
            try:
                json.loads(tail.decode("utf-8"))
            except ValueError:
                tail = b""
            else:
                consumed = len(chunk)
        else:
            consumed = len(chunk)

        is_incremental_read = state.last_offset > 0
        new_messages: list[ChatHistoryItem] = []
        interrupt_detected = False

        for line in (body + tail).decode("utf-8", errors="replace").split("\n"):
            if not line.strip():
                continue

            if CLEAR_MARKER in line:
                state.clear_conversation()
                if is_incremental_read:
                    state.clear_pending = True
                    state.last_clear_offset = state.last_offset
                continue

            if TOOL_RESULT_MARKER in line:
                record = self._load(line)
                if record is not None and self._apply_tool_results(record, state):
                    interrupt_detected = True
            elif _MESSAGE_TYPE_RE.search(line):
                record = self._load(line)
                if record is None:
                    continue
                for message in self._parse_message(record, state):
                    new_messages.append(message)
                    state.messages.append(message)
                    if message.kind == MessageKind.INTERRUPTED:
                        interrupt_detected = True

        state.last_offset += consumed
        return new_messages, interrupt_detected

    @staticmethod
    def _load(line: str) -> dict[str, Any] | None:
        try:
            record = json.loads(line)
        except ValueError:
            return None
        return record if isinstance(record, dict) else None

    def _apply_tool_results(self, record: dict[str, Any], state: IncrementalParseState) -> bool:
        message = record.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            return False

        meta = record.get("toolUseResult")
        meta = meta if isinstance(meta, dict) else None
        stdout = meta.get("stdout") if meta else None
        stderr = meta.get("stderr") if meta else None
        top_level_name = record.get("toolName") if isinstance(record.get("toolName"), str) else None

        interrupted = False
        for block in content:
            if not isinstance(block, dict) or block.get("type") != "tool_result":
                continue
            tool_use_id = block.get("tool_use_id")
            if not isinstance(tool_use_id, str) or not tool_use_id:
                continue

            state.completed_tool_ids.add(tool_use_id)
            text = _result_text(block.get("content"))
            is_error = block.get("is_error") is True
            result = ToolResult(
                content=text,
                stdout=stdout if isinstance(stdout, str) else None,
                stderr=stderr if isinstance(stderr, str) else None,
                is_error=is_error,
                is_interrupted=is_error and is_interrupt_content(text),
            )
            state.tool_results[tool_use_id] = result
            interrupted = interrupted or result.is_interrupted

            tool_name = top_level_name or state.tool_names.get(tool_use_id)
            if meta is not None and tool_name:
                state.structured_results[tool_use_id] = parse_structured_result(tool_name, meta)
        return interrupted

    def _parse_message(self, record: dict[str, Any], state: IncrementalParseState) -> list[ChatHistoryItem]:
        kind = record.get("type")
        uuid = record.get("uuid")
        if kind not in (MessageKind.USER, MessageKind.ASSISTANT) or not isinstance(uuid, str) or not uuid:
            return []
        if record.get("isMeta"):
            return []
        message = record.get("message")
        if not isinstance(message, dict):
            return []

        timestamp = _parse_timestamp(record.get("timestamp")) or time.time()
        content = message.get("content")

        if isinstance(content, str):
            if _is_command_echo(content):
                return []
            if content.startswith(INTERRUPT_MESSAGE_PREFIX):
                return [ChatHistoryItem(id=uuid, kind=MessageKind.INTERRUPTED, timestamp=timestamp)]
            return [ChatHistoryItem(id=uuid, kind=kind, timestamp=timestamp, text=content)]

        if not isinstance(content, list):
            return []

        items: list[ChatHistoryItem] = []

        def next_id() -> str:
            return f"{uuid}-{len(items)}" if items else uuid

        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text":
                text = block.get("text")
                if not isinstance(text, str) or not text:
                    continue
                if text.startswith(INTERRUPT_MESSAGE_PREFIX):
                    items.append(ChatHistoryItem(id=next_id(), kind=MessageKind.INTERRUPTED, timestamp=timestamp))
                else:
                    items.append(ChatHistoryItem(id=next_id(), kind=kind, timestamp=timestamp, text=text))
            elif block_type == "tool_use":
                tool_id = block.get("id")
                name = block.get("name")
                if not isinstance(tool_id, str) or not isinstance(name, str) or not tool_id or not name:
                    continue
                if tool_id in state.seen_tool_ids:
                    continue
                state.seen_tool_ids.add(tool_id)
                state.tool_names[tool_id] = name
                tool = ToolCallItem(id=tool_id, name=name, input=stringify_input(block.get("input")))
                items.append(ChatHistoryItem(id=next_id(), kind=MessageKind.TOOL_CALL, timestamp=timestamp, tool=tool))
            elif block_type == "thinking":
                thinking = block.get("thinking")
                if isinstance(thinking, str) and thinking:
                    items.append(ChatHistoryItem(id=next_id(), kind=MessageKind.THINKING, timestamp=timestamp, text=thinking))
        return items

    def completed_tool_ids(self, session_id: str) -> set[str]:
        with self._lock:
            state = self._states.get(session_id)
        return set(state.completed_tool_ids) if state else set()

    def tool_results(self, session_id: str) -> dict[str, ToolResult]:
        with self._lock:
            state = self._states.get(session_id)
        return dict(state.tool_results) if state else {}

    def reset_state(self, session_id: str) -> None:
        with self._lock:
            self._states.pop(session_id, None)

    # -- whole file --

    def parse(self, session_id: str, cwd: str) -> ConversationInfo:
        path = self.session_file_path(session_id, cwd)
        try:
            mtime = path.stat().st_mtime_ns
            with self._lock:
                cached = self._info_cache.get(path)
            if cached is not None and cached[0] == mtime:
                return cached[1]
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return ConversationInfo()

        info = self._summarize([line for line in content.split("\n") if line.strip()])
        with self._lock:
            self._info_cache[path] = (mtime, info)
        return info

    def _summarize(self, lines: list[str]) -> ConversationInfo:
        records = [r for r in (self._load(line) for line in lines) if r is not None]
        info = ConversationInfo()

        for record in records:
            text = self._plain_user_text(record)
            if text is not None:
                info.first_user_message = truncate_message(text, 50)
                break

        last_message: str | None = None
        found_last_user = False
        for record in reversed(records):
            kind = record.get("type")

            if last_message is None and kind in (MessageKind.USER, MessageKind.ASSISTANT) and not record.get("isMeta"):
                last_message = self._describe_last(record, info)

            if not found_last_user and self._plain_user_text(record) is not None:
                info.last_user_message_date = _parse_timestamp(record.get("timestamp"))
                found_last_user = True

            if info.summary is None and kind == "summary" and isinstance(record.get("summary"), str):
                info.summary = record["summary"]

            if info.summary and last_message is not None and found_last_user:
                break

        info.last_message = truncate_message(last_message)
        return info

    @staticmethod
    def _plain_user_text(record: dict[str, Any]) -> str | None:
        if record.get("type") != MessageKind.USER or record.get("isMeta"):
            return None
        message = record.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str) and content and not _is_command_echo(content):
            return content
        return None

    @staticmethod
    def _describe_last(record: dict[str, Any], info: ConversationInfo) -> str | None:
        message = record.get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        if isinstance(content, str):
            if _is_command_echo(content):
                return None
            info.last_message_role = record["type"]
            return content
        if not isinstance(content, list):
            return None
        for block in reversed(content):
            if not isinstance(block, dict):
                continue
            if block.get("type") == "tool_use":
                name = block.get("name") if isinstance(block.get("name"), str) else "Tool"
                tool_input = block.get("input") if isinstance(block.get("input"), dict) else None
                info.last_message_role = "tool"
                info.last_tool_name = name
                return format_tool_input(name, tool_input)
            if block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str) and text and not text.startswith(INTERRUPT_MESSAGE_PREFIX):
                    info.last_message_role = record["type"]
                    return text
        return None

    # -- sub-agents --

    def parse_subagent_tools(self, agent_id: str, cwd: str) -> list[SubagentToolInfo]:
        if not agent_id:
            return []
        try:
            content = self.agent_file_path(agent_id, cwd).read_text(encoding="utf-8", errors="replace")
        except OSError:
            return []

        lines = [line for line in content.split("\n") if line.strip()]
        completed: set[str] = set()
        for line in lines:
            if TOOL_RESULT_MARKER not in line:
                continue
            record = self._load(line)
            for block in self._content_blocks(record):
                if block.get("type") == "tool_result" and isinstance(block.get("tool_use_id"), str):
                    completed.add(block["tool_use_id"])

        tools: list[SubagentToolInfo] = []
        seen: set[str] = set()
        for line in lines:
            if TOOL_USE_MARKER not in line:
                continue
            record = self._load(line)
            for block in self._content_blocks(record):
                if block.get("type") != "tool_use":
                    continue
                tool_id = block.get("id")
                name = block.get("name")
                if not isinstance(tool_id, str) or not isinstance(name, str) or not tool_id or not name:
                    continue
                if tool_id in seen:
                    continue
                seen.add(tool_id)
                timestamp = record.get("timestamp") if record else None
                tools.append(
                    SubagentToolInfo(
                        id=tool_id,
                        name=name,
                        input=stringify_input(block.get("input")),
                        is_completed=tool_id in completed,
                        timestamp=timestamp if isinstance(timestamp, str) else None,
                    )
                )
        return tools

    @staticmethod
    def _content_blocks(record: dict[str, Any] | None) -> list[dict[str, Any]]:
        if record is None:
            return []
        message = record.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            return []
        return [block for block in content if isinstance(block, dict)]
