from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from loguru import logger

from agent_monitor.cost.pricing import TokenUsage

DEFAULT_GEMINI_DATA_DIR = "~/.gemini/tmp"
GEMINI_UNKNOWN_MODEL = "gemini-unknown"


@dataclass(frozen=True)
class UsageSummary:
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cache_creation_tokens: int = 0
    total_cache_read_tokens: int = 0
    total_thought_tokens: int = 0
    total_tool_tokens: int = 0
    message_count: int = 0
    primary_model: str = "unknown"


def _tokens(usage: dict, key: str) -> int:
    value = usage.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def _timestamp(value: object) -> float | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def parse_claude_usage(path: str | Path) -> list[TokenUsage]:
    """Token usage of every assistant turn in a Claude session log."""
    usages: list[TokenUsage] = []
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            for line in f:
                try:
                    record = json.loads(line)
                except ValueError:
                    continue
                if not isinstance(record, dict) or record.get("type") != "assistant":
                    continue
                message = record.get("message")
                usage = message.get("usage") if isinstance(message, dict) else None
                if not isinstance(usage, dict):
                    continue
                model = message.get("model")
                usages.append(
                    TokenUsage(
                        input_tokens=_tokens(usage, "input_tokens"),
                        output_tokens=_tokens(usage, "output_tokens"),
                        cache_read_tokens=_tokens(usage, "cache_read_input_tokens"),
                        cache_creation_tokens=_tokens(usage, "cache_creation_input_tokens"),
                        model=model if isinstance(model, str) and model else "unknown",
                        timestamp=_timestamp(record.get("timestamp")),
                    )
                )
    except OSError as ex:
        logger.debug(f"No usage from {path}: {ex}")
    return usages


def discover_gemini_sessions(data_dir: str | Path = DEFAULT_GEMINI_DATA_DIR) -> list[Path]:
    """Session files the Gemini CLI keeps under ``<data_dir>/<project>/chats/``."""
    root = Path(data_dir).expanduser()
    try:
        projects = sorted(p for p in root.iterdir() if p.is_dir())
    except OSError:
        return []
    found: list[Path] = []
    for project in projects:
        chats = project / "chats"
        try:
            found.extend(sorted(p for p in chats.glob("session-*.json") if p.is_file()))
        except OSError as ex:
            logger.debug(f"Cannot list {chats}: {ex}")
    return found


def _gemini_usage(tokens: dict, model: object, timestamp: object) -> TokenUsage:
    return TokenUsage(
        input_tokens=_tokens(tokens, "input"),
        output_tokens=_tokens(tokens, "output"),
        cache_read_tokens=_tokens(tokens, "cached"),
        model=model if isinstance(model, str) and model else GEMINI_UNKNOWN_MODEL,
        timestamp=_timestamp(timestamp),
        thought_tokens=_tokens(tokens, "thoughts"),
        tool_tokens=_tokens(tokens, "tool"),
    )


def parse_gemini_usage(path: str | Path) -> list[TokenUsage]:
    """Token usage recorded in one Gemini CLI session file.

    Totals may sit on the file itself as well as on each entry; both are kept.
    """
    try:
        with open(path, encoding="utf-8") as f:
            session = json.load(f)
    except (OSError, ValueError) as ex:
        logger.debug(f"No usage from {path}: {ex}")
        return []
    if not isinstance(session, dict):
        return []

    usages: list[TokenUsage] = []
    if isinstance(session.get("tokens"), dict):
        usages.append(_gemini_usage(session["tokens"], session.get("model"), session.get("timestamp")))

    entries = session.get("entries") or session.get("messages") or []
    for entry in entries if isinstance(entries, list) else []:
        if isinstance(entry, dict) and isinstance(entry.get("tokens"), dict):
            usages.append(_gemini_usage(entry["tokens"], entry.get("model"), entry.get("timestamp")))
    return usages


def gemini_usage_in_range(
    start: float,
    end: float,
    *,
    data_dir: str | Path = DEFAULT_GEMINI_DATA_DIR,
) -> list[TokenUsage]:
    """Gemini usage with a timestamp between ``start`` and ``end`` (epoch seconds, inclusive)."""
    return [
        usage
        for path in discover_gemini_sessions(data_dir)
        for usage in parse_gemini_usage(path)
        if usage.timestamp is not None and start <= usage.timestamp <= end
    ]


def aggregate_usage(usages: list[TokenUsage]) -> UsageSummary:
    if not usages:
        return UsageSummary()
    models = Counter(usage.model for usage in usages)
    return UsageSummary(
        total_input_tokens=sum(u.input_tokens for u in usages),
        total_output_tokens=sum(u.output_tokens for u in usages),
        total_cache_creation_tokens=sum(u.cache_creation_tokens for u in usages),
        total_cache_read_tokens=sum(u.cache_read_tokens for u in usages),
        total_thought_tokens=sum(u.thought_tokens for u in usages),
        total_tool_tokens=sum(u.tool_tokens for u in usages),
        message_count=len(usages),
        primary_model=models.most_common(1)[0][0],
    )
