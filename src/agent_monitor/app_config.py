from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from agent_monitor.protocol import SOCKET_ENV_VAR, default_socket_path

HOOK_DEBUG_ENV_VAR = "AGENT_MONITOR_HOOK_DEBUG"
CURSOR_API_KEY_ENV_VAR = "CURSOR_API_KEY"

DEFAULT_CLAUDE_PROJECTS_DIR = "~/.claude/projects"
DEFAULT_CURSOR_API_BASE_URL = "https://api.cursor.com"


@dataclass
class RuntimeEnv:
    socket_path_override: str | None
    cursor_api_key: str | None
    hook_debug: bool


@dataclass
class AppConfig:
    socket_path: str
    cleanup_interval_seconds: float
    ended_retention_seconds: float
    event_debounce_ms: int
    tool_use_id_cache_size: int
    activity_log_limit: int
    watch_interrupts: bool
    watch_poll_seconds: float
    claude_projects_dir: str
    cursor_api_base_url: str
    cursor_cache_ttl_seconds: float
    log_level: str
    log_consumers: list | None

    @property
    def event_debounce_seconds(self) -> float:
        return max(0, self.event_debounce_ms) / 1000.0


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    socket_path = str(config.get("SocketPath", "")).strip() or str(default_socket_path())
    return AppConfig(
        socket_path=str(Path(socket_path).expanduser()),
        cleanup_interval_seconds=float(config.get("CleanupIntervalSeconds", 60)),
        ended_retention_seconds=float(config.get("EndedRetentionSeconds", 3600)),
        event_debounce_ms=int(config.get("EventDebounceMs", 50)),
        tool_use_id_cache_size=int(config.get("ToolUseIdCacheSize", 1000)),
        activity_log_limit=int(config.get("ActivityLogLimit", 50)),
        watch_interrupts=_to_bool(config.get("WatchInterrupts", True), default=True),
        watch_poll_seconds=float(config.get("WatchPollSeconds", 0.5)),
        claude_projects_dir=str(Path(config.get("ClaudeProjectsDir", DEFAULT_CLAUDE_PROJECTS_DIR)).expanduser()),
        cursor_api_base_url=str(config.get("CursorApiBaseUrl", DEFAULT_CURSOR_API_BASE_URL)).rstrip("/"),
        cursor_cache_ttl_seconds=float(config.get("CursorCacheTtlSeconds", 3600)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        socket_path_override=os.environ.get(SOCKET_ENV_VAR, "").strip() or None,
        cursor_api_key=os.environ.get(CURSOR_API_KEY_ENV_VAR, "").strip() or None,
        hook_debug=_to_bool(os.environ.get(HOOK_DEBUG_ENV_VAR), default=False),
    )
