"""Loguru sinks for the monitor and for the short-lived hook processes.

Sinks are described by plain dicts (``config.json`` ``LogConsumers``), e.g.::

    {"type": "file", "path": "hooks.log", "modules": ["agent_monitor.transport"], "serialize": true}

``modules`` limits a sink to records from those packages; ``serialize`` writes
one JSON object per line for tools that tail the log.
"""

import sys
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

DEFAULT_LOG_FILE = "agent-monitor.log"
HOOK_DEBUG_LOG_FILE = str(Path(tempfile.gettempdir()) / "agent-monitor-hook.log")

_CONSOLE_FORMAT = (
    "<level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
# Hook output shares the agent's terminal; keep it short and say who is talking.
_HOOK_CONSOLE_FORMAT = "<level>{level:<8}</level> | agent-monitor-hook - <level>{message}</level>"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


def _module_filter(modules: list[str] | None) -> Callable[[dict], bool] | None:
    if not modules:
        return None
    prefixes = tuple(modules)

    def accept(record: dict) -> bool:
        name = record["name"] or ""
        return any(name == prefix or name.startswith(prefix + ".") for prefix in prefixes)

    return accept


def _scope(modules: list[str] | None) -> str:
    return f", only {', '.join(modules)}" if modules else ""


class ConsoleLogConsumer:
    """Always stderr: stdout of a hook process belongs to the agent."""

    def __init__(self, compact: bool = False, modules: list[str] | None = None):
        self._compact = compact
        self._modules = modules

    def register(self, level: str) -> None:
        logger.add(
            sys.stderr,
            level=level,
            format=_HOOK_CONSOLE_FORMAT if self._compact else _CONSOLE_FORMAT,
            filter=_module_filter(self._modules),
        )

    def describe(self, level: str) -> str:
        return f"console (stderr, {level}{_scope(self._modules)})"


class FileLogConsumer:
    def __init__(
        self,
        path: str = DEFAULT_LOG_FILE,
        rotation: str = "10 MB",
        retention: int = 3,
        serialize: bool = False,
        modules: list[str] | None = None,
    ):
        self._path = str(Path(path).expanduser())
        self._rotation = rotation
        self._retention = retention
        self._serialize = serialize
        self._modules = modules

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self._path,
            level=level,
            format=_FILE_FORMAT,
            rotation=self._rotation,
            retention=self._retention,
            serialize=self._serialize,
            filter=_module_filter(self._modules),
        )

    def describe(self, level: str) -> str:
        kind = "json file" if self._serialize else "file"
        return f"{kind} ({self._path}, {level}{_scope(self._modules)})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
}

_DEFAULT_CONSUMERS = [
    {"type": "console"},
    {"type": "file", "path": DEFAULT_LOG_FILE},
]


def hook_consumers(debug: bool) -> list[dict[str, Any]]:
    """Sinks for the adapter processes. Quiet unless AGENT_MONITOR_HOOK_DEBUG is set."""
    if not debug:
        return [{"type": "console", "compact": True, "level": "WARNING"}]
    return [
        {"type": "console", "compact": True, "level": "DEBUG"},
        {"type": "file", "path": HOOK_DEBUG_LOG_FILE, "level": "DEBUG"},
    ]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace all sinks with ``consumers``. Returns a description of each one registered.

    A consumer with an unknown type or unknown keys is skipped with a warning so a
    typo in config.json never stops the monitor.
    """
    logger.remove()

    descriptions: list[str] = []
    for config in _DEFAULT_CONSUMERS if consumers is None else consumers:
        sink_type = config.get("type", "")
        cls = _CONSUMER_TYPES.get(sink_type)
        if cls is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue

        sink_level = str(config.get("level", level)).upper()
        try:
            consumer = cls(**{k: v for k, v in config.items() if k not in ("type", "level")})
        except TypeError as ex:
            logger.warning(f"Bad {sink_type} log consumer {config!r}: {ex}")
            continue
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))

    return descriptions
