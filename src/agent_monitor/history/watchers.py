from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

from loguru import logger

from agent_monitor.history.jsonl_parser import JsonlParser
from agent_monitor.history.models import SubagentToolInfo

InterruptHandler = Callable[[str], None]
AgentToolsHandler = Callable[[str, str, list[SubagentToolInfo]], None]


class _PollingWatchers:
    """One polling task per key; cancelling a task is the only way to stop it."""

    def __init__(self, *, poll_seconds: float, creation_poll_seconds: float):
        self._poll_seconds = max(0.01, poll_seconds)
        self._creation_poll_seconds = max(0.01, creation_poll_seconds)
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def count(self) -> int:
        return len(self._tasks)

    def is_watching(self, key: str) -> bool:
        return key in self._tasks

    def _spawn(self, key: str, coro: Coroutine[Any, Any, None]) -> bool:
        if key in self._tasks:
            coro.close()
            return False
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return True

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    def _cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def close_all(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _wait_for_file(self, path: Path) -> None:
        while not path.exists():
            await asyncio.sleep(self._creation_poll_seconds)


class InterruptWatcher(_PollingWatchers):
    """Tails each Claude session log and reports user interrupts found in it."""

    def __init__(
        self,
        parser: JsonlParser,
        on_interrupt: InterruptHandler,
        *,
        poll_seconds: float = 0.5,
        creation_poll_seconds: float = 1.0,
    ):
        super().__init__(poll_seconds=poll_seconds, creation_poll_seconds=creation_poll_seconds)
        self._parser = parser
        self._on_interrupt = on_interrupt

    def watch(self, session_id: str, cwd: str) -> bool:
        started = self._spawn(session_id, self._run(session_id, cwd))
        if started:
            logger.debug(f"Watching {session_id[:8]} for interrupts")
        return started

    def unwatch(self, session_id: str) -> bool:
        return self._cancel(session_id)

    async def _run(self, session_id: str, cwd: str) -> None:
        path = self._parser.session_file_path(session_id, cwd)
        await self._wait_for_file(path)

        # Interrupts already in the file are history, not news.
        self._parser.parse_incremental(session_id, cwd)
        last_size = -1

        while True:
            await asyncio.sleep(self._poll_seconds)
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                logger.info(f"Log for {session_id[:8]} was deleted, no longer watching it")
                return
            except OSError as ex:
                logger.debug(f"Cannot stat {path}: {ex}")
                continue
            if size == last_size:
                continue
            last_size = size

            try:
                result = self._parser.parse_incremental(session_id, cwd)
            except Exception:
                logger.exception(f"Parsing the log of {session_id[:8]} failed")
                continue
            if result.clear_detected:
                logger.debug(f"Conversation cleared in {session_id[:8]}")
            if result.interrupt_detected:
                logger.info(f"Interrupt detected in {session_id[:8]}")
                try:
                    self._on_interrupt(session_id)
                except Exception:
                    logger.exception(f"Interrupt handler failed for {session_id[:8]}")


class AgentWatcher(_PollingWatchers):
    """Follows a sub-agent's own log and reports its tool list as it grows."""

    def __init__(
        self,
        parser: JsonlParser,
        on_update: AgentToolsHandler,
        *,
        poll_seconds: float = 0.5,
        creation_poll_seconds: float = 1.0,
    ):
        super().__init__(poll_seconds=poll_seconds, creation_poll_seconds=creation_poll_seconds)
        self._parser = parser
        self._on_update = on_update
        self._sessions: dict[str, str] = {}

    def watch(self, session_id: str, task_tool_id: str, agent_id: str, cwd: str) -> bool:
        started = self._spawn(task_tool_id, self._run(session_id, task_tool_id, agent_id, cwd))
        if started:
            self._sessions[task_tool_id] = session_id
        return started

    def unwatch(self, task_tool_id: str) -> bool:
        self._sessions.pop(task_tool_id, None)
        return self._cancel(task_tool_id)

    def unwatch_session(self, session_id: str) -> int:
        keys = [key for key, owner in self._sessions.items() if owner == session_id]
        return sum(1 for key in keys if self.unwatch(key))

    async def close_all(self) -> None:
        self._sessions.clear()
        await super().close_all()

    async def _run(self, session_id: str, task_tool_id: str, agent_id: str, cwd: str) -> None:
        path = self._parser.agent_file_path(agent_id, cwd)
        await self._wait_for_file(path)
        last_tools: list[SubagentToolInfo] | None = None

        while True:
            if not path.exists():
                logger.debug(f"Sub-agent log {path.name} is gone")
                return
            tools = self._parser.parse_subagent_tools(agent_id, cwd)
            if tools != last_tools:
                last_tools = tools
                try:
                    self._on_update(session_id, task_tool_id, tools)
                except Exception:
                    logger.exception(f"Sub-agent update handler failed for {task_tool_id}")
            await asyncio.sleep(self._poll_seconds)
