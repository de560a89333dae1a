from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from agent_monitor.app_config import AppConfig, RuntimeEnv
from agent_monitor.cost import CursorUsageClient
from agent_monitor.history import AgentWatcher, InterruptWatcher, JsonlParser, SubagentToolInfo
from agent_monitor.protocol import Agent, CanonicalEvent, HookEvent, Phase
from agent_monitor.sessions import (
    ActivityLog,
    LogNotificationDispatcher,
    NotificationBridge,
    Session,
    SessionChange,
    SessionEngine,
    TransitionKind,
)
from agent_monitor.transport import HookSocketServer, ToolUseIdCache

# Claude spawns sub-agents through this tool; each one writes its own log.
SUBAGENT_TOOL = "Task"


@dataclass
class MonitorRuntime:
    engine: SessionEngine
    server: HookSocketServer
    parser: JsonlParser
    interrupt_watcher: InterruptWatcher
    agent_watcher: AgentWatcher
    cursor_client: CursorUsageClient | None
    watch_interrupts: bool

    async def start(self) -> None:
        await self.engine.start()
        await self.server.start()

    async def close(self) -> None:
        await self.server.close()
        await self.interrupt_watcher.close_all()
        await self.agent_watcher.close_all()
        await self.engine.close()
        if self.cursor_client is not None:
            await self.cursor_client.aclose()

    def on_session_change(self, change: SessionChange) -> None:
        """Starts and stops log watchers as sessions come and go."""
        session = change.session
        if change.kind == TransitionKind.REMOVE or session.phase == Phase.ENDED:
            self.interrupt_watcher.unwatch(session.session_id)
            self.agent_watcher.unwatch_session(session.session_id)
            self.parser.reset_state(session.session_id)
            return
        if change.kind == TransitionKind.ADD:
            if self.watch_interrupts and session.agent == Agent.CLAUDE and session.cwd:
                self.interrupt_watcher.watch(session.session_id, session.cwd)
        if change.event is not None:
            self._watch_subagent(session, change.event)

    def _watch_subagent(self, session: Session, event: HookEvent) -> None:
        if event.event != CanonicalEvent.PRE_TOOL_USE or event.tool != SUBAGENT_TOOL or not event.tool_use_id:
            return
        agent_id = (event.tool_input or {}).get("agentId")
        if isinstance(agent_id, str) and agent_id and session.cwd:
            self.agent_watcher.watch(session.session_id, event.tool_use_id, agent_id, session.cwd)


def _log_subagent_tools(session_id: str, task_tool_id: str, tools: list[SubagentToolInfo]) -> None:
    done = sum(1 for tool in tools if tool.is_completed)
    logger.debug(f"Sub-agent {task_tool_id} in {session_id[:8]}: {done}/{len(tools)} tools complete")


async def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> MonitorRuntime:
    engine = SessionEngine(
        ended_retention_seconds=app.ended_retention_seconds,
        cleanup_interval_seconds=app.cleanup_interval_seconds,
        activity_log=ActivityLog(app.activity_log_limit),
    )
    server = HookSocketServer(
        engine,
        socket_path=env.socket_path_override or app.socket_path,
        debounce_seconds=app.event_debounce_seconds,
        cache=ToolUseIdCache(app.tool_use_id_cache_size),
    )
    parser = JsonlParser(app.claude_projects_dir)
    interrupt_watcher = InterruptWatcher(parser, engine.handle_interrupt, poll_seconds=app.watch_poll_seconds)
    agent_watcher = AgentWatcher(parser, _log_subagent_tools, poll_seconds=app.watch_poll_seconds)

    cursor_client: CursorUsageClient | None = None
    if env.cursor_api_key:
        cursor_client = CursorUsageClient(
            env.cursor_api_key,
            base_url=app.cursor_api_base_url,
            cache_ttl_seconds=app.cursor_cache_ttl_seconds,
        )

    runtime = MonitorRuntime(
        engine=engine,
        server=server,
        parser=parser,
        interrupt_watcher=interrupt_watcher,
        agent_watcher=agent_watcher,
        cursor_client=cursor_client,
        watch_interrupts=app.watch_interrupts,
    )
    engine.subscribe(NotificationBridge(LogNotificationDispatcher()))
    engine.subscribe(runtime.on_session_change)
    return runtime
