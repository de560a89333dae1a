from agent_monitor.transport.client import request_decision, send_event
from agent_monitor.transport.server import HookSocketServer
from agent_monitor.transport.tool_use_cache import ToolUseIdCache

__all__ = [
    "HookSocketServer",
    "ToolUseIdCache",
    "request_decision",
    "send_event",
]
