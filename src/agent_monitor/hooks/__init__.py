from agent_monitor.hooks.base import HookAdapter, HookPlan, main_for, run_hook
from agent_monitor.hooks.claude import ClaudeHookAdapter
from agent_monitor.hooks.cursor import CursorHookAdapter
from agent_monitor.hooks.gemini import GeminiHookAdapter

ADAPTERS = {
    ClaudeHookAdapter.agent: ClaudeHookAdapter,
    GeminiHookAdapter.agent: GeminiHookAdapter,
    CursorHookAdapter.agent: CursorHookAdapter,
}

__all__ = [
    "ADAPTERS",
    "ClaudeHookAdapter",
    "CursorHookAdapter",
    "GeminiHookAdapter",
    "HookAdapter",
    "HookPlan",
    "main_for",
    "run_hook",
]
