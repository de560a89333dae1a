from agent_monitor.history.jsonl_parser import IncrementalParseResult, IncrementalParseState, JsonlParser
from agent_monitor.history.models import (
    ChatHistoryItem,
    ConversationInfo,
    MessageKind,
    SubagentToolInfo,
    ToolCallItem,
    ToolResult,
)
from agent_monitor.history.structured_results import parse_structured_result
from agent_monitor.history.watchers import AgentWatcher, InterruptWatcher

__all__ = [
    "AgentWatcher",
    "ChatHistoryItem",
    "ConversationInfo",
    "IncrementalParseResult",
    "IncrementalParseState",
    "InterruptWatcher",
    "JsonlParser",
    "MessageKind",
    "SubagentToolInfo",
    "ToolCallItem",
    "ToolResult",
    "parse_structured_result",
]
