from agent_monitor.sessions.activity_log import ActivityEntry, ActivityKind, ActivityLog
from agent_monitor.sessions.auto_allow import AutoAllowStore
from agent_monitor.sessions.engine import SessionEngine, derive_phase
from agent_monitor.sessions.models import (
    PermissionRequest,
    QuestionContext,
    Session,
    SessionChange,
    TransitionKind,
    extract_question,
    format_tool_input,
)
from agent_monitor.sessions.notifications import LogNotificationDispatcher, NotificationBridge, NotificationDispatcher

__all__ = [
    "ActivityEntry",
    "ActivityKind",
    "ActivityLog",
    "AutoAllowStore",
    "LogNotificationDispatcher",
    "NotificationBridge",
    "NotificationDispatcher",
    "PermissionRequest",
    "QuestionContext",
    "Session",
    "SessionChange",
    "SessionEngine",
    "TransitionKind",
    "derive_phase",
    "extract_question",
    "format_tool_input",
]
