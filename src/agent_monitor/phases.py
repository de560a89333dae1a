from __future__ import annotations

from agent_monitor.protocol import CanonicalEvent, Phase

QUESTION_TOOLS = frozenset({
    "AskUserQuestion",
    "AskFollowupQuestion",
    "ask_user_question",
    "ask_followup_question",
})

_QUESTION_TOOLS_LOWER = frozenset(name.lower() for name in QUESTION_TOOLS)

NOTIFICATION_PERMISSION_PROMPT = "permission_prompt"
NOTIFICATION_IDLE_PROMPT = "idle_prompt"

_EVENT_PHASES: dict[str, str] = {
    CanonicalEvent.USER_PROMPT_SUBMIT: Phase.PROCESSING,
    CanonicalEvent.PRE_TOOL_USE: Phase.RUNNING_TOOL,
    CanonicalEvent.POST_TOOL_USE: Phase.PROCESSING,
    CanonicalEvent.SESSION_START: Phase.WAITING_FOR_INPUT,
    CanonicalEvent.STOP: Phase.WAITING_FOR_INPUT,
    CanonicalEvent.SUBAGENT_STOP: Phase.WAITING_FOR_INPUT,
    CanonicalEvent.SESSION_END: Phase.ENDED,
    CanonicalEvent.PRE_COMPACT: Phase.COMPACTING,
}


def is_question_tool(tool_name: str | None) -> bool:
    if not tool_name:
        return False
    return tool_name in QUESTION_TOOLS or tool_name.lower() in _QUESTION_TOOLS_LOWER


def is_suppressed(event: str, notification_type: str | None) -> bool:
    """A permission-prompt notification duplicates the richer PermissionRequest."""
    return event == CanonicalEvent.NOTIFICATION and notification_type == NOTIFICATION_PERMISSION_PROMPT


def phase_for_event(event: str, notification_type: str | None = None, tool_name: str | None = None) -> str | None:
    """Phase a canonical event moves a session to, or None when the table has no entry."""
    if event == CanonicalEvent.PERMISSION_REQUEST:
        if is_question_tool(tool_name):
            return Phase.WAITING_FOR_INPUT
        return Phase.WAITING_FOR_APPROVAL
    if event == CanonicalEvent.NOTIFICATION:
        if notification_type == NOTIFICATION_IDLE_PROMPT:
            return Phase.WAITING_FOR_INPUT
        return None
    return _EVENT_PHASES.get(event)
