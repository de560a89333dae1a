from __future__ import annotations

from typing import Any

from agent_monitor.hooks.base import HookPlan, main_for
from agent_monitor.hooks.utils import dict_or_none, str_or_none
from agent_monitor.phases import is_question_tool
from agent_monitor.protocol import Agent, CanonicalEvent, Decision, HookEvent, HookResponse, Phase, generate_tool_use_id

SHELL_EXECUTION = "beforeShellExecution"
MCP_EXECUTION = "beforeMCPExecution"

# Cursor event name -> (canonical event, status)
_EVENTS: dict[str, tuple[str, str]] = {
    "beforeSubmitPrompt": (CanonicalEvent.USER_PROMPT_SUBMIT, Phase.PROCESSING),
    "beforeReadFile": (CanonicalEvent.PRE_TOOL_USE, Phase.RUNNING_TOOL),
    "afterShellExecution": (CanonicalEvent.POST_TOOL_USE, Phase.PROCESSING),
    "afterMCPExecution": (CanonicalEvent.POST_TOOL_USE, Phase.PROCESSING),
    "afterFileEdit": (CanonicalEvent.POST_TOOL_USE, Phase.PROCESSING),
    "afterAgentThought": (CanonicalEvent.POST_TOOL_USE, Phase.PROCESSING),
    "afterAgentResponse": (CanonicalEvent.STOP, Phase.WAITING_FOR_INPUT),
    "stop": (CanonicalEvent.SESSION_END, Phase.ENDED),
}


def extract_cwd(payload: dict[str, Any]) -> str:
    cwd = str_or_none(payload.get("cwd"))
    if cwd:
        return cwd
    roots = payload.get("workspace_roots")
    if isinstance(roots, list) and roots and isinstance(roots[0], str):
        return roots[0]
    return ""


def extract_tool(event_name: str, payload: dict[str, Any]) -> tuple[str | None, dict[str, Any] | None]:
    if event_name in (SHELL_EXECUTION, "afterShellExecution"):
        command = str_or_none(payload.get("command"))
        return "Bash", {"command": command} if command else None
    if event_name in (MCP_EXECUTION, "afterMCPExecution"):
        return str_or_none(payload.get("tool_name")) or "MCP", dict_or_none(payload.get("parameters"))
    if event_name == "beforeReadFile":
        file_path = str_or_none(payload.get("file_path"))
        return "Read", {"file_path": file_path} if file_path else None
    if event_name == "afterFileEdit":
        file_path = str_or_none(payload.get("file_path"))
        return "Edit", {"file_path": file_path} if file_path else None
    return None, None


class CursorHookAdapter:
    agent = Agent.CURSOR
    permission_timeout = 30.0

    def plan(self, payload: dict[str, Any], *, pid: int | None, tty: str | None) -> HookPlan:
        session_id = str_or_none(payload.get("conversation_id"))
        event_name = str_or_none(payload.get("hook_event_name"))
        if session_id is None or event_name is None:
            return HookPlan(event=None)

        tool, tool_input = extract_tool(event_name, payload)

        if event_name == SHELL_EXECUTION or event_name == MCP_EXECUTION:
            canonical = CanonicalEvent.PERMISSION_REQUEST
            status = Phase.WAITING_FOR_INPUT if is_question_tool(tool) else Phase.WAITING_FOR_APPROVAL
        elif event_name in _EVENTS:
            canonical, status = _EVENTS[event_name]
        else:
            canonical, status = event_name, Phase.PROCESSING

        if event_name == "stop" and payload.get("status") == "error":
            status = Phase.ERROR

        message = None
        prompt = str_or_none(payload.get("prompt"))
        if event_name == "beforeSubmitPrompt" and prompt:
            message = prompt[:100]

        event = HookEvent(
            session_id=session_id,
            cwd=extract_cwd(payload),
            event=canonical,
            status=status,
            agent=self.agent,
            pid=pid,
            tty=tty,
            tool=tool,
            tool_input=tool_input,
            tool_use_id=generate_tool_use_id(self.agent, session_id, tool) if tool else None,
            message=message,
        )
        return HookPlan(event=event, wait_for_decision=status == Phase.WAITING_FOR_APPROVAL)

    def render(self, response: HookResponse) -> dict[str, Any] | None:
        if response.decision == Decision.ALLOW:
            return {"permission": Decision.ALLOW}
        if response.decision in (Decision.DENY, Decision.BLOCK):
            return {"permission": Decision.DENY, "user_message": response.reason or "Denied by agent monitor"}
        return {"permission": Decision.ASK}


def main() -> int:
    return main_for(CursorHookAdapter())
