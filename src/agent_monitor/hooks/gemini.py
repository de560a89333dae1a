from __future__ import annotations

from typing import Any

from agent_monitor.hooks.base import HookPlan, main_for
from agent_monitor.hooks.utils import dict_or_none, str_or_none
from agent_monitor.phases import is_question_tool
from agent_monitor.protocol import Agent, CanonicalEvent, Decision, HookEvent, HookResponse, Phase, generate_tool_use_id

TOOL_PERMISSION = "ToolPermission"

# Gemini event name -> (canonical event, status)
_EVENTS: dict[str, tuple[str, str]] = {
    "SessionStart": (CanonicalEvent.SESSION_START, Phase.WAITING_FOR_INPUT),
    "SessionEnd": (CanonicalEvent.SESSION_END, Phase.ENDED),
    "BeforeAgent": (CanonicalEvent.USER_PROMPT_SUBMIT, Phase.PROCESSING),
    "AfterAgent": (CanonicalEvent.STOP, Phase.WAITING_FOR_INPUT),
    "BeforeModel": ("BeforeModel", Phase.PROCESSING),
    "BeforeToolSelection": ("BeforeToolSelection", Phase.PROCESSING),
    # A following BeforeTool overrides this when the model asked for a tool.
    "AfterModel": ("AfterModel", Phase.WAITING_FOR_INPUT),
    "BeforeTool": (CanonicalEvent.PRE_TOOL_USE, Phase.RUNNING_TOOL),
    "AfterTool": (CanonicalEvent.POST_TOOL_USE, Phase.PROCESSING),
    "PreCompress": (CanonicalEvent.PRE_COMPACT, Phase.COMPACTING),
}


class GeminiHookAdapter:
    agent = Agent.GEMINI
    permission_timeout = 30.0

    def plan(self, payload: dict[str, Any], *, pid: int | None, tty: str | None) -> HookPlan:
        session_id = str_or_none(payload.get("session_id"))
        event_name = str_or_none(payload.get("hook_event_name"))
        if session_id is None or event_name is None:
            return HookPlan(event=None)

        notification_type = str_or_none(payload.get("notification_type"))
        details = dict_or_none(payload.get("details")) or {}
        tool = str_or_none(payload.get("tool_name")) or str_or_none(details.get("tool_name"))
        tool_input = dict_or_none(payload.get("tool_input")) or dict_or_none(details.get("tool_input"))

        is_permission = event_name == "Notification" and notification_type == TOOL_PERMISSION
        if is_permission:
            canonical = CanonicalEvent.PERMISSION_REQUEST
            status = Phase.WAITING_FOR_INPUT if is_question_tool(tool) else Phase.WAITING_FOR_APPROVAL
        elif event_name == "Notification":
            canonical, status = CanonicalEvent.NOTIFICATION, Phase.WAITING_FOR_INPUT
        elif event_name in _EVENTS:
            canonical, status = _EVENTS[event_name]
        else:
            return HookPlan(event=None)

        message = str_or_none(payload.get("message"))
        prompt = str_or_none(payload.get("prompt"))
        if event_name == "BeforeAgent" and prompt:
            message = prompt[:100]

        tool_use_id = None
        if tool and (canonical == CanonicalEvent.PRE_TOOL_USE or is_permission):
            tool_use_id = generate_tool_use_id(self.agent, session_id, tool)

        event = HookEvent(
            session_id=session_id,
            cwd=str(payload.get("cwd") or ""),
            event=canonical,
            status=status,
            agent=self.agent,
            pid=pid,
            tty=tty,
            tool=tool,
            tool_input=tool_input,
            tool_use_id=tool_use_id,
            notification_type=notification_type,
            message=message,
        )
        return HookPlan(event=event, wait_for_decision=status == Phase.WAITING_FOR_APPROVAL)

    def render(self, response: HookResponse) -> dict[str, Any] | None:
        if response.decision == Decision.ALLOW:
            return {"decision": Decision.ALLOW, "systemMessage": "Approved by agent monitor"}
        if response.decision == Decision.DENY:
            return {"decision": Decision.DENY, "reason": response.reason or "Denied by user via agent monitor"}
        if response.decision == Decision.BLOCK:
            return {"decision": Decision.BLOCK, "reason": response.reason or "Blocked by user via agent monitor"}
        return {"decision": Decision.ASK}


def main() -> int:
    return main_for(GeminiHookAdapter())
