from __future__ import annotations

from typing import Any

from agent_monitor.hooks.base import HookPlan, main_for
from agent_monitor.hooks.utils import dict_or_none, str_or_none
from agent_monitor.phases import is_question_tool, is_suppressed, phase_for_event
from agent_monitor.protocol import Agent, CanonicalEvent, Decision, HookEvent, HookResponse

DEFAULT_DENY_MESSAGE = "Denied by user via agent monitor"
# Notifications the phase table does not cover leave the phase as it is.
NOTIFICATION_STATUS = "notification"


class ClaudeHookAdapter:
    agent = Agent.CLAUDE
    permission_timeout = 300.0

    def plan(self, payload: dict[str, Any], *, pid: int | None, tty: str | None) -> HookPlan:
        session_id = str_or_none(payload.get("session_id"))
        event_name = str_or_none(payload.get("hook_event_name"))
        if session_id is None or event_name is None:
            return HookPlan(event=None)

        tool = str_or_none(payload.get("tool_name"))
        notification_type = str_or_none(payload.get("notification_type"))
        if is_suppressed(event_name, notification_type):
            return HookPlan(event=None)

        status = phase_for_event(event_name, notification_type, tool)
        event = HookEvent(
            session_id=session_id,
            cwd=str(payload.get("cwd") or ""),
            event=event_name,
            status=status or NOTIFICATION_STATUS,
            agent=self.agent,
            pid=pid,
            tty=tty,
            tool=tool,
            tool_input=dict_or_none(payload.get("tool_input")),
            tool_use_id=str_or_none(payload.get("tool_use_id")),
            notification_type=notification_type,
            message=str_or_none(payload.get("message")),
        )
        waits = event_name == CanonicalEvent.PERMISSION_REQUEST and not is_question_tool(tool)
        return HookPlan(event=event, wait_for_decision=waits)

    def render(self, response: HookResponse) -> dict[str, Any] | None:
        if response.decision == Decision.ALLOW:
            decision: dict[str, Any] = {"behavior": "allow"}
            if response.updated_input:
                decision["updatedInput"] = response.updated_input
        elif response.decision in (Decision.DENY, Decision.BLOCK):
            decision = {"behavior": "deny", "message": response.reason or DEFAULT_DENY_MESSAGE}
            if response.interrupt:
                decision["interrupt"] = True
        else:
            # Silence hands the prompt back to the agent's own UI.
            return None
        return {
            "hookSpecificOutput": {
                "hookEventName": CanonicalEvent.PERMISSION_REQUEST,
                "decision": decision,
            }
        }


def main() -> int:
    return main_for(ClaudeHookAdapter())
