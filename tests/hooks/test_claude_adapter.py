import unittest

from agent_monitor.hooks import ADAPTERS, ClaudeHookAdapter, HookAdapter
from agent_monitor.protocol import CanonicalEvent, Decision, HookResponse, Phase


def _payload(event: str, **extra) -> dict:
    return {"session_id": "sess-1234-5678", "cwd": "/work/app", "hook_event_name": event, **extra}


class ClaudePlanTests(unittest.TestCase):
    def setUp(self) -> None:
        self.adapter = ClaudeHookAdapter()

    def test_is_registered_adapter(self) -> None:
        self.assertIsInstance(self.adapter, HookAdapter)
        self.assertIs(ClaudeHookAdapter, ADAPTERS["claude"])
        self.assertEqual(300.0, self.adapter.permission_timeout)

    def test_pre_tool_use(self) -> None:
        plan = self.adapter.plan(
            _payload("PreToolUse", tool_name="Bash", tool_input={"command": "ls"}, tool_use_id="toolu_01"),
            pid=321,
            tty="/dev/ttys001",
        )
        event = plan.event
        self.assertFalse(plan.wait_for_decision)
        self.assertEqual(CanonicalEvent.PRE_TOOL_USE, event.event)
        self.assertEqual(Phase.RUNNING_TOOL, event.status)
        self.assertEqual(("Bash", {"command": "ls"}, "toolu_01"), (event.tool, event.tool_input, event.tool_use_id))
        self.assertEqual((321, "/dev/ttys001"), (event.pid, event.tty))

    def test_permission_request_waits(self) -> None:
        plan = self.adapter.plan(_payload("PermissionRequest", tool_name="Write"), pid=None, tty=None)
        self.assertTrue(plan.wait_for_decision)
        self.assertEqual(Phase.WAITING_FOR_APPROVAL, plan.event.status)

    def test_question_tool_does_not_wait(self) -> None:
        plan = self.adapter.plan(_payload("PermissionRequest", tool_name="AskUserQuestion"), pid=None, tty=None)
        self.assertFalse(plan.wait_for_decision)
        self.assertEqual(Phase.WAITING_FOR_INPUT, plan.event.status)

    def test_notifications(self) -> None:
        idle = self.adapter.plan(_payload("Notification", notification_type="idle_prompt", message="Waiting"), pid=None, tty=None)
        self.assertEqual(Phase.WAITING_FOR_INPUT, idle.event.status)
        self.assertEqual("Waiting", idle.event.message)

        other = self.adapter.plan(_payload("Notification", notification_type="auth_success"), pid=None, tty=None)
        self.assertEqual("notification", other.event.status)

        duplicate = self.adapter.plan(_payload("Notification", notification_type="permission_prompt"), pid=None, tty=None)
        self.assertIsNone(duplicate.event)

    def test_incomplete_payload_is_dropped(self) -> None:
        self.assertIsNone(self.adapter.plan({"hook_event_name": "Stop"}, pid=None, tty=None).event)
        self.assertIsNone(self.adapter.plan({"session_id": "s1"}, pid=None, tty=None).event)


class ClaudeRenderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.adapter = ClaudeHookAdapter()

    def test_allow_with_updated_input(self) -> None:
        output = self.adapter.render(HookResponse(decision=Decision.ALLOW, updated_input={"command": "ls -la"}))
        self.assertEqual(
            {
                "hookSpecificOutput": {
                    "hookEventName": "PermissionRequest",
                    "decision": {"behavior": "allow", "updatedInput": {"command": "ls -la"}},
                }
            },
            output,
        )

    def test_deny(self) -> None:
        output = self.adapter.render(HookResponse(decision=Decision.DENY, reason="no", interrupt=True))
        self.assertEqual({"behavior": "deny", "message": "no", "interrupt": True}, output["hookSpecificOutput"]["decision"])
        default = self.adapter.render(HookResponse(decision=Decision.DENY))
        self.assertEqual("Denied by user via agent monitor", default["hookSpecificOutput"]["decision"]["message"])

    def test_ask_is_silent(self) -> None:
        self.assertIsNone(self.adapter.render(HookResponse.ask()))


if __name__ == "__main__":
    unittest.main()
