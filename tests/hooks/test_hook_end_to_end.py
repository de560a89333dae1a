import asyncio
import io
import json
import os
import unittest
from unittest.mock import patch

from agent_monitor.hooks import ClaudeHookAdapter, CursorHookAdapter, GeminiHookAdapter, main_for
from agent_monitor.protocol import SOCKET_ENV_VAR, Decision, Phase
from agent_monitor.sessions import SessionEngine
from agent_monitor.transport import HookSocketServer
from tests.base import SocketTestCase, wait_for

SID = "e2e00000-1111-2222-3333-444455556666"


class HookEndToEndTests(SocketTestCase):
    def setUp(self) -> None:
        super().setUp()
        env = patch.dict(os.environ, {SOCKET_ENV_VAR: str(self._socket_path)})
        env.start()
        self.addCleanup(env.stop)
        tty = patch("agent_monitor.hooks.base.get_tty", return_value=None)
        tty.start()
        self.addCleanup(tty.stop)

    def _run_adapter(self, adapter, payload: dict) -> tuple[int, str]:
        stdout = io.StringIO()
        code = main_for(adapter, stdin=io.StringIO(json.dumps(payload)), stdout=stdout)
        return code, stdout.getvalue()

    def test_deny_reaches_the_adapter(self) -> None:
        engine = SessionEngine()
        payload = {
            "session_id": SID,
            "cwd": "/work/app",
            "hook_event_name": "PermissionRequest",
            "tool_name": "Bash",
            "tool_input": {"command": "rm -rf /tmp/build"},
        }
        outcome: dict = {}

        async def scenario() -> None:
            server = HookSocketServer(engine, socket_path=self._socket_path)
            await server.start()
            try:
                loop = asyncio.get_running_loop()
                adapter_run = loop.run_in_executor(None, self._run_adapter, ClaudeHookAdapter(), payload)
                await wait_for(lambda: engine.get(SID) is not None and engine.get(SID).pending_permission is not None)
                session = engine.get(SID)
                outcome["phase"] = session.phase
                outcome["tool"] = session.pending_permission.tool_name
                engine.respond(SID, Decision.DENY, reason="no")
                outcome["result"] = await asyncio.wait_for(adapter_run, 10)
            finally:
                await server.close()

        asyncio.run(scenario())

        self.assertEqual(Phase.WAITING_FOR_APPROVAL, outcome["phase"])
        self.assertEqual("Bash", outcome["tool"])
        code, out = outcome["result"]
        self.assertEqual(0, code)
        self.assertEqual(
            {
                "hookSpecificOutput": {
                    "hookEventName": "PermissionRequest",
                    "decision": {"behavior": "deny", "message": "no"},
                }
            },
            json.loads(out),
        )

    def test_without_a_monitor_adapters_fall_back(self) -> None:
        claude = {"session_id": SID, "hook_event_name": "PermissionRequest", "tool_name": "Bash"}
        self.assertEqual((0, ""), self._run_adapter(ClaudeHookAdapter(), claude))

        gemini = {"session_id": SID, "hook_event_name": "Notification", "notification_type": "ToolPermission", "tool_name": "write_file"}
        code, out = self._run_adapter(GeminiHookAdapter(), gemini)
        self.assertEqual(0, code)
        self.assertEqual({"decision": "ask"}, json.loads(out))

        cursor = {"conversation_id": SID, "hook_event_name": "beforeShellExecution", "command": "make"}
        code, out = self._run_adapter(CursorHookAdapter(), cursor)
        self.assertEqual({"permission": "ask"}, json.loads(out))

    def test_fire_and_forget_events_print_nothing(self) -> None:
        payload = {"session_id": SID, "hook_event_name": "Stop", "cwd": "/work/app"}
        self.assertEqual((0, ""), self._run_adapter(ClaudeHookAdapter(), payload))

    def test_bad_payloads_exit_non_zero(self) -> None:
        stdout = io.StringIO()
        self.assertEqual(1, main_for(ClaudeHookAdapter(), stdin=io.StringIO("{oops"), stdout=stdout))
        self.assertEqual(1, main_for(ClaudeHookAdapter(), stdin=io.StringIO("[1]"), stdout=stdout))
        self.assertEqual("", stdout.getvalue())


if __name__ == "__main__":
    unittest.main()
