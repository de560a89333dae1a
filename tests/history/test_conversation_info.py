import json
import os

from agent_monitor.history import JsonlParser
from tests.base import ArtifactTestCase

CWD = "/work/app"


def _write(path, *records: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(json.dumps(r) + "\n" for r in records), encoding="utf-8")


class ConversationInfoTests(ArtifactTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.parser = JsonlParser(self._tmp_dir)

    def test_summary_and_last_message(self) -> None:
        path = self.parser.session_file_path("s1", CWD)
        _write(
            path,
            {"type": "summary", "summary": "Fix the login bug"},
            {"type": "user", "uuid": "u0", "message": {"content": "<command-name>/init</command-name>"}},
            {
                "type": "user",
                "uuid": "u1",
                "timestamp": "2026-01-05T10:00:00Z",
                "message": {"content": "Please look into why the login form rejects valid passwords"},
            },
            {
                "type": "assistant",
                "uuid": "a1",
                "message": {"content": [{"type": "text", "text": "Running the tests."}, {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "pytest tests/auth"}}]},
            },
        )
        info = self.parser.parse("s1", CWD)
        self.assertEqual("Fix the login bug", info.summary)
        self.assertEqual("pytest tests/auth", info.last_message)
        self.assertEqual("tool", info.last_message_role)
        self.assertEqual("Bash", info.last_tool_name)
        self.assertEqual("Please look into why the login form rejects val...", info.first_user_message)
        self.assertAlmostEqual(1767607200.0, info.last_user_message_date)

    def test_text_reply_is_the_last_message(self) -> None:
        path = self.parser.session_file_path("s2", CWD)
        _write(
            path,
            {"type": "user", "uuid": "u1", "message": {"content": "hi"}},
            {"type": "assistant", "uuid": "a1", "message": {"content": [{"type": "text", "text": "Hello!\nHow can I help?"}]}},
        )
        info = self.parser.parse("s2", CWD)
        self.assertEqual("Hello! How can I help?", info.last_message)
        self.assertEqual("assistant", info.last_message_role)
        self.assertIsNone(info.summary)
        self.assertIsNone(info.last_user_message_date)

    def test_cached_until_the_file_changes(self) -> None:
        path = self.parser.session_file_path("s3", CWD)
        _write(path, {"type": "user", "uuid": "u1", "message": {"content": "one"}})
        first = self.parser.parse("s3", CWD)
        self.assertIs(first, self.parser.parse("s3", CWD))

        _write(path, {"type": "user", "uuid": "u1", "message": {"content": "two"}}, {"type": "user", "uuid": "u2", "message": {"content": "three"}})
        stat = path.stat()
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
        self.assertEqual("three", self.parser.parse("s3", CWD).last_message)

    def test_missing_file(self) -> None:
        info = self.parser.parse("missing", CWD)
        self.assertIsNone(info.summary)
        self.assertIsNone(info.last_message)


class SubagentToolsTests(ArtifactTestCase):
    def test_tools_with_completion(self) -> None:
        parser = JsonlParser(self._tmp_dir)
        _write(
            parser.agent_file_path("agent42", CWD),
            {
                "type": "assistant",
                "timestamp": "2026-01-05T10:00:00Z",
                "message": {"content": [{"type": "tool_use", "id": "t1", "name": "Read", "input": {"file_path": "/a.py"}}]},
            },
            {"type": "user", "message": {"content": [{"type": "tool_result", "tool_use_id": "t1", "content": "ok"}]}},
            {"type": "assistant", "message": {"content": [{"type": "tool_use", "id": "t2", "name": "Grep", "input": {"pattern": "foo"}}]}},
            {"type": "assistant", "message": {"content": [{"type": "tool_use", "id": "t2", "name": "Grep", "input": {"pattern": "foo"}}]}},
        )
        tools = parser.parse_subagent_tools("agent42", CWD)
        self.assertEqual([("t1", "Read", True), ("t2", "Grep", False)], [(t.id, t.name, t.is_completed) for t in tools])
        self.assertEqual({"file_path": "/a.py"}, tools[0].input)
        self.assertEqual("2026-01-05T10:00:00Z", tools[0].timestamp)
        self.assertEqual([], parser.parse_subagent_tools("missing", CWD))
        self.assertEqual([], parser.parse_subagent_tools("", CWD))
