import json
from pathlib import Path

from agent_monitor.history import JsonlParser, MessageKind
from agent_monitor.history.jsonl_parser import project_dir_name, stringify_input, truncate_message
from agent_monitor.history.structured_results import BashResult, ReadResult
from tests.base import ArtifactTestCase

SID = "9d2f1c3e-aaaa-bbbb-cccc-000000000001"
CWD = "/work/my.app"


def user(uuid: str, content, **extra) -> dict:
    return {"type": "user", "uuid": uuid, "timestamp": "2026-01-05T10:00:00Z", "message": {"role": "user", "content": content}, **extra}


def assistant(uuid: str, blocks: list) -> dict:
    return {"type": "assistant", "uuid": uuid, "timestamp": "2026-01-05T10:00:01Z", "message": {"role": "assistant", "content": blocks}}


def tool_use(tool_id: str, name: str, tool_input: dict) -> dict:
    return {"type": "tool_use", "id": tool_id, "name": name, "input": tool_input}


def tool_result(uuid: str, tool_id: str, content, *, is_error: bool = False, meta: dict | None = None) -> dict:
    record = user(uuid, [{"type": "tool_result", "tool_use_id": tool_id, "content": content, "is_error": is_error}])
    if meta is not None:
        record["toolUseResult"] = meta
    return record


def lines(*records: dict) -> str:
    return "".join(json.dumps(record) + "\n" for record in records)


class JsonlParserTestCase(ArtifactTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.parser = JsonlParser(self._tmp_dir)
        self.path = self.parser.session_file_path(SID, CWD)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, text: str) -> None:
        self.path.write_text(text, encoding="utf-8")

    def append(self, text: str) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(text)


class PathTests(JsonlParserTestCase):
    def test_project_directory_naming(self) -> None:
        self.assertEqual("-work-my-app", project_dir_name(CWD))
        self.assertEqual(self._tmp_dir / "-work-my-app" / f"{SID}.jsonl", self.path)
        self.assertEqual(Path(self._tmp_dir / "-work-my-app" / "agent-a1.jsonl"), self.parser.agent_file_path("a1", CWD))

    def test_missing_file_is_empty(self) -> None:
        result = self.parser.parse_incremental("no-such-session", CWD)
        self.assertEqual([], result.all_messages)
        self.assertFalse(result.clear_detected)


class IncrementalParseTests(JsonlParserTestCase):
    def test_only_appended_messages_are_new(self) -> None:
        self.write(lines(user("u1", "hello")))
        first = self.parser.parse_incremental(SID, CWD)
        self.assertEqual(["u1"], [m.id for m in first.new_messages])

        self.append(lines(assistant("a1", [{"type": "text", "text": "hi there"}])))
        second = self.parser.parse_incremental(SID, CWD)
        self.assertEqual(["a1"], [m.id for m in second.new_messages])
        self.assertEqual(["u1", "a1"], [m.id for m in second.all_messages])
        self.assertEqual("hi there", second.all_messages[1].text)

        third = self.parser.parse_incremental(SID, CWD)
        self.assertEqual([], third.new_messages)
        self.assertEqual(2, len(third.all_messages))

    def test_truncated_file_starts_over(self) -> None:
        self.write(
            lines(
                user("u1", "please list the files in the project directory"),
                assistant("a1", [tool_use("toolu_1", "Bash", {"command": "ls"})]),
                tool_result("r1", "toolu_1", "README.md"),
            )
        )
        before = self.parser.parse_incremental(SID, CWD)
        self.assertEqual({"toolu_1"}, before.completed_tool_ids)

        self.write(lines(user("u9", "new")))
        after = self.parser.parse_incremental(SID, CWD)
        self.assertEqual(["u9"], [m.id for m in after.all_messages])
        self.assertEqual(set(), after.completed_tool_ids)
        self.assertEqual({}, after.tool_results)

    def test_partial_line_waits_for_completion(self) -> None:
        complete = json.dumps(assistant("a1", [{"type": "text", "text": "done"}]))
        self.write(lines(user("u1", "go")) + complete[:20])
        first = self.parser.parse_incremental(SID, CWD)
        self.assertEqual(["u1"], [m.id for m in first.all_messages])

        self.append(complete[20:] + "\n")
        second = self.parser.parse_incremental(SID, CWD)
        self.assertEqual(["a1"], [m.id for m in second.new_messages])

    def test_unterminated_but_complete_json_is_consumed(self) -> None:
        self.write(json.dumps(user("u1", "go")))
        self.assertEqual(["u1"], [m.id for m in self.parser.parse_incremental(SID, CWD).new_messages])
        self.append("\n" + lines(user("u2", "again")))
        self.assertEqual(["u2"], [m.id for m in self.parser.parse_incremental(SID, CWD).new_messages])

    def test_block_items_get_derived_ids(self) -> None:
        self.write(
            lines(
                assistant(
                    "a1",
                    [
                        {"type": "thinking", "thinking": "let me look"},
                        {"type": "text", "text": "Checking."},
                        tool_use("toolu_1", "Read", {"file_path": "/x.py", "limit": 20, "verbose": True, "opts": {"a": 1}}),
                    ],
                ),
                assistant("a2", [tool_use("toolu_1", "Read", {"file_path": "/x.py"})]),
            )
        )
        messages = self.parser.parse_incremental(SID, CWD).all_messages
        self.assertEqual(["a1", "a1-1", "a1-2"], [m.id for m in messages])
        self.assertEqual([MessageKind.THINKING, MessageKind.ASSISTANT, MessageKind.TOOL_CALL], [m.kind for m in messages])
        self.assertEqual({"file_path": "/x.py", "limit": "20", "verbose": "true"}, messages[2].tool.input)

    def test_meta_and_command_echoes_are_skipped(self) -> None:
        self.write(
            lines(
                user("u1", "hidden", isMeta=True),
                user("u2", "<command-name>/model</command-name>"),
                user("u3", "<local-command-stdout>ok</local-command-stdout>"),
                user("u4", "Caveat: the messages below were generated"),
                user("u5", "real question"),
                {"type": "summary", "summary": "ignored here"},
            )
        )
        self.assertEqual(["u5"], [m.id for m in self.parser.parse_incremental(SID, CWD).all_messages])

    def test_clear_after_the_first_read_is_reported(self) -> None:
        self.write(lines(user("u1", "first"), user("u0", "<command-name>/clear</command-name>"), user("u2", "second")))
        first = self.parser.parse_incremental(SID, CWD)
        self.assertFalse(first.clear_detected)
        self.assertEqual(["u2"], [m.id for m in first.all_messages])

        self.append(lines(user("c1", "<command-name>/clear</command-name>"), user("u3", "third")))
        second = self.parser.parse_incremental(SID, CWD)
        self.assertTrue(second.clear_detected)
        self.assertEqual(["u3"], [m.id for m in second.all_messages])
        self.assertFalse(self.parser.parse_incremental(SID, CWD).clear_detected)

    def test_tool_results_and_interrupts(self) -> None:
        self.write(
            lines(
                assistant("a1", [tool_use("toolu_1", "Bash", {"command": "make"})]),
                tool_result(
                    "r1",
                    "toolu_1",
                    [{"type": "text", "text": "built"}],
                    meta={"stdout": "built", "stderr": "", "returnCode": 0},
                ),
            )
        )
        result = self.parser.parse_incremental(SID, CWD)
        self.assertFalse(result.interrupt_detected)
        self.assertEqual("built", result.tool_results["toolu_1"].content)
        self.assertEqual("built", result.tool_results["toolu_1"].stdout)
        structured = result.structured_results["toolu_1"]
        self.assertIsInstance(structured, BashResult)
        self.assertEqual(0, structured.return_code)

        self.append(
            lines(
                assistant("a2", [tool_use("toolu_2", "Bash", {"command": "rm -rf /"})]),
                tool_result("r2", "toolu_2", "The user doesn't want to proceed with this tool use.", is_error=True),
            )
        )
        result = self.parser.parse_incremental(SID, CWD)
        self.assertTrue(result.interrupt_detected)
        self.assertTrue(result.tool_results["toolu_2"].is_interrupted)
        self.assertEqual({"toolu_1", "toolu_2"}, self.parser.completed_tool_ids(SID))

    def test_interrupt_message(self) -> None:
        self.write(lines(user("u1", "[Request interrupted by user for tool use]")))
        result = self.parser.parse_incremental(SID, CWD)
        self.assertTrue(result.interrupt_detected)
        self.assertEqual(MessageKind.INTERRUPTED, result.all_messages[0].kind)

    def test_plain_errors_are_not_interrupts(self) -> None:
        self.write(
            lines(
                assistant("a1", [tool_use("toolu_1", "Read", {"file_path": "/nope"})]),
                tool_result(
                    "r1",
                    "toolu_1",
                    "File does not exist.",
                    is_error=True,
                    meta={"type": "text", "file": {"filePath": "/nope", "content": "", "totalLines": 0}},
                ),
            )
        )
        result = self.parser.parse_incremental(SID, CWD)
        self.assertFalse(result.interrupt_detected)
        self.assertTrue(result.tool_results["toolu_1"].is_error)
        self.assertIsInstance(result.structured_results["toolu_1"], ReadResult)

    def test_reset_state_rereads_from_the_start(self) -> None:
        self.write(lines(user("u1", "hello")))
        self.parser.parse_incremental(SID, CWD)
        self.parser.reset_state(SID)
        self.assertEqual(set(), self.parser.completed_tool_ids(SID))
        self.assertEqual(["u1"], [m.id for m in self.parser.parse_incremental(SID, CWD).new_messages])

    def test_malformed_lines_are_skipped(self) -> None:
        self.write('{"type":"user", broken\n' + lines(user("u1", "ok")))
        self.assertEqual(["u1"], [m.id for m in self.parser.parse_incremental(SID, CWD).all_messages])


class HelperTests(JsonlParserTestCase):
    def test_truncate_message(self) -> None:
        self.assertIsNone(truncate_message(""))
        self.assertEqual("a b", truncate_message(" a\nb "))
        self.assertEqual("x" * 7 + "...", truncate_message("x" * 20, 10))

    def test_stringify_input(self) -> None:
        self.assertEqual({}, stringify_input(None))
        self.assertEqual({"n": "1.5", "f": "false"}, stringify_input({"n": 1.5, "f": False, "l": [1]}))
