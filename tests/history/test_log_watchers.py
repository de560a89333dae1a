import asyncio
import json

from agent_monitor.history import AgentWatcher, InterruptWatcher, JsonlParser
from tests.base import ArtifactTestCase, wait_for

SID = "watch000-1111-2222-3333-444444444444"
CWD = "/work/app"


def _line(record: dict) -> str:
    return json.dumps(record) + "\n"


def _interrupted(uuid: str) -> str:
    return _line({"type": "user", "uuid": uuid, "message": {"content": "[Request interrupted by user]"}})


def _tool_use(tool_id: str, name: str) -> str:
    return _line({"type": "assistant", "message": {"content": [{"type": "tool_use", "id": tool_id, "name": name, "input": {}}]}})


def _tool_result(tool_id: str) -> str:
    return _line({"type": "user", "message": {"content": [{"type": "tool_result", "tool_use_id": tool_id, "content": "ok"}]}})


class InterruptWatcherTests(ArtifactTestCase):
    def test_reports_new_interrupts_only(self) -> None:
        parser = JsonlParser(self._tmp_dir)
        path = parser.session_file_path(SID, CWD)
        path.parent.mkdir(parents=True)
        path.write_text(_interrupted("old"))
        interrupts: list[str] = []
        watcher = InterruptWatcher(parser, interrupts.append, poll_seconds=0.02, creation_poll_seconds=0.02)

        async def scenario() -> None:
            self.assertTrue(watcher.watch(SID, CWD))
            self.assertFalse(watcher.watch(SID, CWD))
            await asyncio.sleep(0.15)
            self.assertEqual([], interrupts)
            with open(path, "a") as f:
                f.write(_interrupted("new"))
            await wait_for(lambda: interrupts == [SID])
            await watcher.close_all()
            await watcher.close_all()

        asyncio.run(scenario())
        self.assertEqual(0, watcher.count)

    def test_waits_for_the_file_and_stops_when_it_is_deleted(self) -> None:
        parser = JsonlParser(self._tmp_dir)
        path = parser.session_file_path(SID, CWD)
        interrupts: list[str] = []
        watcher = InterruptWatcher(parser, interrupts.append, poll_seconds=0.02, creation_poll_seconds=0.02)

        async def scenario() -> None:
            watcher.watch(SID, CWD)
            await asyncio.sleep(0.05)
            path.parent.mkdir(parents=True)
            path.write_text(_line({"type": "user", "uuid": "u1", "message": {"content": "hi"}}))
            await asyncio.sleep(0.1)
            with open(path, "a") as f:
                f.write(_interrupted("i1"))
            await wait_for(lambda: interrupts == [SID])
            path.unlink()
            await wait_for(lambda: not watcher.is_watching(SID))

        asyncio.run(scenario())

    def test_unwatch_cancels(self) -> None:
        parser = JsonlParser(self._tmp_dir)
        watcher = InterruptWatcher(parser, lambda sid: None, poll_seconds=0.02, creation_poll_seconds=0.02)

        async def scenario() -> None:
            watcher.watch(SID, CWD)
            self.assertTrue(watcher.unwatch(SID))
            self.assertFalse(watcher.unwatch(SID))
            self.assertFalse(watcher.is_watching(SID))

        asyncio.run(scenario())

    def test_handler_errors_do_not_stop_the_watcher(self) -> None:
        parser = JsonlParser(self._tmp_dir)
        path = parser.session_file_path(SID, CWD)
        path.parent.mkdir(parents=True)
        path.write_text("")
        calls: list[str] = []

        def handler(session_id: str) -> None:
            calls.append(session_id)
            raise RuntimeError("handler bug")

        watcher = InterruptWatcher(parser, handler, poll_seconds=0.02, creation_poll_seconds=0.02)

        async def scenario() -> None:
            watcher.watch(SID, CWD)
            await asyncio.sleep(0.05)
            with open(path, "a") as f:
                f.write(_interrupted("i1"))
            await wait_for(lambda: len(calls) == 1)
            with open(path, "a") as f:
                f.write(_interrupted("i2"))
            await wait_for(lambda: len(calls) == 2)
            self.assertTrue(watcher.is_watching(SID))
            await watcher.close_all()

        asyncio.run(scenario())


class AgentWatcherTests(ArtifactTestCase):
    def test_reports_tool_list_changes(self) -> None:
        parser = JsonlParser(self._tmp_dir)
        path = parser.agent_file_path("agent7", CWD)
        path.parent.mkdir(parents=True)
        path.write_text(_tool_use("t1", "Read"))
        updates: list[tuple[str, str, list]] = []
        watcher = AgentWatcher(
            parser,
            lambda sid, task_id, tools: updates.append((sid, task_id, tools)),
            poll_seconds=0.02,
            creation_poll_seconds=0.02,
        )

        async def scenario() -> None:
            self.assertTrue(watcher.watch(SID, "toolu_task", "agent7", CWD))
            await wait_for(lambda: len(updates) == 1)
            await asyncio.sleep(0.1)
            self.assertEqual(1, len(updates))
            with open(path, "a") as f:
                f.write(_tool_result("t1"))
            await wait_for(lambda: len(updates) == 2)
            self.assertEqual(1, watcher.unwatch_session(SID))
            self.assertFalse(watcher.is_watching("toolu_task"))

        asyncio.run(scenario())
        sid, task_id, tools = updates[-1]
        self.assertEqual((SID, "toolu_task"), (sid, task_id))
        self.assertEqual([("t1", True)], [(t.id, t.is_completed) for t in tools])
