import json
import unittest

from loguru import logger

from agent_monitor.logging_config import (
    HOOK_DEBUG_LOG_FILE,
    ConsoleLogConsumer,
    FileLogConsumer,
    LogConsumer,
    hook_consumers,
    setup_logging,
)
from tests.base import ArtifactTestCase


class SetupLoggingTests(ArtifactTestCase):
    def tearDown(self) -> None:
        logger.remove()
        super().tearDown()

    def test_registers_known_consumers(self) -> None:
        log_path = self._tmp_dir / "logs" / "monitor.log"
        descriptions = setup_logging(
            level="debug",
            consumers=[
                {"type": "console", "level": "WARNING"},
                {"type": "file", "path": str(log_path)},
                {"type": "syslog"},
                {"type": "file", "path": str(log_path), "colour": True},
            ],
        )
        self.assertEqual(["console (stderr, WARNING)", f"file ({log_path}, DEBUG)"], descriptions)

        logger.debug("session 0f8fad5b started")
        logger.remove()
        self.assertIn("session 0f8fad5b started", log_path.read_text())

    def test_module_scoped_json_file(self) -> None:
        log_path = self._tmp_dir / "hooks.jsonl"
        descriptions = setup_logging(
            consumers=[{"type": "file", "path": str(log_path), "serialize": True, "modules": ["agent_monitor.transport"]}],
        )
        self.assertEqual([f"json file ({log_path}, INFO, only agent_monitor.transport)"], descriptions)

        logger.patch(lambda record: record.update(name="agent_monitor.transport.server")).info("frame from 5a1c9e0d")
        logger.patch(lambda record: record.update(name="agent_monitor.transportation")).info("not hook traffic")
        logger.patch(lambda record: record.update(name="agent_monitor.history.watchers")).info("watching 5a1c9e0d")
        logger.remove()

        lines = log_path.read_text().splitlines()
        self.assertEqual(1, len(lines))
        self.assertEqual("frame from 5a1c9e0d", json.loads(lines[0])["record"]["message"])

    def test_consumers_satisfy_protocol(self) -> None:
        self.assertIsInstance(ConsoleLogConsumer(), LogConsumer)
        self.assertIsInstance(FileLogConsumer(), LogConsumer)
        self.assertEqual(
            "console (stderr, INFO, only agent_monitor.hooks)",
            ConsoleLogConsumer(modules=["agent_monitor.hooks"]).describe("INFO"),
        )


class HookConsumerTests(unittest.TestCase):
    def test_quiet_by_default(self) -> None:
        self.assertEqual([{"type": "console", "compact": True, "level": "WARNING"}], hook_consumers(False))

    def test_debug_adds_file_sink(self) -> None:
        consumers = hook_consumers(True)
        self.assertEqual(2, len(consumers))
        self.assertEqual(HOOK_DEBUG_LOG_FILE, consumers[1]["path"])
        self.assertTrue(all(c["level"] == "DEBUG" for c in consumers))


if __name__ == "__main__":
    unittest.main()
