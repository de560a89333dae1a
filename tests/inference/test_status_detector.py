import unittest

from agent_monitor.inference import DetectorConfig, OutputStatus, StatusDetector, profile_for
from tests.base import FakeClock


class StatusDetectorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.detector = StatusDetector("claude", clock=self.clock)

    def test_profiles_resolve_by_agent_and_name(self) -> None:
        self.assertEqual("claude-code", profile_for("claude").name)
        self.assertEqual("gemini-cli", profile_for("gemini").name)
        self.assertEqual("gemini-cli", profile_for("gemini-cli").name)
        self.assertIsNone(profile_for("unknown-agent"))
        self.assertEqual("claude-code", StatusDetector("unknown-agent").profile.name)

    def test_error_wins_with_full_confidence(self) -> None:
        result = self.detector.detect("Error: module not importable")
        self.assertEqual(OutputStatus.ERROR, result.status)
        self.assertEqual(1.0, result.confidence)
        self.assertEqual("Error:", result.matched_pattern)

    def test_error_outranks_awaiting_in_the_same_window(self) -> None:
        result = self.detector.detect("fatal: bad ref\nContinue? [y/N]")
        self.assertEqual(OutputStatus.ERROR, result.candidate)

    def test_tool_use_confidence_is_priority_based(self) -> None:
        result = self.detector.detect("Reading from config.py")
        self.assertEqual(OutputStatus.TOOL_USE, result.status)
        self.assertAlmostEqual(0.8, result.confidence)

    def test_spinner_without_strong_match_means_thinking(self) -> None:
        result = self.detector.detect("\x1b[36m⠙\x1b[0m Working")
        self.assertEqual(OutputStatus.THINKING, result.candidate)
        self.assertAlmostEqual(0.8, result.confidence)
        self.assertEqual("spinner", result.matched_pattern)

    def test_no_match_keeps_current_status_with_low_confidence(self) -> None:
        result = self.detector.detect("hello world")
        self.assertEqual(OutputStatus.IDLE, result.candidate)
        self.assertAlmostEqual(0.3, result.confidence)
        self.assertIsNone(result.matched_pattern)

    def test_changes_inside_debounce_window_are_held_back(self) -> None:
        self.assertEqual(OutputStatus.TOOL_USE, self.detector.detect("Reading from config.py").status)

        self.clock.now += 0.05
        held = self.detector.detect("Error: boom")
        self.assertEqual(OutputStatus.ERROR, held.candidate)
        self.assertEqual(OutputStatus.TOOL_USE, held.status)

        self.clock.now += 0.2
        self.assertEqual(OutputStatus.ERROR, self.detector.detect("next chunk").status)
        self.assertEqual(OutputStatus.ERROR, self.detector.current_status)

    def test_low_confidence_candidates_do_not_commit(self) -> None:
        detector = StatusDetector("claude", DetectorConfig(min_confidence=0.95), clock=self.clock)
        result = detector.detect("Reading from config.py")
        self.assertEqual(OutputStatus.TOOL_USE, result.candidate)
        self.assertEqual(OutputStatus.IDLE, result.status)

    def test_buffer_is_trimmed_once_it_grows_past_the_high_water_mark(self) -> None:
        for i in range(101):
            self.detector.detect(f"line {i}")
        recent = self.detector.recent_output(1000)
        self.assertEqual(50, len(recent))
        self.assertEqual("line 100", recent[-1])

    def test_reset(self) -> None:
        self.detector.detect("Error: boom")
        self.detector.reset()
        self.assertEqual(OutputStatus.IDLE, self.detector.current_status)
        self.assertEqual([], self.detector.recent_output())


if __name__ == "__main__":
    unittest.main()
