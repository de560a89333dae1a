from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from agent_monitor.inference.output_normalizer import last_lines, normalize
from agent_monitor.inference.profiles import (
    CLAUDE_CODE_PROFILE,
    THINKING_PRIORITY,
    AgentProfile,
    OutputStatus,
    profile_for,
)

_BUFFER_HIGH_WATER = 100
_BUFFER_KEEP = 50


@dataclass(frozen=True)
class DetectorConfig:
    recent_chunks: int = 10
    min_confidence: float = 0.5
    debounce_seconds: float = 0.1


@dataclass(frozen=True)
class DetectionResult:
    status: str
    candidate: str
    confidence: float
    matched_pattern: str | None
    raw_output: str
    clean_output: str


class StatusDetector:
    """Classifies a rolling window of terminal output into a coarse status.

    The reported ``status`` is the committed one; it only moves when the
    candidate differs, the debounce interval has passed and the candidate's
    confidence reaches ``min_confidence``. ``candidate`` and ``confidence``
    describe what this call alone detected.
    """

    def __init__(
        self,
        agent_type: str = "claude-code",
        config: DetectorConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._profile: AgentProfile = profile_for(agent_type) or CLAUDE_CODE_PROFILE
        self._config = config or DetectorConfig()
        self._clock = clock
        self._current_status = OutputStatus.IDLE
        self._buffer: list[str] = []
        self._last_change: float | None = None

    @property
    def profile(self) -> AgentProfile:
        return self._profile

    @property
    def current_status(self) -> str:
        return self._current_status

    def detect(self, output: str) -> DetectionResult:
        normalized = normalize(output)
        self._buffer.append(normalized.text)
        if len(self._buffer) > _BUFFER_HIGH_WATER:
            self._buffer = self._buffer[-_BUFFER_KEEP:]

        recent = "\n".join(self._buffer[-self._config.recent_chunks:])
        candidate, confidence, matched = self._match(recent, normalized.has_spinner)

        now = self._clock()
        debounced = self._last_change is not None and now - self._last_change <= self._config.debounce_seconds
        if candidate != self._current_status and not debounced and confidence >= self._config.min_confidence:
            self._current_status = candidate
            self._last_change = now

        return DetectionResult(
            status=self._current_status,
            candidate=candidate,
            confidence=confidence,
            matched_pattern=matched,
            raw_output=output,
            clean_output=normalized.text,
        )

    def _match(self, text: str, has_spinner: bool) -> tuple[str, float, str | None]:
        best_status: str | None = None
        best_priority = -1
        best_text: str | None = None

        for family in self._profile.patterns:
            if family.priority <= best_priority:
                continue
            for pattern in family.patterns:
                match = pattern.search(text)
                if match:
                    best_status, best_priority, best_text = family.status, family.priority, match.group(0)
                    break

        if has_spinner and best_priority < THINKING_PRIORITY:
            return OutputStatus.THINKING, 0.8, "spinner"
        if best_status is not None:
            return best_status, min(1.0, best_priority / 100), best_text
        return self._current_status, 0.3, None

    def reset(self) -> None:
        self._current_status = OutputStatus.IDLE
        self._buffer = []
        self._last_change = None

    def recent_output(self, count: int = 5) -> list[str]:
        return last_lines("\n".join(self._buffer), count)
