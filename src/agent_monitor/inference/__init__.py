from agent_monitor.inference.output_normalizer import NormalizedOutput, normalize
from agent_monitor.inference.profiles import CLAUDE_CODE_PROFILE, GEMINI_CLI_PROFILE, OutputStatus, profile_for
from agent_monitor.inference.status_detector import DetectionResult, DetectorConfig, StatusDetector

__all__ = [
    "CLAUDE_CODE_PROFILE",
    "DetectionResult",
    "DetectorConfig",
    "GEMINI_CLI_PROFILE",
    "NormalizedOutput",
    "OutputStatus",
    "StatusDetector",
    "normalize",
    "profile_for",
]
