from __future__ import annotations

import re
from dataclasses import dataclass


class OutputStatus:
    IDLE = "idle"
    THINKING = "thinking"
    TOOL_USE = "tool_use"
    AWAITING = "awaiting"
    ERROR = "error"


THINKING_PRIORITY = 70


@dataclass(frozen=True)
class StatusPattern:
    status: str
    priority: int
    patterns: tuple[re.Pattern[str], ...]


@dataclass(frozen=True)
class AgentProfile:
    name: str
    display_name: str
    patterns: tuple[StatusPattern, ...]


def _compile(*sources: str, flags: int = re.IGNORECASE) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(source, flags) for source in sources)


CLAUDE_CODE_PROFILE = AgentProfile(
    name="claude-code",
    display_name="Claude Code",
    patterns=(
        StatusPattern(
            status=OutputStatus.ERROR,
            priority=100,
            patterns=_compile(
                r"Error:", r"error\[", r"Exception:", r"FAILED", r"fatal:", r"panic:", r"✗|✖|❌",
                r"Command failed", r"Permission denied", r"not found", r"cannot find",
            ),
        ),
        StatusPattern(
            status=OutputStatus.AWAITING,
            priority=90,
            patterns=_compile(
                r"\[y/N\]", r"\[Y/n\]", r"\(y/n\)", r"Press Enter", r"Continue\?", r"Confirm\?",
                r"Do you want to", r"Would you like to", r"waiting for.*input", r"⏺", r"\?$",
                r"Enter.*:", r"Password:", r"> $",
                flags=re.IGNORECASE | re.MULTILINE,
            ),
        ),
        StatusPattern(
            status=OutputStatus.TOOL_USE,
            priority=80,
            patterns=_compile(
                r"Writing to", r"Reading from", r"Executing", r"Running", r"Creating file",
                r"Deleting file", r"Modifying", r"Updating", r"Installing", r"Building", r"Compiling",
                r"Testing", r"Fetching", r"Downloading", r"Uploading", r"🔧|🛠️|⚙️",
                r"\[Bash\]", r"\[Read\]", r"\[Write\]", r"\[Edit\]", r"\[Glob\]", r"\[Grep\]", r"\[Task\]",
            ),
        ),
        StatusPattern(
            status=OutputStatus.IDLE,
            priority=75,
            patterns=_compile(
                r"Done", r"Complete", r"Success", r"Finished", r"✓|✔|✅", r"All tasks completed",
                r"Ready", r"\$ $",
                flags=re.IGNORECASE | re.MULTILINE,
            ),
        ),
        StatusPattern(
            status=OutputStatus.THINKING,
            priority=THINKING_PRIORITY,
            patterns=_compile(
                r"Thinking", r"Processing", r"Analyzing", r"Generating", r"Loading", r"Searching",
                r"Scanning", r"Parsing", r"Evaluating", r"Computing", r"🤔|💭", r"\.{3}$",
            ),
        ),
    ),
)

GEMINI_CLI_PROFILE = AgentProfile(
    name="gemini-cli",
    display_name="Gemini CLI",
    patterns=(
        StatusPattern(
            status=OutputStatus.ERROR,
            priority=100,
            patterns=_compile(
                r"Error:", r"error\[", r"Exception:", r"FAILED", r"fatal:", r"✗|✖|❌", r"Command failed",
                r"Permission denied", r"not found", r"API error", r"Rate limit",
            ),
        ),
        StatusPattern(
            status=OutputStatus.AWAITING,
            priority=90,
            patterns=_compile(
                r"\[y/N\]", r"\[Y/n\]", r"\(y/n\)", r"Continue\?", r"Approve\?", r"Allow\?",
                r"waiting for.*input", r"\?$", r"> $", r"gemini>",
                flags=re.IGNORECASE | re.MULTILINE,
            ),
        ),
        StatusPattern(
            status=OutputStatus.TOOL_USE,
            priority=80,
            patterns=_compile(
                r"Executing", r"Running", r"Writing", r"Reading", r"Creating", r"Modifying", r"🔧|🛠️|⚙️",
                r"\[Tool\]", r"\[Shell\]", r"\[Function\]",
            ),
        ),
        StatusPattern(
            status=OutputStatus.IDLE,
            priority=75,
            patterns=_compile(r"Done", r"Complete", r"Success", r"Finished", r"✓|✔|✅", r"Ready"),
        ),
        StatusPattern(
            status=OutputStatus.THINKING,
            priority=THINKING_PRIORITY,
            patterns=_compile(r"Thinking", r"Processing", r"Generating", r"Loading", r"Analyzing", r"🤔|💭", r"\.{3}$"),
        ),
    ),
)

PROFILES: dict[str, AgentProfile] = {
    CLAUDE_CODE_PROFILE.name: CLAUDE_CODE_PROFILE,
    GEMINI_CLI_PROFILE.name: GEMINI_CLI_PROFILE,
}

_AGENT_ALIASES = {
    "claude": CLAUDE_CODE_PROFILE.name,
    "gemini": GEMINI_CLI_PROFILE.name,
}


def profile_for(agent_type: str) -> AgentProfile | None:
    return PROFILES.get(_AGENT_ALIASES.get(agent_type, agent_type))
