from __future__ import annotations

import re
from dataclasses import dataclass

SPINNER_CHARS = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏◐◓◑◒⣾⣽⣻⢿⡿⣟⣯⣷"

# Same grammar as the strip-ansi family: CSI/OSC introducers, optional
# parameters, then either a BEL/ST terminated string or a final byte.
_ANSI_RE = re.compile(
    r"[\x1b\x9b][\[\]()#;?]*(?:"
    r"(?:(?:(?:;[-a-zA-Z\d/#&.:=?%@~_]+)*|[a-zA-Z\d]+(?:;[-a-zA-Z\d/#&.:=?%@~_]*)*)?(?:\x07|\x1b\\))"
    r"|(?:(?:\d{1,4}(?:;\d{0,4})*)?[\dA-PR-TZcf-nq-uy=><~])"
    r")"
)

_CONTROL_RES = (
    re.compile(r"\x1b\[\?25[lh]"),
    re.compile(r"\x1b\[[\d;]*[HfABCDEFGJKST]"),
    re.compile(r"\x1b\[[02]K"),
    re.compile(r"\r"),
)

_SPINNER_TABLE = str.maketrans("", "", SPINNER_CHARS)
_PROGRESS_RE = re.compile(r"(?<!\d)(\d{1,3})%")
_HORIZONTAL_WS_RE = re.compile(r"[ \t]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class NormalizedOutput:
    text: str
    original: str
    has_spinner: bool
    progress: int | None


def _strip_once(text: str) -> str:
    text = _ANSI_RE.sub("", text)
    for pattern in _CONTROL_RES:
        text = pattern.sub("", text)
    return text.translate(_SPINNER_TABLE)


def strip_control_sequences(text: str) -> str:
    # Removing one sequence can splice the pieces of another together.
    while True:
        stripped = _strip_once(text)
        if stripped == text:
            return stripped
        text = stripped


def extract_progress(text: str) -> int | None:
    for match in _PROGRESS_RE.finditer(text):
        value = int(match.group(1))
        if value <= 100:
            return value
    return None


def normalize(raw: str) -> NormalizedOutput:
    """Strip terminal control sequences and pick out spinner / progress signals."""
    has_spinner = any(char in raw for char in SPINNER_CHARS)
    text = strip_control_sequences(raw)
    progress = extract_progress(text)

    text = _HORIZONTAL_WS_RE.sub(" ", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    text = text.strip()

    return NormalizedOutput(text=text, original=raw, has_spinner=has_spinner, progress=progress)


def last_lines(text: str, count: int) -> list[str]:
    lines = [line for line in text.split("\n") if line.strip()]
    return lines[-count:] if count > 0 else []
