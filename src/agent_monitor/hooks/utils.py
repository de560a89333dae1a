from __future__ import annotations

import json
import os
import subprocess
import sys
from typing import Any, TextIO

_NO_TTY = {"", "??", "-"}


def get_tty() -> str | None:
    """Controlling terminal of the agent process (our parent), if it has one."""
    try:
        result = subprocess.run(
            ["ps", "-p", str(os.getppid()), "-o", "tty="],
            capture_output=True,
            text=True,
            timeout=2,
            check=False,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    tty = result.stdout.strip()
    if tty in _NO_TTY:
        return None
    return tty if tty.startswith("/dev/") else f"/dev/{tty}"


def read_stdin_json(stream: TextIO | None = None) -> Any:
    """Parse the hook payload. Raises ValueError when it is not JSON."""
    raw = (stream or sys.stdin).read()
    return json.loads(raw)


def str_or_none(value: object) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def dict_or_none(value: object) -> dict[str, Any] | None:
    if isinstance(value, dict):
        return value
    return None
