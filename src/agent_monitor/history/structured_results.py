"""Tool-specific views of the ``toolUseResult`` metadata Claude logs beside a tool result."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def _int(data: dict[str, Any], key: str, default: int = 0) -> int:
    value = data.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return default


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


@dataclass
class ReadResult:
    kind: ClassVar[str] = "read"
    filename: str
    content: str
    start_line: int = 1
    total_lines: int = 0


@dataclass
class EditResult:
    kind: ClassVar[str] = "edit"
    filename: str
    old_string: str
    new_string: str
    user_modified: bool = False


@dataclass
class PatchHunk:
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: list[str]


@dataclass
class WriteResult:
    kind: ClassVar[str] = "write"
    filename: str
    mode: str
    content: str
    structured_patch: list[PatchHunk] = field(default_factory=list)


@dataclass
class BashResult:
    kind: ClassVar[str] = "bash"
    stdout: str
    stderr: str
    return_code: int | None = None
    return_code_interpretation: str | None = None
    background_task_id: str | None = None

    @property
    def has_output(self) -> bool:
        return bool(self.stdout or self.stderr)


@dataclass
class GrepResult:
    kind: ClassVar[str] = "grep"
    mode: str
    filenames: list[str]
    content: str | None = None
    num_files: int = 0


@dataclass
class GlobResult:
    kind: ClassVar[str] = "glob"
    filenames: list[str]
    truncated: bool = False


@dataclass
class GenericResult:
    kind: ClassVar[str] = "generic"
    raw_content: str | None


StructuredResult = ReadResult | EditResult | WriteResult | BashResult | GrepResult | GlobResult | GenericResult


def _read(data: dict[str, Any]) -> ReadResult:
    source = data.get("file") if isinstance(data.get("file"), dict) else data
    return ReadResult(
        filename=_str(source, "filePath"),
        content=_str(source, "content"),
        start_line=_int(source, "startLine", 1) or 1,
        total_lines=_int(source, "totalLines"),
    )


def _edit(data: dict[str, Any]) -> EditResult:
    return EditResult(
        filename=_str(data, "filePath"),
        old_string=_str(data, "oldString"),
        new_string=_str(data, "newString"),
        user_modified=data.get("userModified") is True,
    )


def _write(data: dict[str, Any]) -> WriteResult:
    hunks: list[PatchHunk] = []
    raw_patch = data.get("structuredPatch")
    for patch in raw_patch if isinstance(raw_patch, list) else []:
        if not isinstance(patch, dict):
            continue
        numbers = [patch.get(k) for k in ("oldStart", "oldLines", "newStart", "newLines")]
        if not all(isinstance(n, int) for n in numbers) or not isinstance(patch.get("lines"), list):
            continue
        hunks.append(PatchHunk(*numbers, lines=[line for line in patch["lines"] if isinstance(line, str)]))
    return WriteResult(
        filename=_str(data, "filePath"),
        mode="overwrite" if data.get("type") == "overwrite" else "create",
        content=_str(data, "content"),
        structured_patch=hunks,
    )


def _bash(data: dict[str, Any]) -> BashResult:
    return_code = data.get("returnCode")
    interpretation = data.get("returnCodeInterpretation")
    task_id = data.get("backgroundTaskId")
    return BashResult(
        stdout=_str(data, "stdout"),
        stderr=_str(data, "stderr"),
        return_code=return_code if isinstance(return_code, int) else None,
        return_code_interpretation=interpretation if isinstance(interpretation, str) else None,
        background_task_id=task_id if isinstance(task_id, str) else None,
    )


def _grep(data: dict[str, Any]) -> GrepResult:
    mode = data.get("mode")
    content = data.get("content")
    return GrepResult(
        mode=mode if mode in ("content", "count") else "filesWithMatches",
        filenames=_str_list(data, "filenames"),
        content=content if isinstance(content, str) else None,
        num_files=_int(data, "numFiles"),
    )


def _glob(data: dict[str, Any]) -> GlobResult:
    return GlobResult(filenames=_str_list(data, "filenames"), truncated=data.get("truncated") is True)


_PARSERS: dict[str, Callable[[dict[str, Any]], StructuredResult]] = {
    "Read": _read,
    "Edit": _edit,
    "Write": _write,
    "Bash": _bash,
    "Grep": _grep,
    "Glob": _glob,
}


def parse_structured_result(tool_name: str, data: dict[str, Any]) -> StructuredResult:
    if tool_name.startswith("mcp__"):
        return GenericResult(raw_content=json.dumps(data))
    parser = _PARSERS.get(tool_name)
    if parser is not None:
        return parser(data)
    raw = next((data[k] for k in ("content", "stdout", "result") if isinstance(data.get(k), str) and data[k]), None)
    return GenericResult(raw_content=raw)
