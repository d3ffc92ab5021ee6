"""File operation tools: read, write, replace_lines."""

import difflib
import logging

from backend import Backend
from tools._common import ToolResult

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n…(truncated)…\n"


def _clamp(n: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, n))


def format_line_numbered(content: str, max_chars: int) -> str:
    """Number lines 1-based (`  N| text`), truncating the text at max_chars first."""
    normalized = content.replace("\r\n", "\n")
    if len(normalized) > max_chars:
        normalized = normalized[:max_chars] + TRUNCATION_MARKER
    lines = normalized.split("\n")
    width = len(str(len(lines)))
    return "\n".join(f"{str(i + 1).rjust(width)}| {line}" for i, line in enumerate(lines))


def apply_replace_lines(content: str, start_line: int, end_line: int, new_text: str) -> str:
    """Splice new_text in place of lines [start_line, end_line] (1-based, inclusive).

    Bounds are clamped to the file, the file's line ending style is kept and a
    trailing newline is preserved when the original had one.
    """
    newline = "\r\n" if "\r\n" in content else "\n"
    normalized = content.replace("\r\n", "\n")
    ends_with_newline = normalized.endswith("\n")
    lines = normalized.split("\n")

    start = _clamp(start_line, 1, max(1, len(lines)))
    end = _clamp(end_line, start, max(start, len(lines)))

    replacement = new_text.replace("\r\n", "\n").split("\n")
    result = "\n".join(lines[:start - 1] + replacement + lines[end:])
    if ends_with_newline and not result.endswith("\n"):
        result += "\n"
    return result.replace("\n", newline) if newline != "\n" else result


def _compact_diff(old_content: str, new_content: str, path: str, max_lines: int = 40) -> str:
    """Generate a compact unified diff to echo back to the model."""
    old_lines = old_content.splitlines(keepends=True)
    new_lines = new_content.splitlines(keepends=True)
    diff = list(difflib.unified_diff(old_lines, new_lines, fromfile=path, tofile=path, lineterm=""))
    if not diff:
        return ""
    if len(diff) > max_lines:
        diff = diff[:max_lines] + [f"... ({len(diff) - max_lines} more diff lines)"]
    return "\n".join(line.rstrip() for line in diff)


def read_file(path: str, max_chars: int, backend: Backend) -> ToolResult:
    """Read a file and return line-numbered content in a fenced block."""
    try:
        if not backend.file_exists(path):
            return ToolResult(success=False, output="", error="file does not exist")
        content = backend.read_file(path)
        return ToolResult(success=True, output=f"```\n{format_line_numbered(content, max_chars)}\n```")
    except Exception as e:
        return ToolResult(success=False, output="", error=str(e))


def write_file(path: str, content: str, backend: Backend) -> ToolResult:
    """Create a new file or completely overwrite an existing file."""
    try:
        backend.write_file(path, content)
        return ToolResult(success=True, output=f"OK ({len(content)} chars)")
    except Exception as e:
        return ToolResult(success=False, output="", error=str(e))


def replace_lines(path: str, start_line: int, end_line: int, new_text: str,
                  backend: Backend) -> ToolResult:
    """Replace an inclusive 1-based line range of an existing file."""
    try:
        if not backend.file_exists(path):
            return ToolResult(success=False, output="", error="file does not exist")
        content = backend.read_file(path)
        new_content = apply_replace_lines(content, start_line, end_line, new_text)
        backend.write_file(path, new_content)
        diff_text = _compact_diff(content, new_content, path)
        return ToolResult(success=True, output=f"OK\n{diff_text}" if diff_text else "OK (no change)")
    except Exception as e:
        return ToolResult(success=False, output="", error=str(e))
