"""Search tools: glob_find."""

import logging

from backend import Backend
from tools._common import ToolResult

logger = logging.getLogger(__name__)


def glob_find(pattern: str, limit: int, backend: Backend) -> ToolResult:
    """Find files matching a glob pattern relative to the workspace root."""
    pattern = (pattern or "").strip()
    if not pattern:
        return ToolResult(success=False, output="", error="missing pattern")
    try:
        matches = backend.glob_find(pattern, limit)
    except Exception as e:
        return ToolResult(success=False, output="", error=str(e))
    lines = [f"{len(matches)} file(s)"] + [f"- {m}" for m in matches]
    return ToolResult(success=True, output="\n".join(lines))
