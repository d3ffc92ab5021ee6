"""External tools: run_command."""

import logging
from typing import Optional

from backend import Backend
from tools._common import ToolResult

logger = logging.getLogger(__name__)


def _truncate(text: str, limit: int) -> str:
    """Keep the head and tail of long output; the tail usually holds the failure."""
    if len(text) <= limit:
        return text
    head = limit // 3
    tail = limit - head
    return text[:head] + f"\n\n... [{len(text) - limit} chars truncated] ...\n\n" + text[-tail:]


def run_command(command: str, backend: Backend, cwd: Optional[str] = None,
                timeout: Optional[int] = None, output_limit: int = 4000) -> ToolResult:
    """Execute a shell command through the backend and summarise its output."""
    if not (command or "").strip():
        return ToolResult(success=False, output="", error="command is required")
    try:
        result = backend.run_command(command, cwd=cwd, timeout=timeout)
    except Exception as e:
        return ToolResult(success=False, output="", error=str(e))

    parts = [f"exit {result.exit_code}"]
    if result.stdout:
        parts.append(f"[stdout]\n{_truncate(result.stdout.rstrip(), output_limit)}")
    if result.stderr:
        parts.append(f"[stderr]\n{_truncate(result.stderr.rstrip(), output_limit)}")
    return ToolResult(
        success=result.exit_code == 0,
        output="\n".join(parts),
        error=None if result.exit_code == 0 else f"Command exited with code {result.exit_code}",
        exit_code=result.exit_code,
    )
