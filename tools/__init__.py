"""
Tool implementations for the task-execution agent.
Each tool operates on a Backend and reports a ToolResult instead of raising.
"""

from tools._common import ToolResult  # noqa: F401
from tools.gitignore import invalidate_gitignore_cache  # noqa: F401
from tools.file_ops import (  # noqa: F401
    read_file,
    write_file,
    replace_lines,
    format_line_numbered,
    apply_replace_lines,
    TRUNCATION_MARKER,
)
from tools.search_ops import glob_find  # noqa: F401
from tools.external_ops import run_command  # noqa: F401
