"""Shared types for the tools package."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class ToolResult:
    """Result from executing a tool"""
    success: bool
    output: str
    error: Optional[str] = None
    # Set by run_command so callers can record the command's exit status
    exit_code: Optional[int] = None
