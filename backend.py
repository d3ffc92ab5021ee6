"""
Backend abstraction for file and command operations.
The agent only ever talks to a Backend; LocalBackend confines every
operation to a single workspace root on the local filesystem.
"""

import logging
import os
import pathlib
import signal
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a spawned command"""
    exit_code: int
    stdout: str = ""
    stderr: str = ""


class Backend(ABC):
    """Abstract backend for file system and command operations."""

    @property
    @abstractmethod
    def working_directory(self) -> str:
        """Return the workspace root path."""

    @abstractmethod
    def read_file(self, path: str) -> str:
        """Read file content as text. Raises FileNotFoundError if absent."""

    @abstractmethod
    def write_file(self, path: str, content: str) -> None:
        """Write content to a file (create dirs as needed)."""

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        """Check if a file exists."""

    @abstractmethod
    def remove_file(self, path: str) -> None:
        """Delete a file."""

    @abstractmethod
    def glob_find(self, pattern: str, limit: int = 50) -> List[str]:
        """Find files matching a glob pattern. Returns at most `limit` relative paths."""

    @abstractmethod
    def run_command(self, command: str, cwd: Optional[str] = None,
                    timeout: Optional[int] = None) -> CommandResult:
        """Run a shell command from the workspace root (or a relative cwd)."""

    def resolve_path(self, path: str) -> str:
        """Resolve a path relative to the working directory."""
        if os.path.isabs(path):
            return path
        return os.path.normpath(os.path.join(self.working_directory, path))


# ============================================================
# Local Backend
# ============================================================

class LocalBackend(Backend):
    """Backend that operates on the local filesystem."""

    def __init__(self, working_directory: str = ".", command_timeout: Optional[int] = None):
        self._working_directory = os.path.abspath(working_directory)
        self._command_timeout = command_timeout

    @property
    def working_directory(self) -> str:
        return self._working_directory

    def _ensure_under_working(self, resolved: str) -> None:
        # Symlinks are followed so a link inside the workspace cannot point out of it
        real = os.path.realpath(resolved)
        wd = os.path.realpath(self._working_directory)
        if real != wd and not real.startswith(wd + os.sep):
            raise ValueError(f"Path escapes working directory: {resolved!r}")

    def _full(self, path: str) -> str:
        # Leading slashes mean "workspace-relative", never filesystem-absolute
        rel = (path or "").replace("\\", "/").lstrip("/")
        full = self.resolve_path(rel) if rel else self._working_directory
        self._ensure_under_working(full)
        return full

    def read_file(self, path: str) -> str:
        full = self._full(path)
        with open(full, "r", encoding="utf-8", errors="replace", newline="") as f:
            return f.read()

    def write_file(self, path: str, content: str) -> None:
        full = self._full(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "w", encoding="utf-8", newline="") as f:
            f.write(content)

    def file_exists(self, path: str) -> bool:
        full = self._full(path)
        return os.path.exists(full)

    def remove_file(self, path: str) -> None:
        full = self._full(path)
        os.remove(full)

    def glob_find(self, pattern: str, limit: int = 50) -> List[str]:
        from tools.gitignore import is_ignored, load_gitignore

        base = pathlib.Path(self._working_directory)
        real_base = os.path.realpath(self._working_directory)
        spec = load_gitignore(self._working_directory)
        matches: List[str] = []
        for p in sorted(base.glob(pattern)):
            if len(matches) >= limit:
                break
            if not p.is_file():
                continue
            real = os.path.realpath(p)
            if real != real_base and not real.startswith(real_base + os.sep):
                continue  # symlink pointing out of the workspace
            rel_path = p.relative_to(base).as_posix()
            if not is_ignored(rel_path, spec):
                matches.append(rel_path)
        return matches

    def run_command(self, command: str, cwd: Optional[str] = None,
                    timeout: Optional[int] = None) -> CommandResult:
        full_cwd = self._full(cwd) if cwd else self._working_directory
        timeout = timeout if timeout is not None else self._command_timeout
        try:
            proc = subprocess.Popen(
                command, shell=True, cwd=full_cwd,
                stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                text=True, encoding="utf-8", errors="replace",
                start_new_session=True,  # own process group for clean kill
            )
        except OSError as e:
            logger.warning(f"Failed to spawn {command!r}: {e}")
            return CommandResult(exit_code=1, stdout="", stderr=str(e))
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._kill_process(proc)
            stdout, stderr = proc.communicate(timeout=5)
            logger.warning(f"Command timed out after {timeout}s: {command!r}")
            return CommandResult(
                exit_code=-1,
                stdout=stdout or "",
                stderr=f"Command timed out after {timeout}s\n{stderr or ''}",
            )
        return CommandResult(exit_code=proc.returncode, stdout=stdout or "", stderr=stderr or "")

    @staticmethod
    def _kill_process(proc: subprocess.Popen) -> None:
        """Kill a process and its entire process group."""
        if hasattr(os, "killpg"):
            try:
                os.killpg(os.getpgid(proc.pid), signal.SIGTERM)
            except (ProcessLookupError, OSError):
                pass
        try:
            proc.kill()
        except (ProcessLookupError, OSError):
            pass
