"""Shared pytest fixtures: an in-memory backend and a scripted provider."""

import fnmatch
import json
from typing import Dict, List, Optional

import pytest

from agent import default_workspace_agents_config
from backend import Backend, CommandResult


class MemoryBackend(Backend):
    """Backend keeping files in a dict and recording commands instead of running them."""

    def __init__(self, files: Optional[Dict[str, str]] = None, exit_code: int = 0):
        self.files: Dict[str, str] = dict(files or {})
        self.commands: List[str] = []
        self.exit_code = exit_code
        self.fail_writes_for: set = set()

    @property
    def working_directory(self) -> str:
        return "/mem"

    def read_file(self, path: str) -> str:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def write_file(self, path: str, content: str) -> None:
        if path in self.fail_writes_for:
            raise OSError(f"disk full: {path}")
        self.files[path] = content

    def file_exists(self, path: str) -> bool:
        return path in self.files

    def remove_file(self, path: str) -> None:
        del self.files[path]

    def glob_find(self, pattern: str, limit: int = 50) -> List[str]:
        return [p for p in sorted(self.files) if fnmatch.fnmatch(p, pattern)][:limit]

    def run_command(self, command: str, cwd: Optional[str] = None,
                    timeout: Optional[int] = None) -> CommandResult:
        self.commands.append(command)
        return CommandResult(exit_code=self.exit_code, stdout="ok", stderr="")


class ScriptedProvider:
    """Replays canned replies; the last reply repeats once the script runs out."""

    def __init__(self, *replies):
        self.replies = [r if isinstance(r, str) else json.dumps(r) for r in replies]
        self.calls: List[List[Dict[str, str]]] = []

    def chat(self, messages, config=None) -> str:
        self.calls.append(messages)
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        return self.replies[index]


def actions(*items) -> Dict:
    return {"actions": list(items)}


@pytest.fixture
def workspace_config():
    return default_workspace_agents_config()


@pytest.fixture
def memory_backend():
    return MemoryBackend({"src/app.py": "a\nb\nc\n"})
