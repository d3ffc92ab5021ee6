"""
Run state for the task-execution agent: file snapshots, changed files and commands run.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from .events import CommandRun

logger = logging.getLogger(__name__)


class ContextMixin:
    """Mixin providing per-run state and snapshot/revert capabilities.

    Expects `self.backend` to be set by the class it is mixed into.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # rel path -> original content, or None for a file created during the run
        self._file_snapshots: Dict[str, Optional[str]] = {}
        self._files_changed: List[str] = []
        self._commands_run: List[CommandRun] = []

    @property
    def snapshots(self) -> Dict[str, Optional[str]]:
        return dict(self._file_snapshots)

    @property
    def files_changed(self) -> List[str]:
        return list(self._files_changed)

    @property
    def commands_run(self) -> List[CommandRun]:
        return list(self._commands_run)

    # ------------------------------------------------------------------
    # File Snapshots
    # ------------------------------------------------------------------

    async def _snapshot_file(self, rel_path: str) -> None:
        """Capture the original content of a file before it's modified.
        Only snapshots once per file per run; the first write wins."""
        if rel_path in self._file_snapshots:
            return
        exists = await asyncio.to_thread(self.backend.file_exists, rel_path)
        if exists:
            self._file_snapshots[rel_path] = await asyncio.to_thread(self.backend.read_file, rel_path)
        else:
            self._file_snapshots[rel_path] = None

    def _record_change(self, rel_path: str) -> None:
        if rel_path not in self._files_changed:
            self._files_changed.append(rel_path)

    def _record_command(self, command: str, exit_code: int) -> None:
        self._commands_run.append(CommandRun(command=command, exit_code=exit_code))

    def clear_snapshots(self) -> None:
        self._file_snapshots = {}

    async def revert_all(self) -> List[str]:
        """Best-effort restore of every snapshotted file.

        Modified files get their original content back; files created during the
        run are removed. Failures are logged and skipped so the caller's primary
        failure reason is not masked. Returns the reverted paths.
        """
        reverted = []
        for rel_path, original in self._file_snapshots.items():
            try:
                if original is None:
                    if await asyncio.to_thread(self.backend.file_exists, rel_path):
                        await asyncio.to_thread(self.backend.remove_file, rel_path)
                else:
                    await asyncio.to_thread(self.backend.write_file, rel_path, original)
                reverted.append(rel_path)
            except Exception as e:
                logger.error(f"Failed to revert {rel_path}: {e}")
        self._file_snapshots = {}
        return reverted
