"""
Action dispatch for the task-execution agent.
Every action goes through the policy engine before it touches the backend.
"""

import asyncio
import logging
import posixpath
from typing import Union

from tools import (
    ToolResult, glob_find, read_file, write_file, replace_lines, run_command,
    invalidate_gitignore_cache,
)

from .actions import (
    Action, GlobAction, ReadFileAction, WriteFileAction, ReplaceLinesAction,
    RunCommandAction, FinishAction,
)
from .events import AgentAborted, AgentEvent, ApprovalDecision, TaskResult
from .policy import check_command, check_write_path, is_path_within_root, normalize_rel_path

logger = logging.getLogger(__name__)

GLOB_LIMIT_RANGE = (1, 500)
READ_CHARS_RANGE = (1000, 50000)


def _clamp(n: int, bounds) -> int:
    lo, hi = bounds
    return max(lo, min(hi, n))


def _format_result(label: str, result: ToolResult) -> str:
    if not result.success and result.exit_code is None:
        return f"{label}: ERROR {result.error}"
    if "\n" in result.output:
        return f"{label}\n{result.output}"
    return f"{label}: {result.output}"


class ExecutionMixin:
    """Mixin dispatching parsed actions one at a time.

    Relies on `backend`, `config`, `approve_command`, `save_config`,
    `command_timeout`, `command_output_limit` and the ContextMixin state.
    """

    async def _emit(self, type: str, content: str = "", **data) -> None:
        if self.on_event:
            await self.on_event(AgentEvent(type=type, content=content, data=data or None))

    async def _dispatch(self, action: Action) -> Union[str, TaskResult]:
        """Execute one action. Returns a transcript line, or the TaskResult for finish."""
        try:
            if isinstance(action, GlobAction):
                return await self._handle_glob(action)
            if isinstance(action, ReadFileAction):
                return await self._handle_read_file(action)
            if isinstance(action, WriteFileAction):
                return await self._handle_write_file(action)
            if isinstance(action, ReplaceLinesAction):
                return await self._handle_replace_lines(action)
            if isinstance(action, RunCommandAction):
                return await self._handle_run_command(action)
            if isinstance(action, FinishAction):
                return await self._handle_finish(action)
        except AgentAborted:
            raise
        except Exception as e:
            logger.exception(f"Action failed: {action!r}")
            return f"ERROR: {type(action).__name__} failed: {e}"
        raise TypeError(f"Unhandled action type: {type(action).__name__}")

    async def _handle_glob(self, action: GlobAction) -> str:
        pattern = action.pattern
        if not pattern:
            return "glob: ERROR missing pattern"
        if pattern.startswith(("/", "\\")) or ".." in pattern.replace("\\", "/").split("/"):
            return f"glob({pattern}): DENIED - pattern must stay inside the workspace"
        limit = _clamp(action.limit, GLOB_LIMIT_RANGE)
        await self._emit("progress", f"Listing files: {pattern}")
        result = await asyncio.to_thread(glob_find, pattern, limit, self.backend)
        return _format_result(f"glob({pattern})", result)

    async def _handle_read_file(self, action: ReadFileAction) -> str:
        rel_path = normalize_rel_path(action.path)
        if not rel_path:
            return "readFile: ERROR missing path"
        if not is_path_within_root(rel_path):
            return f"readFile({rel_path}): DENIED - Path escapes workspace root."
        max_chars = _clamp(action.max_chars, READ_CHARS_RANGE)
        await self._emit("progress", f"Reading: {rel_path}")
        result = await asyncio.to_thread(read_file, rel_path, max_chars, self.backend)
        return _format_result(f"readFile({rel_path})", result)

    def _check_write(self, label: str, rel_path: str):
        """Returns (canonical path, None) when writable, else (None, denial line)."""
        decision = check_write_path(rel_path, self.config.execution)
        if not decision.allowed:
            logger.info(f"{label} denied: {decision.reason}")
            return None, f"{label}: DENIED - {decision.reason}"
        return posixpath.normpath(rel_path), None

    def _after_write(self, rel_path: str) -> None:
        self._record_change(rel_path)
        if posixpath.basename(rel_path) == ".gitignore":
            invalidate_gitignore_cache(self.backend.working_directory)

    async def _handle_write_file(self, action: WriteFileAction) -> str:
        rel_path = normalize_rel_path(action.path)
        if not rel_path:
            return "writeFile: ERROR missing path"
        rel_path, denial = self._check_write(f"writeFile({rel_path})", rel_path)
        if denial:
            await self._emit("tool_rejected", denial)
            return denial

        await self._emit("progress", f"Writing: {rel_path}")
        await self._snapshot_file(rel_path)
        result = await asyncio.to_thread(write_file, rel_path, action.content, self.backend)
        if result.success:
            self._after_write(rel_path)
        return _format_result(f"writeFile({rel_path})", result)

    async def _handle_replace_lines(self, action: ReplaceLinesAction) -> str:
        rel_path = normalize_rel_path(action.path)
        if not rel_path:
            return "replaceLines: ERROR missing path"
        label = f"replaceLines({rel_path}:{action.start_line}-{action.end_line})"
        rel_path, denial = self._check_write(label, rel_path)
        if denial:
            await self._emit("tool_rejected", denial)
            return denial
        if not await asyncio.to_thread(self.backend.file_exists, rel_path):
            return f"{label}: ERROR file does not exist"

        await self._emit("progress", f"Editing: {rel_path}")
        await self._snapshot_file(rel_path)
        result = await asyncio.to_thread(
            replace_lines, rel_path, action.start_line, action.end_line, action.new_text, self.backend,
        )
        if result.success:
            self._after_write(rel_path)
        return _format_result(label, result)

    async def _handle_run_command(self, action: RunCommandAction) -> str:
        command = action.command
        label = f"runCommand({command})"
        cwd = normalize_rel_path(action.cwd) if action.cwd else None
        if cwd and not is_path_within_root(cwd):
            return f"{label}: DENIED - cwd escapes workspace root."

        decision = check_command(command, self.config.execution)
        if decision.allowed:
            return await self._run(label, command, cwd)

        if not decision.require_approval:
            await self._emit("tool_rejected", command, reason=decision.reason)
            return f"{label}: DENIED - {decision.reason}"

        if not self.approve_command:
            await self._emit("tool_rejected", command, reason=decision.reason)
            return f"{label}: DENIED - {decision.reason} (no approval mechanism available)"

        answer = await self.approve_command(command, decision.reason)
        try:
            approval = ApprovalDecision(answer)
        except ValueError:
            logger.warning(f"Unrecognized approval answer {answer!r}; treating as deny")
            approval = ApprovalDecision.DENY
        await self._emit("approval", command, decision=approval.value)

        if approval is ApprovalDecision.ABORT:
            raise AgentAborted()
        if approval is ApprovalDecision.DENY:
            return f"{label}: DENIED by user."
        if approval is ApprovalDecision.ALLOW_ALWAYS:
            added = self.config.execution.allow_command_always(command)
            if added and self.save_config:
                try:
                    await self.save_config(self.config)
                except Exception as e:
                    logger.error(f"Failed to persist allowlisted command {command!r}: {e}")
        return await self._run(label, command, cwd)

    async def _run(self, label: str, command: str, cwd) -> str:
        await self._emit("progress", f"Running: {command}")
        result = await asyncio.to_thread(
            run_command, command, self.backend, cwd, self.command_timeout, self.command_output_limit,
        )
        if result.exit_code is not None:
            self._record_command(command, result.exit_code)
        return _format_result(label, result)

    async def _handle_finish(self, action: FinishAction) -> TaskResult:
        logger.info(f"Agent finished: {action.summary}")
        await self._emit("done", action.summary)
        return TaskResult(
            ok=True,
            summary=action.summary,
            files_changed=self.files_changed,
            commands_run=self.commands_run,
        )
