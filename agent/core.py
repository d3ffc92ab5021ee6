"""
TaskExecutionAgent: the bounded tool-call loop.

Flow:
1. Build a system prompt (action schema + rules) and a task prompt
2. Ask the provider for a reply (the only suspension point besides host I/O)
3. Parse the reply into an action batch; malformed replies get a corrective message
4. Dispatch actions in order, collecting a transcript for the next turn
5. Stop on `finish`, or revert every snapshotted file when the turn budget runs out
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from backend import Backend
from bedrock_service import GenerationConfig
from config import app_config

from .actions import ActionError, extract_json, get_action_list, parse_action
from .context import ContextMixin
from .events import AgentAborted, AgentError, AgentEvent, TaskRequest, TaskResult
from .execution import ExecutionMixin
from .prompts import (
    INVALID_JSON_MESSAGE, MISSING_ACTIONS_MESSAGE,
    compose_system_prompt, compose_task_prompt, format_tool_results,
)
from .workspace_config import WorkspaceAgentsConfig, resolve_agent_profile

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 20
STEP_LIMIT_SUMMARY = "Agent did not finish within the step limit; reverted changes for safety."

ApproveCommand = Callable[[str, str], Awaitable[str]]
SaveConfig = Callable[[WorkspaceAgentsConfig], Awaitable[None]]
OnEvent = Callable[[AgentEvent], Awaitable[None]]


class AgentState(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    PARSING = "parsing"
    DISPATCHING = "dispatching"
    FINISHED = "finished"
    REVERTED = "reverted"


class TaskExecutionAgent(ExecutionMixin, ContextMixin):
    """
    Single-use agent: construct one per TaskRequest and discard it after execute().

    The config is shared by reference; "allow always" approvals mutate
    `config.execution` in place and are handed to `save_config` for persistence.
    Two agents sharing one config concurrently race on that mutation.
    """

    def __init__(
        self,
        provider: Any,
        backend: Backend,
        config: WorkspaceAgentsConfig,
        *,
        agent_id: Optional[str] = None,
        approve_command: Optional[ApproveCommand] = None,
        save_config: Optional[SaveConfig] = None,
        on_event: Optional[OnEvent] = None,
        max_turns: Optional[int] = None,
        generation_config: Optional[GenerationConfig] = None,
        command_timeout: Optional[int] = None,
        command_output_limit: Optional[int] = None,
    ):
        if provider is None or not callable(getattr(provider, "chat", None)):
            raise AgentError("Missing AI provider", code="CONFIG")
        if backend is None:
            raise AgentError("Missing execution host", code="CONFIG")
        if config is None:
            raise AgentError("Missing agent config", code="CONFIG")
        super().__init__()
        self.provider = provider
        self.backend = backend
        self.config = config
        self.agent_id = agent_id
        self.approve_command = approve_command
        self.save_config = save_config
        self.on_event = on_event
        self.max_turns = max(1, max_turns or DEFAULT_MAX_TURNS)
        self.generation_config = generation_config or GenerationConfig(temperature=0.2, max_tokens=2000)
        self.command_timeout = command_timeout if command_timeout is not None else app_config.command_timeout
        self.command_output_limit = command_output_limit or app_config.command_output_limit

        self.state = AgentState.IDLE
        self.turn = 0
        self.messages: List[Dict[str, str]] = []
        self._used = False

    async def _chat(self) -> str:
        try:
            return await asyncio.to_thread(
                self.provider.chat, [dict(m) for m in self.messages], self.generation_config,
            )
        except Exception as e:
            raise AgentError(f"Provider request failed: {e}", code="RUNTIME") from e

    def _add_turn(self, reply: str, feedback: str) -> None:
        self.messages.append({"role": "assistant", "content": reply})
        self.messages.append({"role": "user", "content": feedback})

    async def _revert(self, reason: str) -> List[str]:
        self.state = AgentState.REVERTED
        reverted = await self.revert_all()
        logger.warning(f"{reason}; reverted {len(reverted)} file(s)")
        await self._emit("reverted", reason, paths=reverted)
        return reverted

    async def execute(self, task: TaskRequest) -> TaskResult:
        """Run the task to completion. Raises AgentAborted on user abort."""
        if self._used:
            raise AgentError("TaskExecutionAgent instances are single-use", code="RUNTIME")
        self._used = True

        profile = resolve_agent_profile(self.config, self.agent_id)
        self.messages = [
            {"role": "system", "content": compose_system_prompt(profile.instructions)},
            {"role": "user", "content": compose_task_prompt(
                task.title, task.description, task.affected_files, self.backend.working_directory,
            )},
        ]
        logger.info(f"Starting task {task.title!r} with agent {profile.id!r}")

        try:
            while self.turn < self.max_turns:
                self.turn += 1
                self.state = AgentState.THINKING
                await self._emit("progress", f"Agent thinking ({self.turn}/{self.max_turns})...")
                reply = await self._chat()

                self.state = AgentState.PARSING
                try:
                    parsed = extract_json(reply)
                except ValueError as e:
                    logger.info(f"Turn {self.turn}: reply was not valid JSON ({e})")
                    self._add_turn(reply, INVALID_JSON_MESSAGE.format(error=e))
                    continue
                raw_actions = get_action_list(parsed)
                if raw_actions is None:
                    logger.info(f"Turn {self.turn}: reply had no actions array")
                    self._add_turn(reply, MISSING_ACTIONS_MESSAGE)
                    continue

                self.state = AgentState.DISPATCHING
                results: List[str] = []
                for raw_action in raw_actions:
                    try:
                        action = parse_action(raw_action)
                    except ActionError as e:
                        results.append(f"ERROR: {e}")
                        continue
                    outcome = await self._dispatch(action)
                    if isinstance(outcome, TaskResult):
                        self.state = AgentState.FINISHED
                        self.clear_snapshots()
                        return outcome
                    results.append(outcome)
                    await self._emit("tool_result", outcome)

                self._add_turn(reply, format_tool_results(results))
        except AgentAborted:
            await self._revert("Aborted by user")
            raise
        except AgentError:
            await self._revert("Agent failed")
            raise
        except Exception as e:
            logger.exception(f"Unexpected failure on turn {self.turn}")
            await self._revert("Agent failed")
            raise AgentError(f"Agent failed: {e}", code="RUNTIME") from e

        await self._revert("Step limit reached")
        return TaskResult(
            ok=False,
            summary=STEP_LIMIT_SUMMARY,
            files_changed=self.files_changed,
            commands_run=self.commands_run,
        )


def create_task_execution_agent(provider: Any, backend: Backend, config: WorkspaceAgentsConfig,
                                **kwargs: Any) -> TaskExecutionAgent:
    """Validate collaborators and build a TaskExecutionAgent."""
    return TaskExecutionAgent(provider, backend, config, **kwargs)
