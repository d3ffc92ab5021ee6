"""
Agent package - sandboxed task-execution agent.

Modules:
- events: AgentEvent, PolicyDecision, approval outcomes, task types and errors
- policy: command and write-path policy engine
- actions: action union and JSON extraction from model replies
- workspace_config: `.coach/agents.json` load/save and agent profiles
- prompts: system and task prompt composition
- context: run state, file snapshots and revert
- execution: per-action dispatch through the policy engine
- core: TaskExecutionAgent loop and factory
"""

from .core import TaskExecutionAgent, AgentState, create_task_execution_agent, STEP_LIMIT_SUMMARY
from .events import (
    AgentEvent,
    PolicyDecision,
    ApprovalDecision,
    AgentError,
    AgentAborted,
    TaskRequest,
    TaskResult,
    CommandRun,
)
from .context import ContextMixin
from .execution import ExecutionMixin
from .policy import (
    check_command,
    check_write_path,
    is_dangerous_command,
    is_path_within_root,
    normalize_command,
    to_rel_path,
)
from .actions import (
    Action,
    GlobAction,
    ReadFileAction,
    WriteFileAction,
    ReplaceLinesAction,
    RunCommandAction,
    FinishAction,
    extract_json,
    parse_action,
)
from .workspace_config import (
    AgentProfile,
    ExecutionPolicyConfig,
    WorkspaceAgentsConfig,
    default_workspace_agents_config,
    ensure_workspace_agents_config_file,
    load_workspace_agents_config,
    resolve_agent_profile,
    write_workspace_agents_config,
)

__all__ = [
    # Main agent class
    "TaskExecutionAgent",
    "AgentState",
    "create_task_execution_agent",
    "STEP_LIMIT_SUMMARY",

    # Data types
    "AgentEvent",
    "PolicyDecision",
    "ApprovalDecision",
    "AgentError",
    "AgentAborted",
    "TaskRequest",
    "TaskResult",
    "CommandRun",

    # Mixins
    "ContextMixin",
    "ExecutionMixin",

    # Policy engine
    "check_command",
    "check_write_path",
    "is_dangerous_command",
    "is_path_within_root",
    "normalize_command",
    "to_rel_path",

    # Actions
    "Action",
    "GlobAction",
    "ReadFileAction",
    "WriteFileAction",
    "ReplaceLinesAction",
    "RunCommandAction",
    "FinishAction",
    "extract_json",
    "parse_action",

    # Workspace configuration
    "AgentProfile",
    "ExecutionPolicyConfig",
    "WorkspaceAgentsConfig",
    "default_workspace_agents_config",
    "ensure_workspace_agents_config_file",
    "load_workspace_agents_config",
    "resolve_agent_profile",
    "write_workspace_agents_config",
]
