"""
Agent event, policy decision, approval and error types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional


@dataclass
class AgentEvent:
    """Event emitted during agent execution"""
    type: str  # progress, tool_result, tool_rejected, approval, reverted, done, error
    content: str = ""
    data: Optional[Dict[str, Any]] = None


@dataclass
class PolicyDecision:
    """Policy engine decision for requested operation.

    At most one of `allowed` / `require_approval` is set; neither means denied.
    """
    allowed: bool = False
    require_approval: bool = False
    reason: str = ""

    @property
    def denied(self) -> bool:
        return not self.allowed and not self.require_approval

    @classmethod
    def allow(cls, reason: str) -> "PolicyDecision":
        return cls(allowed=True, reason=reason)

    @classmethod
    def ask(cls, reason: str) -> "PolicyDecision":
        return cls(require_approval=True, reason=reason)

    @classmethod
    def deny(cls, reason: str) -> "PolicyDecision":
        return cls(reason=reason)


class ApprovalDecision(str, Enum):
    """Outcome of the human approval gate for a command"""
    ALLOW_ONCE = "allowOnce"
    ALLOW_ALWAYS = "allowAlways"
    DENY = "deny"
    ABORT = "abort"


class AgentError(Exception):
    """Agent failure. `code` is CONFIG for setup problems, RUNTIME otherwise."""

    def __init__(self, message: str, code: str = "RUNTIME"):
        super().__init__(message)
        self.code = code


class AgentAborted(AgentError):
    """Raised when the user aborts a task from the approval gate"""

    def __init__(self, message: str = "Aborted by user."):
        super().__init__(message, code="RUNTIME")


@dataclass
class TaskRequest:
    """A unit of work handed to the agent"""
    title: str
    description: str = ""
    affected_files: List[str] = field(default_factory=list)


@dataclass
class CommandRun:
    command: str
    exit_code: int


@dataclass
class TaskResult:
    """Outcome of one agent run"""
    ok: bool
    summary: str
    files_changed: List[str] = field(default_factory=list)
    commands_run: List[CommandRun] = field(default_factory=list)
