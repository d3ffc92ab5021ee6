"""
Workspace agent configuration (`.coach/agents.json`, schema version 1).

Holds the agent profiles and the execution policy for one workspace. The file
uses camelCase keys; in Python the values are dataclasses.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .events import AgentError
from .policy import POLICIES, normalize_command

logger = logging.getLogger(__name__)

COACH_DIRNAME = ".coach"
WORKSPACE_AGENTS_CONFIG_FILENAME = "agents.json"
CONFIG_VERSION = 1

DEFAULT_INSTRUCTIONS = (
    "You are a careful coding agent. Make small, correct changes. Prefer minimal diffs. "
    "Run only safe commands unless explicitly allowed."
)

DEFAULT_DENIED_PATH_GLOBS = [
    "**/.git/**",
    "**/node_modules/**",
    "**/dist/**",
    "**/out/**",
    "**/build/**",
    "**/coverage/**",
    "**/.env",
    "**/.env.*",
    "**/*.pem",
    "**/*.key",
    "**/*.p12",
    "**/.npmrc",
]


@dataclass
class ExecutionPolicyConfig:
    """What the agent may run and write without asking"""
    policy: str = "conservative"
    allow_dangerous: bool = False
    allowed_commands: List[str] = field(default_factory=list)
    allowed_command_prefixes: List[str] = field(default_factory=list)
    allowed_path_globs: List[str] = field(default_factory=lambda: ["**/*"])
    denied_path_globs: List[str] = field(default_factory=lambda: list(DEFAULT_DENIED_PATH_GLOBS))

    def allow_command_always(self, command: str) -> bool:
        """Add a normalized command to the exact allowlist. Returns False if already present."""
        normalized = normalize_command(command)
        if normalized in {normalize_command(c) for c in self.allowed_commands}:
            return False
        self.allowed_commands.append(normalized)
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy": self.policy,
            "allowDangerous": self.allow_dangerous,
            "allowedCommands": list(self.allowed_commands),
            "allowedCommandPrefixes": list(self.allowed_command_prefixes),
            "allowedPathGlobs": list(self.allowed_path_globs),
            "deniedPathGlobs": list(self.denied_path_globs),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionPolicyConfig":
        defaults = cls()
        policy = data.get("policy", defaults.policy)
        if policy not in POLICIES:
            raise ValueError(f"Unknown execution policy: {policy!r}")
        return cls(
            policy=policy,
            allow_dangerous=bool(data.get("allowDangerous", False)),
            allowed_commands=_str_list(data, "allowedCommands", []),
            allowed_command_prefixes=_str_list(data, "allowedCommandPrefixes", []),
            allowed_path_globs=_str_list(data, "allowedPathGlobs", defaults.allowed_path_globs),
            denied_path_globs=_str_list(data, "deniedPathGlobs", defaults.denied_path_globs),
        )


@dataclass
class AgentProfile:
    """A named agent with optional extra instructions and provider settings"""
    id: str
    name: str
    instructions: Optional[str] = None
    # Provider settings without secrets, e.g. {"model": "...", "region": "..."}
    provider: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.instructions is not None:
            data["instructions"] = self.instructions
        if self.provider is not None:
            data["provider"] = dict(self.provider)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentProfile":
        if not isinstance(data, dict) or not data.get("id"):
            raise ValueError("each agent needs an 'id'")
        provider = data.get("provider")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            instructions=data.get("instructions"),
            provider=dict(provider) if isinstance(provider, dict) else None,
        )


@dataclass
class WorkspaceAgentsConfig:
    """Root of agents.json"""
    version: int = CONFIG_VERSION
    default_agent_id: str = "default"
    agents: List[AgentProfile] = field(default_factory=list)
    execution: ExecutionPolicyConfig = field(default_factory=ExecutionPolicyConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "defaultAgentId": self.default_agent_id,
            "agents": [a.to_dict() for a in self.agents],
            "execution": self.execution.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkspaceAgentsConfig":
        if not isinstance(data, dict):
            raise ValueError("agents.json root must be a JSON object")
        if data.get("version") != CONFIG_VERSION:
            raise ValueError(f"Unsupported agents.json version: {data.get('version')}")
        agents = data.get("agents") or []
        if not isinstance(agents, list):
            raise ValueError("'agents' must be a list")
        execution = data.get("execution") or {}
        if not isinstance(execution, dict):
            raise ValueError("'execution' must be an object")
        return cls(
            version=CONFIG_VERSION,
            default_agent_id=str(data.get("defaultAgentId") or "default"),
            agents=[AgentProfile.from_dict(a) for a in agents],
            execution=ExecutionPolicyConfig.from_dict(execution),
        )


def _str_list(data: Dict[str, Any], key: str, default: List[str]) -> List[str]:
    value = data.get(key)
    if value is None:
        return list(default)
    if not isinstance(value, list):
        raise ValueError(f"'{key}' must be a list of strings")
    return [str(v) for v in value]


def default_workspace_agents_config() -> WorkspaceAgentsConfig:
    return WorkspaceAgentsConfig(
        agents=[AgentProfile(id="default", name="Default Agent", instructions=DEFAULT_INSTRUCTIONS)],
    )


def resolve_agent_profile(config: WorkspaceAgentsConfig, agent_id: Optional[str] = None) -> AgentProfile:
    """Requested id, then the default id, then the first agent, then a built-in profile."""
    for wanted in (agent_id, config.default_agent_id):
        for agent in config.agents:
            if wanted and agent.id == wanted:
                return agent
    if config.agents:
        return config.agents[0]
    return AgentProfile(id="default", name="Default Agent")


def get_workspace_agents_config_path(root_path: str) -> str:
    return os.path.join(root_path, COACH_DIRNAME, WORKSPACE_AGENTS_CONFIG_FILENAME)


def ensure_coach_dir(root_path: str) -> str:
    path = os.path.join(root_path, COACH_DIRNAME)
    os.makedirs(path, exist_ok=True)
    return path


def load_workspace_agents_config(root_path: str) -> WorkspaceAgentsConfig:
    """Load agents.json, or the defaults when the file does not exist."""
    path = get_workspace_agents_config_path(root_path)
    if not os.path.exists(path):
        return default_workspace_agents_config()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return WorkspaceAgentsConfig.from_dict(data)
    except (OSError, ValueError) as e:
        raise AgentError(f"Failed to load agent config at {path}: {e}", code="CONFIG") from e


def write_workspace_agents_config(root_path: str, config: WorkspaceAgentsConfig) -> str:
    """Write agents.json atomically. Returns the file path."""
    ensure_coach_dir(root_path)
    path = get_workspace_agents_config_path(root_path)
    tmp_path = path + ".tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_path, path)
        logger.info(f"Agent config saved: {path}")
    except Exception:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    return path


def ensure_workspace_agents_config_file(root_path: str) -> WorkspaceAgentsConfig:
    """Load agents.json, writing the defaults first if it does not exist yet."""
    path = get_workspace_agents_config_path(root_path)
    if os.path.exists(path):
        return load_workspace_agents_config(root_path)
    config = default_workspace_agents_config()
    write_workspace_agents_config(root_path, config)
    return config
