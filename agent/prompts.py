"""
Prompt composition for the task-execution agent.
The system prompt fixes the action-batch JSON schema; the user prompt carries the task.
"""

from typing import List, Optional

from .policy import normalize_rel_path


_MOD_IDENTITY = """You are an autonomous coding agent running inside a real repository.
You MUST respond with a single JSON object (no extra text)."""

_MOD_SCHEMA = """Schema:
{
  "actions": [
    { "type": "glob", "pattern": "**/*.py", "limit": 50 },
    { "type": "readFile", "path": "src/app.py", "maxChars": 12000 },
    { "type": "replaceLines", "path": "src/app.py", "startLine": 10, "endLine": 12, "newText": "..." },
    { "type": "writeFile", "path": "src/new.txt", "content": "..." },
    { "type": "runCommand", "command": "pytest -q" },
    { "type": "finish", "summary": "What changed and why." }
  ]
}"""

_MOD_RULES = """Rules:
- Only use relative paths within the workspace.
- Prefer small edits (replaceLines) over full rewrites.
- If you need file content, request it with readFile. Line numbers in readFile output are 1-based.
- Actions run in order; results come back in the next message.
- Commands may be denied by policy or by the user. Adapt instead of retrying the same command.
- After edits, run appropriate checks (tests/lint) if allowed.
- Stop by emitting a finish action."""


def compose_system_prompt(instructions: Optional[str] = None) -> str:
    parts = [_MOD_IDENTITY, _MOD_SCHEMA, _MOD_RULES]
    if instructions:
        parts.append(f"Extra instructions:\n{instructions}")
    return "\n\n".join(parts)


def compose_task_prompt(title: str, description: str, affected_files: Optional[List[str]],
                        workspace_root: str) -> str:
    lines = [
        f"Task Title: {title}",
        f"Task Description: {description or '(none)'}",
    ]
    files = [normalize_rel_path(p) for p in (affected_files or []) if normalize_rel_path(p)]
    if files:
        lines.append("Affected Files:\n- " + "\n- ".join(files))
    else:
        lines.append("Affected Files: (none provided)")
    lines += [
        "",
        f"Workspace root: {workspace_root}",
        "Execute by iterating actions until finish.",
    ]
    return "\n".join(lines)


INVALID_JSON_MESSAGE = "ERROR: Response was not valid JSON. Reply again with ONLY valid JSON.\nParse error: {error}"
MISSING_ACTIONS_MESSAGE = 'ERROR: JSON must have an "actions" array. Reply again with ONLY valid JSON.'


def format_tool_results(results: List[str]) -> str:
    body = "\n\n".join(results) if results else "(no actions)"
    return f"Tool results:\n{body}\n\nContinue."
