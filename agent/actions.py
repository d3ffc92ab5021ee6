"""
Action batch parsing.

The model replies with `{"actions": [...]}`. Replies are unreliable text, so
JSON extraction is a pragmatic three-step fallback kept behind a single
function: fenced ```json block, then the outermost brace slice, then the raw
trimmed text.
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Union

_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)


@dataclass(frozen=True)
class GlobAction:
    pattern: str
    limit: int = 50


@dataclass(frozen=True)
class ReadFileAction:
    path: str
    max_chars: int = 12000


@dataclass(frozen=True)
class WriteFileAction:
    path: str
    content: str


@dataclass(frozen=True)
class ReplaceLinesAction:
    path: str
    start_line: int
    end_line: int
    new_text: str


@dataclass(frozen=True)
class RunCommandAction:
    command: str
    cwd: Optional[str] = None


@dataclass(frozen=True)
class FinishAction:
    summary: str


Action = Union[GlobAction, ReadFileAction, WriteFileAction, ReplaceLinesAction,
               RunCommandAction, FinishAction]


class ActionError(ValueError):
    """An action object that cannot be turned into an Action"""


def extract_json(text: str) -> Any:
    """Pull a JSON value out of a model reply. Raises ValueError when nothing parses."""
    trimmed = (text or "").strip()
    if not trimmed:
        return None

    m = _FENCE_RE.search(trimmed)
    if m:
        return json.loads(m.group(1))

    first = trimmed.find("{")
    last = trimmed.rfind("}")
    if first != -1 and last > first:
        return json.loads(trimmed[first:last + 1])

    return json.loads(trimmed)


def _int(value: Any, default: Optional[int], name: str) -> int:
    if value is None:
        if default is None:
            raise ActionError(f"missing {name}")
        return default
    if isinstance(value, bool):
        raise ActionError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ActionError(f"{name} must be a number, got {value!r}")
    if not math.isfinite(number):
        raise ActionError(f"{name} must be a finite number, got {value!r}")
    return int(number)


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def parse_action(raw: Any) -> Action:
    """Turn one wire action object into an Action. Raises ActionError."""
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        raise ActionError(f"Invalid action: {json.dumps(raw, default=str)}")

    kind = raw["type"]
    if kind == "glob":
        return GlobAction(pattern=_str(raw.get("pattern")).strip(),
                          limit=_int(raw.get("limit"), 50, "limit"))
    if kind == "readFile":
        return ReadFileAction(path=_str(raw.get("path")),
                              max_chars=_int(raw.get("maxChars"), 12000, "maxChars"))
    if kind == "writeFile":
        return WriteFileAction(path=_str(raw.get("path")), content=_str(raw.get("content")))
    if kind == "replaceLines":
        return ReplaceLinesAction(
            path=_str(raw.get("path")),
            start_line=_int(raw.get("startLine"), None, "startLine"),
            end_line=_int(raw.get("endLine"), None, "endLine"),
            new_text=_str(raw.get("newText")),
        )
    if kind == "runCommand":
        cwd = raw.get("cwd")
        return RunCommandAction(command=_str(raw.get("command")), cwd=_str(cwd) if cwd else None)
    if kind == "finish":
        return FinishAction(summary=_str(raw.get("summary")).strip() or "Done.")
    raise ActionError(f"Unknown action type: {kind}")


def get_action_list(parsed: Any) -> Optional[List[Any]]:
    """The raw `actions` array of a parsed reply, or None if the shape is wrong."""
    if isinstance(parsed, dict) and isinstance(parsed.get("actions"), list):
        return parsed["actions"]
    return None
