"""
Execution policy engine.

Pure decision functions over a command string or a candidate write path.
Commands default to *ask*: shell execution cannot be judged safe statically.
Paths default to a broad allow with an explicit deny-list because every file
edit is snapshotted and can be reverted.
"""

import os
import posixpath
import re
from typing import Iterable, List

from wcmatch import glob as wcglob

from .events import PolicyDecision

# Destructive operations across common shells (matched on lower-cased input)
_DANGEROUS_PATTERNS: List[re.Pattern] = [
    re.compile(r"\brm\s+-rf\b"),
    re.compile(r"\brm\s+-r\b"),
    re.compile(r"\bdel\b.*\s/s\b"),
    re.compile(r"\brmdir\b.*\s/s\b"),
    re.compile(r"\bformat\b"),
    re.compile(r"\bmkfs\b"),
    re.compile(r"\bdd\b\s+if="),
    re.compile(r"\bshutdown\b"),
    re.compile(r"\breboot\b"),
    re.compile(r"\bpoweroff\b"),
    re.compile(r"\bkill\s+-9\b"),
    re.compile(r"\bgit\s+reset\s+--hard\b"),
    re.compile(r"\bgit\s+clean\s+-f\b"),
    re.compile(r"\bremove-item\b.*-recurse\b.*-force\b"),
]

POLICIES = ("conservative", "standard", "unrestricted")


def normalize_command(command: str) -> str:
    return re.sub(r"\s+", " ", (command or "").strip())


def _is_multiline(command: str) -> bool:
    return "\n" in command.strip() or "\r" in command.strip()


def is_dangerous_command(command: str) -> bool:
    """Multi-line commands always count as dangerous/malformed."""
    if _is_multiline(command or ""):
        return True
    c = normalize_command(command).lower()
    return any(p.search(c) for p in _DANGEROUS_PATTERNS)


def check_command(command: str, execution) -> PolicyDecision:
    """Decide whether `command` may run under an ExecutionPolicyConfig."""
    normalized = normalize_command(command)
    if not normalized:
        return PolicyDecision.deny("Empty command.")
    if _is_multiline(command):
        return PolicyDecision.deny("Multi-line commands are not allowed.")

    if is_dangerous_command(normalized) and not execution.allow_dangerous:
        return PolicyDecision.deny("Dangerous commands are disabled by policy (allowDangerous=false).")

    # Unrestricted means "allowed unless dangerous is disabled"
    if execution.policy == "unrestricted":
        return PolicyDecision.allow("Allowed by unrestricted policy.")

    exact = {normalize_command(c) for c in (execution.allowed_commands or [])}
    if normalized in exact:
        return PolicyDecision.allow("Allowed by exact allowlist.")

    lowered = normalized.lower()
    prefixes = [normalize_command(p).lower() for p in (execution.allowed_command_prefixes or [])]
    if any(p and lowered.startswith(p) for p in prefixes):
        return PolicyDecision.allow("Allowed by prefix allowlist.")

    return PolicyDecision.ask("Command not allowlisted.")


def normalize_rel_path(path: str) -> str:
    """Forward slashes, no surrounding whitespace, no leading slashes."""
    return str(path or "").strip().replace("\\", "/").lstrip("/")


def to_rel_path(root_path: str, target_path: str) -> str:
    """Path of target relative to root, with forward slashes."""
    absolute = os.path.abspath(os.path.join(root_path, target_path))
    return os.path.relpath(absolute, os.path.abspath(root_path)).replace("\\", "/")


def is_path_within_root(rel_path: str) -> bool:
    normalized = posixpath.normpath(normalize_rel_path(rel_path) or ".")
    return normalized != ".." and not normalized.startswith("../")


_GLOB_FLAGS = wcglob.GLOBSTAR | wcglob.DOTGLOB | wcglob.BRACE | wcglob.EXTGLOB | wcglob.FORCEUNIX


def matches_any(rel_path: str, globs: Iterable[str]) -> bool:
    """True if rel_path matches at least one glob, anchored at the workspace root.

    `*` stays inside one path segment, `**` spans directories and dotfiles are
    matched like any other name.
    """
    patterns = [g for g in globs if g]
    return bool(patterns) and wcglob.globmatch(rel_path, patterns, flags=_GLOB_FLAGS)


def check_write_path(rel_path: str, execution) -> PolicyDecision:
    """Decide whether the agent may write `rel_path` (workspace-relative)."""
    normalized = normalize_rel_path(rel_path)
    if not normalized:
        return PolicyDecision.deny("Empty path.")
    # Hard boundary, independent of any glob configuration
    if not is_path_within_root(normalized):
        return PolicyDecision.deny("Path escapes workspace root.")
    normalized = posixpath.normpath(normalized)

    if matches_any(normalized, execution.denied_path_globs or []):
        return PolicyDecision.deny(f"Path is denied by policy (deniedPathGlobs): {normalized}")

    allowed_globs = execution.allowed_path_globs
    if allowed_globs is None:
        allowed_globs = ["**/*"]
    if not matches_any(normalized, allowed_globs):
        return PolicyDecision.ask(f"Path is outside allowed scope: {normalized}")

    return PolicyDecision.allow("Path allowed.")
