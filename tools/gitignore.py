"""Workspace ignore rules for file discovery.

A path is hidden from `glob` when any of its parent directories is a
vendored/build/VCS directory, when its extension is a compiled artifact, or
when the workspace `.gitignore` matches it.
"""

import logging
import os
import posixpath
from typing import Dict, FrozenSet, Optional

import pathspec

logger = logging.getLogger(__name__)

SKIP_DIRS: FrozenSet[str] = frozenset({
    ".git", ".hg", ".svn", ".coach",
    "node_modules", "__pycache__", ".venv", "venv",
    ".mypy_cache", ".pytest_cache", ".tox", ".eggs",
    "dist", "out", "build", "coverage", "htmlcov",
})

SKIP_EXTENSIONS: FrozenSet[str] = frozenset({
    ".pyc", ".pyo", ".so", ".dylib", ".o", ".a", ".class",
})

# workspace root -> parsed .gitignore (None when there is none)
_specs: Dict[str, Optional[pathspec.PathSpec]] = {}


def load_gitignore(root: str) -> Optional[pathspec.PathSpec]:
    """Parsed `.gitignore` of a workspace root, cached per root."""
    if root not in _specs:
        path = os.path.join(root, ".gitignore")
        spec = None
        if os.path.isfile(path):
            try:
                with open(path, "r", encoding="utf-8", errors="replace") as f:
                    spec = pathspec.PathSpec.from_lines("gitwildmatch", f)
            except OSError as e:
                logger.warning(f"Could not read {path}: {e}")
        _specs[root] = spec
    return _specs[root]


def is_ignored(rel_path: str, spec: Optional[pathspec.PathSpec] = None) -> bool:
    """True if a workspace-relative file path is hidden by the ignore rules."""
    parts = rel_path.split("/")
    if any(part in SKIP_DIRS for part in parts[:-1]):
        return True
    if posixpath.splitext(parts[-1])[1] in SKIP_EXTENSIONS:
        return True
    if spec is None:
        return False
    parents = ("/".join(parts[:i]) + "/" for i in range(1, len(parts)))
    return any(spec.match_file(p) for p in parents) or spec.match_file(rel_path)


def invalidate_gitignore_cache(root: Optional[str] = None) -> None:
    """Forget cached rules for one root, or for all roots."""
    if root:
        _specs.pop(root, None)
    else:
        _specs.clear()
