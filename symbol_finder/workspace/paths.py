"""
Workspace path validation.

Checks run before a workspace is scanned so that obviously bad input is
rejected as an :class:`~symbol_finder.errors.InvalidQueryError` instead of
turning into an expensive or unsafe walk.
"""

from __future__ import annotations

import os

from ..errors import InvalidQueryError

MAX_PATH_DEPTH = 20
MAX_TOP_LEVEL_ENTRIES = 50_000


def sanitize_workspace_path(path: str) -> str:
    """Strip NUL bytes, normalise separators and make *path* absolute."""
    cleaned = os.path.normpath(path.replace("\0", ""))
    return os.path.abspath(cleaned)


def is_path_within_bounds(base: str, target: str) -> bool:
    """True if *target* is *base* itself or lies underneath it."""
    rel = os.path.relpath(os.path.normpath(target), os.path.normpath(base))
    return rel != ".." and not rel.startswith(".." + os.sep) and not os.path.isabs(rel)


def validate_workspace_path(path: str) -> str:
    """
    Validate a workspace root and return its sanitised absolute form.

    Raises
    ------
    InvalidQueryError
        If the path is empty, contains ``..`` segments, does not exist, is
        not a directory, is nested deeper than ``MAX_PATH_DEPTH`` or holds
        more than ``MAX_TOP_LEVEL_ENTRIES`` entries.
    """
    if not path or not path.strip():
        raise InvalidQueryError("Workspace path must not be empty")

    segments = path.replace("\\", "/").split("/")
    if ".." in segments:
        raise InvalidQueryError('Path traversal detected: workspace path cannot contain ".."')

    resolved = sanitize_workspace_path(path)
    if not os.path.exists(resolved):
        raise InvalidQueryError(f"Workspace path does not exist or is not accessible: {path}")
    if not os.path.isdir(resolved):
        raise InvalidQueryError("Workspace path must be a directory")

    if len(resolved.split(os.sep)) > MAX_PATH_DEPTH:
        raise InvalidQueryError(f"Workspace path is too deep (max {MAX_PATH_DEPTH} levels)")

    try:
        with os.scandir(resolved) as it:
            count = sum(1 for _ in it)
    except OSError as exc:
        raise InvalidQueryError(f"Workspace path is not readable: {exc}") from exc
    if count > MAX_TOP_LEVEL_ENTRIES:
        raise InvalidQueryError(
            f"Workspace contains too many entries (max {MAX_TOP_LEVEL_ENTRIES:,}). "
            "Please use a more specific path."
        )
    return resolved
