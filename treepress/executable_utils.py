"""Executable discovery utilities for Treepress.

This module locates external programs such as a markdown converter
(``cmark``, ``commonmark``) or the deploy tool (``rsync``), supporting both
system PATH lookups and a project-local ``node_modules/.bin`` directory where
npm-installed converters end up.

Functions:
    find_executable: Locate an executable in PATH or node_modules.
"""

from __future__ import annotations

import shutil
from pathlib import Path


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable by name or path.

    A name containing a path separator is checked as a file directly.
    Otherwise the system PATH is searched first, then the project's local
    ``node_modules/.bin`` directory if a project root is provided.

    Args:
        name: Executable name (e.g. ``cmark``) or path.
        project_root: Optional project root for the local lookup.

    Returns:
        Full path to the executable if found, None otherwise.

    Examples:
        >>> find_executable('rsync')  # System PATH lookup
        '/usr/bin/rsync'
    """
    if "/" in name:
        candidate = Path(name)
        if project_root is not None and not candidate.is_absolute():
            candidate = project_root / candidate
        return str(candidate) if candidate.is_file() else None

    found = shutil.which(name)
    if found:
        return found

    if project_root is not None:
        local = project_root / "node_modules" / ".bin" / name
        if local.exists():
            return str(local)

    return None
