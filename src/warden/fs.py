"""Path resolution helpers for sandboxed tool parameters."""

from __future__ import annotations

import os
from pathlib import Path


def resolve_path(base: str | Path, target: str) -> Path:
    """Resolve ``target`` against ``base`` the way a shell would (``..`` collapses)."""
    path = Path(target).expanduser()
    if not path.is_absolute():
        path = Path(base) / path
    return Path(os.path.normpath(path.absolute()))


def is_within_root(candidate: str | Path, root: str | Path) -> bool:
    """Return True when ``candidate`` is ``root`` itself or a descendant of it.

    Both paths are normalised lexically so the check does not depend on the
    paths existing on disk.
    """
    candidate_path = Path(os.path.normpath(Path(candidate).absolute()))
    root_path = Path(os.path.normpath(Path(root).absolute()))
    return candidate_path == root_path or root_path in candidate_path.parents
