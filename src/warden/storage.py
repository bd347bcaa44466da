"""Per-project storage locations and the project short-id registry."""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict

from warden.log_utils import log_event
from warden.paths import ensure_dir, state_dir

logger = logging.getLogger(__name__)

TMP_DIR_NAME = "tmp"
PROJECTS_FILE_NAME = "projects.json"


def global_dir() -> Path:
    override = os.getenv("WARDEN_HOME")
    if override:
        return ensure_dir(Path(override))
    return state_dir()


class ProjectRegistry:
    """Map absolute project paths to short, human-readable identifiers.

    Identifiers are slugs of the project directory name; collisions get a
    numeric suffix. The mapping is persisted so a project keeps its id.
    """

    def __init__(self, registry_path: Path) -> None:
        self.registry_path = registry_path

    @staticmethod
    def _normalize(project_path: str | Path) -> str:
        resolved = str(Path(project_path).resolve())
        if os.name == "nt":
            resolved = resolved.lower()
        return resolved

    def _load(self) -> Dict[str, Any]:
        if not self.registry_path.exists():
            return {"projects": {}}
        try:
            data = json.loads(self.registry_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            # A corrupt registry must not block the session; start fresh.
            log_event(logger, "storage.registry.load_failed", level=logging.DEBUG, error=str(exc))
            return {"projects": {}}
        if not isinstance(data, dict) or not isinstance(data.get("projects"), dict):
            return {"projects": {}}
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        self.registry_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.registry_path.with_name(f"{self.registry_path.name}.tmp")
        try:
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.registry_path)
        except OSError as exc:
            log_event(
                logger,
                "storage.registry.save_failed",
                level=logging.WARNING,
                path=str(self.registry_path),
                error=str(exc),
            )

    def get_short_id(self, project_path: str | Path) -> str:
        """Return the short id for ``project_path``, registering it when new."""
        data = self._load()
        normalized = self._normalize(project_path)
        projects: Dict[str, str] = data["projects"]
        existing = projects.get(normalized)
        if existing:
            return existing

        short_id = self._unique_short_id(normalized, projects)
        projects[normalized] = short_id
        self._save(data)
        return short_id

    def _unique_short_id(self, project_path: str, existing: Dict[str, str]) -> str:
        slug = slugify(Path(project_path).name or "project")
        taken = set(existing.values())
        candidate = slug
        counter = 1
        while candidate in taken:
            candidate = f"{slug}-{counter}"
            counter += 1
        return candidate


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]", "-", text.lower())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug or "project"


class Storage:
    """Filesystem locations for one target project."""

    def __init__(self, target_dir: str | Path) -> None:
        self._target_dir = Path(target_dir).resolve()
        self._project_id: str | None = None

    def get_target_dir(self) -> Path:
        return self._target_dir

    def get_project_id(self) -> str:
        if self._project_id is None:
            registry = ProjectRegistry(global_dir() / PROJECTS_FILE_NAME)
            self._project_id = registry.get_short_id(self._target_dir)
        return self._project_id

    def get_project_temp_dir(self) -> Path:
        return global_dir() / TMP_DIR_NAME / self.get_project_id()

    def get_project_temp_plans_dir(self) -> Path:
        return self.get_project_temp_dir() / "plans"

    def get_project_temp_logs_dir(self) -> Path:
        return self.get_project_temp_dir() / "logs"

    def ensure_project_temp_dirs(self) -> None:
        ensure_dir(self.get_project_temp_plans_dir())
        ensure_dir(self.get_project_temp_logs_dir())
