from __future__ import annotations

from pathlib import Path

import pytest

from warden.storage import Storage


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path_factory, monkeypatch):
    """Force tests to use a temporary HOME/XDG dirs so nothing lands in the real state dir."""
    base = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(base))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(base / ".config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(base / ".local" / "state"))
    monkeypatch.setenv("XDG_DATA_HOME", str(base / ".local" / "share"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(base / ".cache"))
    monkeypatch.setenv("WARDEN_HOME", str(base / ".warden"))
    monkeypatch.setenv("WARDEN_LOG_DIR", str(base / "logs"))
    for name in (
        "WARDEN_MODEL",
        "WARDEN_MAX_ITERATIONS",
        "WARDEN_HOOK_TIMEOUT",
        "WARDEN_HEADLESS",
        "WARDEN_APPROVAL_MODE",
        "WARDEN_HOOKS_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(Path, "home", lambda: base)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    target = tmp_path / "project"
    target.mkdir()
    return target


@pytest.fixture
def storage(project_dir: Path) -> Storage:
    store = Storage(project_dir)
    store.ensure_project_temp_dirs()
    return store
