"""Runtime configuration assembled from environment variables and `.env`."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from warden.agent.constants import DEFAULT_HOOK_TIMEOUT_S, DEFAULT_MODEL_ID, MAX_ITERATIONS
from warden.agent.policy import ApprovalMode
from warden.log_utils import parse_bool, parse_int


@dataclass
class AgentConfig:
    target_dir: Path
    model_id: str = DEFAULT_MODEL_ID
    max_iterations: int = MAX_ITERATIONS
    hook_timeout_s: float = DEFAULT_HOOK_TIMEOUT_S
    headless: bool = False
    approval_mode: ApprovalMode = ApprovalMode.DEFAULT
    hooks_file: Path | None = None

    @classmethod
    def from_env(cls, target_dir: str | Path | None = None) -> "AgentConfig":
        """Build a config from ``WARDEN_*`` variables, loading `.env` first."""
        load_dotenv()
        hooks_file = os.getenv("WARDEN_HOOKS_FILE")
        timeout_raw = os.getenv("WARDEN_HOOK_TIMEOUT")
        try:
            hook_timeout = float(timeout_raw) if timeout_raw else DEFAULT_HOOK_TIMEOUT_S
        except ValueError:
            hook_timeout = DEFAULT_HOOK_TIMEOUT_S
        return cls(
            target_dir=Path(target_dir or Path.cwd()).resolve(),
            model_id=os.getenv("WARDEN_MODEL") or DEFAULT_MODEL_ID,
            max_iterations=max(1, parse_int(os.getenv("WARDEN_MAX_ITERATIONS"), MAX_ITERATIONS)),
            hook_timeout_s=hook_timeout if hook_timeout > 0 else DEFAULT_HOOK_TIMEOUT_S,
            headless=parse_bool(os.getenv("WARDEN_HEADLESS"), False),
            approval_mode=ApprovalMode.parse(os.getenv("WARDEN_APPROVAL_MODE")),
            hooks_file=Path(hooks_file) if hooks_file else None,
        )
