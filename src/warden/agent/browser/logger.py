"""Append-only JSONL record of browser agent turns."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from warden.agent.content import ConversationTurn
from warden.log_utils import log_event

logger = logging.getLogger(__name__)


def _redact_inline_data(value: Any) -> Any:
    if isinstance(value, dict):
        if "inlineData" in value and isinstance(value["inlineData"], dict):
            inline = value["inlineData"]
            return {"inlineData": {"mimeType": inline.get("mimeType"), "bytes": len(inline.get("data", "")) * 3 // 4}}
        return {key: _redact_inline_data(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_redact_inline_data(item) for item in value]
    return value


class BrowserTurnLogger:
    """Writes one line per model turn; screenshots are replaced by their size."""

    def __init__(self, directory: str | Path, file_name: str = "browser-agent.jsonl") -> None:
        self.path = Path(directory) / file_name

    def log_turn(self, contents: Sequence[ConversationTurn], response: ConversationTurn) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_turns": len(contents),
            "last_request": _redact_inline_data(contents[-1].to_wire()) if contents else None,
            "response": _redact_inline_data(response.to_wire()),
            "summary": self.summarize(response),
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, ensure_ascii=True, default=str) + "\n")
        except OSError as exc:
            log_event(logger, "browser.turn_log_failed", level=logging.DEBUG, path=str(self.path), error=str(exc))

    @staticmethod
    def summarize(response: ConversationTurn) -> str:
        calls = [call.name for call in response.function_calls]
        if calls:
            return f"calls: {', '.join(calls)}"
        return response.text[:200]
