"""Rich console output for the warden CLI."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from warden.agent.loop import LoopOutcome, LoopStatus

console = Console(highlight=False)

_STATUS_STYLES = {
    LoopStatus.COMPLETED: "green",
    LoopStatus.SAFETY_HALT: "yellow",
    LoopStatus.EXHAUSTED: "yellow",
    LoopStatus.STOPPED: "yellow",
    LoopStatus.CANCELLED: "yellow",
}


def print_notice(message: str) -> None:
    console.print(Text(message, style="magenta"))


def print_agent_text(message: str) -> None:
    console.print(Text(message))


def print_outcome(outcome: LoopOutcome) -> None:
    style = _STATUS_STYLES.get(outcome.status, "red")
    title = f"{outcome.status.value} after {outcome.iterations} step(s)"
    console.print(Panel(Text(outcome.text or "(no output)"), title=title, border_style=style))


def print_plan(plan_path: str | Path) -> None:
    path = Path(plan_path)
    try:
        body = path.read_text(encoding="utf-8")
    except OSError as exc:
        console.print(Text(f"Could not read plan {path}: {exc}", style="red"))
        return
    console.print(Panel(Markdown(body), title=str(path), border_style="cyan"))


def print_result(display: str, *, error: bool = False) -> None:
    console.print(Text(display, style="red" if error else "green"))
