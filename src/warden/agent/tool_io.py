"""Helpers for bounded tool output and cancellable awaits."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable


class Cancelled(Exception):
    """Raised by :func:`await_with_cancel` when the cancel event wins the race."""


def truncate_text(value: str, limit: int) -> tuple[str, bool]:
    """Clamp oversized strings (accessibility trees, hook output) to ``limit`` chars."""

    if len(value) <= limit:
        return value, False
    suffix = "\n[truncated]"
    keep = max(0, limit - len(suffix))
    return f"{value[:keep]}{suffix}", True


async def await_with_cancel(aw: Awaitable[Any], cancel_event: asyncio.Event | None) -> Any:
    """Await ``aw`` while honoring cancellation from an asyncio.Event.

    Raises :class:`Cancelled` when the event is set first; the inner task is
    cancelled so its resources are released.
    """

    if cancel_event is None:
        return await aw
    if cancel_event.is_set():
        if asyncio.iscoroutine(aw):
            aw.close()
        raise Cancelled()

    wait_task = asyncio.create_task(cancel_event.wait())
    main_task = asyncio.ensure_future(aw)
    try:
        done, _pending = await asyncio.wait(
            {main_task, wait_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        wait_task.cancel()
    if main_task in done:
        return main_task.result()
    main_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await main_task
    raise Cancelled()
