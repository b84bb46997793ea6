"""Asyncio helpers for background tasks."""

import asyncio
import logging
from typing import Any, Awaitable, Optional, Set

logger = logging.getLogger(__name__)


def create_logged_task(
    coro: Awaitable[Any],
    *,
    name: Optional[str] = None,
    pending: Optional[Set["asyncio.Task[Any]"]] = None,
) -> "asyncio.Task[Any]":
    """
    Create a task whose exception is always retrieved and logged.

    Args:
        coro: Coroutine to run
        name: Task name used in log messages
        pending: Optional set tracking the task until it finishes
    """
    task = asyncio.get_running_loop().create_task(coro)
    if name:
        task.set_name(name)

    def _done(done_task: "asyncio.Task[Any]") -> None:
        if done_task.cancelled():
            return
        exc = done_task.exception()
        if exc is not None:
            logger.error(f"Unhandled exception in {done_task.get_name()}: {exc!r}")

    task.add_done_callback(_done)
    if pending is not None:
        pending.add(task)
        task.add_done_callback(pending.discard)
    return task


async def cancel_and_wait(task: Optional["asyncio.Task[Any]"]) -> None:
    """
    Cancel a task and wait until it has finished unwinding.

    Only the task's own cancellation is absorbed; if the caller is cancelled
    while waiting, that cancellation propagates.
    """
    if task is None or task.done():
        return
    task.cancel()
    if task is asyncio.current_task():
        return
    await asyncio.wait({task})


async def wait_finished(task: "asyncio.Task[Any]") -> None:
    """
    Wait for ``task`` to finish without cancelling it.

    If the caller is cancelled meanwhile, the task still runs to completion
    and the cancellation is re-raised once it is done. The task's own
    outcome is left to its done callbacks.
    """
    try:
        await asyncio.wait({task})
    except asyncio.CancelledError:
        await asyncio.wait({task})
        raise
