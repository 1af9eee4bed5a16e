"""
Fire-and-forget tasks whose failures still reach the log.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from utils.logging import get_logger

logger = get_logger(__name__)


def spawn(coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
    """Schedule ``coro`` on the running loop and log it if it dies with an exception."""
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(_report_failure)
    return task


def _report_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed", task.get_name(), exc_info=exc)
