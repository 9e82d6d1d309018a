"""Utility functions for koko."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine
from typing import TypeVar

_T = TypeVar("_T")

# Check if eager_start is supported (Python 3.12+)
_SUPPORTS_EAGER_START = sys.version_info >= (3, 12)

_TIME_UNITS = {"h": 3600, "m": 60, "s": 1}


def create_task(
    coro: Coroutine[None, None, _T],
    *,
    loop: asyncio.AbstractEventLoop | None = None,
    name: str | None = None,
    eager_start: bool = True,
) -> asyncio.Task[_T]:
    """Create an asyncio task, starting it eagerly where supported.

    Eager tasks run up to their first suspension point right away, so a
    task waiting on a queue that already holds an item completes before
    the caller next yields.

    Args:
        coro: The coroutine to run as a task.
        loop: Optional event loop to use. If None, uses the running loop.
        name: Optional name for the task (for debugging).
        eager_start: Whether to start the task eagerly (Python 3.12+ only).

    Returns:
        The created asyncio Task.
    """
    if loop is None:
        loop = asyncio.get_running_loop()

    if _SUPPORTS_EAGER_START and eager_start:
        return asyncio.Task(coro, loop=loop, name=name, eager_start=True)

    return loop.create_task(coro, name=name)


def parse_time_as_seconds(text: str) -> int:
    """Parse a duration such as ``1h4m3s``, ``5m`` or ``30s``.

    Each group of digits must be followed by ``h``, ``m`` or ``s``.

    Raises:
        ValueError: The text does not follow that format.
    """
    total = 0
    digits = ""
    for char in text.strip():
        if "0" <= char <= "9":
            digits += char
        elif char in _TIME_UNITS:
            if not digits:
                raise ValueError(f"Unexpected '{char}'")
            total += int(digits) * _TIME_UNITS[char]
            digits = ""
        else:
            raise ValueError(f"Unexpected '{char}'")
    if digits or not text.strip():
        raise ValueError("Expected time specifier at the end")
    return total

