import asyncio
import math
from typing import Awaitable, Callable

from .constants import DEFAULT_CONCURRENCY, MAX_CONCURRENCY
from .logger import Logger

Task = Callable[[], Awaitable[None]]
ErrorHandler = Callable[[int, BaseException], None]


def normalize_concurrency(value) -> int:
    """
    Clamp a user supplied bound to [1, MAX_CONCURRENCY].

    Missing, non-numeric or non-positive values fall back to the default.
    """
    if value is None or isinstance(value, bool):
        return DEFAULT_CONCURRENCY
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONCURRENCY
    if not math.isfinite(number):
        return DEFAULT_CONCURRENCY
    floored = math.floor(number)
    if floored <= 0:
        return DEFAULT_CONCURRENCY
    return min(MAX_CONCURRENCY, floored)


async def _run_one(index: int, task: Task, on_error: ErrorHandler | None) -> None:
    try:
        await task()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        if on_error is None:
            Logger.error(f"Task {index + 1} failed: {e}", exception=e)
            return
        try:
            on_error(index, e)
        except Exception as handler_error:
            Logger.error(f"Error handler for task {index + 1} failed: {handler_error}", exception=handler_error)


async def run_concurrent(tasks: list[Task], concurrency: int, on_error: ErrorHandler | None = None) -> None:
    """
    Run `tasks` with at most `concurrency` of them in flight.

    Workers pull the next unclaimed task from a shared cursor until none
    remain. A failing task is reported through `on_error` and never stops
    the others; this returns once every task has finished.
    """
    if not tasks:
        return

    if concurrency <= 1 or len(tasks) == 1:
        for index, task in enumerate(tasks):
            await _run_one(index, task, on_error)
        return

    cursor = 0

    async def worker():
        nonlocal cursor
        while True:
            current = cursor
            cursor += 1
            if current >= len(tasks):
                return
            await _run_one(current, tasks[current], on_error)

    worker_count = min(concurrency, len(tasks))
    await asyncio.gather(*(worker() for _ in range(worker_count)))
