import asyncio

import pytest

from skool.scheduler import normalize_concurrency, run_concurrent


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, 8),
        (0, 8),
        (-3, 8),
        ("abc", 8),
        (float("nan"), 8),
        (True, 8),
        (1, 1),
        (4.9, 4),
        ("6", 6),
        (16, 16),
        (100, 16),
    ],
)
def test_normalize_concurrency(value, expected) -> None:
    assert normalize_concurrency(value) == expected


async def test_run_concurrent_never_exceeds_bound() -> None:
    in_flight = 0
    peak = 0
    done = []

    def make(i):
        async def task():
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            done.append(i)

        return task

    await run_concurrent([make(i) for i in range(20)], 3)

    assert peak == 3
    assert sorted(done) == list(range(20))


async def test_single_worker_runs_in_order() -> None:
    order = []

    def make(i):
        async def task():
            await asyncio.sleep(0)
            order.append(i)

        return task

    await run_concurrent([make(i) for i in range(5)], 1)

    assert order == [0, 1, 2, 3, 4]


async def test_failures_are_isolated_and_reported() -> None:
    finished = []
    errors = []

    def make(i):
        async def task():
            if i == 2:
                raise RuntimeError("boom")
            finished.append(i)

        return task

    await run_concurrent([make(i) for i in range(5)], 2, on_error=lambda i, e: errors.append((i, str(e))))

    assert sorted(finished) == [0, 1, 3, 4]
    assert errors == [(2, "boom")]


async def test_failure_without_handler_does_not_propagate() -> None:
    async def bad():
        raise ValueError("nope")

    ran = []

    async def good():
        ran.append(True)

    await run_concurrent([bad, good], 1)

    assert ran == [True]


async def test_empty_task_list() -> None:
    await run_concurrent([], 4)
