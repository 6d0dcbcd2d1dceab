from __future__ import annotations

import asyncio
import logging

import pytest

from udpserve.dispatch import HandlerGroup

from conftest import wait_until


async def test_spawn_does_not_wait_for_task() -> None:
    group = HandlerGroup()
    release = asyncio.Event()
    done: list[int] = []

    async def work(n: int) -> None:
        await release.wait()
        done.append(n)

    await group.spawn(work, 1)
    await group.spawn(work, 2)
    assert len(group) == 2
    assert done == []

    release.set()
    assert await group.drain(timeout=1.0)
    assert sorted(done) == [1, 2]
    assert len(group) == 0


async def test_tasks_start_in_spawn_order() -> None:
    group = HandlerGroup()
    started: list[int] = []

    async def work(n: int) -> None:
        started.append(n)

    for n in range(10):
        await group.spawn(work, n)
    await group.drain(timeout=1.0)
    assert started == list(range(10))


async def test_max_concurrency_blocks_spawn() -> None:
    group = HandlerGroup(max_concurrency=2)
    release = asyncio.Event()
    running: list[int] = []

    async def work(n: int) -> None:
        running.append(n)
        await release.wait()

    await group.spawn(work, 1)
    await group.spawn(work, 2)
    third = asyncio.create_task(group.spawn(work, 3))
    await asyncio.sleep(0.02)
    assert not third.done()
    assert running == [1, 2]

    release.set()
    await asyncio.wait_for(third, 1.0)
    assert await group.drain(timeout=1.0)
    assert running == [1, 2, 3]


async def test_failing_task_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="udpserve.dispatch")
    group = HandlerGroup()

    async def boom() -> None:
        raise RuntimeError("handler exploded")

    await group.spawn(boom)
    assert await group.drain(timeout=1.0)
    assert any("failed" in r.getMessage() for r in caplog.records)
    assert any(r.exc_info and "handler exploded" in str(r.exc_info[1]) for r in caplog.records)


async def test_failure_releases_slot() -> None:
    group = HandlerGroup(max_concurrency=1)

    async def boom() -> None:
        raise RuntimeError("nope")

    await group.spawn(boom)
    await asyncio.wait_for(group.spawn(boom), 1.0)
    assert await group.drain(timeout=1.0)


async def test_drain_times_out() -> None:
    group = HandlerGroup()
    never = asyncio.Event()
    await group.spawn(never.wait)

    assert not await group.drain(timeout=0.02)
    assert len(group) == 1

    await group.cancel_all()
    assert len(group) == 0


async def test_drain_with_zero_timeout_reports_state() -> None:
    group = HandlerGroup()
    assert await group.drain(timeout=0)

    never = asyncio.Event()
    await group.spawn(never.wait)
    assert not await group.drain(timeout=0)
    await group.cancel_all()


async def test_cancel_all_cancels_running_tasks() -> None:
    group = HandlerGroup(max_concurrency=1)
    cancelled = asyncio.Event()

    async def work() -> None:
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.set()
            raise

    await group.spawn(work)
    await asyncio.sleep(0)
    await group.cancel_all()
    assert cancelled.is_set()
    await wait_until(lambda: len(group) == 0)
    # slot released after cancellation
    await asyncio.wait_for(group.spawn(asyncio.sleep, 0), 1.0)


async def test_spawn_on_closed_group_is_refused() -> None:
    group = HandlerGroup()
    ran: list[int] = []

    async def work(n: int) -> None:
        ran.append(n)

    group.close()
    assert group.closed
    assert await group.spawn(work, 1) is None
    await asyncio.sleep(0.01)
    assert ran == []
    assert len(group) == 0


async def test_close_while_waiting_for_slot_drops_work() -> None:
    group = HandlerGroup(max_concurrency=1)
    release = asyncio.Event()
    started: list[int] = []

    async def work(n: int) -> None:
        started.append(n)
        await release.wait()

    await group.spawn(work, 1)
    waiting = asyncio.create_task(group.spawn(work, 2))
    await asyncio.sleep(0.02)
    assert not waiting.done()

    group.close()
    release.set()
    assert await asyncio.wait_for(waiting, 1.0) is None
    assert await group.drain(timeout=1.0)
    assert started == [1]


def test_rejects_invalid_ceiling() -> None:
    with pytest.raises(ValueError):
        HandlerGroup(max_concurrency=0)
