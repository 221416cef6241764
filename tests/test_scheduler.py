import asyncio

import pytest

from pipelog.runtime.scheduler import PeriodicTask


@pytest.mark.asyncio
async def test_overlapping_run_is_skipped():
    release = asyncio.Event()
    calls = 0

    async def slow():
        nonlocal calls
        calls += 1
        await release.wait()

    task = PeriodicTask("slow", interval=1.0, func=slow)
    first = asyncio.create_task(task.run_once())
    await asyncio.sleep(0)

    assert await task.run_once() is False
    assert task.skipped == 1

    release.set()
    assert await first is True
    assert calls == 1
    assert task.runs == 1


@pytest.mark.asyncio
async def test_failure_is_counted_and_loop_keeps_ticking():
    attempts = 0

    async def flaky():
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("transient")

    task = PeriodicTask("flaky", interval=0.01, func=flaky)
    task.start()
    try:
        for _ in range(200):
            if task.runs >= 2:
                break
            await asyncio.sleep(0.01)
    finally:
        await task.stop()

    assert task.failures == 1
    assert task.runs >= 2


@pytest.mark.asyncio
async def test_stop_condition_ends_loop():
    done = False
    runs = 0

    async def work():
        nonlocal done, runs
        runs += 1
        if runs == 3:
            done = True

    async def is_done():
        return done

    task = PeriodicTask("bounded", interval=0.01, func=work, stop_when=is_done)
    loop_task = task.start()
    await asyncio.wait_for(loop_task, timeout=5)

    assert not task.running
    assert runs == 3


@pytest.mark.asyncio
async def test_stop_waits_for_inflight_run():
    started = asyncio.Event()
    finished = False

    async def work():
        nonlocal finished
        started.set()
        await asyncio.sleep(0.05)
        finished = True

    task = PeriodicTask("graceful", interval=10, func=work)
    task.start()
    await asyncio.wait_for(started.wait(), timeout=5)
    await task.stop()

    assert finished
    assert not task.running


def test_interval_must_be_positive():
    async def noop():
        pass

    with pytest.raises(ValueError):
        PeriodicTask("bad", interval=0, func=noop)
