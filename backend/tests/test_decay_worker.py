"""Tests for the background decay worker."""

import asyncio

import pytest

from friendrec.core.decay_worker import DecayWorker
from friendrec.core.exceptions import StoreUnavailable


async def test_run_once_decays_scores(interactions, redis):
    await redis.zadd("interactions:1", {"2": 1.0})

    worker = DecayWorker(interactions, interval_seconds=60)
    assert await worker.run_once() == 1
    assert float(await redis.zscore("interactions:1", "2")) == pytest.approx(0.95)


async def test_failed_cycle_is_contained(interactions, monkeypatch):
    async def unavailable():
        raise StoreUnavailable("interaction", "apply_decay")

    monkeypatch.setattr(interactions, "apply_decay", unavailable)

    worker = DecayWorker(interactions, interval_seconds=60)
    assert await worker.run_once() is None


async def test_loop_keeps_running_after_failure(interactions, monkeypatch):
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise StoreUnavailable("interaction", "apply_decay")
        return 0

    monkeypatch.setattr(interactions, "apply_decay", flaky)

    worker = DecayWorker(interactions, interval_seconds=0.01)
    worker.start()
    assert worker.running
    for _ in range(100):
        if len(calls) >= 3:
            break
        await asyncio.sleep(0.01)
    await worker.stop()

    assert len(calls) >= 3
    assert not worker.running


async def test_stop_without_start(interactions):
    worker = DecayWorker(interactions, interval_seconds=60)
    await worker.stop()
    assert not worker.running
