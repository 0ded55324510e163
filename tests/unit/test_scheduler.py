"""Unit tests for the asyncio delay scheduler."""

from __future__ import annotations

import asyncio
import time

import pytest

from reporting_orchestrator.orchestrator.workflow.scheduler import AsyncioDelayScheduler


@pytest.mark.asyncio
async def test_callback_runs_after_delay_without_blocking() -> None:
    scheduler = AsyncioDelayScheduler()
    fired: list[float] = []

    async def resume() -> None:
        fired.append(time.monotonic())

    started = time.monotonic()
    scheduler.schedule(20, resume)

    assert fired == []
    assert scheduler.pending == 1

    await scheduler.wait_idle(poll_seconds=0.005)

    assert len(fired) == 1
    assert fired[0] - started >= 0.015
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_wait_idle_follows_chained_resumptions() -> None:
    scheduler = AsyncioDelayScheduler()
    calls: list[str] = []

    async def second() -> None:
        calls.append("second")

    async def first() -> None:
        calls.append("first")
        scheduler.schedule(5, second)

    scheduler.schedule(5, first)
    await scheduler.wait_idle(poll_seconds=0.001)

    assert calls == ["first", "second"]


@pytest.mark.asyncio
async def test_failed_resumption_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    scheduler = AsyncioDelayScheduler()

    async def broken() -> None:
        raise RuntimeError("resume failed")

    scheduler.schedule(1, broken)
    await scheduler.wait_idle(poll_seconds=0.001)
    # Let the task's done callback run.
    await asyncio.sleep(0)

    assert any("resumption failed" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_cancel_all_drops_pending_timers() -> None:
    scheduler = AsyncioDelayScheduler()
    fired: list[bool] = []

    async def resume() -> None:
        fired.append(True)

    scheduler.schedule(10, resume)
    scheduler.cancel_all()
    await asyncio.sleep(0.03)

    assert fired == []
    assert scheduler.pending == 0
