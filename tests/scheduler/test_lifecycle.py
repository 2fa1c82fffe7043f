"""Tests for notifier/scheduler/lifecycle.py"""
from __future__ import annotations

import asyncio
import datetime

import pytest

from conftest import at
from notifier.core.errors import StoreError
from notifier.scheduler.engine import FireOutcome, FireResult
from notifier.scheduler.lifecycle import ServiceLifecycle
from notifier.scheduler.record import ChatTarget, NotificationRecord
from notifier.scheduler.rule import RecurrenceKind, RecurrenceRule
from notifier.store.memory import InMemoryNotificationStore


class FakeScheduler:
    """Counts ticks; raises StoreError for the first `fail_first` of them."""

    def __init__(self, fail_first: int = 0) -> None:
        self.store = InMemoryNotificationStore()
        self.ticks: list[datetime.datetime] = []
        self._fail_first = fail_first

    async def tick(self, now):
        self.ticks.append(now)
        if len(self.ticks) <= self._fail_first:
            raise StoreError("database is locked")
        return []


class GatedScheduler(FakeScheduler):
    """Blocks inside tick() until `release` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.finished = 0

    async def tick(self, now):
        self.ticks.append(now)
        self.entered.set()
        await self.release.wait()
        self.finished += 1
        return [FireResult("n1", "standup", FireOutcome.FIRED, fired_at=now)]


async def _wait_for(condition, attempts: int = 200) -> None:
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
class TestStartStop:
    async def test_start_runs_first_tick_immediately(self):
        scheduler = FakeScheduler()
        lifecycle = ServiceLifecycle(scheduler, poll_interval=3600)

        status = await lifecycle.start()
        assert status.running
        await _wait_for(lambda: len(scheduler.ticks) == 1)

        await lifecycle.stop()
        assert not lifecycle.running
        status = await lifecycle.status()
        assert not status.running
        assert status.next_tick_at is None
        assert status.last_tick_at is not None

    async def test_start_is_idempotent(self):
        scheduler = FakeScheduler()
        lifecycle = ServiceLifecycle(scheduler, poll_interval=3600)

        await lifecycle.start()
        await lifecycle.start()
        await _wait_for(lambda: len(scheduler.ticks) >= 1)
        await asyncio.sleep(0.05)

        assert len(scheduler.ticks) == 1
        await lifecycle.stop()

    async def test_stop_when_stopped_is_noop(self):
        lifecycle = ServiceLifecycle(FakeScheduler())
        await lifecycle.stop()
        await lifecycle.stop()
        assert not lifecycle.running

    async def test_stop_does_not_wait_for_poll_interval(self):
        lifecycle = ServiceLifecycle(FakeScheduler(), poll_interval=3600)
        await lifecycle.start()
        await asyncio.wait_for(lifecycle.stop(), timeout=2)

    async def test_restart_after_stop(self):
        scheduler = FakeScheduler()
        lifecycle = ServiceLifecycle(scheduler, poll_interval=3600)

        await lifecycle.start()
        await _wait_for(lambda: len(scheduler.ticks) == 1)
        await lifecycle.stop()
        await lifecycle.start(poll_interval=1800)
        await _wait_for(lambda: len(scheduler.ticks) == 2)

        assert (await lifecycle.status()).poll_interval == 1800
        await lifecycle.stop()

    async def test_rejects_non_positive_interval(self):
        lifecycle = ServiceLifecycle(FakeScheduler())
        with pytest.raises(ValueError):
            await lifecycle.start(poll_interval=0)
        assert not lifecycle.running


@pytest.mark.asyncio
class TestLoop:
    async def test_loop_survives_tick_errors(self):
        scheduler = FakeScheduler(fail_first=2)
        lifecycle = ServiceLifecycle(scheduler, poll_interval=0.01)

        await lifecycle.start()
        await _wait_for(lambda: len(scheduler.ticks) >= 3)
        assert lifecycle.running

        await lifecycle.stop()
        assert (await lifecycle.status()).last_error is None

    async def test_error_visible_in_status(self):
        scheduler = FakeScheduler(fail_first=1)
        lifecycle = ServiceLifecycle(scheduler, poll_interval=3600)

        await lifecycle.start()
        await _wait_for(lambda: len(scheduler.ticks) == 1)
        await asyncio.sleep(0.01)

        status = await lifecycle.status()
        assert status.running
        assert "database is locked" in status.last_error
        assert status.last_tick_at is None
        await lifecycle.stop()

    async def test_uses_clock(self):
        scheduler = FakeScheduler()
        lifecycle = ServiceLifecycle(scheduler, poll_interval=60, clock=lambda: at(2025, 3, 10, 9))

        await lifecycle.start()
        await _wait_for(lambda: len(scheduler.ticks) == 1)
        await asyncio.sleep(0.01)

        assert scheduler.ticks[0] == at(2025, 3, 10, 9)
        status = await lifecycle.status()
        assert status.next_tick_at == at(2025, 3, 10, 9, 1)
        await lifecycle.stop()


@pytest.mark.asyncio
class TestProcessNow:
    async def test_process_now_fires_due_records(self, store, channel, scheduler):
        await store.save_template("tpl", "Hi")
        await store.save_chat(ChatTarget(name="Team", chat_id="-100"))
        rule = RecurrenceRule(kind=RecurrenceKind.DAILY, send_time=datetime.time(9, 0))
        await store.save(NotificationRecord(name="standup", template_ref="tpl", rule=rule))
        lifecycle = ServiceLifecycle(scheduler, clock=lambda: at(2025, 3, 10, 9, 30))

        results = await lifecycle.process_now()

        assert len(results) == 1
        assert channel.sent == [("-100", "Hi")]
        status = await lifecycle.status()
        assert not status.running
        assert status.last_tick_at == at(2025, 3, 10, 9, 30)
        assert status.last_results == results
        assert status.active_count == 1

    async def test_process_now_propagates_store_errors(self):
        lifecycle = ServiceLifecycle(FakeScheduler(fail_first=1))

        with pytest.raises(StoreError):
            await lifecycle.process_now()
        assert "database is locked" in (await lifecycle.status()).last_error

    async def test_status_to_dict(self):
        lifecycle = ServiceLifecycle(FakeScheduler(), poll_interval=30)
        d = (await lifecycle.status()).to_dict()
        assert d["running"] is False
        assert d["poll_interval"] == 30
        assert d["active_count"] == 0
        assert d["last_results"] == []


@pytest.mark.asyncio
class TestShutdown:
    async def test_stop_lets_in_flight_tick_finish(self):
        scheduler = GatedScheduler()
        lifecycle = ServiceLifecycle(scheduler, poll_interval=3600, clock=lambda: at(2025, 3, 10, 9))
        await lifecycle.start()
        await asyncio.wait_for(scheduler.entered.wait(), timeout=2)

        stopping = asyncio.create_task(lifecycle.stop())
        await asyncio.sleep(0.05)
        assert not stopping.done()

        scheduler.release.set()
        await asyncio.wait_for(stopping, timeout=2)

        assert scheduler.finished == 1
        status = await lifecycle.status()
        assert not status.running
        assert status.last_tick_at == at(2025, 3, 10, 9)
        assert [r.record_id for r in status.last_results] == ["n1"]

    async def test_start_while_stopping_leaves_one_loop(self):
        scheduler = FakeScheduler()
        lifecycle = ServiceLifecycle(scheduler, poll_interval=0.05)
        await lifecycle.start()
        await _wait_for(lambda: len(scheduler.ticks) >= 1)

        stopping = asyncio.create_task(lifecycle.stop())
        await asyncio.sleep(0)
        await asyncio.wait_for(lifecycle.start(), timeout=2)
        await asyncio.wait_for(stopping, timeout=2)

        loops = [
            t for t in asyncio.all_tasks()
            if t.get_name() == "notification-scheduler" and not t.done()
        ]
        assert len(loops) == 1
        assert lifecycle.running

        await asyncio.wait_for(lifecycle.stop(), timeout=2)
        assert not lifecycle.running
