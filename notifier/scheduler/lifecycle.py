"""
ServiceLifecycle — the background asyncio task that drives the scheduler.

Design:
- One task per lifecycle; it calls scheduler.tick(now) every poll_interval
  seconds until stopped
- start() while running and stop() while stopped are no-ops
- start() and stop() run one at a time; a start() issued while a stop() is
  draining waits for it, then launches a fresh loop with its own wake event
- stop() never cancels a tick in progress: it wakes the sleeping loop and
  waits for the current pass to finish, so no record is left half-updated
- A tick that raises (e.g. the store is down) is logged and remembered in
  status(); the loop keeps polling
- No missed-tick replay is needed: rules stay due until they fire for their
  period, so the next poll after downtime picks them up
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from notifier.scheduler.engine import FireResult, NotificationScheduler

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 60  # seconds between due-checks


@dataclass
class ServiceStatus:
    """Snapshot of the poller for the admin surface."""

    running: bool
    poll_interval: float
    last_tick_at: datetime.datetime | None = None
    next_tick_at: datetime.datetime | None = None
    active_count: int | None = None
    last_error: str | None = None
    last_results: list[FireResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "poll_interval": self.poll_interval,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "next_tick_at": self.next_tick_at.isoformat() if self.next_tick_at else None,
            "active_count": self.active_count,
            "last_error": self.last_error,
            "last_results": [r.to_dict() for r in self.last_results],
        }


class ServiceLifecycle:
    """
    Start/stop/status control around the polling loop.

    Usage:
        lifecycle = ServiceLifecycle(scheduler)
        await lifecycle.start(poll_interval=60)
        ...
        await lifecycle.stop()
    """

    def __init__(
        self,
        scheduler: NotificationScheduler,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
    ) -> None:
        self._scheduler = scheduler
        self._poll_interval = poll_interval
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._wake: asyncio.Event | None = None
        self._control = asyncio.Lock()
        self._running = False
        self._last_tick_at: datetime.datetime | None = None
        self._next_tick_at: datetime.datetime | None = None
        self._last_error: str | None = None
        self._last_results: list[FireResult] = []

    @property
    def running(self) -> bool:
        return self._running

    async def start(self, poll_interval: float | None = None) -> ServiceStatus:
        """Start the background polling loop. Idempotent."""
        async with self._control:
            if self._running:
                logger.info("Notification service is already running")
            else:
                if poll_interval is not None:
                    if poll_interval <= 0:
                        raise ValueError("Poll interval must be positive")
                    self._poll_interval = poll_interval
                self._running = True
                self._wake = asyncio.Event()
                self._task = asyncio.create_task(self._loop(self._wake), name="notification-scheduler")
                logger.info(f"Notification service started (poll every {self._poll_interval}s)")
        return await self.status()

    async def stop(self) -> None:
        """Stop scheduling further ticks; waits for an in-flight tick to finish."""
        async with self._control:
            if not self._running:
                logger.info("Notification service is not running")
                return
            self._running = False
            wake, self._wake = self._wake, None
            task, self._task = self._task, None
            if wake is not None:
                wake.set()
            if task is not None and not task.done():
                await task
            self._next_tick_at = None
            logger.info("Notification service stopped")

    async def process_now(self) -> list[FireResult]:
        """Run one tick immediately, outside the timer. Store failures propagate."""
        return await self._run_tick(raise_errors=True)

    async def status(self) -> ServiceStatus:
        active_count = None
        try:
            active_count = await self._scheduler.store.count_notifications(active_only=True)
        except Exception as e:
            logger.debug(f"Could not count active notifications: {e}")
        return ServiceStatus(
            running=self._running,
            poll_interval=self._poll_interval,
            last_tick_at=self._last_tick_at,
            next_tick_at=self._next_tick_at,
            active_count=active_count,
            last_error=self._last_error,
            last_results=list(self._last_results),
        )

    # ── Internal loop ─────────────────────────────────────────────────────────

    async def _loop(self, wake: asyncio.Event) -> None:
        while not wake.is_set():
            await self._run_tick(raise_errors=False)
            if wake.is_set():
                break
            self._next_tick_at = self._clock() + datetime.timedelta(seconds=self._poll_interval)
            try:
                await asyncio.wait_for(wake.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass

    async def _run_tick(self, raise_errors: bool) -> list[FireResult]:
        now = self._clock()
        try:
            results = await self._scheduler.tick(now)
        except Exception as e:
            self._last_error = f"{type(e).__name__}: {e}"
            if raise_errors:
                raise
            logger.warning(f"Notification tick error (non-fatal): {e}")
            return []
        self._last_tick_at = now
        self._last_error = None
        self._last_results = results
        return results
