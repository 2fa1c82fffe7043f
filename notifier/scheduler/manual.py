"""
ManualTrigger — "send now" for a single notification.

Skips the due check entirely and runs the scheduler's own fire sequence,
so a one-shot notification sent by hand is deactivated exactly as if the
poller had fired it.
"""

from __future__ import annotations

import datetime
import logging
from typing import Callable

from notifier.core.errors import NotFoundError
from notifier.scheduler.engine import FireResult, NotificationScheduler
from notifier.scheduler.record import RecordStatus

logger = logging.getLogger(__name__)


class ManualTrigger:
    """
    Forces immediate delivery of one notification.

    Usage:
        trigger = ManualTrigger(scheduler)
        result = await trigger.fire_now("a1b2c3d4")
    """

    def __init__(
        self,
        scheduler: NotificationScheduler,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
    ) -> None:
        self._scheduler = scheduler
        self._clock = clock

    async def fire_now(self, record_id: str, now: datetime.datetime | None = None) -> FireResult:
        """
        Fire the record regardless of its rule.

        Raises NotFoundError if the record does not exist or is archived/deleted.
        """
        # Read inside the lock so a concurrent tick cannot fire the same record
        async with self._scheduler.lock:
            record = await self._scheduler.store.get(record_id)
            if record.status is not RecordStatus.ACTIVE:
                raise NotFoundError(
                    f"Notification {record_id!r} is {record.status.value}, not active",
                    record_id=record_id,
                )
            logger.info(f"Manual send requested for {record.name!r} (id={record_id})")
            return await self._scheduler.fire(record, now or self._clock())
