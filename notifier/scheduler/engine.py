"""
NotificationScheduler — one polling pass over the active notifications.

Design:
- tick(now) loads every active record in a single batch, evaluates each
  rule and fires the due ones
- Firing = resolve recipient chats → render per chat → send per chat →
  write last_fired_at / next_send_at back (and deactivate one-shot rules)
- Failures stay local to their record: a broken rule, a failed send or a
  failed write shows up in that record's FireResult, never in the caller
- Only a failure to load the candidate list aborts the tick (StoreError is
  raised and nothing is marked fired, so the next poll retries)
- Ticks and manual fires share one asyncio.Lock, so the read-modify-write
  of a record never overlaps another pass over the same record

The timer lives in ServiceLifecycle; this class has no loop of its own.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from notifier.core.errors import DeliveryError, RenderError
from notifier.notifications.base import DeliveryChannel
from notifier.notifications.templates import RecipientContext, TemplateRenderer
from notifier.scheduler.due import DueDecision, evaluate
from notifier.scheduler.record import ChatTarget, NotificationRecord
from notifier.scheduler.rule import INTERVAL_KINDS
from notifier.store.base import NotificationStore

logger = logging.getLogger(__name__)

Evaluator = Callable[..., DueDecision]


class FireOutcome(str, Enum):
    """What happened to one record during a tick or manual fire."""

    FIRED = "fired"        # every recipient delivered (or there were none)
    PARTIAL = "partial"    # some recipients failed
    FAILED = "failed"      # delivery or state update failed for everything
    INVALID = "invalid"    # rule could not be evaluated, record untouched
    EXPIRED = "expired"    # rule can never fire again, record untouched


@dataclass
class FireResult:
    """Per-record outcome, collected for logs and the status endpoint."""

    record_id: str
    record_name: str
    outcome: FireOutcome
    fired_at: datetime.datetime | None = None
    delivered: int = 0
    failed: int = 0
    skipped: int = 0          # chats with notifications switched off
    deactivated: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome is FireOutcome.FIRED

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "record_name": self.record_name,
            "outcome": self.outcome.value,
            "fired_at": self.fired_at.isoformat() if self.fired_at else None,
            "delivered": self.delivered,
            "failed": self.failed,
            "skipped": self.skipped,
            "deactivated": self.deactivated,
            "errors": list(self.errors),
        }


class NotificationScheduler:
    """
    Due-check and fire logic for notification records.

    Usage:
        scheduler = NotificationScheduler(store, renderer, channel)
        results = await scheduler.tick(datetime.now())
    """

    def __init__(
        self,
        store: NotificationStore,
        renderer: TemplateRenderer,
        channel: DeliveryChannel,
        evaluator: Evaluator = evaluate,
    ) -> None:
        self._store = store
        self._renderer = renderer
        self._channel = channel
        self._evaluate = evaluator
        self._lock = asyncio.Lock()
        self._reported_expired: set[str] = set()

    @property
    def store(self) -> NotificationStore:
        return self._store

    @property
    def lock(self) -> asyncio.Lock:
        """Held for the whole of a tick or a manual fire."""
        return self._lock

    async def tick(self, now: datetime.datetime) -> list[FireResult]:
        """
        Evaluate every active record at `now` and fire the due ones.

        Returns one FireResult per record that was fired, invalid or expired.
        Raises StoreError only when the candidate list cannot be loaded.
        """
        async with self._lock:
            records = await self._store.list_active()
            logger.debug(f"Tick at {now:%Y-%m-%d %H:%M:%S}: {len(records)} active notifications")

            results: list[FireResult] = []
            for record in records:
                result = await self._process(record, now)
                if result is not None:
                    results.append(result)

            fired = sum(1 for r in results if r.fired_at is not None)
            if fired:
                logger.info(f"Tick fired {fired}/{len(records)} notifications")
            return results

    async def fire(self, record: NotificationRecord, now: datetime.datetime) -> FireResult:
        """
        Render, deliver and record one firing of `record`, without a due check.

        Partial delivery still counts as fired: last_fired_at is written once
        every recipient has been attempted, so a retry never re-sends to the
        chats that already got the message.

        Callers outside tick() must hold `lock`.
        """
        result = FireResult(record_id=record.id, record_name=record.name, outcome=FireOutcome.FIRED)
        logger.info(f"Firing notification {record.name!r} (id={record.id}, {record.rule.description})")

        chats = await self._resolve_recipients(record, result)
        if chats is None:
            result.outcome = FireOutcome.FAILED
            return result

        for chat in chats:
            if not chat.notifications_enabled:
                result.skipped += 1
                logger.debug(f"Notifications disabled for chat {chat.name!r}, skipping")
                continue
            try:
                await self._deliver(record, chat, now)
                result.delivered += 1
            except (DeliveryError, RenderError) as e:
                result.failed += 1
                result.errors.append(e.message)
                logger.warning(f"Notification {record.name!r}: {e.message}")

        if not chats:
            logger.warning(f"Notification {record.name!r} has no active recipient chats")

        await self._record_fire(record, now, result)

        if result.outcome is FireOutcome.FIRED and result.failed:
            result.outcome = FireOutcome.PARTIAL if result.delivered else FireOutcome.FAILED
        return result

    # ── Internal ──────────────────────────────────────────────────────────────

    async def _process(self, record: NotificationRecord, now: datetime.datetime) -> FireResult | None:
        try:
            decision = self._evaluate(record.rule, record.last_fired_at, now)
        except Exception as e:
            logger.warning(f"Notification {record.name!r} (id={record.id}) could not be evaluated: {e}")
            return FireResult(record.id, record.name, FireOutcome.INVALID, errors=[str(e)])

        if decision.error:
            logger.warning(f"Notification {record.name!r} (id={record.id}) has an invalid rule: {decision.error}")
            return FireResult(record.id, record.name, FireOutcome.INVALID, errors=[decision.error])

        if decision.expired:
            if record.id not in self._reported_expired:
                self._reported_expired.add(record.id)
                logger.warning(
                    f"Notification {record.name!r} (id={record.id}) has expired "
                    f"({record.rule.description}) and will not fire"
                )
            return FireResult(record.id, record.name, FireOutcome.EXPIRED)

        if not decision.is_due:
            return None

        try:
            return await self.fire(record, now)
        except Exception as e:
            # fire() handles its own collaborators; this guards the loop itself
            logger.error(f"Unexpected error firing {record.name!r} (id={record.id}): {e}", exc_info=True)
            return FireResult(record.id, record.name, FireOutcome.FAILED, errors=[str(e)])

    async def _resolve_recipients(
        self, record: NotificationRecord, result: FireResult
    ) -> list[ChatTarget] | None:
        ids = None if record.targets_all else list(record.recipients)
        try:
            return await self._store.list_chats(ids)
        except Exception as e:
            result.errors.append(f"Could not resolve recipients: {e}")
            logger.warning(f"Notification {record.name!r}: could not resolve recipients: {e}")
            return None

    async def _deliver(self, record: NotificationRecord, chat: ChatTarget, now: datetime.datetime) -> None:
        context = RecipientContext(record=record, chat=chat, now=now)
        try:
            text = await self._renderer.render(record.template_ref, context)
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(
                f"Rendering {record.template_ref!r} for {chat.name!r} failed: {e}",
                template_ref=record.template_ref,
            ) from e
        try:
            ok = await self._channel.send(chat, text)
        except Exception as e:
            raise DeliveryError(
                f"Delivery to {chat.name!r} failed: {e}", channel=self._channel.name, target=chat.chat_id
            ) from e
        if not ok:
            raise DeliveryError(
                f"Delivery to {chat.name!r} failed", channel=self._channel.name, target=chat.chat_id
            )

    async def _record_fire(
        self, record: NotificationRecord, now: datetime.datetime, result: FireResult
    ) -> None:
        rule = record.rule
        fields: dict[str, Any] = {"last_fired_at": now}

        if not rule.repeats:
            fields["is_active"] = False
            fields["next_send_at"] = None
        else:
            if rule.kind in INTERVAL_KINDS and rule.anchor_date is None:
                # First fire pins the cycle origin
                rule = rule.with_anchor(now.date())
                fields["rule"] = rule
            fields["next_send_at"] = evaluate(rule, now, now).next_anchor

        try:
            await self._store.update(record.id, **fields)
        except Exception as e:
            result.outcome = FireOutcome.FAILED
            result.errors.append(f"Could not record fire: {e}")
            logger.error(f"Notification {record.name!r}: failed to record fire: {e}")
            return

        result.fired_at = now
        result.deactivated = fields.get("is_active") is False
        if result.deactivated:
            logger.info(f"One-shot notification {record.name!r} deactivated after firing")
        else:
            logger.debug(f"Notification {record.name!r} next send at {fields['next_send_at']}")
