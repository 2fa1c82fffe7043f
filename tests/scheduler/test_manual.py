"""Tests for notifier/scheduler/manual.py"""
from __future__ import annotations

import datetime

import pytest

from conftest import FakeChannel, at
from notifier.core.errors import NotFoundError
from notifier.scheduler.engine import FireOutcome, NotificationScheduler
from notifier.scheduler.manual import ManualTrigger
from notifier.scheduler.record import ChatTarget, NotificationRecord, RecordStatus
from notifier.scheduler.rule import RecurrenceKind, RecurrenceRule


async def _seed(store, record: NotificationRecord) -> None:
    await store.save_template("tpl", "Reminder for %chat%")
    await store.save_chat(ChatTarget(name="Team", chat_id="-100", id="c1"))
    await store.save(record)


@pytest.fixture
def trigger(scheduler):
    return ManualTrigger(scheduler, clock=lambda: at(2025, 3, 10, 14, 0))


@pytest.mark.asyncio
class TestManualTrigger:
    async def test_fires_once_record_and_deactivates(self, store, channel, trigger):
        # Scheduled for next month; a manual send ignores that
        once = RecurrenceRule(kind=RecurrenceKind.ONCE, anchor_date=datetime.date(2025, 4, 1))
        await _seed(store, NotificationRecord(name="launch", template_ref="tpl", rule=once, id="n1"))

        result = await trigger.fire_now("n1")

        assert result.outcome is FireOutcome.FIRED
        assert result.deactivated
        assert channel.sent == [("-100", "Reminder for Team")]
        record = await store.get("n1")
        assert record.is_active is False
        assert record.last_fired_at == at(2025, 3, 10, 14, 0)

    async def test_fires_record_that_is_not_due(self, store, channel, trigger):
        rule = RecurrenceRule(kind=RecurrenceKind.MONTHDAY, month_day=1)
        await _seed(store, NotificationRecord(name="digest", template_ref="tpl", rule=rule, id="n2"))

        result = await trigger.fire_now("n2")

        assert result.outcome is FireOutcome.FIRED
        assert len(channel.sent) == 1
        record = await store.get("n2")
        assert record.is_active is True
        assert record.next_send_at == at(2025, 4, 1)

    async def test_explicit_now(self, store, trigger):
        rule = RecurrenceRule(kind=RecurrenceKind.DAILY)
        await _seed(store, NotificationRecord(name="daily", template_ref="tpl", rule=rule, id="n3"))

        result = await trigger.fire_now("n3", now=at(2025, 5, 1, 8))

        assert result.fired_at == at(2025, 5, 1, 8)

    async def test_manual_send_does_not_shift_weekly_cycle(self, store, channel, scheduler, trigger):
        rule = RecurrenceRule(kind=RecurrenceKind.WEEKLY, send_time=datetime.time(9, 0))
        await _seed(store, NotificationRecord(name="weekly", template_ref="tpl", rule=rule, id="n7"))

        await scheduler.tick(at(2025, 1, 6, 9, 5))  # Monday; pins the cycle
        await trigger.fire_now("n7", now=at(2025, 1, 8, 14))  # Wednesday
        record = await store.get("n7")
        assert record.rule.anchor_date == datetime.date(2025, 1, 6)
        assert record.next_send_at == at(2025, 1, 13, 9, 0)

        results = await scheduler.tick(at(2025, 1, 13, 9, 5))

        assert [r.outcome for r in results] == [FireOutcome.FIRED]
        assert len(channel.sent) == 3

    async def test_unknown_id(self, trigger):
        with pytest.raises(NotFoundError) as exc:
            await trigger.fire_now("ghost")
        assert exc.value.record_id == "ghost"

    async def test_archived_record_rejected(self, store, channel, trigger):
        rule = RecurrenceRule(kind=RecurrenceKind.DAILY)
        await _seed(
            store,
            NotificationRecord(
                name="old", template_ref="tpl", rule=rule, id="n4", status=RecordStatus.ARCHIVED
            ),
        )

        with pytest.raises(NotFoundError, match="archived"):
            await trigger.fire_now("n4")
        assert channel.sent == []

    async def test_inactive_record_can_still_be_sent(self, store, channel, trigger):
        rule = RecurrenceRule(kind=RecurrenceKind.DAILY)
        await _seed(
            store,
            NotificationRecord(name="paused", template_ref="tpl", rule=rule, id="n5", is_active=False),
        )

        result = await trigger.fire_now("n5")

        assert result.outcome is FireOutcome.FIRED
        assert len(channel.sent) == 1

    async def test_delivery_failure_reported(self, store, renderer):
        scheduler = NotificationScheduler(store, renderer, FakeChannel(fail_for={"-100"}))
        trigger = ManualTrigger(scheduler, clock=lambda: at(2025, 3, 10, 14, 0))
        rule = RecurrenceRule(kind=RecurrenceKind.DAILY)
        await _seed(store, NotificationRecord(name="d", template_ref="tpl", rule=rule, id="n6"))

        result = await trigger.fire_now("n6")

        assert result.outcome is FireOutcome.FAILED
        assert not result.ok
