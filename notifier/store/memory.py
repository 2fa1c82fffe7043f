"""
In-memory notification store — for testing.

Simple dict-based storage. Data lost when process exits. Records are copied
on the way in and out so callers never share state with the store.
"""

from __future__ import annotations

import copy
from typing import Any

from notifier.core.errors import NotFoundError
from notifier.scheduler.record import ChatTarget, NotificationRecord
from notifier.store.base import NotificationStore, normalize_fields


class InMemoryNotificationStore(NotificationStore):
    """
    In-memory store for tests and dry runs.

    Usage:
        store = InMemoryNotificationStore()
        await store.save(record)
        await store.save_chat(ChatTarget(name="team", chat_id="-100123"))
        await store.save_template("weekly", "Hello %chat%")
    """

    def __init__(self) -> None:
        self._records: dict[str, NotificationRecord] = {}
        self._chats: dict[str, ChatTarget] = {}
        self._templates: dict[str, str] = {}

    async def save(self, record: NotificationRecord) -> None:
        self._records[record.id] = copy.deepcopy(record)

    async def save_chat(self, chat: ChatTarget) -> None:
        self._chats[chat.id] = copy.deepcopy(chat)

    async def save_template(self, ref: str, content: str) -> None:
        self._templates[ref] = content

    async def get_template(self, ref: str) -> str | None:
        return self._templates.get(ref)

    async def list_active(self) -> list[NotificationRecord]:
        return [copy.deepcopy(r) for r in self._records.values() if r.pollable]

    async def get(self, record_id: str) -> NotificationRecord:
        record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(f"Notification {record_id!r} not found", record_id=record_id)
        return copy.deepcopy(record)

    async def update(self, record_id: str, **fields: Any) -> NotificationRecord:
        fields = normalize_fields(fields)
        record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(f"Notification {record_id!r} not found", record_id=record_id)
        for key, value in fields.items():
            setattr(record, key, value)
        return copy.deepcopy(record)

    async def list_chats(self, ids: list[str] | None = None) -> list[ChatTarget]:
        chats = [c for c in self._chats.values() if c.is_active]
        if ids is not None:
            wanted = {str(i) for i in ids}
            chats = [c for c in chats if c.id in wanted]
        return [copy.deepcopy(c) for c in chats]

    async def count_notifications(self, active_only: bool = False) -> int:
        if active_only:
            return sum(1 for r in self._records.values() if r.pollable)
        return len(self._records)

    async def close(self) -> None:
        self._records.clear()
        self._chats.clear()
        self._templates.clear()
