"""
NotificationStore interface.

The engine only reads candidates and writes firing state back; all other
CRUD on notifications, chats and templates belongs to the admin layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from notifier.core.errors import StoreError
from notifier.scheduler.record import ChatTarget, NotificationRecord, RecordStatus

# Fields the engine (and admin surface) may change through update()
UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "template_ref",
        "rule",
        "recipients",
        "is_active",
        "status",
        "last_fired_at",
        "next_send_at",
    }
)


def normalize_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Reject unknown field names and coerce status strings to RecordStatus."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise StoreError(f"Cannot update fields: {sorted(unknown)}")
    if "status" in fields:
        fields = {**fields, "status": RecordStatus(fields["status"])}
    return fields


class NotificationStore(ABC):
    """
    Abstract base class for notification persistence.

    Implementations:
        SQLiteNotificationStore — file-based, default
        InMemoryNotificationStore — for testing
    """

    @abstractmethod
    async def list_active(self) -> list[NotificationRecord]:
        """All records with is_active=True and status=active, in one batch."""
        ...

    @abstractmethod
    async def get(self, record_id: str) -> NotificationRecord:
        """Get a record by id. Raises NotFoundError if missing."""
        ...

    @abstractmethod
    async def update(self, record_id: str, **fields: Any) -> NotificationRecord:
        """Apply field changes to one record and return the updated record."""
        ...

    @abstractmethod
    async def list_chats(self, ids: list[str] | None = None) -> list[ChatTarget]:
        """Active chats, optionally restricted to the given ids."""
        ...

    @abstractmethod
    async def count_notifications(self, active_only: bool = False) -> int:
        ...

    async def count_chats(self) -> int:
        """Number of active chats."""
        return len(await self.list_chats())

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None
