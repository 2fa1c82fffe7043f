"""
Notification records — the core data model the engine polls.

A NotificationRecord describes what to send (a template), to whom
(recipient chats), when (a RecurrenceRule) and its current firing state.
Rules are stored as plain dicts so they serialize cleanly to a JSON column.
"""

from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from notifier.scheduler.rule import RecurrenceRule

ALL_RECIPIENTS = "all"


class RecordStatus(str, Enum):
    """Lifecycle status owned by the CRUD layer."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


@dataclass
class NotificationRecord:
    """A configured notification."""

    name: str
    template_ref: str
    rule: RecurrenceRule

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    recipients: list[str] | str = ALL_RECIPIENTS   # "all" or a list of chat ids
    is_active: bool = True
    status: RecordStatus = RecordStatus.ACTIVE
    last_fired_at: datetime.datetime | None = None
    next_send_at: datetime.datetime | None = None  # informational, for "next send" display
    created_at: datetime.datetime = field(default_factory=datetime.datetime.now)

    @property
    def targets_all(self) -> bool:
        return self.recipients == ALL_RECIPIENTS or not self.recipients

    @property
    def pollable(self) -> bool:
        """Whether the scheduler should consider this record at all."""
        return self.is_active and self.status is RecordStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "template_ref": self.template_ref,
            "rule": self.rule.to_dict(),
            "recipients": self.recipients,
            "is_active": self.is_active,
            "status": self.status.value,
            "last_fired_at": _iso(self.last_fired_at),
            "next_send_at": _iso(self.next_send_at),
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> NotificationRecord:
        """Build a record from a stored row. Raises RuleValidationError on a broken rule."""
        recipients = d.get("recipients") or ALL_RECIPIENTS
        if isinstance(recipients, list):
            recipients = [str(r) for r in recipients]
        return cls(
            id=str(d["id"]),
            name=d["name"],
            template_ref=str(d["template_ref"]),
            rule=RecurrenceRule.from_dict(d["rule"]),
            recipients=recipients,
            is_active=bool(d.get("is_active", True)),
            status=RecordStatus(d.get("status", "active")),
            last_fired_at=_parse_dt(d.get("last_fired_at")),
            next_send_at=_parse_dt(d.get("next_send_at")),
            created_at=_parse_dt(d.get("created_at")) or datetime.datetime.now(),
        )


@dataclass
class ChatTarget:
    """A Telegram chat or group that can receive notifications."""

    name: str
    chat_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    notifications_enabled: bool = True  # per-chat opt-out
    is_active: bool = True
    last_activity_at: datetime.datetime | None = None


def _iso(value: datetime.datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> datetime.datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value
    return datetime.datetime.fromisoformat(str(value))
