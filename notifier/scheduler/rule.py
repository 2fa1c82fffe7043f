"""
RecurrenceRule — how often a notification repeats.

Rules are immutable and serialise to plain dicts so they fit a JSON column.

Rule dict shapes:
    {"kind": "once",     "anchor_date": "2025-03-08", "send_time": "10:00"}
    {"kind": "daily",    "interval": 3, "send_time": "09:00"}
    {"kind": "weekly",   "interval": 2, "anchor_date": "2025-01-06"}
    {"kind": "monthly",  "interval": 1, "anchor_date": "2025-01-31"}
    {"kind": "weekdays", "week_days": [1, 3, 5], "send_time": "09:30"}
    {"kind": "monthday", "month_day": 31, "send_time": "00:00"}

Weekday indices follow the portal convention: 0=Sunday .. 6=Saturday.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from notifier.core.errors import RuleValidationError


class RecurrenceKind(str, Enum):
    """Supported repetition patterns."""

    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    WEEKDAYS = "weekdays"
    MONTHDAY = "monthday"


# Kinds whose cycle is "every N units since the origin date"
INTERVAL_KINDS = frozenset(
    {RecurrenceKind.DAILY, RecurrenceKind.WEEKLY, RecurrenceKind.MONTHLY, RecurrenceKind.YEARLY}
)

WEEKDAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


@dataclass(frozen=True)
class RecurrenceRule:
    """A notification's repetition pattern."""

    kind: RecurrenceKind
    interval: int = 1
    week_days: frozenset[int] = field(default_factory=frozenset)
    month_day: int | None = None
    send_time: datetime.time | None = None
    anchor_date: datetime.date | None = None
    end_date: datetime.date | None = None

    def validate(self) -> None:
        """Raise RuleValidationError if the rule cannot be evaluated."""
        if not isinstance(self.kind, RecurrenceKind):
            raise RuleValidationError(
                f"Unknown recurrence kind: {self.kind!r}", kind=str(self.kind), field="kind"
            )
        if self.kind in INTERVAL_KINDS and (not isinstance(self.interval, int) or self.interval < 1):
            raise RuleValidationError(
                f"Interval must be a positive integer, got {self.interval!r}",
                kind=self.kind.value,
                field="interval",
            )
        if self.kind is RecurrenceKind.WEEKDAYS:
            if not self.week_days:
                raise RuleValidationError(
                    "Weekdays rule needs at least one weekday",
                    kind=self.kind.value,
                    field="week_days",
                )
            bad = [d for d in self.week_days if not isinstance(d, int) or not 0 <= d <= 6]
            if bad:
                raise RuleValidationError(
                    f"Weekday indices must be 0..6, got {sorted(bad)}",
                    kind=self.kind.value,
                    field="week_days",
                )
        if self.kind is RecurrenceKind.MONTHDAY and (
            not isinstance(self.month_day, int) or not 1 <= self.month_day <= 31
        ):
            raise RuleValidationError(
                f"Month day must be 1..31, got {self.month_day!r}",
                kind=self.kind.value,
                field="month_day",
            )

    def with_anchor(self, anchor: datetime.date) -> RecurrenceRule:
        return replace(self, anchor_date=anchor)

    @property
    def repeats(self) -> bool:
        return self.kind is not RecurrenceKind.ONCE

    @property
    def description(self) -> str:
        """Human-readable description, e.g. 'every 3 days at 09:00'."""
        at = f" at {self.send_time.strftime('%H:%M')}" if self.send_time else ""
        k = self.kind
        if k is RecurrenceKind.ONCE:
            on = f" on {self.anchor_date.isoformat()}" if self.anchor_date else ""
            return f"once{on}{at}"
        if k in INTERVAL_KINDS:
            unit = {
                RecurrenceKind.DAILY: "day",
                RecurrenceKind.WEEKLY: "week",
                RecurrenceKind.MONTHLY: "month",
                RecurrenceKind.YEARLY: "year",
            }[k]
            if self.interval == 1:
                return f"every {unit}{at}"
            return f"every {self.interval} {unit}s{at}"
        if k is RecurrenceKind.WEEKDAYS:
            days = ", ".join(WEEKDAY_NAMES[d] for d in sorted(self.week_days) if 0 <= d <= 6)
            return f"on {days}{at}"
        return f"on day {self.month_day} of each month{at}"

    # ── Serialisation ─────────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value if isinstance(self.kind, RecurrenceKind) else self.kind,
            "interval": self.interval,
            "week_days": sorted(self.week_days),
            "month_day": self.month_day,
            "send_time": self.send_time.strftime("%H:%M") if self.send_time else None,
            "anchor_date": self.anchor_date.isoformat() if self.anchor_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RecurrenceRule:
        """
        Build a rule from its stored dict.

        Raises RuleValidationError when a field cannot be parsed. Semantic
        checks (empty weekdays etc.) are left to validate().
        """
        raw_kind = d.get("kind", "")
        try:
            kind = RecurrenceKind(raw_kind)
        except ValueError:
            raise RuleValidationError(
                f"Unknown recurrence kind: {raw_kind!r}", kind=str(raw_kind), field="kind"
            ) from None
        try:
            interval = int(d["interval"]) if d.get("interval") is not None else 1
            week_days = frozenset(int(x) for x in (d.get("week_days") or []))
            month_day = int(d["month_day"]) if d.get("month_day") is not None else None
        except (TypeError, ValueError) as e:
            raise RuleValidationError(f"Malformed rule field: {e}", kind=kind.value) from e
        return cls(
            kind=kind,
            interval=interval,
            week_days=week_days,
            month_day=month_day,
            send_time=parse_send_time(d.get("send_time")),
            anchor_date=_parse_date(d.get("anchor_date"), "anchor_date"),
            end_date=_parse_date(d.get("end_date"), "end_date"),
        )


def parse_send_time(value: Any) -> datetime.time | None:
    """Parse 'HH:MM' (or 'HH:MM:SS', as a SQL TIME column returns it)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime.time):
        return value.replace(second=0, microsecond=0)
    try:
        parts = [int(p) for p in str(value).split(":")]
        return datetime.time(parts[0], parts[1] if len(parts) > 1 else 0)
    except (ValueError, IndexError) as e:
        raise RuleValidationError(f"Invalid send time {value!r}", field="send_time") from e


def _parse_date(value: Any, name: str) -> datetime.date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise RuleValidationError(f"Invalid {name} {value!r}", field=name) from e
