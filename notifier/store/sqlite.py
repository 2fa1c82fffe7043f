"""
SQLite notification store.

Uses aiosqlite for async SQLite access.
WAL mode enabled so the admin surface can read while the scheduler writes.

Tables:
    notifications  id, name, template_ref, rule (JSON), recipients (JSON),
                   is_active, status, last_fired_at, next_send_at, created_at
    chats          id, name, chat_id, notifications_enabled, is_active,
                   last_activity_at
    templates      ref, content
"""

from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any

import aiosqlite

from notifier.core.errors import NotFoundError, RuleValidationError, StoreError
from notifier.scheduler.record import ChatTarget, NotificationRecord
from notifier.scheduler.rule import RecurrenceRule
from notifier.store.base import NotificationStore, normalize_fields

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id            TEXT PRIMARY KEY,
        name          TEXT NOT NULL,
        template_ref  TEXT NOT NULL,
        rule          TEXT NOT NULL,
        recipients    TEXT NOT NULL DEFAULT '"all"',
        is_active     INTEGER NOT NULL DEFAULT 1,
        status        TEXT NOT NULL DEFAULT 'active',
        last_fired_at TEXT,
        next_send_at  TEXT,
        created_at    TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_notifications_active
        ON notifications(is_active, status)
    """,
    """
    CREATE TABLE IF NOT EXISTS chats (
        id                    TEXT PRIMARY KEY,
        name                  TEXT NOT NULL,
        chat_id               TEXT NOT NULL,
        notifications_enabled INTEGER NOT NULL DEFAULT 1,
        is_active             INTEGER NOT NULL DEFAULT 1,
        last_activity_at      TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS templates (
        ref     TEXT PRIMARY KEY,
        content TEXT NOT NULL
    )
    """,
)


class SQLiteNotificationStore(NotificationStore):
    """
    SQLite-backed notification store.

    Usage:
        store = SQLiteNotificationStore("~/.notifier/notifier.db")
        await store.initialize()

        await store.save(record)
        candidates = await store.list_active()
        await store.update(record.id, last_fired_at=now)
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the database and create tables."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._db = await aiosqlite.connect(str(self._db_path))
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA synchronous=NORMAL")
            for statement in _SCHEMA:
                await self._db.execute(statement)
            await self._db.commit()
            logger.debug(f"Notification store initialised at {self._db_path}")
        except Exception as e:
            raise StoreError(f"Failed to initialize SQLite at {self._db_path}: {e}") from e

    async def _ensure_db(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.initialize()
        return self._db  # type: ignore[return-value]

    # ── Engine-facing API ─────────────────────────────────────────────────────

    async def list_active(self) -> list[NotificationRecord]:
        db = await self._ensure_db()
        try:
            async with db.execute(
                "SELECT * FROM notifications WHERE is_active = 1 AND status = 'active' "
                "ORDER BY created_at ASC"
            ) as cursor:
                rows = await cursor.fetchall()
        except Exception as e:
            raise StoreError(f"Failed to list active notifications: {e}") from e

        records = []
        for row in rows:
            try:
                records.append(self._row_to_record(row))
            except (RuleValidationError, ValueError) as e:
                # Unparseable row: leave it untouched, keep polling the rest
                logger.warning(f"Skipping notification {row['id']!r}: {e}")
        return records

    async def get(self, record_id: str) -> NotificationRecord:
        db = await self._ensure_db()
        try:
            async with db.execute(
                "SELECT * FROM notifications WHERE id = ?", (record_id,)
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StoreError(f"Failed to get notification {record_id!r}: {e}") from e
        if row is None:
            raise NotFoundError(f"Notification {record_id!r} not found", record_id=record_id)
        return self._row_to_record(row)

    async def update(self, record_id: str, **fields: Any) -> NotificationRecord:
        fields = normalize_fields(fields)
        if fields:
            columns = {key: _encode_field(key, value) for key, value in fields.items()}
            assignments = ", ".join(f"{key} = :{key}" for key in columns)
            db = await self._ensure_db()
            try:
                cursor = await db.execute(
                    f"UPDATE notifications SET {assignments} WHERE id = :_id",
                    {**columns, "_id": record_id},
                )
                await db.commit()
            except Exception as e:
                raise StoreError(f"Failed to update notification {record_id!r}: {e}") from e
            if cursor.rowcount == 0:
                raise NotFoundError(f"Notification {record_id!r} not found", record_id=record_id)
        return await self.get(record_id)

    async def list_chats(self, ids: list[str] | None = None) -> list[ChatTarget]:
        db = await self._ensure_db()
        query = "SELECT * FROM chats WHERE is_active = 1"
        params: list[str] = []
        if ids is not None:
            if not ids:
                return []
            query += f" AND id IN ({', '.join('?' for _ in ids)})"
            params = [str(i) for i in ids]
        try:
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        except Exception as e:
            raise StoreError(f"Failed to list chats: {e}") from e
        return [self._row_to_chat(r) for r in rows]

    async def count_notifications(self, active_only: bool = False) -> int:
        db = await self._ensure_db()
        query = "SELECT COUNT(*) FROM notifications"
        if active_only:
            query += " WHERE is_active = 1 AND status = 'active'"
        try:
            async with db.execute(query) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StoreError(f"Failed to count notifications: {e}") from e
        return int(row[0])

    # ── Admin-facing API ──────────────────────────────────────────────────────

    async def save(self, record: NotificationRecord) -> None:
        """Insert or update a notification."""
        db = await self._ensure_db()
        data = record.to_dict()
        data["rule"] = json.dumps(data["rule"])
        data["recipients"] = json.dumps(data["recipients"])
        data["is_active"] = int(record.is_active)
        try:
            await db.execute(
                """
                INSERT INTO notifications (id, name, template_ref, rule, recipients, is_active,
                                           status, last_fired_at, next_send_at, created_at)
                VALUES (:id, :name, :template_ref, :rule, :recipients, :is_active,
                        :status, :last_fired_at, :next_send_at, :created_at)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name, template_ref=excluded.template_ref,
                    rule=excluded.rule, recipients=excluded.recipients,
                    is_active=excluded.is_active, status=excluded.status,
                    last_fired_at=excluded.last_fired_at, next_send_at=excluded.next_send_at
                """,
                data,
            )
            await db.commit()
        except Exception as e:
            raise StoreError(f"Failed to save notification {record.id!r}: {e}") from e

    async def save_chat(self, chat: ChatTarget) -> None:
        db = await self._ensure_db()
        try:
            await db.execute(
                """
                INSERT INTO chats (id, name, chat_id, notifications_enabled, is_active, last_activity_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name, chat_id=excluded.chat_id,
                    notifications_enabled=excluded.notifications_enabled,
                    is_active=excluded.is_active, last_activity_at=excluded.last_activity_at
                """,
                (
                    chat.id,
                    chat.name,
                    chat.chat_id,
                    int(chat.notifications_enabled),
                    int(chat.is_active),
                    chat.last_activity_at.isoformat() if chat.last_activity_at else None,
                ),
            )
            await db.commit()
        except Exception as e:
            raise StoreError(f"Failed to save chat {chat.id!r}: {e}") from e

    async def save_template(self, ref: str, content: str) -> None:
        db = await self._ensure_db()
        try:
            await db.execute(
                "INSERT INTO templates (ref, content) VALUES (?, ?) "
                "ON CONFLICT(ref) DO UPDATE SET content=excluded.content",
                (ref, content),
            )
            await db.commit()
        except Exception as e:
            raise StoreError(f"Failed to save template {ref!r}: {e}") from e

    async def get_template(self, ref: str) -> str | None:
        db = await self._ensure_db()
        try:
            async with db.execute(
                "SELECT content FROM templates WHERE ref = ?", (ref,)
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StoreError(f"Failed to get template {ref!r}: {e}") from e
        return row[0] if row else None

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _row_to_record(self, row: aiosqlite.Row) -> NotificationRecord:
        d = dict(row)
        try:
            d["rule"] = json.loads(d["rule"])
        except json.JSONDecodeError as e:
            raise RuleValidationError(f"Rule column is not valid JSON: {e}") from e
        d["recipients"] = json.loads(d["recipients"]) if d.get("recipients") else "all"
        d["is_active"] = bool(d["is_active"])
        return NotificationRecord.from_dict(d)

    def _row_to_chat(self, row: aiosqlite.Row) -> ChatTarget:
        d = dict(row)
        last = d.get("last_activity_at")
        return ChatTarget(
            id=d["id"],
            name=d["name"],
            chat_id=d["chat_id"],
            notifications_enabled=bool(d["notifications_enabled"]),
            is_active=bool(d["is_active"]),
            last_activity_at=_parse_dt(last),
        )


def _encode_field(key: str, value: Any) -> Any:
    """Convert a field value to its column representation."""
    if key == "rule":
        return json.dumps(value.to_dict() if isinstance(value, RecurrenceRule) else value)
    if key == "recipients":
        return json.dumps(value)
    if key == "is_active":
        return int(bool(value))
    if key == "status":
        return value.value
    if key in ("last_fired_at", "next_send_at"):
        return value.isoformat() if value else None
    return value


def _parse_dt(value: str | None) -> datetime.datetime | None:
    return datetime.datetime.fromisoformat(value) if value else None
