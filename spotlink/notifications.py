"""User notifications: record type, validation and storage."""

from __future__ import annotations

import enum
import sqlite3
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from spotlink.filters import Filters, Metadata, calculate_metadata
from spotlink.records import RecordNotFoundError, check


class NotificationType(str, enum.Enum):
    RESERVATION_REMINDER = "reservation_reminder"
    PAYMENT_DUE = "payment_due"
    SESSION_EXPIRING = "session_expiring"
    RESERVATION_CONFIRMED = "reservation_confirmed"
    RESERVATION_CANCELLED = "reservation_cancelled"
    PAYMENT_COMPLETED = "payment_completed"
    VIOLATION_ALERT = "violation_alert"


_PERMITTED_TYPES = frozenset(member.value for member in NotificationType)


@dataclass
class Notification:
    user_id: uuid.UUID
    type: str
    title: str
    message: str
    is_read: bool = False
    data: str | None = None
    id: uuid.UUID | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if isinstance(self.type, NotificationType):
            self.type = self.type.value

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready mapping of the notification."""
        return {
            "id": str(self.id) if self.id is not None else None,
            "user_id": str(self.user_id),
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "is_read": self.is_read,
            "data": self.data,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def validate_notification(notification: Notification) -> dict[str, str]:
    """Return validation errors for ``notification``; empty when valid."""
    errors: dict[str, str] = {}
    title_len = len(notification.title.encode("utf-8"))
    message_len = len(notification.message.encode("utf-8"))
    check(errors, notification.title != "", "title", "must be provided")
    check(errors, title_len <= 100, "title", "must not be more than 100 characters long")
    check(errors, notification.message != "", "message", "must be provided")
    check(errors, message_len <= 500, "message", "must not be more than 500 characters long")
    check(errors, notification.type in _PERMITTED_TYPES, "type", "must be a valid notification type")
    return errors


_SCHEMA = """
CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    is_read INTEGER NOT NULL DEFAULT 0,
    data TEXT,
    created_at TEXT NOT NULL
)
"""

_COLUMNS = "id, user_id, type, title, message, is_read, data, created_at"

_INSERT = (
    "INSERT INTO notifications (id, user_id, type, title, message, is_read, data, created_at) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat()


def _insert_args(notification: Notification, new_id: uuid.UUID, created: datetime) -> tuple:
    user_id = notification.user_id
    return (
        str(new_id),
        str(user_id) if user_id is not None else None,
        notification.type,
        notification.title,
        notification.message,
        int(notification.is_read),
        notification.data,
        _timestamp(created),
    )


def _from_row(row: tuple) -> Notification:
    nid, user_id, ntype, title, message, is_read, data, created_at = row
    return Notification(
        id=uuid.UUID(nid),
        user_id=uuid.UUID(user_id),
        type=ntype,
        title=title,
        message=message,
        is_read=bool(is_read),
        data=data,
        created_at=datetime.fromisoformat(created_at),
    )


class NotificationModel:
    """Stores notifications in an SQLite database connection."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db
        with self._db:
            self._db.execute(_SCHEMA)

    def insert(self, notification: Notification) -> None:
        """Store ``notification`` and fill in its id and creation time."""
        new_id = uuid.uuid4()
        created = _now()
        with self._db:
            self._db.execute(_INSERT, _insert_args(notification, new_id, created))
        notification.id = new_id
        notification.created_at = created

    def get(self, notification_id: uuid.UUID) -> Notification:
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM notifications WHERE id = ?",
            (str(notification_id),),
        ).fetchone()
        if row is None:
            raise RecordNotFoundError()
        return _from_row(row)

    def get_all_for_user(
        self, user_id: uuid.UUID, filters: Filters
    ) -> tuple[list[Notification], Metadata]:
        query = (
            f"SELECT count(*) OVER (), {_COLUMNS} FROM notifications "
            "WHERE user_id = ? "
            f"ORDER BY {filters.sort_column()} {filters.sort_direction()}, id ASC "
            "LIMIT ? OFFSET ?"
        )
        rows = self._db.execute(
            query, (str(user_id), filters.limit(), filters.offset())
        ).fetchall()
        total_records = rows[0][0] if rows else 0
        notifications = [_from_row(row[1:]) for row in rows]
        return notifications, calculate_metadata(total_records, filters.page, filters.page_size)

    def get_unread_for_user(self, user_id: uuid.UUID, limit: int) -> list[Notification]:
        rows = self._db.execute(
            f"SELECT {_COLUMNS} FROM notifications "
            "WHERE user_id = ? AND is_read = 0 "
            "ORDER BY created_at DESC LIMIT ?",
            (str(user_id), limit),
        ).fetchall()
        return [_from_row(row) for row in rows]

    def get_unread_count_for_user(self, user_id: uuid.UUID) -> int:
        (count,) = self._db.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND is_read = 0",
            (str(user_id),),
        ).fetchone()
        return count

    def mark_as_read(self, notification_id: uuid.UUID) -> None:
        with self._db:
            cursor = self._db.execute(
                "UPDATE notifications SET is_read = 1 WHERE id = ?",
                (str(notification_id),),
            )
        if cursor.rowcount == 0:
            raise RecordNotFoundError()

    def mark_all_as_read_for_user(self, user_id: uuid.UUID) -> None:
        with self._db:
            self._db.execute(
                "UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0",
                (str(user_id),),
            )

    def delete(self, notification_id: uuid.UUID) -> None:
        with self._db:
            cursor = self._db.execute(
                "DELETE FROM notifications WHERE id = ?", (str(notification_id),)
            )
        if cursor.rowcount == 0:
            raise RecordNotFoundError()

    def delete_all_for_user(self, user_id: uuid.UUID) -> None:
        with self._db:
            self._db.execute("DELETE FROM notifications WHERE user_id = ?", (str(user_id),))

    def delete_old_notifications(self, older_than: datetime) -> None:
        with self._db:
            self._db.execute(
                "DELETE FROM notifications WHERE created_at < ?", (_timestamp(older_than),)
            )

    def bulk_insert(self, notifications: Iterable[Notification]) -> None:
        """Store all notifications in one transaction; none are kept on failure."""
        with self._db:
            for notification in notifications:
                self._db.execute(
                    _INSERT, _insert_args(notification, uuid.uuid4(), _now())
                )