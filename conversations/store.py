from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any

NEVER_EXPIRES = datetime(9999, 12, 31, tzinfo=timezone.utc)


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def expiry_from(now: datetime, prune_interval_hours: float) -> datetime:
    if prune_interval_hours <= 0:
        return NEVER_EXPIRES
    return now + timedelta(hours=prune_interval_hours)


def _row_to_record(row: tuple) -> dict[str, Any]:
    return {
        "channel_id": int(row[0]),
        "message_id": int(row[1]),
        "expires_at_utc": str(row[2]),
    }


def create_conversation_sync(
    conn: sqlite3.Connection,
    *,
    channel_id: int,
    message_id: int,
    expires_at: datetime,
) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO conversations (channel_id, message_id, expires_at_utc)
        VALUES (?, ?, ?)
        ON CONFLICT(channel_id) DO UPDATE SET
            message_id = excluded.message_id,
            expires_at_utc = excluded.expires_at_utc
        """,
        (int(channel_id), int(message_id), _iso(expires_at)),
    )
    conn.commit()


def get_conversation_sync(conn: sqlite3.Connection, channel_id: int) -> dict[str, Any] | None:
    cur = conn.cursor()
    cur.execute(
        "SELECT channel_id, message_id, expires_at_utc FROM conversations WHERE channel_id = ?",
        (int(channel_id),),
    )
    row = cur.fetchone()
    return _row_to_record(row) if row else None


def refresh_expiry_sync(conn: sqlite3.Connection, channel_id: int, expires_at: datetime) -> int:
    cur = conn.cursor()
    cur.execute(
        "UPDATE conversations SET expires_at_utc = ? WHERE channel_id = ?",
        (_iso(expires_at), int(channel_id)),
    )
    conn.commit()
    return int(cur.rowcount or 0)


def fetch_expired_conversations_sync(conn: sqlite3.Connection, now: datetime) -> list[dict[str, Any]]:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT channel_id, message_id, expires_at_utc
        FROM conversations
        WHERE expires_at_utc <= ?
        ORDER BY expires_at_utc ASC
        """,
        (_iso(now),),
    )
    return [_row_to_record(row) for row in cur.fetchall()]


def delete_conversation_sync(conn: sqlite3.Connection, channel_id: int) -> int:
    cur = conn.cursor()
    cur.execute("DELETE FROM conversations WHERE channel_id = ?", (int(channel_id),))
    conn.commit()
    return int(cur.rowcount or 0)
