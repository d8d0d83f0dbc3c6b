from __future__ import annotations

import sqlite3
from datetime import datetime, timezone


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_attachment_annotation_sync(conn: sqlite3.Connection, message_id: int) -> str | None:
    cur = conn.cursor()
    cur.execute("SELECT metadata FROM attachment_annotations WHERE message_id = ?", (int(message_id),))
    row = cur.fetchone()
    if not row:
        return None
    return str(row[0]) if row[0] is not None else None


def has_attachment_annotation_sync(conn: sqlite3.Connection, message_id: int) -> bool:
    return get_attachment_annotation_sync(conn, message_id) is not None


def set_attachment_annotation_sync(conn: sqlite3.Connection, message_id: int, metadata: str) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO attachment_annotations (message_id, metadata, created_at_utc)
        VALUES (?, ?, ?)
        ON CONFLICT(message_id) DO UPDATE SET metadata = excluded.metadata
        """,
        (int(message_id), str(metadata), _utc_now_iso()),
    )
    conn.commit()
