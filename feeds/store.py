from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_feed(row: tuple) -> dict[str, Any]:
    return {
        "id": int(row[0]),
        "url": str(row[1]),
        "last_checked_utc": row[2],
        "last_checked_string": row[3],
        "etag": row[4],
    }


def list_feeds_sync(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    cur = conn.cursor()
    cur.execute(
        "SELECT id, url, last_checked_utc, last_checked_string, etag FROM rss_feeds ORDER BY id ASC"
    )
    return [_row_to_feed(row) for row in cur.fetchall()]


def get_feed_sync(conn: sqlite3.Connection, url: str) -> dict[str, Any] | None:
    cur = conn.cursor()
    cur.execute(
        "SELECT id, url, last_checked_utc, last_checked_string, etag FROM rss_feeds WHERE url = ?",
        (url,),
    )
    row = cur.fetchone()
    return _row_to_feed(row) if row else None


def add_feed_sync(
    conn: sqlite3.Connection,
    *,
    url: str,
    last_checked_string: str,
    etag: str | None = None,
) -> bool:
    """Insert a subscription; returns False when the url is already subscribed."""
    now = _utc_now_iso()
    cur = conn.cursor()
    try:
        cur.execute(
            """
            INSERT INTO rss_feeds (url, last_checked_utc, last_checked_string, etag, created_at_utc)
            VALUES (?, ?, ?, ?, ?)
            """,
            (url, now, last_checked_string, etag, now),
        )
    except sqlite3.IntegrityError:
        conn.rollback()
        return False
    conn.commit()
    return True


def remove_feed_sync(conn: sqlite3.Connection, url: str) -> int:
    cur = conn.cursor()
    cur.execute("DELETE FROM rss_feeds WHERE url = ?", (url,))
    conn.commit()
    return int(cur.rowcount or 0)


def record_feed_check_sync(
    conn: sqlite3.Connection,
    feed_id: int,
    *,
    etag: str | None,
    last_checked_string: str | None = None,
) -> None:
    cur = conn.cursor()
    if last_checked_string is None:
        cur.execute(
            "UPDATE rss_feeds SET last_checked_utc = ?, etag = ? WHERE id = ?",
            (_utc_now_iso(), etag, int(feed_id)),
        )
    else:
        cur.execute(
            "UPDATE rss_feeds SET last_checked_utc = ?, etag = ?, last_checked_string = ? WHERE id = ?",
            (_utc_now_iso(), etag, last_checked_string, int(feed_id)),
        )
    conn.commit()
