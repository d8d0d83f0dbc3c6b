from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS rss_feeds (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            url TEXT NOT NULL UNIQUE,
            last_checked_utc TEXT,
            last_checked_string TEXT,
            etag TEXT,
            created_at_utc TEXT NOT NULL
        )
        """
    )
    conn.commit()
