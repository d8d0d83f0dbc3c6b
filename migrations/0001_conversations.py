from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS conversations (
            channel_id INTEGER PRIMARY KEY,
            message_id INTEGER NOT NULL,
            expires_at_utc TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_conversations_expires_at ON conversations(expires_at_utc)")
    conn.commit()
