from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any, Iterable


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def list_webhook_routes_sync(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    cur = conn.cursor()
    cur.execute("SELECT path, is_protected, secret FROM webhook_routes ORDER BY path ASC")
    return [
        {"path": str(path), "is_protected": bool(is_protected), "secret": secret}
        for path, is_protected, secret in cur.fetchall()
    ]


def upsert_webhook_route_sync(
    conn: sqlite3.Connection,
    *,
    path: str,
    is_protected: bool,
    secret: str | None,
) -> None:
    now = _utc_now_iso()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO webhook_routes (path, is_protected, secret, created_at_utc, updated_at_utc)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(path) DO UPDATE SET
            is_protected = excluded.is_protected,
            secret = excluded.secret,
            updated_at_utc = excluded.updated_at_utc
        """,
        (path, 1 if is_protected else 0, secret, now, now),
    )
    conn.commit()


def delete_webhook_routes_sync(conn: sqlite3.Connection, paths: Iterable[str]) -> int:
    paths = list(paths)
    if not paths:
        return 0
    placeholders = ",".join("?" for _ in paths)
    cur = conn.cursor()
    cur.execute(f"DELETE FROM webhook_routes WHERE path IN ({placeholders})", paths)
    conn.commit()
    return int(cur.rowcount or 0)
