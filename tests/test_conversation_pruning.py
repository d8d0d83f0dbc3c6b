from __future__ import annotations

import asyncio
import sqlite3
import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import discord

from conversations.lifecycle import INACTIVITY_DESCRIPTION
from conversations.lifecycle import ConversationLifecycle
from conversations.store import NEVER_EXPIRES
from conversations.store import create_conversation_sync
from conversations.store import fetch_expired_conversations_sync
from conversations.store import get_conversation_sync
from db.migrate import apply_sqlite_migrations
from db.migrate import default_migrations_dir

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _http_error(cls, status: int, reason: str):
    return cls(SimpleNamespace(status=status, reason=reason), reason)


class _Message:
    def __init__(self, mid: int, embeds=None, edit_error=None):
        self.id = mid
        self.embeds = embeds or []
        self.edits: list[dict] = []
        self.deleted = False
        self.edit_error = edit_error

    async def edit(self, **kwargs):
        if self.edit_error is not None:
            raise self.edit_error
        self.edits.append(kwargs)

    async def delete(self):
        self.deleted = True


class _Parent:
    def __init__(self, messages):
        self.messages = {m.id: m for m in messages}

    async def fetch_message(self, mid):
        if mid not in self.messages:
            raise _http_error(discord.NotFound, 404, "Unknown Message")
        return self.messages[mid]


class _Thread:
    def __init__(self, tid: int, parent, delete_error=None):
        self.id = tid
        self.parent = parent
        self.type = SimpleNamespace(name="public_thread")
        self.deleted = False
        self.delete_error = delete_error

    async def delete(self):
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted = True


class _Bot:
    def __init__(self, channels):
        self.channels = channels

    def get_channel(self, cid):
        return self.channels.get(cid)

    async def fetch_channel(self, cid):
        raise AssertionError("unexpected fetch")


def _summary_embed():
    field = lambda name, value: SimpleNamespace(name=name, value=value, inline=False)  # noqa: E731
    return SimpleNamespace(
        title="Trip planning",
        fields=[field("Message", "plan a trip"), field("Behavior", "Default"), field("Thread", "<#1>")],
    )


class ConversationStoreTests(unittest.TestCase):
    def setUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, default_migrations_dir())

    def tearDown(self):
        self.conn.close()

    def test_only_expired_records_are_selected(self):
        create_conversation_sync(self.conn, channel_id=1, message_id=11, expires_at=NOW - timedelta(minutes=1))
        create_conversation_sync(self.conn, channel_id=2, message_id=12, expires_at=NOW)
        create_conversation_sync(self.conn, channel_id=3, message_id=13, expires_at=NOW + timedelta(seconds=1))
        create_conversation_sync(self.conn, channel_id=4, message_id=14, expires_at=NEVER_EXPIRES)

        expired = fetch_expired_conversations_sync(self.conn, NOW)
        self.assertEqual([r["channel_id"] for r in expired], [1, 2])

    def test_create_is_an_upsert(self):
        create_conversation_sync(self.conn, channel_id=1, message_id=11, expires_at=NOW)
        create_conversation_sync(self.conn, channel_id=1, message_id=22, expires_at=NOW + timedelta(hours=1))
        self.assertEqual(get_conversation_sync(self.conn, 1)["message_id"], 22)


class ConversationLifecycleTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, default_migrations_dir())
        self.lock = asyncio.Lock()

    def tearDown(self):
        self.conn.close()

    def _lifecycle(self, hours: float) -> ConversationLifecycle:
        return ConversationLifecycle(db_conn=self.conn, db_lock=self.lock, prune_interval_hours=hours)

    async def test_disabled_pruning_never_expires(self):
        lifecycle = self._lifecycle(0)
        await lifecycle.start(channel_id=5, message_id=50, now=NOW)
        await lifecycle.touch(5, now=NOW)
        self.assertEqual(fetch_expired_conversations_sync(self.conn, NOW + timedelta(days=3650)), [])

    async def test_touch_pushes_expiry_forward(self):
        lifecycle = self._lifecycle(2)
        await lifecycle.start(channel_id=5, message_id=50, now=NOW)
        await lifecycle.touch(5, now=NOW + timedelta(hours=1))
        self.assertEqual(fetch_expired_conversations_sync(self.conn, NOW + timedelta(hours=2, minutes=30)), [])
        self.assertEqual(len(fetch_expired_conversations_sync(self.conn, NOW + timedelta(hours=3))), 1)

    async def test_prune_marks_summary_and_deletes_thread_once(self):
        lifecycle = self._lifecycle(1)
        summary = _Message(50, embeds=[_summary_embed()])
        starter = _Message(7)
        thread = _Thread(7, _Parent([summary, starter]))
        bot = _Bot({7: thread})

        await lifecycle.start(channel_id=7, message_id=50, now=NOW)
        await lifecycle.start(channel_id=8, message_id=60, now=NOW + timedelta(hours=5))

        pruned = await lifecycle.prune_expired(bot, now=NOW + timedelta(hours=2))
        self.assertEqual(pruned, 1)
        self.assertTrue(thread.deleted)
        self.assertTrue(starter.deleted)
        edited = summary.edits[0]["embeds"][0]
        self.assertEqual(edited.description, INACTIVITY_DESCRIPTION)
        self.assertEqual([f.name for f in edited.fields], ["Message", "Behavior"])

        self.assertIsNone(get_conversation_sync(self.conn, 7))
        self.assertIsNotNone(get_conversation_sync(self.conn, 8))
        self.assertEqual(await lifecycle.prune_expired(bot, now=NOW + timedelta(hours=2)), 0)

    async def test_missing_channel_clears_record(self):
        lifecycle = self._lifecycle(1)
        await lifecycle.start(channel_id=9, message_id=90, now=NOW)

        class Gone:
            def get_channel(self, cid):
                return None

            async def fetch_channel(self, cid):
                raise _http_error(discord.NotFound, 404, "Unknown Channel")

        self.assertEqual(await lifecycle.prune_expired(Gone(), now=NOW + timedelta(hours=2)), 1)
        self.assertIsNone(get_conversation_sync(self.conn, 9))

    async def test_transient_lookup_failure_keeps_record_for_retry(self):
        lifecycle = self._lifecycle(1)
        await lifecycle.start(channel_id=9, message_id=90, now=NOW)

        class Flaky:
            def get_channel(self, cid):
                return None

            async def fetch_channel(self, cid):
                raise _http_error(discord.HTTPException, 503, "Service Unavailable")

        self.assertEqual(await lifecycle.prune_expired(Flaky(), now=NOW + timedelta(hours=2)), 0)
        self.assertIsNotNone(get_conversation_sync(self.conn, 9))

    async def test_missing_summary_message_still_deletes_thread(self):
        lifecycle = self._lifecycle(1)
        gone = _http_error(discord.NotFound, 404, "Unknown Message")
        summary = _Message(50, embeds=[_summary_embed()], edit_error=gone)
        starter = _Message(7)
        thread = _Thread(7, _Parent([summary, starter]))

        await lifecycle.start(channel_id=7, message_id=50, now=NOW)
        pruned = await lifecycle.prune_expired(_Bot({7: thread}), now=NOW + timedelta(hours=2))

        self.assertEqual(pruned, 1)
        self.assertTrue(thread.deleted)
        self.assertTrue(starter.deleted)
        self.assertIsNone(get_conversation_sync(self.conn, 7))

    async def test_failed_thread_delete_keeps_record(self):
        lifecycle = self._lifecycle(1)
        summary = _Message(50, embeds=[_summary_embed()])
        thread = _Thread(7, _Parent([summary]), delete_error=_http_error(discord.HTTPException, 500, "Server Error"))

        await lifecycle.start(channel_id=7, message_id=50, now=NOW)
        pruned = await lifecycle.prune_expired(_Bot({7: thread}), now=NOW + timedelta(hours=2))

        self.assertEqual(pruned, 0)
        self.assertFalse(thread.deleted)
        self.assertIsNotNone(get_conversation_sync(self.conn, 7))


if __name__ == "__main__":
    unittest.main()
