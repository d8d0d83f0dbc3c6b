from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone
from typing import Any

import discord

from conversations.store import create_conversation_sync
from conversations.store import delete_conversation_sync
from conversations.store import expiry_from
from conversations.store import fetch_expired_conversations_sync
from conversations.store import refresh_expiry_sync

INACTIVITY_DESCRIPTION = "Conversation deleted due to inactivity."
THREAD_FIELD = "Thread"


def is_thread_channel(channel: Any) -> bool:
    kind = getattr(channel, "type", None)
    return str(getattr(kind, "name", kind) or "").endswith("thread")


async def resolve_channel(bot: Any, channel_id: int) -> Any | None:
    """Return the channel, or None when Discord reports it gone. Other failures propagate."""
    channel = bot.get_channel(channel_id)
    if channel is not None:
        return channel
    try:
        return await bot.fetch_channel(channel_id)
    except discord.NotFound:
        print(f"[Prune] channel gone channel_id={channel_id}")
        return None


def inactive_summary_embed(embed: Any) -> discord.Embed:
    rewritten = discord.Embed(
        title=getattr(embed, "title", None),
        description=INACTIVITY_DESCRIPTION,
        color=discord.Color.yellow(),
    )
    for field in getattr(embed, "fields", None) or []:
        if field.name == THREAD_FIELD:
            continue
        rewritten.add_field(name=field.name, value=field.value, inline=bool(getattr(field, "inline", False)))
    return rewritten


async def mark_summary_inactive(thread: Any, message_id: int) -> bool:
    parent = getattr(thread, "parent", None)
    if parent is None:
        return False
    try:
        summary = await parent.fetch_message(message_id)
    except discord.HTTPException as e:
        print(f"[Prune] summary message unavailable message_id={message_id}: {e}")
        return False
    if not summary.embeds:
        return False
    await summary.edit(embeds=[inactive_summary_embed(summary.embeds[0])])
    return True


async def destroy_thread(thread: Any) -> bool:
    """Delete a thread and the parent message it was started from.

    Returns True once the thread is gone, deleted now or already missing.
    The starter message is removed best effort and never affects the result.
    """
    thread_id = getattr(thread, "id", None)
    starter = None
    parent = getattr(thread, "parent", None)
    try:
        if parent is not None:
            starter = await parent.fetch_message(thread.id)
    except discord.HTTPException:
        starter = None
    try:
        await thread.delete()
    except discord.NotFound:
        print(f"[Prune] thread already gone thread_id={thread_id}")
    except discord.HTTPException as e:
        print(f"[Prune] thread delete failed thread_id={thread_id}: {e}")
        return False
    if starter is not None:
        try:
            await starter.delete()
        except discord.HTTPException as e:
            print(f"[Prune] starter delete failed thread_id={thread_id}: {e}")
    return True


class ConversationLifecycle:
    def __init__(self, *, db_conn: sqlite3.Connection, db_lock: asyncio.Lock, prune_interval_hours: float):
        self.db_conn = db_conn
        self.db_lock = db_lock
        self.prune_interval_hours = prune_interval_hours

    @property
    def pruning_enabled(self) -> bool:
        return self.prune_interval_hours > 0

    async def start(self, *, channel_id: int, message_id: int, now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        async with self.db_lock:
            await asyncio.to_thread(
                create_conversation_sync,
                self.db_conn,
                channel_id=channel_id,
                message_id=message_id,
                expires_at=expiry_from(now, self.prune_interval_hours),
            )

    async def touch(self, channel_id: int, now: datetime | None = None) -> None:
        if not self.pruning_enabled:
            return
        now = now or datetime.now(timezone.utc)
        async with self.db_lock:
            await asyncio.to_thread(
                refresh_expiry_sync,
                self.db_conn,
                channel_id,
                expiry_from(now, self.prune_interval_hours),
            )

    async def prune_expired(self, bot: Any, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        async with self.db_lock:
            expired = await asyncio.to_thread(fetch_expired_conversations_sync, self.db_conn, now)

        pruned = 0
        for record in expired:
            channel_id = record["channel_id"]
            try:
                channel = await resolve_channel(bot, channel_id)
            except Exception as e:
                print(f"[Prune] channel lookup failed channel_id={channel_id}; will retry: {e}")
                continue
            if channel is not None and is_thread_channel(channel):
                try:
                    await mark_summary_inactive(channel, record["message_id"])
                except Exception as e:
                    print(f"[Prune] summary rewrite failed channel_id={channel_id}: {e}")
                if not await destroy_thread(channel):
                    continue
            try:
                async with self.db_lock:
                    await asyncio.to_thread(delete_conversation_sync, self.db_conn, channel_id)
                pruned += 1
            except sqlite3.Error as e:
                print(f"[Prune] record delete failed channel_id={channel_id}: {e}")

        if pruned:
            print(f"[Prune] pruned {pruned} expired conversations")
        return pruned
