from __future__ import annotations

from typing import Any

import discord

THREAD_CHANNEL_TYPES = {"public_thread", "private_thread"}


def channel_kind(channel: Any) -> str:
    kind = getattr(channel, "type", None)
    return str(getattr(kind, "name", kind) or "")


def is_direct_message_channel(channel: Any) -> bool:
    return isinstance(channel, discord.DMChannel) or channel_kind(channel) == "private"


def is_conversation_thread(channel: Any) -> bool:
    return channel_kind(channel) in THREAD_CHANNEL_TYPES


def thread_reply_block_reason(thread: Any, *, bot_id: int, prefix: str) -> str | None:
    """Return why the bot must stay quiet in this thread, or None when it may reply."""
    if int(getattr(thread, "owner_id", 0) or 0) != int(bot_id):
        return "not_bot_owned"
    if getattr(thread, "archived", False) or getattr(thread, "locked", False):
        return "archived_or_locked"
    prefix = (prefix or "").strip()
    if prefix and not str(getattr(thread, "name", "") or "").startswith(prefix):
        return "missing_prefix"
    return None


def should_ignore_message(message: Any, *, bot_id: int) -> bool:
    author_id = getattr(getattr(message, "author", None), "id", None)
    if author_id == bot_id:
        return True
    kind = getattr(message, "type", None)
    if getattr(kind, "name", kind) not in (None, "default"):
        return True
    if not getattr(message, "content", "") and not getattr(message, "attachments", None):
        return True
    if getattr(message, "embeds", None):
        return True
    if getattr(message, "mentions", None):
        return True
    return False
