from __future__ import annotations

from typing import Any


def is_stale(trigger: Any, last_message: Any | None, bot_id: int) -> bool:
    """True when someone other than the bot posted after the trigger."""
    if last_message is None:
        return False
    if getattr(last_message, "id", None) == getattr(trigger, "id", None):
        return False
    author_id = getattr(getattr(last_message, "author", None), "id", None)
    return author_id != bot_id


async def fetch_last_message(channel: Any) -> Any | None:
    async for message in channel.history(limit=1):
        return message
    return None
