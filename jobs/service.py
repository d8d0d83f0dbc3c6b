from __future__ import annotations

import asyncio
from typing import Any

from conversations.lifecycle import ConversationLifecycle
from feeds.service import FeedService


async def resolve_rss_channel(bot: Any, channel_id: int) -> Any | None:
    if not channel_id:
        return None
    channel = bot.get_channel(channel_id)
    if channel is None:
        channel = await bot.fetch_channel(channel_id)
    return channel


async def run_tick(
    bot: Any,
    *,
    lifecycle: ConversationLifecycle,
    feeds: FeedService,
    rss_channel_id: int,
) -> None:
    """One pass of the periodic jobs; each job is isolated from the other's failures."""
    if lifecycle.pruning_enabled:
        try:
            await lifecycle.prune_expired(bot)
        except Exception as e:
            print(f"[Jobs] prune pass failed: {e}")

    if rss_channel_id:
        try:
            channel = await resolve_rss_channel(bot, rss_channel_id)
            if channel is None:
                print(f"[Jobs] rss channel unavailable channel_id={rss_channel_id}")
            else:
                await feeds.poll(channel)
        except Exception as e:
            print(f"[Jobs] rss pass failed: {e}")


async def tick_loop(
    bot: Any,
    *,
    lifecycle: ConversationLifecycle,
    feeds: FeedService,
    rss_channel_id: int,
    interval_seconds: int = 60,
) -> None:
    print(
        f"[Jobs] tick loop started interval_s={interval_seconds} "
        f"prune={'on' if lifecycle.pruning_enabled else 'off'} rss={'on' if rss_channel_id else 'off'}"
    )
    while True:
        try:
            await run_tick(bot, lifecycle=lifecycle, feeds=feeds, rss_channel_id=rss_channel_id)
        except Exception as e:
            print(f"[Jobs] tick error: {e}")
        await asyncio.sleep(interval_seconds)
