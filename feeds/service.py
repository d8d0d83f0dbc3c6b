from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from typing import Any, Callable

import discord
import httpx

from feeds.parser import FeedItem
from feeds.parser import FeedParseError
from feeds.parser import parse_feed
from feeds.store import add_feed_sync
from feeds.store import list_feeds_sync
from feeds.store import record_feed_check_sync
from feeds.store import remove_feed_sync

FEED_COLOR = 0x0099FF
FETCH_TIMEOUT_SECONDS = 20.0
EMBED_DESCRIPTION_LIMIT = 4096


@dataclass(frozen=True, slots=True)
class FeedFetch:
    items: list[FeedItem]
    etag: str | None


async def fetch_feed(client: httpx.AsyncClient, url: str, *, etag: str | None = None) -> FeedFetch | None:
    """Conditional GET; None means the source answered 304 Not Modified."""
    headers = {"If-None-Match": etag} if etag else {}
    resp = await client.get(url, headers=headers, follow_redirects=True)
    if resp.status_code == 304:
        return None
    resp.raise_for_status()
    return FeedFetch(items=parse_feed(resp.content), etag=resp.headers.get("etag"))


def new_item_embed(feed_url: str, item: FeedItem) -> discord.Embed:
    embed = discord.Embed(
        title=(item.title or feed_url)[:256],
        url=item.link or None,
        description=(item.content_snippet or item.content or "")[:EMBED_DESCRIPTION_LIMIT],
        color=FEED_COLOR,
        timestamp=item.published,
    )
    embed.set_footer(text=feed_url)
    return embed


class FeedService:
    def __init__(
        self,
        *,
        db_conn: sqlite3.Connection,
        db_lock: asyncio.Lock,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ):
        self.db_conn = db_conn
        self.db_lock = db_lock
        self.client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=FETCH_TIMEOUT_SECONDS))

    async def list_feeds(self) -> list[dict[str, Any]]:
        async with self.db_lock:
            return await asyncio.to_thread(list_feeds_sync, self.db_conn)

    async def subscribe(self, url: str) -> tuple[bool, str]:
        url = (url or "").strip()
        if not url:
            return (False, "You must provide a URL.")
        try:
            async with self.client_factory() as client:
                fetched = await fetch_feed(client, url)
        except (httpx.HTTPError, FeedParseError) as e:
            print(f"[RSS] subscribe fetch failed url={url}: {e}")
            return (False, "Failed to fetch or parse the RSS feed.")
        if fetched is None or not fetched.items:
            return (False, "The RSS feed does not contain any items.")

        async with self.db_lock:
            added = await asyncio.to_thread(
                add_feed_sync,
                self.db_conn,
                url=url,
                last_checked_string=fetched.items[0].fingerprint,
                etag=fetched.etag,
            )
        if not added:
            return (False, f"Already subscribed to {url}")
        print(f"[RSS] subscribed url={url}")
        return (True, f"Successfully subscribed to {url}")

    async def unsubscribe(self, url: str) -> bool:
        async with self.db_lock:
            removed = await asyncio.to_thread(remove_feed_sync, self.db_conn, (url or "").strip())
        return removed > 0

    async def process_feed(self, client: httpx.AsyncClient, feed: dict[str, Any], channel: Any) -> bool:
        """Check one feed; returns True when a notification was sent."""
        url = feed["url"]
        fetched = await fetch_feed(client, url, etag=feed.get("etag"))
        if fetched is None:
            print(f"[RSS] not modified url={url}")
            async with self.db_lock:
                await asyncio.to_thread(record_feed_check_sync, self.db_conn, feed["id"], etag=feed.get("etag"))
            return False

        fingerprint: str | None = None
        notified = False
        if fetched.items:
            newest = fetched.items[0]
            if not newest.matches(feed.get("last_checked_string")):
                print(f"[RSS] new item url={url} title={newest.title!r}")
                await channel.send(
                    content=f"New item in RSS feed <{url}>: {newest.title}",
                    embed=new_item_embed(url, newest),
                )
                fingerprint = newest.fingerprint
                notified = True

        async with self.db_lock:
            await asyncio.to_thread(
                record_feed_check_sync,
                self.db_conn,
                feed["id"],
                etag=fetched.etag,
                last_checked_string=fingerprint,
            )
        return notified

    async def poll(self, channel: Any) -> int:
        feeds = await self.list_feeds()
        if not feeds:
            return 0
        notified = 0
        async with self.client_factory() as client:
            for feed in feeds:
                try:
                    if await self.process_feed(client, feed, channel):
                        notified += 1
                except Exception as e:
                    print(f"[RSS] feed failed url={feed['url']}: {e}")
        print(f"[RSS] checked {len(feeds)} feeds, {notified} new items")
        return notified
