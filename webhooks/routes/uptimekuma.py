from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import discord

from webhooks.models import WebhookContext
from webhooks.models import WebhookDeps
from webhooks.models import WebhookResponse
from webhooks.models import json_response
from webhooks.models import text_response

PATH = "/uptimekuma"
IS_PROTECTED = True


def monitor_is_up(body: dict[str, Any]) -> bool:
    return (body.get("heartbeat") or {}).get("status") == 1


def monitor_embed(body: dict[str, Any]) -> discord.Embed:
    heartbeat = body.get("heartbeat") or {}
    monitor = body.get("monitor") or {}
    is_up = monitor_is_up(body)
    embed = discord.Embed(
        title=f"UptimeKuma - {monitor.get('name', 'monitor')} is {'Up' if is_up else 'Down'}",
        color=discord.Color.green() if is_up else discord.Color.red(),
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(name="Monitor ID", value=str(heartbeat.get("monitorID", "unknown")), inline=False)
    embed.add_field(name="Monitor URL", value=str(monitor.get("url") or "n/a"), inline=False)
    embed.add_field(name="Monitor Duration", value=str(heartbeat.get("duration", 0)), inline=False)
    embed.add_field(name="Monitor Reason", value=str(heartbeat.get("msg") or "n/a"), inline=False)
    return embed


async def replace_status_event(bot: Any, guild_id: int, body: dict[str, Any]) -> None:
    """Swap the guild's scheduled events for one describing the monitor state."""
    guild = bot.get_guild(guild_id) or await bot.fetch_guild(guild_id)
    for event in await guild.fetch_scheduled_events():
        await event.delete()

    name = (body.get("monitor") or {}).get("name", "monitor")
    status = "Up" if monitor_is_up(body) else "Down"
    duration_ms = int((body.get("heartbeat") or {}).get("duration") or 0)
    start = datetime.now(timezone.utc) + timedelta(seconds=2)
    end = start + timedelta(milliseconds=duration_ms, seconds=60)
    await guild.create_scheduled_event(
        name=f"Monitor {name} is {status}",
        description=f"Monitor {name} is {status}",
        start_time=start,
        end_time=end,
        entity_type=discord.EntityType.external,
        privacy_level=discord.PrivacyLevel.guild_only,
        location="UptimeKuma",
    )


def post(deps: WebhookDeps):
    async def handler(ctx: WebhookContext) -> WebhookResponse:
        try:
            body = ctx.request.json()
        except ValueError:
            return json_response({"error": "Invalid request body"}, 400)
        if not isinstance(body, dict):
            return json_response({"error": "Invalid request body"}, 400)

        await ctx.channel.send(embed=monitor_embed(body))

        if deps.guild_id:
            try:
                await replace_status_event(deps.bot, deps.guild_id, body)
            except discord.HTTPException as e:
                print(f"[Webhooks] uptime scheduled event update failed guild_id={deps.guild_id}: {e}")
        return text_response("OK")

    return handler
