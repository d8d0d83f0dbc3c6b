from __future__ import annotations

import asyncio

import discord
from discord.ext import commands

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates


def webhook_url(base_url: str, path: str, channel_id: int, *, is_protected: bool, secret: str | None) -> str:
    url = f"{base_url.rstrip('/')}/webhooks{path}?channelId={int(channel_id)}"
    if is_protected and secret:
        url += f"&secret={secret}"
    return url


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    @bot.command(name="webhooks")
    async def cmd_webhooks(ctx: commands.Context):
        if not gates.user_is_owner(ctx.author):
            await ctx.send("This command is owner-only.")
            return

        async with deps.db_lock:
            rows = await asyncio.to_thread(deps.list_webhook_routes_sync, deps.db_conn)
        if not rows:
            await ctx.send("No webhook routes are registered.")
            return

        embed = discord.Embed(
            title="Webhooks",
            description="Registered webhook routes for this channel:",
            color=discord.Color.blue(),
        )
        for index, row in enumerate(rows[:25], start=1):
            url = webhook_url(
                deps.base_url,
                row["path"],
                ctx.channel.id,
                is_protected=row["is_protected"],
                secret=row.get("secret"),
            )
            embed.add_field(
                name=f"Webhook #{index}",
                value=(
                    f"**Path:** `{row['path']}`\n"
                    f"**Is Protected:** {'Yes' if row['is_protected'] else 'No'}\n"
                    f"**URL:** {url}"
                )[:1024],
                inline=False,
            )
        await ctx.send(embed=embed)
