from __future__ import annotations

from typing import Any

import discord
import httpx
from discord.ext import commands

from anime.tracemoe import Sauce
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates

SAUCE_RATE = 5
SAUCE_PER_SECONDS = 60.0
INVALID_IMAGE_MESSAGE = "You must provide a valid image."
NO_MATCH_MESSAGE = "No anime found."


def error_embed(message: str) -> discord.Embed:
    return discord.Embed(title="Error", description=message, color=discord.Color.red())


def first_image_attachment(message: Any) -> Any | None:
    for attachment in getattr(message, "attachments", None) or []:
        content_type = str(getattr(attachment, "content_type", "") or "")
        if getattr(attachment, "url", None) and content_type.startswith("image"):
            return attachment
    return None


def sauce_embed(sauce: Sauce) -> discord.Embed:
    details = sauce.details
    embed = discord.Embed(
        title="📺 Anime Sauce",
        description="Here are the details of the anime:",
        color=discord.Color.blue(),
        timestamp=discord.utils.utcnow(),
    )
    embed.add_field(name="Title", value=details.title, inline=False)
    embed.add_field(name="Episode", value=str(sauce.match.episode or "Unknown"), inline=False)
    embed.add_field(name="Total Episodes", value=str(details.episodes or "Unknown"), inline=False)
    embed.add_field(name="Genres", value=", ".join(details.genres) or "Unknown", inline=False)
    embed.add_field(name="Average Score", value=str(details.average_score or "Unknown"), inline=False)
    if sauce.match.image:
        embed.set_image(url=sauce.match.image)
    embed.set_footer(text=f"Powered by trace.moe | limit: {sauce.limit.remaining}/{sauce.limit.limit}")
    return embed


async def reply_with_sauce(ctx: Any, finder: Any) -> Sauce | None:
    attachment = first_image_attachment(ctx.message)
    if attachment is None:
        await ctx.reply(embed=error_embed(INVALID_IMAGE_MESSAGE), mention_author=False)
        return None

    status = await ctx.reply("Searching for anime sauce...", mention_author=False)
    try:
        image = await attachment.read()
        sauce = await finder.find(image, content_type=attachment.content_type)
    except (discord.HTTPException, httpx.HTTPError, ValueError) as e:
        print(f"[Sauce] lookup failed message_id={getattr(ctx.message, 'id', None)}: {e}")
        await status.edit(content=None, embed=error_embed(str(e) or "An error occurred."))
        return None

    if sauce is None:
        await status.edit(content=None, embed=error_embed(NO_MATCH_MESSAGE))
        return None
    await status.edit(content="Match found!", embed=sauce_embed(sauce))
    if sauce.match.video:
        await ctx.send(sauce.match.video)
    return sauce


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    @bot.command(name="sauce")
    @commands.cooldown(SAUCE_RATE, SAUCE_PER_SECONDS, commands.BucketType.user)
    async def cmd_sauce(ctx: commands.Context):
        async with ctx.typing():
            await reply_with_sauce(ctx, deps.sauce)

    @cmd_sauce.error
    async def cmd_sauce_error(ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.CommandOnCooldown):
            await ctx.reply(f"Slow down, try again in {error.retry_after:.0f}s.", mention_author=False)
            return
        print(f"[Sauce] command failed: {error}")
