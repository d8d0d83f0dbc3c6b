from __future__ import annotations

from discord.ext import commands

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    @bot.command(name="subscribe")
    async def cmd_subscribe(ctx: commands.Context, url: str = ""):
        if not gates.user_is_owner(ctx.author):
            await ctx.send("This command is owner-only.")
            return
        if not url:
            await ctx.reply("Usage: `!subscribe <feed url>`", mention_author=False)
            return
        async with ctx.typing():
            _ok, text = await deps.feeds.subscribe(url.strip("<>"))
        await ctx.reply(text, mention_author=False)

    @bot.command(name="unsubscribe")
    async def cmd_unsubscribe(ctx: commands.Context, url: str = ""):
        if not gates.user_is_owner(ctx.author):
            await ctx.send("This command is owner-only.")
            return
        if not url:
            await ctx.reply("Usage: `!unsubscribe <feed url>`", mention_author=False)
            return
        url = url.strip("<>")
        removed = await deps.feeds.unsubscribe(url)
        await ctx.reply(
            f"Unsubscribed from {url}" if removed else f"No subscription found for {url}",
            mention_author=False,
        )

    @bot.command(name="feeds")
    async def cmd_feeds(ctx: commands.Context):
        rows = await deps.feeds.list_feeds()
        if not rows:
            await ctx.send("No RSS subscriptions yet.")
            return
        lines = [f"RSS subscriptions ({len(rows)}):"]
        for row in rows:
            checked = row.get("last_checked_utc") or "never"
            lines.append(f"- <{row['url']}> last checked {checked}")
        await ctx.send("\n".join(lines)[:2000])
