from __future__ import annotations

from datetime import datetime

import discord
from discord.ext import commands

from config.defaults import DEFAULT_BEHAVIOR_SENTINEL
from controller.completion import Ok
from controller.context import ROLE_USER
from controller.context import ContextEntry
from controller.context import assemble_context
from controller.context import display_name_of
from controller.context import resolve_instruction
from controller.reply_service import send_failure
from conversations.lifecycle import THREAD_FIELD
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates

EMBED_FIELD_LIMIT = 1024
THREAD_NAME_LIMIT = 100
FALLBACK_TITLE_LIMIT = 90


def split_prompt_and_behavior(raw: str) -> tuple[str, str]:
    prompt, sep, behavior = (raw or "").partition("|")
    prompt = prompt.strip()
    behavior = behavior.strip() if sep else ""
    return prompt, behavior or DEFAULT_BEHAVIOR_SENTINEL


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def thread_name(prefix: str, title: str) -> str:
    name = f"{prefix.strip()} {title.strip()}".strip()
    return _clip(name, THREAD_NAME_LIMIT)


def summary_embed(title: str, prompt: str, behavior: str, *, thread_mention: str, author_name: str) -> discord.Embed:
    embed = discord.Embed(title=_clip(title, 256), color=discord.Color.blurple())
    embed.set_author(name=author_name)
    embed.add_field(name="Message", value=_clip(prompt, EMBED_FIELD_LIMIT), inline=False)
    embed.add_field(name="Behavior", value=_clip(behavior, EMBED_FIELD_LIMIT), inline=False)
    embed.add_field(name=THREAD_FIELD, value=thread_mention, inline=False)
    return embed


def starter_embed(prompt: str, behavior: str) -> discord.Embed:
    embed = discord.Embed(color=discord.Color.blurple())
    embed.add_field(name="Message", value=_clip(prompt, EMBED_FIELD_LIMIT), inline=False)
    embed.add_field(name="Behavior", value=_clip(behavior, EMBED_FIELD_LIMIT), inline=False)
    return embed


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    @bot.command(name="chat")
    @commands.guild_only()
    async def cmd_chat(ctx: commands.Context, *, text: str = ""):
        prompt, behavior = split_prompt_and_behavior(text)
        if not prompt:
            await ctx.reply("Usage: `!chat <message> [| behavior]`", mention_author=False)
            return
        if not isinstance(ctx.channel, discord.TextChannel):
            await ctx.reply("Start conversations from a regular text channel.", mention_author=False)
            return

        author_name = display_name_of(ctx.author)
        instruction = resolve_instruction(
            behavior,
            deps.default_instruction,
            user_name=author_name,
            now=datetime.now(),
        )
        context = assemble_context(
            [],
            ContextEntry(role=ROLE_USER, content=prompt, source_message_id=ctx.message.id),
            instruction=instruction,
            tokens_per_message=deps.tokens_per_message,
        )
        async with ctx.typing():
            outcome = await deps.dispatcher.dispatch(context)
        if not isinstance(outcome, Ok):
            await send_failure(ctx.channel, ctx.message, outcome)
            return

        title = await deps.dispatcher.generate_title(prompt, outcome.text) or _clip(prompt, FALLBACK_TITLE_LIMIT)
        summary = await ctx.send(
            embed=summary_embed(title, prompt, behavior, thread_mention="starting...", author_name=author_name)
        )
        thread = await ctx.channel.create_thread(
            name=thread_name(deps.thread_prefix, title),
            type=discord.ChannelType.public_thread,
        )
        await summary.edit(
            embed=summary_embed(title, prompt, behavior, thread_mention=thread.mention, author_name=author_name)
        )
        await thread.send(embed=starter_embed(prompt, behavior))
        await deps.lifecycle.start(channel_id=thread.id, message_id=summary.id)
        await thread.send(content=outcome.text)
        print(f"[Chat] conversation started thread_id={thread.id} author_id={ctx.author.id}")

    @bot.command(name="imagine")
    async def cmd_imagine(ctx: commands.Context, *, prompt: str = ""):
        prompt = (prompt or "").strip()
        if not prompt:
            await ctx.reply("Usage: `!imagine <prompt>`", mention_author=False)
            return
        async with ctx.typing():
            outcome = await deps.dispatcher.create_image(prompt)
        if not isinstance(outcome, Ok):
            await send_failure(ctx.channel, ctx.message, outcome)
            return
        embed = discord.Embed(title=_clip(prompt, 256), color=discord.Color.blurple())
        embed.set_image(url=outcome.text)
        await ctx.reply(embed=embed, mention_author=False)
