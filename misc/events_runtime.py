from __future__ import annotations

import asyncio

import discord
from discord.ext import commands

from misc.discord_gates import is_conversation_thread
from misc.discord_gates import is_direct_message_channel
from misc.discord_gates import should_ignore_message
from misc.discord_gates import thread_reply_block_reason
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def route_chat_message(bot: commands.Bot, message: discord.Message, *, deps: RuntimeDeps) -> str | None:
    """Schedule a reply cycle for a chat message; returns the route taken, if any."""
    bot_id = bot.user.id if bot.user else 0
    if should_ignore_message(message, bot_id=bot_id):
        return None

    channel = message.channel
    if is_direct_message_channel(channel):
        print(f"[Chat] DM received author_id={message.author.id} message_id={message.id}")
        deps.reply_scheduler.schedule(
            deps.reply_service.handle_direct_message(channel, message, bot_id=bot_id),
            name=f"dm-reply-{message.id}",
        )
        return "dm"

    if is_conversation_thread(channel):
        reason = thread_reply_block_reason(channel, bot_id=bot_id, prefix=deps.thread_prefix)
        if reason:
            print(f"[Chat] thread ignored thread_id={channel.id} reason={reason}")
            return None
        deps.reply_scheduler.schedule(
            deps.reply_service.handle_thread_message(channel, message, bot_id=bot_id),
            name=f"thread-reply-{message.id}",
        )
        return "thread"
    return None


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    @bot.event
    async def on_ready():
        print(f"{boot.bot_name} is online as {bot.user}")
        print(f"Invite URL: {boot.invite_url}")

        if not getattr(bot, "_tick_task", None):
            bot._tick_task = asyncio.create_task(boot.tick_loop_func())
        if not getattr(bot, "_webhook_server_task", None):
            bot._webhook_server_task = boot.start_webhook_server_func()

    @bot.event
    async def on_message(message: discord.Message):
        if (message.content or "").lstrip().startswith(deps.command_prefix):
            await bot.process_commands(message)
            return

        route_chat_message(bot, message, deps=deps)
