from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import discord

from config.defaults import FAILED_REQUEST_DELETE_SECONDS
from controller.attachments import AttachmentNormalizer
from controller.completion import CompletionDispatcher
from controller.completion import CompletionOutcome
from controller.completion import Ok
from controller.completion import UnexpectedError
from controller.context import build_direct_message_context
from controller.context import build_thread_context
from controller.paginator import send_paginated
from controller.reply_cycle import ReplyCycle
from conversations.lifecycle import ConversationLifecycle

FAILURE_TITLE = "Failed to generate a response"
FAILURE_MESSAGE_FIELD_LIMIT = 200


def truncate_field(text: str, limit: int = FAILURE_MESSAGE_FIELD_LIMIT) -> str:
    text = text or ""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def failure_embed(detail: str, trigger_content: str) -> discord.Embed:
    embed = discord.Embed(title=FAILURE_TITLE, description=detail, color=discord.Color.red())
    embed.add_field(name="Message", value=truncate_field(trigger_content) or "(attachment)", inline=False)
    return embed


def should_self_delete(outcome: CompletionOutcome) -> bool:
    return isinstance(outcome, UnexpectedError)


def is_missing_permissions(err: Exception) -> bool:
    return isinstance(err, discord.Forbidden) and getattr(err, "code", None) == 50013


async def send_failure(channel: Any, trigger: Any, outcome: CompletionOutcome) -> Any:
    sent = await channel.send(embed=failure_embed(outcome.message, str(getattr(trigger, "content", "") or "")))
    if should_self_delete(outcome):
        await sent.delete(delay=FAILED_REQUEST_DELETE_SECONDS)
    return sent


async def detach_components(messages: list[Any], bot_id: int) -> None:
    for message in messages:
        author_id = getattr(getattr(message, "author", None), "id", None)
        if author_id != bot_id or not getattr(message, "components", None):
            continue
        try:
            await message.edit(view=None)
        except discord.HTTPException as e:
            print(f"[Chat] detach components failed message_id={getattr(message, 'id', None)}: {e}")


async def fetch_history_before(channel: Any, trigger: Any, limit: int) -> list[Any]:
    return [m async for m in channel.history(limit=limit, before=trigger)]


async def fetch_thread_starter(thread: Any) -> Any | None:
    async for message in thread.history(limit=1, oldest_first=True):
        return message
    return None


class ChatReplyService:
    """Runs the reply cycle for DM and conversation-thread messages."""

    def __init__(
        self,
        *,
        dispatcher: CompletionDispatcher,
        normalizer: AttachmentNormalizer,
        lifecycle: ConversationLifecycle,
        default_instruction: str,
        tokens_per_message: int,
        history_limit: int,
        delay_seconds: float,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.dispatcher = dispatcher
        self.normalizer = normalizer
        self.lifecycle = lifecycle
        self.default_instruction = default_instruction
        self.tokens_per_message = tokens_per_message
        self.history_limit = history_limit
        self.delay_seconds = delay_seconds
        self.sleep = sleep

    def cycle_for(self, bot_id: int) -> ReplyCycle:
        return ReplyCycle(bot_id=bot_id, delay_seconds=self.delay_seconds, sleep=self.sleep)

    async def _complete(self, channel: Any, context: list) -> CompletionOutcome:
        async with channel.typing():
            return await self.dispatcher.dispatch(context)

    async def handle_thread_message(self, thread: Any, message: Any, *, bot_id: int) -> str | None:
        history: list[Any] = []

        async def produce() -> CompletionOutcome:
            history.extend(await fetch_history_before(thread, message, self.history_limit))
            starter = await fetch_thread_starter(thread)
            context = await build_thread_context(
                starter,
                history,
                message,
                bot_id=bot_id,
                default_instruction=self.default_instruction,
                tokens_per_message=self.tokens_per_message,
                normalize_attachment=self.normalizer,
            )
            return await self._complete(thread, context)

        async def deliver(outcome: CompletionOutcome) -> None:
            if not isinstance(outcome, Ok):
                await send_failure(thread, message, outcome)
                return
            await detach_components(history, bot_id)
            await thread.send(content=outcome.text)
            await self.lifecycle.touch(int(thread.id))

        return await self._run_guarded(thread, message, bot_id=bot_id, produce=produce, deliver=deliver)

    async def handle_direct_message(self, channel: Any, message: Any, *, bot_id: int) -> str | None:
        history: list[Any] = []

        async def produce() -> CompletionOutcome:
            history.extend(await fetch_history_before(channel, message, self.history_limit))
            context = await build_direct_message_context(
                history,
                message,
                bot_id=bot_id,
                default_instruction=self.default_instruction,
                tokens_per_message=self.tokens_per_message,
                normalize_attachment=self.normalizer,
            )
            return await self._complete(channel, context)

        async def deliver(outcome: CompletionOutcome) -> None:
            if not isinstance(outcome, Ok):
                await send_failure(channel, message, outcome)
                return
            await send_paginated(channel, outcome.text, sleep=self.sleep)
            await detach_components(history, bot_id)

        return await self._run_guarded(channel, message, bot_id=bot_id, produce=produce, deliver=deliver)

    async def _run_guarded(self, channel: Any, message: Any, *, bot_id: int, produce, deliver) -> str | None:
        try:
            return await self.cycle_for(bot_id).run(channel, message, produce, deliver)
        except discord.HTTPException as e:
            if not is_missing_permissions(e):
                print(f"[Chat] reply failed channel_id={getattr(channel, 'id', None)}: {e}")
            return None
