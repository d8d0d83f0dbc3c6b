from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from controller.staleness import fetch_last_message
from controller.staleness import is_stale

T = TypeVar("T")

SENT = "sent"
STALE_AT_ENTRY = "stale_at_entry"
STALE_BEFORE_SEND = "stale_before_send"


class ReplyCycle:
    """Debounced reply with two staleness checkpoints.

    1. after the debounce delay, before any backend work
    2. after the backend returns, just before anything is sent

    A stale cycle still lets the backend call finish; its result is dropped.
    """

    def __init__(
        self,
        *,
        bot_id: int,
        delay_seconds: float,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        last_message: Callable[[Any], Awaitable[Any]] = fetch_last_message,
    ):
        self.bot_id = bot_id
        self.delay_seconds = delay_seconds
        self.sleep = sleep
        self.last_message = last_message

    async def checkpoint(self, channel: Any, trigger: Any) -> bool:
        latest = await self.last_message(channel)
        return is_stale(trigger, latest, self.bot_id)

    async def run(
        self,
        channel: Any,
        trigger: Any,
        produce: Callable[[], Awaitable[T]],
        deliver: Callable[[T], Awaitable[Any]],
    ) -> str:
        if self.delay_seconds > 0:
            await self.sleep(self.delay_seconds)
        if await self.checkpoint(channel, trigger):
            print(f"[Chat] stale at entry channel_id={getattr(channel, 'id', None)} message_id={getattr(trigger, 'id', None)}")
            return STALE_AT_ENTRY

        result = await produce()

        if await self.checkpoint(channel, trigger):
            print(
                f"[Chat] stale before send channel_id={getattr(channel, 'id', None)} "
                f"message_id={getattr(trigger, 'id', None)}"
            )
            return STALE_BEFORE_SEND
        await deliver(result)
        return SENT


class ReplyScheduler:
    """Keeps references to in-flight reply tasks so they are not garbage collected."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, coro: Awaitable[Any], *, name: str | None = None) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            print(f"[Chat] reply task {task.get_name()} failed: {exc}")

    @property
    def in_flight(self) -> int:
        return len(self._tasks)
