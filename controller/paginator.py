from __future__ import annotations

import asyncio
import re
from typing import Any, Awaitable, Callable

from config.defaults import TYPING_CHARS_PER_SECOND

SPLIT_RE = re.compile(r"%%%%|\.|!|\?|\n|\r|\t")
CODE_FENCE = "```"


def paginate(text: str) -> list[str]:
    chunks: list[str] = []
    pending = ""
    for raw in SPLIT_RE.split(text or ""):
        fragment = raw.strip()
        if not fragment:
            continue
        if len(fragment) <= 1 and pending:
            pending = f"{pending} {fragment}"
            continue
        if pending:
            chunks.append(pending)
        pending = fragment
    if pending:
        chunks.append(pending)
    return chunks


def typing_delay(chunk: str, chars_per_second: float = TYPING_CHARS_PER_SECOND) -> float:
    return len(chunk) / chars_per_second


async def send_paginated(
    channel: Any,
    text: str,
    *,
    chars_per_second: float = TYPING_CHARS_PER_SECOND,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> list[Any]:
    """Send a completion as paced chunks; code blocks go out whole."""
    if CODE_FENCE in text:
        return [await channel.send(content=text)]

    sent: list[Any] = []
    for chunk in paginate(text):
        async with channel.typing():
            await sleep(typing_delay(chunk, chars_per_second))
        sent.append(await channel.send(content=chunk))
    return sent
