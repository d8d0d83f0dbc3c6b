from __future__ import annotations

import math
from dataclasses import replace
from typing import Sequence, TypeVar

CHARS_PER_TOKEN = 4

T = TypeVar("T")


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate_to_tokens(text: str, allowance: int) -> str:
    if allowance <= 0:
        return ""
    return text[: allowance * CHARS_PER_TOKEN]


def fit_history(history: Sequence[T], max_total: int) -> list[T]:
    """Bound history to max_total estimated tokens.

    Walks oldest to newest. The first entry that would overflow is cut down to
    whatever allowance is left and nothing after it is kept. Entries are any
    dataclass with a ``content`` field.
    """
    fitted: list[T] = []
    used = 0
    for entry in history:
        content = getattr(entry, "content", "") or ""
        cost = estimate_tokens(content)
        if used + cost <= max_total:
            fitted.append(entry)
            used += cost
            continue
        remaining = max_total - used
        trimmed = truncate_to_tokens(content, remaining)
        if trimmed:
            fitted.append(replace(entry, content=trimmed))
        break
    return fitted
