from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Sequence

from config.defaults import DEFAULT_BEHAVIOR_SENTINEL
from controller.attachments import strip_image_payload
from controller.tokens import fit_history

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_FUNCTION = "function"

STARTER_PROMPT_FIELD = "Message"
STARTER_BEHAVIOR_FIELD = "Behavior"
SYSTEM_ENTRY_ID = "system"

# Called as normalize(message, with_payload=bool); without payload an image becomes a bare data:<mime>.
AttachmentNormalizer = Callable[..., Awaitable[str | None]]


@dataclass(frozen=True, slots=True)
class ContextEntry:
    role: str
    content: str
    source_message_id: int | str | None = None


def _ordinal(day: int) -> str:
    if 11 <= day % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def format_long_date(now: datetime) -> str:
    return f"{now.strftime('%B')} {_ordinal(now.day)}, {now.year}"


def display_name_of(author: Any) -> str:
    for attr in ("display_name", "global_name", "name"):
        value = getattr(author, attr, None)
        if value:
            return str(value)
    return "user"


def resolve_instruction(
    behavior: str | None,
    default_instruction: str,
    *,
    user_name: str,
    now: datetime,
) -> str:
    raw = (behavior or "").strip()
    if not raw or raw == DEFAULT_BEHAVIOR_SENTINEL:
        raw = (default_instruction or "").strip()
    raw = raw.replace("{{user}}", user_name)
    instruction = re.sub(r"\.+$", "", raw).rstrip() + "."
    return (
        f"{instruction} The current date is {format_long_date(now)}. "
        f"The latest message is from {user_name}."
    )


def is_default_message(message: Any) -> bool:
    kind = getattr(message, "type", None)
    name = getattr(kind, "name", kind)
    return name in (None, "default")


def is_context_candidate(message: Any) -> bool:
    if not is_default_message(message):
        return False
    if not (getattr(message, "content", "") or getattr(message, "attachments", None)):
        return False
    if getattr(message, "embeds", None):
        return False
    if getattr(message, "mentions", None):
        return False
    return True


def filter_history(history_newest_first: Sequence[Any]) -> list[Any]:
    """Keep plain conversational messages and flip them to chronological order."""
    kept = [m for m in history_newest_first if is_context_candidate(m)]
    kept.reverse()
    return kept


async def message_text(
    message: Any,
    normalize_attachment: AttachmentNormalizer | None,
    *,
    with_payload: bool = True,
) -> str:
    if getattr(message, "attachments", None) and normalize_attachment is not None:
        normalized = await normalize_attachment(message, with_payload=with_payload)
        if normalized:
            return normalized if with_payload else strip_image_payload(normalized)
    return str(getattr(message, "content", "") or "")


def assemble_context(
    history: Sequence[ContextEntry],
    user_entry: ContextEntry,
    *,
    instruction: str,
    tokens_per_message: int,
) -> list[ContextEntry]:
    system_entry = ContextEntry(role=ROLE_SYSTEM, content=instruction, source_message_id=SYSTEM_ENTRY_ID)
    if not history:
        return [system_entry, user_entry]
    fitted = fit_history(history, tokens_per_message * len(history))
    return [system_entry, *fitted, user_entry]


async def _history_entries(
    messages: Sequence[Any],
    *,
    bot_id: int,
    normalize_attachment: AttachmentNormalizer | None,
) -> list[ContextEntry]:
    entries: list[ContextEntry] = []
    for message in messages:
        author_id = getattr(getattr(message, "author", None), "id", None)
        role = ROLE_ASSISTANT if author_id == bot_id else ROLE_USER
        entries.append(
            ContextEntry(
                role=role,
                content=await message_text(message, normalize_attachment, with_payload=False),
                source_message_id=getattr(message, "id", None),
            )
        )
    return entries


def _field_value(field: Any, expected_name: str) -> str:
    if getattr(field, "name", "") != expected_name:
        return ""
    return str(getattr(field, "value", "") or "")


def read_starter_fields(starter: Any) -> tuple[str, str] | None:
    """Return (prompt, behavior) from a conversation starter embed, or None when the shape is off."""
    if starter is None:
        return None
    embeds = getattr(starter, "embeds", None) or []
    if len(embeds) != 1:
        return None
    fields = list(getattr(embeds[0], "fields", None) or [])
    if len(fields) != 2:
        return None
    prompt_field, behavior_field = fields
    prompt = _field_value(prompt_field, STARTER_PROMPT_FIELD)
    behavior = _field_value(behavior_field, STARTER_BEHAVIOR_FIELD)
    if not prompt or not behavior:
        return None
    return prompt, behavior


async def _user_entry(message: Any, normalize_attachment: AttachmentNormalizer | None) -> ContextEntry:
    return ContextEntry(
        role=ROLE_USER,
        content=await message_text(message, normalize_attachment),
        source_message_id=getattr(message, "id", None),
    )


async def build_thread_context(
    starter: Any,
    history_newest_first: Sequence[Any],
    user_message: Any,
    *,
    bot_id: int,
    default_instruction: str,
    tokens_per_message: int,
    normalize_attachment: AttachmentNormalizer | None = None,
    now: datetime | None = None,
) -> list[ContextEntry]:
    now = now or datetime.now()
    user_name = display_name_of(getattr(user_message, "author", None))
    user_entry = await _user_entry(user_message, normalize_attachment)

    parsed = read_starter_fields(starter)
    if parsed is None:
        print(f"[Context] starter shape unrecognised; using empty history message_id={getattr(user_message, 'id', None)}")
        instruction = resolve_instruction(None, default_instruction, user_name=user_name, now=now)
        return assemble_context([], user_entry, instruction=instruction, tokens_per_message=tokens_per_message)

    prompt, behavior = parsed
    history: list[ContextEntry] = [
        ContextEntry(role=ROLE_USER, content=prompt, source_message_id=getattr(starter, "id", None))
    ]
    history.extend(
        await _history_entries(
            filter_history(history_newest_first),
            bot_id=bot_id,
            normalize_attachment=normalize_attachment,
        )
    )
    instruction = resolve_instruction(behavior, default_instruction, user_name=user_name, now=now)
    return assemble_context(history, user_entry, instruction=instruction, tokens_per_message=tokens_per_message)


async def build_direct_message_context(
    history_newest_first: Sequence[Any],
    user_message: Any,
    *,
    bot_id: int,
    default_instruction: str,
    tokens_per_message: int,
    normalize_attachment: AttachmentNormalizer | None = None,
    now: datetime | None = None,
) -> list[ContextEntry]:
    now = now or datetime.now()
    user_name = display_name_of(getattr(user_message, "author", None))
    user_entry = await _user_entry(user_message, normalize_attachment)
    history = await _history_entries(
        filter_history(history_newest_first),
        bot_id=bot_id,
        normalize_attachment=normalize_attachment,
    )
    instruction = resolve_instruction(None, default_instruction, user_name=user_name, now=now)
    return assemble_context(history, user_entry, instruction=instruction, tokens_per_message=tokens_per_message)
