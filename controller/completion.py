from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from typing import Any, Sequence, Union

import openai

from config.defaults import DISCORD_MAX_MESSAGE_LEN
from controller.attachments import has_image_payload
from controller.attachments import is_image_data_uri
from controller.context import ROLE_ASSISTANT
from controller.context import ROLE_FUNCTION
from controller.context import ROLE_SYSTEM
from controller.context import ROLE_USER
from controller.context import ContextEntry
from controller.store import get_attachment_annotation_sync
from controller.store import set_attachment_annotation_sync

CONTEXT_LENGTH_MESSAGE = (
    "The request has exceeded the token limit. Try again with a shorter message or start another conversation."
)
MODERATED_MESSAGE = "Your prompt has been blocked by moderation."
UNEXPECTED_MESSAGE = "There was an unexpected error while processing your request."
IMAGE_UNAVAILABLE_MESSAGE = "The user shared an image in the discord chat, but it could not be analysed."
ANNOTATION_PROMPT = "You received an image. Describe the image in detail and extract any useful information from it."
TITLE_PROMPT = "Create a title for our conversation in 6 words or less."


@dataclass(frozen=True, slots=True)
class Ok:
    text: str

    @property
    def message(self) -> str:
        return self.text


@dataclass(frozen=True, slots=True)
class Moderated:
    reason: str = MODERATED_MESSAGE

    @property
    def message(self) -> str:
        return self.reason


@dataclass(frozen=True, slots=True)
class ContextLengthExceeded:
    message: str = CONTEXT_LENGTH_MESSAGE


@dataclass(frozen=True, slots=True)
class InvalidRequest:
    detail: str

    @property
    def message(self) -> str:
        return self.detail


@dataclass(frozen=True, slots=True)
class UnexpectedError:
    detail: str = UNEXPECTED_MESSAGE

    @property
    def message(self) -> str:
        return self.detail


CompletionOutcome = Union[Ok, Moderated, ContextLengthExceeded, InvalidRequest, UnexpectedError]


def outcome_tag(outcome: CompletionOutcome) -> str:
    return type(outcome).__name__


def truncate_for_display(text: str, limit: int = DISCORD_MAX_MESSAGE_LEN) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def classify_backend_error(err: Exception) -> CompletionOutcome:
    if isinstance(err, openai.BadRequestError):
        if getattr(err, "code", None) == "context_length_exceeded":
            return ContextLengthExceeded()
        body = getattr(err, "body", None)
        detail = body.get("message") if isinstance(body, dict) else None
        return InvalidRequest(detail=str(detail or getattr(err, "message", "") or err))
    return UnexpectedError(detail=str(err) or UNEXPECTED_MESSAGE)


def annotation_as_instruction(description: str, scene_context: str = "") -> str:
    if not scene_context:
        return (
            f"The image you received in the discord chat has the following description: {description.strip()} "
            "Please provide the user with any relevant information and share your thoughts on the image."
        )
    return (
        f"The image you received in the discord chat has the following description: {description.strip()} "
        f"Based on the additional context, it appears that {scene_context.strip()} "
        "Please provide the user with any relevant information and share your thoughts on the image. "
        "If the additional context does not align with the description, please disregard it. "
        "If it does align, please provide as much context as possible."
    )


class ImageAnnotator:
    """Vision-model description of an image data URI, optionally with anime scene context."""

    def __init__(self, client: Any, *, model: str, scene_finder: Any = None):
        self.client = client
        self.model = model
        self.scene_finder = scene_finder

    async def scene_context(self, data_uri: str) -> str:
        if self.scene_finder is None:
            return ""
        return await self.scene_finder.scene_context(data_uri)

    async def describe(self, data_uri: str) -> str:
        resp = await asyncio.to_thread(
            self.client.chat.completions.create,
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": ANNOTATION_PROMPT},
                        {"type": "image_url", "image_url": {"url": data_uri}},
                    ],
                }
            ],
        )
        return (resp.choices[0].message.content or "").strip()


class CompletionDispatcher:
    def __init__(
        self,
        client: Any,
        *,
        model: str,
        temperature: float,
        db_conn: sqlite3.Connection,
        db_lock: asyncio.Lock,
        annotator: ImageAnnotator | None = None,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.db_conn = db_conn
        self.db_lock = db_lock
        self.annotator = annotator

    async def _annotation_for(self, entry: ContextEntry) -> str:
        message_id = entry.source_message_id
        if isinstance(message_id, int):
            async with self.db_lock:
                cached = await asyncio.to_thread(get_attachment_annotation_sync, self.db_conn, message_id)
            if cached:
                return cached

        if self.annotator is None or not has_image_payload(entry.content):
            return IMAGE_UNAVAILABLE_MESSAGE

        try:
            description = await self.annotator.describe(entry.content)
        except Exception as e:
            print(f"[Completion] image annotation failed message_id={message_id}: {e}")
            return IMAGE_UNAVAILABLE_MESSAGE
        if not description:
            return IMAGE_UNAVAILABLE_MESSAGE

        annotation = annotation_as_instruction(description, await self.annotator.scene_context(entry.content))
        if isinstance(message_id, int):
            async with self.db_lock:
                await asyncio.to_thread(set_attachment_annotation_sync, self.db_conn, message_id, annotation)
        return annotation

    async def to_backend_messages(self, context: Sequence[ContextEntry]) -> list[dict[str, str]]:
        out: list[dict[str, str]] = []
        for entry in context:
            if entry.role == ROLE_SYSTEM:
                out.append({"role": "system", "content": entry.content})
            elif entry.role == ROLE_USER:
                if is_image_data_uri(entry.content):
                    out.append({"role": "system", "content": await self._annotation_for(entry)})
                else:
                    out.append({"role": "user", "content": entry.content})
            elif entry.role == ROLE_ASSISTANT:
                out.append({"role": "assistant", "content": entry.content})
            elif entry.role == ROLE_FUNCTION:
                out.append({"role": "user", "name": "function", "content": entry.content})
            else:
                raise ValueError(f"Invalid message role: {entry.role}")
        return out

    async def dispatch(self, context: Sequence[ContextEntry]) -> CompletionOutcome:
        print(f"[Completion] dispatch entries={len(context)} model={self.model}")
        try:
            messages = await self.to_backend_messages(context)
            resp = await asyncio.to_thread(
                self.client.chat.completions.create,
                model=self.model,
                messages=messages,
                temperature=self.temperature,
            )
            text = (resp.choices[0].message.content or "").strip()
        except Exception as e:
            outcome = classify_backend_error(e)
            print(f"[Completion] outcome={outcome_tag(outcome)} error={e}")
            return outcome

        if not text:
            print("[Completion] outcome=UnexpectedError error=empty completion")
            return UnexpectedError()
        outcome = Ok(text=truncate_for_display(text))
        print(f"[Completion] outcome=Ok chars={len(outcome.text)}")
        return outcome

    async def create_image(self, prompt: str) -> CompletionOutcome:
        print(f"[Completion] image prompt_chars={len(prompt)}")
        try:
            moderation = await asyncio.to_thread(self.client.moderations.create, input=prompt)
            if moderation.results and moderation.results[0].flagged:
                print("[Completion] outcome=Moderated")
                return Moderated()
            image = await asyncio.to_thread(self.client.images.generate, prompt=prompt, n=1)
            url = image.data[0].url if image.data else None
        except Exception as e:
            outcome = classify_backend_error(e)
            print(f"[Completion] outcome={outcome_tag(outcome)} error={e}")
            return outcome

        if not url:
            print("[Completion] outcome=UnexpectedError error=no image url")
            return UnexpectedError()
        print("[Completion] outcome=Ok image")
        return Ok(text=url)

    async def generate_title(self, user_message: str, bot_message: str) -> str:
        try:
            resp = await asyncio.to_thread(
                self.client.chat.completions.create,
                model=self.model,
                temperature=0.5,
                messages=[
                    {"role": "system", "content": "You are a helpful assistant."},
                    {"role": "user", "content": user_message},
                    {"role": "assistant", "content": bot_message},
                    {"role": "user", "content": TITLE_PROMPT},
                ],
            )
            title = (resp.choices[0].message.content or "").strip()
        except Exception as e:
            print(f"[Completion] title generation failed: {e}")
            return ""
        if len(title) >= 2 and title.startswith('"') and title.endswith('"'):
            title = title[1:-1]
        return title.rstrip(".").strip()
