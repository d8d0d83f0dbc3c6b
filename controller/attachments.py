from __future__ import annotations

import asyncio
import base64
import mimetypes
import sqlite3
from typing import Any

from controller.store import has_attachment_annotation_sync

DATA_IMAGE_PREFIX = "data:image"


def build_data_uri(mime_type: str, payload: bytes) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(payload).decode('ascii')}"


def decode_data_uri(text: str) -> tuple[str, bytes]:
    header, sep, payload = (text or "").partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("not a base64 data URI")
    return header[len("data:") : -len(";base64")], base64.b64decode(payload, validate=True)


def is_image_data_uri(text: str | None) -> bool:
    return bool(text) and str(text).startswith(DATA_IMAGE_PREFIX)


def has_image_payload(text: str) -> bool:
    return is_image_data_uri(text) and ";base64," in text


def strip_image_payload(text: str) -> str:
    """Reduce an image data URI to its bare data:<mime> placeholder; other text is returned as is."""
    if not has_image_payload(text):
        return text
    return text.split(";", 1)[0]


def attachment_mime_type(attachment: Any) -> str:
    content_type = str(getattr(attachment, "content_type", "") or "").split(";")[0].strip()
    if content_type:
        return content_type
    guessed, _ = mimetypes.guess_type(str(getattr(attachment, "filename", "") or ""))
    return guessed or "application/octet-stream"


class AttachmentNormalizer:
    """Turns a message's first attachment into a data URI for the context.

    Messages whose annotation is already cached get the bare ``data:<mime>``
    placeholder so the bytes are not downloaded again. History messages are
    always normalized without payload; only the triggering message carries bytes.
    """

    def __init__(self, *, db_conn: sqlite3.Connection, db_lock: asyncio.Lock):
        self.db_conn = db_conn
        self.db_lock = db_lock

    async def __call__(self, message: Any, *, with_payload: bool = True) -> str | None:
        attachments = list(getattr(message, "attachments", None) or [])
        if not attachments:
            return None
        attachment = attachments[0]
        mime_type = attachment_mime_type(attachment)
        if not mime_type.startswith("image/"):
            content = str(getattr(message, "content", "") or "").strip()
            filename = str(getattr(attachment, "filename", "") or "file")
            return f"{content}\n[attachment: {filename}]".strip()

        message_id = getattr(message, "id", None)
        if message_id is not None:
            async with self.db_lock:
                cached = await asyncio.to_thread(has_attachment_annotation_sync, self.db_conn, int(message_id))
            if cached:
                return f"data:{mime_type}"

        if not with_payload:
            return f"data:{mime_type}"

        try:
            payload = await attachment.read()
        except Exception as e:
            print(f"[Context] attachment read failed message_id={message_id}: {e}")
            return f"data:{mime_type}"
        return build_data_uri(mime_type, payload)
