from __future__ import annotations

import json
from dataclasses import dataclass
from dataclasses import field
from typing import Any, Mapping

JSON_MEDIA_TYPE = "application/json"
TEXT_MEDIA_TYPE = "text/plain"


@dataclass(frozen=True)
class WebhookRequest:
    method: str
    path: str
    query: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    def json(self) -> Any:
        if not self.body:
            raise ValueError("request body is empty")
        return json.loads(self.body)


@dataclass(frozen=True)
class WebhookResponse:
    status: int
    body: Any
    media_type: str = JSON_MEDIA_TYPE

    def rendered(self) -> bytes:
        if self.media_type == JSON_MEDIA_TYPE:
            return json.dumps(self.body).encode("utf-8")
        return str(self.body).encode("utf-8")


def json_response(data: Any, status: int = 200) -> WebhookResponse:
    return WebhookResponse(status=status, body=data, media_type=JSON_MEDIA_TYPE)


def text_response(text: str, status: int = 200) -> WebhookResponse:
    return WebhookResponse(status=status, body=text, media_type=TEXT_MEDIA_TYPE)


@dataclass(frozen=True)
class WebhookDeps:
    bot: Any
    guild_id: int = 0


@dataclass
class WebhookContext:
    request: WebhookRequest
    deps: WebhookDeps
    channel: Any = None
