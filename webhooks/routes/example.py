from __future__ import annotations

from webhooks.models import WebhookContext
from webhooks.models import WebhookDeps
from webhooks.models import WebhookResponse
from webhooks.models import text_response

PATH = "/example"
IS_PROTECTED = True


def get(deps: WebhookDeps):
    async def handler(ctx: WebhookContext) -> WebhookResponse:
        return text_response("Hello World")

    return handler


def post(deps: WebhookDeps):
    async def handler(ctx: WebhookContext) -> WebhookResponse:
        return text_response("Hello World")

    return handler
