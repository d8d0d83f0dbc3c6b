from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone

import discord

from webhooks.models import WebhookContext
from webhooks.models import WebhookDeps
from webhooks.models import WebhookResponse
from webhooks.models import json_response

PATH = "/generic"
IS_PROTECTED = True


def _body_payload(raw: bytes):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def received_embed() -> discord.Embed:
    embed = discord.Embed(
        title="Generic Webhook Received",
        description="Here is the request body and headers",
        color=discord.Color.green(),
        timestamp=datetime.now(timezone.utc),
    )
    embed.set_footer(text="Generic Webhook")
    return embed


def post(deps: WebhookDeps):
    async def handler(ctx: WebhookContext) -> WebhookResponse:
        payload = {
            "body": _body_payload(ctx.request.body),
            "headers": dict(ctx.request.headers),
        }
        fd, tmp_path = tempfile.mkstemp(suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            await ctx.channel.send(
                file=discord.File(tmp_path, filename="webhook.json"),
                embed=received_embed(),
            )
        finally:
            try:
                os.remove(tmp_path)
            except OSError as e:
                print(f"[Webhooks] temp file cleanup failed path={tmp_path}: {e}")
        return json_response({"success": True})

    return handler
