from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import discord

from webhooks.models import WebhookContext
from webhooks.models import WebhookDeps
from webhooks.models import WebhookResponse
from webhooks.models import json_response

PATH = "/railway"
IS_PROTECTED = True


def is_valid_payload(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    return (
        isinstance(body.get("type"), str)
        and isinstance(body.get("timestamp"), str)
        and isinstance(body.get("project"), dict)
        and isinstance(body.get("environment"), dict)
        and isinstance(body.get("deployment"), dict)
    )


def _name_and_id(obj: Any) -> str:
    obj = obj if isinstance(obj, dict) else {}
    return f"Name: {obj.get('name', 'unknown')}\nID: {obj.get('id', 'unknown')}"


def deployment_embed(body: dict[str, Any]) -> discord.Embed:
    deployment = body["deployment"]
    creator = deployment.get("creator") or {}
    region = (
        ((deployment.get("meta") or {}).get("serviceManifest") or {}).get("deploy", {}).get("region") or "unknown"
    )
    embed = discord.Embed(
        title="Railway Status",
        color=discord.Color.purple(),
        timestamp=datetime.now(timezone.utc),
    )
    embed.set_footer(text="Railway")
    if creator.get("name"):
        embed.set_author(name=str(creator["name"]), icon_url=creator.get("avatar") or None)
    if creator.get("avatar"):
        embed.set_thumbnail(url=str(creator["avatar"]))
    embed.add_field(name="Type", value=body["type"], inline=False)
    embed.add_field(name="Project", value=_name_and_id(body["project"]), inline=False)
    embed.add_field(name="Environment", value=_name_and_id(body["environment"]), inline=False)
    embed.add_field(name="Deployment", value=f"ID: {deployment.get('id', 'unknown')}\nRegion: {region}", inline=False)
    embed.add_field(name="Service", value=_name_and_id(body.get("service")), inline=False)
    embed.add_field(name="Status", value=str(body.get("status") or "unknown"), inline=False)
    return embed


def post(deps: WebhookDeps):
    async def handler(ctx: WebhookContext) -> WebhookResponse:
        try:
            body = ctx.request.json()
        except ValueError:
            return json_response({"error": "Invalid request body"}, 400)
        if not is_valid_payload(body):
            return json_response({"error": "Invalid request body"}, 400)
        await ctx.channel.send(embed=deployment_embed(body))
        return json_response({"success": True})

    return handler
