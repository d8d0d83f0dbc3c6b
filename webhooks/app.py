from __future__ import annotations

import asyncio

import uvicorn
from fastapi import FastAPI
from fastapi import Request
from fastapi import Response
from fastapi.responses import PlainTextResponse

from webhooks.models import WebhookDeps
from webhooks.models import WebhookRequest
from webhooks.registry import WebhookRouter


def create_webhook_app(router: WebhookRouter, deps: WebhookDeps) -> FastAPI:
    app = FastAPI(title="chat bot webhooks", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/health")
    async def health() -> PlainTextResponse:
        return PlainTextResponse("OK")

    @app.api_route("/webhooks/{route_path:path}", methods=["GET", "POST", "PUT", "DELETE"])
    async def webhook(route_path: str, request: Request) -> Response:
        incoming = WebhookRequest(
            method=request.method,
            path="/" + route_path.strip("/"),
            query=dict(request.query_params),
            headers=dict(request.headers),
            body=await request.body(),
        )
        result = await router.dispatch(incoming, deps)
        return Response(content=result.rendered(), status_code=result.status, media_type=result.media_type)

    return app


def start_webhook_server(app: FastAPI, *, port: int, host: str = "0.0.0.0") -> asyncio.Task:
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
    print(f"[Webhooks] listening on {host}:{port}")
    return asyncio.create_task(server.serve(), name="webhook-server")
