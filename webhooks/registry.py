from __future__ import annotations

import asyncio
import hmac
import importlib
import json
import secrets
import sqlite3
from dataclasses import dataclass
from dataclasses import field
from types import ModuleType
from typing import Any, Awaitable, Callable, Sequence, Union

import discord

from webhooks.manifest import ROUTE_SOURCES
from webhooks.models import WebhookContext
from webhooks.models import WebhookDeps
from webhooks.models import WebhookRequest
from webhooks.models import WebhookResponse
from webhooks.models import json_response
from webhooks.store import delete_webhook_routes_sync
from webhooks.store import list_webhook_routes_sync
from webhooks.store import upsert_webhook_route_sync

VALID_METHODS = ("get", "post", "put", "delete")
SECRET_HEADER = "x-webhook-secret"

Handler = Callable[[WebhookContext], Awaitable[WebhookResponse]]
HandlerFactory = Callable[[WebhookDeps], Handler]
Guard = Callable[[WebhookContext], Awaitable[WebhookResponse | None]]


class RouteLoadError(Exception):
    pass


@dataclass(frozen=True)
class RouteDefinition:
    method: str
    path: str
    handler_factory: HandlerFactory
    is_protected: bool = False
    secret: str | None = None
    source: str = ""


@dataclass(frozen=True)
class RoutesLoaded:
    source: str
    routes: list[RouteDefinition]


@dataclass(frozen=True)
class RouteLoadFailed:
    source: str
    error: str


RouteLoadResult = Union[RoutesLoaded, RouteLoadFailed]


def routes_from_module(module: ModuleType, source: str) -> list[RouteDefinition]:
    path = getattr(module, "PATH", None)
    if not isinstance(path, str) or not path.startswith("/"):
        raise RouteLoadError(f"Invalid path {path!r} in route source {source}")
    is_protected = bool(getattr(module, "IS_PROTECTED", False))
    supplied_secret = getattr(module, "SECRET", None)
    if supplied_secret is not None and not isinstance(supplied_secret, str):
        raise RouteLoadError(f"SECRET must be a string in route source {source}")

    routes = [
        RouteDefinition(
            method=method,
            path=path,
            handler_factory=getattr(module, method),
            is_protected=is_protected,
            secret=supplied_secret or None,
            source=source,
        )
        for method in VALID_METHODS
        if callable(getattr(module, method, None))
    ]
    if not routes:
        raise RouteLoadError(f"No valid handler function exported in route source {source}")
    return routes


def load_route_source(
    source: str,
    import_module: Callable[[str], ModuleType] = importlib.import_module,
) -> RouteLoadResult:
    try:
        module = import_module(source)
        return RoutesLoaded(source=source, routes=routes_from_module(module, source))
    except Exception as e:
        print(f"[Webhooks] failed to load route source {source}: {e}")
        return RouteLoadFailed(source=source, error=str(e))


def discover_routes(
    sources: Sequence[str],
    import_module: Callable[[str], ModuleType] = importlib.import_module,
) -> list[RouteDefinition]:
    discovered: list[RouteDefinition] = []
    for source in sources:
        result = load_route_source(source, import_module)
        if isinstance(result, RoutesLoaded):
            discovered.extend(result.routes)
    return discovered


def generate_secret() -> str:
    return secrets.token_hex(5)


def plan_secret(
    *,
    is_protected: bool,
    supplied: str | None,
    existing: dict[str, Any] | None,
    generate: Callable[[], str] = generate_secret,
) -> str | None:
    if supplied:
        return supplied
    if existing is None:
        return generate() if is_protected else None
    was_protected = bool(existing.get("is_protected"))
    current = existing.get("secret")
    if is_protected and not was_protected:
        return generate()
    if not is_protected and was_protected:
        return None
    if is_protected and not current:
        return generate()
    return current


def method_guard(method: str) -> Guard:
    async def guard(ctx: WebhookContext) -> WebhookResponse | None:
        if method not in VALID_METHODS:
            return json_response({"message": "Method not supported"}, 405)
        if ctx.request.method.upper() != method.upper():
            return json_response({"message": "Method not allowed"}, 405)
        return None

    return guard


def secret_guard(is_protected: bool, secret: str | None) -> Guard:
    async def guard(ctx: WebhookContext) -> WebhookResponse | None:
        if not is_protected:
            return None
        supplied = ctx.request.query.get("secret") or ctx.request.header(SECRET_HEADER) or ""
        if not secret or not hmac.compare_digest(supplied.encode("utf-8"), secret.encode("utf-8")):
            return json_response({"message": "Unauthorized"}, 401)
        return None

    return guard


async def resolve_text_channel(bot: Any, channel_id: int) -> Any | None:
    channel = bot.get_channel(channel_id)
    if channel is not None:
        return channel
    try:
        return await bot.fetch_channel(channel_id)
    except discord.HTTPException:
        return None


def channel_guard(resolve: Callable[[Any, int], Awaitable[Any | None]] = resolve_text_channel) -> Guard:
    async def guard(ctx: WebhookContext) -> WebhookResponse | None:
        raw = (ctx.request.query.get("channelId") or "").strip()
        if not raw:
            return json_response({"error": "Missing channelId query parameter"}, 400)
        if not raw.isdigit():
            return json_response({"error": "Invalid channel ID"}, 400)
        channel = await resolve(ctx.deps.bot, int(raw))
        if channel is None:
            return json_response({"error": "Channel not found"}, 404)
        ctx.channel = channel
        return None

    return guard


@dataclass
class RouteChain:
    method: str
    path: str
    is_protected: bool
    secret: str | None
    guards: list[Guard]
    handler: Handler

    async def __call__(self, ctx: WebhookContext) -> WebhookResponse:
        for guard in self.guards:
            rejected = await guard(ctx)
            if rejected is not None:
                return rejected
        return await self.handler(ctx)


def build_chain(
    route: RouteDefinition,
    deps: WebhookDeps,
    *,
    secret: str | None,
    is_protected: bool | None = None,
    resolve_channel: Callable[[Any, int], Awaitable[Any | None]] = resolve_text_channel,
) -> RouteChain:
    protected = route.is_protected if is_protected is None else is_protected
    return RouteChain(
        method=route.method,
        path=route.path,
        is_protected=protected,
        secret=secret,
        guards=[
            method_guard(route.method),
            secret_guard(protected, secret),
            channel_guard(resolve_channel),
        ],
        handler=route.handler_factory(deps),
    )


@dataclass
class WebhookRouter:
    routes: dict[str, dict[str, RouteChain]] = field(default_factory=dict)

    def add(self, chain: RouteChain) -> None:
        self.routes.setdefault(chain.path, {})[chain.method] = chain

    def paths(self) -> list[str]:
        return sorted(self.routes)

    async def dispatch(self, request: WebhookRequest, deps: WebhookDeps) -> WebhookResponse:
        by_method = self.routes.get(request.path)
        if not by_method:
            return json_response({"error": "Not found"}, 404)
        chain = by_method.get(request.method.lower()) or next(iter(by_method.values()))
        ctx = WebhookContext(request=request, deps=deps)
        try:
            return await chain(ctx)
        except Exception as e:
            print(f"[Webhooks] handler failed method={request.method} path={request.path}: {e}")
            return json_response({"error": "An error occurred"}, 500)


def endpoint_url(base_url: str, path: str, *, is_protected: bool, secret: str | None) -> str:
    url = f"{base_url.rstrip('/')}/webhooks{path}?channelId=[channel_id]"
    if is_protected and secret:
        url += f"&secret={secret}"
    return url


def registration_log_line(router: WebhookRouter, base_url: str, removed: Sequence[str]) -> str:
    routes = []
    for path in router.paths():
        chains = router.routes[path]
        first = next(iter(chains.values()))
        routes.append(
            {
                "path": path,
                "methods": sorted(m.upper() for m in chains),
                "is_protected": first.is_protected,
                "endpoint": endpoint_url(base_url, path, is_protected=first.is_protected, secret=first.secret),
            }
        )
    return json.dumps({"event": "webhook_routes_registered", "routes": routes, "removed": list(removed)})


class WebhookRegistry:
    """Discovers route sources, reconciles persisted route records and builds the router.

    sqlite errors are not caught here; a failed reconciliation must abort startup.
    """

    def __init__(
        self,
        *,
        db_conn: sqlite3.Connection,
        db_lock: asyncio.Lock,
        deps: WebhookDeps,
        base_url: str,
        sources: Sequence[str] = ROUTE_SOURCES,
        import_module: Callable[[str], ModuleType] = importlib.import_module,
        resolve_channel: Callable[[Any, int], Awaitable[Any | None]] = resolve_text_channel,
        generate: Callable[[], str] = generate_secret,
    ):
        self.db_conn = db_conn
        self.db_lock = db_lock
        self.deps = deps
        self.base_url = base_url
        self.sources = list(sources)
        self.import_module = import_module
        self.resolve_channel = resolve_channel
        self.generate = generate

    async def _db(self, fn, *args, **kwargs):
        async with self.db_lock:
            return await asyncio.to_thread(fn, self.db_conn, *args, **kwargs)

    async def reconcile(self) -> WebhookRouter:
        discovered = discover_routes(self.sources, self.import_module)
        persisted = await self._db(list_webhook_routes_sync)
        existing_by_path = {row["path"]: row for row in persisted}

        final_secrets: dict[str, str | None] = {}
        final_protection: dict[str, bool] = {}
        for route in discovered:
            if route.path in final_secrets:
                continue
            is_protected = any(r.is_protected for r in discovered if r.path == route.path)
            supplied = next((r.secret for r in discovered if r.path == route.path and r.secret), None)
            secret = plan_secret(
                is_protected=is_protected,
                supplied=supplied,
                existing=existing_by_path.get(route.path),
                generate=self.generate,
            )
            await self._db(upsert_webhook_route_sync, path=route.path, is_protected=is_protected, secret=secret)
            final_secrets[route.path] = secret
            final_protection[route.path] = is_protected

        router = WebhookRouter()
        for route in discovered:
            router.add(
                build_chain(
                    route,
                    self.deps,
                    secret=final_secrets[route.path],
                    is_protected=final_protection[route.path],
                    resolve_channel=self.resolve_channel,
                )
            )

        stale = sorted(path for path in existing_by_path if path not in final_secrets)
        if stale:
            await self._db(delete_webhook_routes_sync, stale)

        print(f"[Webhooks] {registration_log_line(router, self.base_url, stale)}")
        return router
