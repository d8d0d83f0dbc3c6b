from __future__ import annotations

# Importable modules defining webhook routes. Each exports PATH, IS_PROTECTED,
# an optional SECRET and one or more of get/post/put/delete(deps) -> handler.
ROUTE_SOURCES: tuple[str, ...] = (
    "webhooks.routes.example",
    "webhooks.routes.generic",
    "webhooks.routes.railway",
    "webhooks.routes.uptimekuma",
)
