from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Callable

from config.defaults import DEFAULT_BASE_URL
from config.defaults import DEFAULT_INSTRUCTION
from config.defaults import DEFAULT_THREAD_PREFIX
from config.defaults import DEFAULT_TOKENS_PER_MESSAGE


def _default_false(*args, **kwargs) -> bool:
    return False


@dataclass(frozen=True)
class CommandDeps:
    # Core/shared
    db_lock: Any = None
    db_conn: Any = None

    # Chat
    dispatcher: Any = None
    lifecycle: Any = None
    default_instruction: str = DEFAULT_INSTRUCTION
    thread_prefix: str = DEFAULT_THREAD_PREFIX
    tokens_per_message: int = DEFAULT_TOKENS_PER_MESSAGE

    # Feeds / webhooks
    feeds: Any = None
    base_url: str = DEFAULT_BASE_URL
    list_webhook_routes_sync: Callable | None = None

    # Anime lookup
    sauce: Any = None


@dataclass(frozen=True)
class CommandGates:
    user_is_owner: Callable[[Any], bool] = _default_false
