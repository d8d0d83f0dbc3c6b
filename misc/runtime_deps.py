from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    reply_service: Any
    reply_scheduler: Any
    thread_prefix: str
    command_prefix: str = "!"


@dataclass(frozen=True)
class RuntimeBootDeps:
    bot_name: str
    invite_url: str
    tick_loop_func: Callable
    start_webhook_server_func: Callable
