from __future__ import annotations

import asyncio
import importlib
import sqlite3
from types import SimpleNamespace


class _DummyCompletions:
    def create(self, *args, **kwargs):
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Hello there"))]
        )


class _DummyClient:
    def __init__(self):
        self.chat = SimpleNamespace(completions=_DummyCompletions())


def _try_import_or_skip(module_name: str, pip_name: str | None = None) -> bool:
    try:
        importlib.import_module(module_name)
        return True
    except ModuleNotFoundError:
        install_name = pip_name or module_name
        print(
            f"Smoke wiring check skipped: missing dependency '{module_name}'. "
            f"Install the project and retry (e.g. `pip install {install_name}` "
            f"or `pip install -e .`)."
        )
        return False


def _main() -> int:
    if not _try_import_or_skip("discord", "discord.py"):
        return 0
    if not _try_import_or_skip("fastapi"):
        return 0

    import discord
    from discord.ext import commands

    from config.settings import Settings
    from db.migrate import apply_sqlite_migrations
    from db.migrate import default_migrations_dir
    from misc.runtime_wiring import wire_bot_runtime
    from webhooks.models import WebhookDeps
    from webhooks.registry import WebhookRegistry

    intents = discord.Intents.none()
    bot = commands.Bot(command_prefix="!", intents=intents)
    db_lock = asyncio.Lock()
    db_conn = sqlite3.connect(":memory:", check_same_thread=False)
    apply_sqlite_migrations(db_conn, default_migrations_dir())

    settings = Settings(discord_token="smoke", openai_api_key="smoke", owner_user_ids=frozenset({1}))
    webhook_deps = WebhookDeps(bot=bot)
    registry = WebhookRegistry(db_conn=db_conn, db_lock=db_lock, deps=webhook_deps, base_url=settings.base_url)

    wire_bot_runtime(
        bot,
        settings=settings,
        client=_DummyClient(),
        db_lock=db_lock,
        db_conn=db_conn,
        webhook_registry=registry,
        webhook_deps=webhook_deps,
    )

    expected_commands = {"chat", "imagine", "subscribe", "unsubscribe", "feeds", "webhooks", "sauce"}
    existing_commands = set(bot.all_commands.keys())
    missing = sorted(expected_commands - existing_commands)
    if missing:
        raise RuntimeError(f"Missing expected commands: {missing}")

    for event_name in ("on_ready", "on_message"):
        if not callable(getattr(bot, event_name, None)):
            raise RuntimeError(f"Runtime event {event_name} was not registered")

    asyncio.run(bot.setup_hook())
    print("Smoke wiring check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
