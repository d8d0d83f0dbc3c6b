import asyncio
import sqlite3

import discord
from discord.ext import commands
from openai import OpenAI

from config.settings import load_settings
from db.migrate import apply_sqlite_migrations
from db.migrate import default_migrations_dir
from misc.runtime_wiring import wire_bot_runtime
from webhooks.models import WebhookDeps
from webhooks.registry import WebhookRegistry

# =========================
# CONFIG
# =========================
SETTINGS = load_settings()
print(SETTINGS.summary())

client = OpenAI(api_key=SETTINGS.openai_api_key, base_url=SETTINGS.openai_base_url)


# =========================
# SQLITE
# =========================
def init_db(db_path: str) -> sqlite3.Connection:
    # check_same_thread=False because discord.py event loop + to_thread usage
    conn = sqlite3.connect(db_path, check_same_thread=False)
    cur = conn.cursor()
    cur.execute("PRAGMA journal_mode=WAL;")
    cur.execute("PRAGMA synchronous=NORMAL;")
    applied = apply_sqlite_migrations(conn, default_migrations_dir())
    print(f"[DB] ready path={db_path} applied_now={len(applied)}")
    return conn


db_conn = init_db(SETTINGS.db_path)
db_lock = asyncio.Lock()

# =========================
# DISCORD BOT
# =========================
intents = discord.Intents.default()
intents.message_content = True
intents.dm_messages = True
intents.guild_messages = True

bot = commands.Bot(command_prefix="!", intents=intents)

webhook_deps = WebhookDeps(bot=bot, guild_id=SETTINGS.guild_id)

wire_bot_runtime(
    bot,
    settings=SETTINGS,
    client=client,
    db_lock=db_lock,
    db_conn=db_conn,
    webhook_registry=WebhookRegistry(
        db_conn=db_conn,
        db_lock=db_lock,
        deps=webhook_deps,
        base_url=SETTINGS.base_url,
    ),
    webhook_deps=webhook_deps,
)

bot.run(SETTINGS.discord_token)
