from __future__ import annotations

import os
import re
from dataclasses import dataclass
from dataclasses import field
from typing import Mapping

from config.defaults import DEFAULT_BASE_URL
from config.defaults import DEFAULT_DB_PATH
from config.defaults import DEFAULT_HISTORY_LIMIT
from config.defaults import DEFAULT_OPENAI_MODEL
from config.defaults import DEFAULT_OPENAI_TEMPERATURE
from config.defaults import DEFAULT_OPENAI_VISION_MODEL
from config.defaults import DEFAULT_PORT
from config.defaults import DEFAULT_PRUNE_INTERVAL_HOURS
from config.defaults import DEFAULT_RESPONSE_DELAY_SECONDS
from config.defaults import DEFAULT_TICK_SECONDS
from config.defaults import DEFAULT_TOKENS_PER_MESSAGE
from config.defaults import INVITE_PERMISSIONS
from config.persona import Persona
from config.persona import default_persona_path
from config.persona import load_persona


@dataclass(frozen=True)
class Settings:
    discord_token: str
    openai_api_key: str
    discord_client_id: str = ""
    openai_base_url: str | None = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    openai_vision_model: str = DEFAULT_OPENAI_VISION_MODEL
    openai_temperature: float = DEFAULT_OPENAI_TEMPERATURE
    tokens_per_message: int = DEFAULT_TOKENS_PER_MESSAGE
    persona: Persona = field(default_factory=Persona)
    persona_source: str = "file"
    prune_interval_hours: float = DEFAULT_PRUNE_INTERVAL_HOURS
    response_delay_seconds: float = DEFAULT_RESPONSE_DELAY_SECONDS
    history_limit: int = DEFAULT_HISTORY_LIMIT
    tick_seconds: int = DEFAULT_TICK_SECONDS
    owner_user_ids: frozenset[int] = frozenset()
    base_url: str = DEFAULT_BASE_URL
    port: int = DEFAULT_PORT
    rss_channel_id: int = 0
    guild_id: int = 0
    db_path: str = DEFAULT_DB_PATH
    anime_context_enabled: bool = False

    @property
    def invite_url(self) -> str:
        return (
            "https://discord.com/api/oauth2/authorize"
            f"?client_id={self.discord_client_id}&permissions={INVITE_PERMISSIONS}&scope=bot"
        )

    @property
    def pruning_enabled(self) -> bool:
        return self.prune_interval_hours > 0

    def summary(self) -> str:
        return (
            f"[CFG] name={self.persona.name} persona_source={self.persona_source} "
            f"model={self.openai_model} vision_model={self.openai_vision_model} "
            f"temperature={self.openai_temperature} tokens_per_message={self.tokens_per_message} "
            f"prune_hours={self.prune_interval_hours} delay_s={self.response_delay_seconds} "
            f"history={self.history_limit} tick_s={self.tick_seconds} owners={len(self.owner_user_ids)} "
            f"base_url={self.base_url} port={self.port} rss_channel={self.rss_channel_id or 'off'} "
            f"db={self.db_path} anime_context={self.anime_context_enabled}"
        )


def parse_id_set(raw: str | None) -> set[int]:
    if not raw:
        return set()
    out: set[int] = set()
    for tok in re.split(r"[\s,;]+", raw.strip()):
        if not tok:
            continue
        if re.fullmatch(r"\d{8,22}", tok):
            out.add(int(tok))
    return out


def _int_env(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"[CFG] invalid {key}={raw!r}; falling back to {default}")
        return default


def _float_env(env: Mapping[str, str], key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        print(f"[CFG] invalid {key}={raw!r}; falling back to {default}")
        return default


def _bool_env(env: Mapping[str, str], key: str) -> bool:
    return (env.get(key) or "").strip().lower() in {"1", "true", "yes", "on"}


def _resolve_base_url(env: Mapping[str, str]) -> str:
    explicit = (env.get("BASE_URL") or "").strip()
    if explicit:
        return explicit.rstrip("/")
    railway_domain = (env.get("RAILWAY_PUBLIC_DOMAIN") or "").strip()
    if railway_domain:
        return f"https://{railway_domain}"
    return DEFAULT_BASE_URL


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if env is None else env

    discord_token = (env.get("DISCORD_TOKEN") or "").strip()
    openai_api_key = (env.get("OPENAI_API_KEY") or "").strip()
    if not discord_token:
        raise RuntimeError("Missing DISCORD_TOKEN env var")
    if not openai_api_key:
        raise RuntimeError("Missing OPENAI_API_KEY env var")

    persona_path = (env.get("BOT_PERSONA_PATH") or "").strip() or default_persona_path()
    persona, warning = load_persona(persona_path)
    persona_source = "env_override" if env.get("BOT_PERSONA_PATH") else "file"
    if warning:
        print(f"[CFG] {warning}")
        persona_source = "fallback"

    name = (env.get("BOT_NAME") or "").strip() or persona.name
    instruction = (env.get("BOT_INSTRUCTION") or "").strip() or persona.instruction
    thread_prefix = env.get("BOT_THREAD_PREFIX")
    thread_prefix = persona.thread_prefix if thread_prefix is None else thread_prefix.strip()
    persona = Persona(name=name, instruction=instruction, thread_prefix=thread_prefix)

    return Settings(
        discord_token=discord_token,
        openai_api_key=openai_api_key,
        discord_client_id=(env.get("DISCORD_CLIENT_ID") or "").strip(),
        openai_base_url=(env.get("OPENAI_BASE_URL") or "").strip() or None,
        openai_model=(env.get("OPENAI_MODEL") or "").strip() or DEFAULT_OPENAI_MODEL,
        openai_vision_model=(env.get("OPENAI_VISION_MODEL") or "").strip() or DEFAULT_OPENAI_VISION_MODEL,
        openai_temperature=_float_env(env, "OPENAI_TEMPERATURE", DEFAULT_OPENAI_TEMPERATURE),
        tokens_per_message=max(1, _int_env(env, "OPENAI_MAX_TOKENS", DEFAULT_TOKENS_PER_MESSAGE)),
        persona=persona,
        persona_source=persona_source,
        prune_interval_hours=max(0.0, _float_env(env, "BOT_PRUNE_INTERVAL", DEFAULT_PRUNE_INTERVAL_HOURS)),
        response_delay_seconds=max(
            0.0, _float_env(env, "BOT_RESPONSE_DELAY_SECONDS", DEFAULT_RESPONSE_DELAY_SECONDS)
        ),
        history_limit=max(1, _int_env(env, "BOT_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT)),
        tick_seconds=max(10, _int_env(env, "BOT_TICK_SECONDS", DEFAULT_TICK_SECONDS)),
        owner_user_ids=frozenset(parse_id_set(env.get("BOT_OWNER_USER_IDS"))),
        base_url=_resolve_base_url(env),
        port=_int_env(env, "PORT", DEFAULT_PORT),
        rss_channel_id=_int_env(env, "RSS_CHANNEL_ID", 0),
        guild_id=_int_env(env, "DISCORD_GUILD_ID", 0),
        db_path=(env.get("BOT_DB_PATH") or "").strip() or DEFAULT_DB_PATH,
        anime_context_enabled=_bool_env(env, "BOT_ANIME_CONTEXT"),
    )
