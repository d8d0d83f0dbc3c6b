from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from config.defaults import DEFAULT_BOT_NAME
from config.defaults import DEFAULT_INSTRUCTION
from config.defaults import DEFAULT_THREAD_PREFIX


@dataclass(frozen=True, slots=True)
class Persona:
    name: str = DEFAULT_BOT_NAME
    instruction: str = DEFAULT_INSTRUCTION
    thread_prefix: str = DEFAULT_THREAD_PREFIX


def default_persona_path() -> str:
    return str(Path(__file__).resolve().parent / "persona.yml")


def _clean_str(value: object, fallback: str) -> str:
    if value is None:
        return fallback
    text = str(value).strip()
    return text or fallback


def load_persona(path: str) -> tuple[Persona, str | None]:
    """Load the persona file; returns (persona, warning). Falls back to defaults on any problem."""
    fallback = Persona()
    file_path = Path(path)
    if not file_path.exists():
        return fallback, f"persona file not found at {path}; using built-in defaults"

    try:
        raw = yaml.safe_load(file_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        return fallback, f"persona file unreadable ({e}); using built-in defaults"

    if not isinstance(raw, dict):
        return fallback, "persona file must be a mapping; using built-in defaults"

    # thread_prefix may legitimately be empty (no prefix filtering).
    prefix_raw = raw.get("thread_prefix", fallback.thread_prefix)
    persona = Persona(
        name=_clean_str(raw.get("name"), fallback.name),
        instruction=_clean_str(raw.get("instruction"), fallback.instruction),
        thread_prefix="" if prefix_raw is None else str(prefix_raw).strip(),
    )
    return persona, None
