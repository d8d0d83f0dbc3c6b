from __future__ import annotations

DEFAULT_BOT_NAME = "Bocchi"
DEFAULT_INSTRUCTION = "You are Bocchi, a helpful assistant."
DEFAULT_THREAD_PREFIX = "💬"

# Sentinel a thread starter embed carries when no behaviour override was given.
DEFAULT_BEHAVIOR_SENTINEL = "Default"

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OPENAI_VISION_MODEL = "gpt-4o-mini"
DEFAULT_OPENAI_TEMPERATURE = 0.7
DEFAULT_TOKENS_PER_MESSAGE = 500

DEFAULT_PRUNE_INTERVAL_HOURS = 0.0
DEFAULT_RESPONSE_DELAY_SECONDS = 2.0
DEFAULT_HISTORY_LIMIT = 50
DEFAULT_TICK_SECONDS = 60

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_PORT = 3000
DEFAULT_DB_PATH = "bot.db"

DISCORD_MAX_MESSAGE_LEN = 2000
FAILED_REQUEST_DELETE_SECONDS = 8.0
TYPING_CHARS_PER_SECOND = 30.0
INVITE_PERMISSIONS = 395137067008
