from __future__ import annotations

import os
import tempfile
import unittest

from config.defaults import DEFAULT_BASE_URL
from config.defaults import DEFAULT_INSTRUCTION
from config.persona import load_persona
from config.settings import load_settings
from config.settings import parse_id_set

BASE_ENV = {"DISCORD_TOKEN": "token", "OPENAI_API_KEY": "sk-test"}


class LoadSettingsTests(unittest.TestCase):
    def test_required_credentials(self):
        with self.assertRaises(RuntimeError):
            load_settings({"OPENAI_API_KEY": "sk-test"})
        with self.assertRaises(RuntimeError):
            load_settings({"DISCORD_TOKEN": "token"})

    def test_defaults(self):
        settings = load_settings(dict(BASE_ENV))
        self.assertEqual(settings.base_url, DEFAULT_BASE_URL)
        self.assertFalse(settings.pruning_enabled)
        self.assertEqual(settings.persona.name, "Bocchi")
        self.assertEqual(settings.owner_user_ids, frozenset())
        self.assertFalse(settings.anime_context_enabled)
        self.assertTrue(settings.summary().startswith("[CFG] "))

    def test_overrides_and_invalid_numbers(self):
        env = dict(
            BASE_ENV,
            BOT_NAME="Kita",
            BOT_THREAD_PREFIX="",
            BOT_PRUNE_INTERVAL="1.5",
            OPENAI_MAX_TOKENS="not-a-number",
            RAILWAY_PUBLIC_DOMAIN="bot.up.railway.app",
            BOT_OWNER_USER_IDS="123456789012, junk 234567890123",
            DISCORD_CLIENT_ID="42",
            BOT_ANIME_CONTEXT="true",
        )
        settings = load_settings(env)
        self.assertEqual(settings.persona.name, "Kita")
        self.assertEqual(settings.persona.thread_prefix, "")
        self.assertTrue(settings.pruning_enabled)
        self.assertEqual(settings.prune_interval_hours, 1.5)
        self.assertEqual(settings.tokens_per_message, 500)
        self.assertEqual(settings.base_url, "https://bot.up.railway.app")
        self.assertEqual(settings.owner_user_ids, frozenset({123456789012, 234567890123}))
        self.assertIn("client_id=42", settings.invite_url)
        self.assertTrue(settings.anime_context_enabled)

    def test_explicit_base_url_wins(self):
        env = dict(BASE_ENV, BASE_URL="https://hooks.example/", RAILWAY_PUBLIC_DOMAIN="ignored.app")
        self.assertEqual(load_settings(env).base_url, "https://hooks.example")

    def test_parse_id_set_ignores_short_tokens(self):
        self.assertEqual(parse_id_set("12 123456789"), {123456789})
        self.assertEqual(parse_id_set(None), set())


class PersonaTests(unittest.TestCase):
    def _write(self, text: str) -> str:
        fd, path = tempfile.mkstemp(suffix=".yml")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        self.addCleanup(os.remove, path)
        return path

    def test_missing_file_falls_back(self):
        persona, warning = load_persona("/nonexistent/persona.yml")
        self.assertEqual(persona.instruction, DEFAULT_INSTRUCTION)
        self.assertIn("not found", warning)

    def test_partial_file_keeps_defaults(self):
        persona, warning = load_persona(self._write("name: Ryo\nthread_prefix: ''\n"))
        self.assertIsNone(warning)
        self.assertEqual(persona.name, "Ryo")
        self.assertEqual(persona.instruction, DEFAULT_INSTRUCTION)
        self.assertEqual(persona.thread_prefix, "")

    def test_non_mapping_file(self):
        persona, warning = load_persona(self._write("- just\n- a list\n"))
        self.assertIsNotNone(warning)
        self.assertEqual(persona.name, "Bocchi")


if __name__ == "__main__":
    unittest.main()
