from __future__ import annotations

import unittest

try:
    from misc.commands.commands_chat import split_prompt_and_behavior
    from misc.commands.commands_chat import starter_embed
    from misc.commands.commands_chat import summary_embed
    from misc.commands.commands_chat import thread_name
    from misc.commands.commands_webhooks import webhook_url
except ModuleNotFoundError:
    split_prompt_and_behavior = None


@unittest.skipIf(split_prompt_and_behavior is None, "discord.py not installed")
class ChatCommandHelperTests(unittest.TestCase):
    def test_split_prompt_and_behavior(self):
        self.assertEqual(split_prompt_and_behavior("plan a trip"), ("plan a trip", "Default"))
        self.assertEqual(split_prompt_and_behavior("plan a trip | be brief"), ("plan a trip", "be brief"))
        self.assertEqual(split_prompt_and_behavior("plan a trip |  "), ("plan a trip", "Default"))

    def test_thread_name_is_prefixed_and_bounded(self):
        self.assertEqual(thread_name("💬", "Trip Planning"), "💬 Trip Planning")
        self.assertEqual(len(thread_name("💬", "x" * 300)), 100)

    def test_starter_embed_has_exactly_two_fields(self):
        embed = starter_embed("hello", "Default")
        self.assertEqual([(f.name, f.value) for f in embed.fields], [("Message", "hello"), ("Behavior", "Default")])

    def test_summary_embed_links_thread(self):
        embed = summary_embed("Title", "hello", "Default", thread_mention="<#7>", author_name="alice")
        self.assertEqual([f.name for f in embed.fields], ["Message", "Behavior", "Thread"])
        self.assertEqual(embed.fields[2].value, "<#7>")

    def test_webhook_url_includes_secret_only_when_protected(self):
        self.assertEqual(
            webhook_url("https://bot.example", "/railway", 9, is_protected=True, secret="abc"),
            "https://bot.example/webhooks/railway?channelId=9&secret=abc",
        )
        self.assertEqual(
            webhook_url("https://bot.example/", "/open", 9, is_protected=False, secret="abc"),
            "https://bot.example/webhooks/open?channelId=9",
        )


if __name__ == "__main__":
    unittest.main()
