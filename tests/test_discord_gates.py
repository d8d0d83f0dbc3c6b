from __future__ import annotations

import unittest
from types import SimpleNamespace

try:
    from misc.discord_gates import is_conversation_thread
    from misc.discord_gates import is_direct_message_channel
    from misc.discord_gates import should_ignore_message
    from misc.discord_gates import thread_reply_block_reason
except ModuleNotFoundError:
    thread_reply_block_reason = None

BOT_ID = 42


def _thread(**overrides):
    base = dict(
        id=7,
        type=SimpleNamespace(name="public_thread"),
        owner_id=BOT_ID,
        archived=False,
        locked=False,
        name="💬 Trip planning",
    )
    base.update(overrides)
    return SimpleNamespace(**base)


@unittest.skipIf(thread_reply_block_reason is None, "discord.py not installed")
class DiscordGatesTests(unittest.TestCase):
    def test_channel_kinds(self):
        self.assertTrue(is_direct_message_channel(SimpleNamespace(type=SimpleNamespace(name="private"))))
        self.assertFalse(is_direct_message_channel(SimpleNamespace(type=SimpleNamespace(name="text"))))
        self.assertTrue(is_conversation_thread(_thread()))
        self.assertTrue(is_conversation_thread(_thread(type=SimpleNamespace(name="private_thread"))))
        self.assertFalse(is_conversation_thread(SimpleNamespace(type=SimpleNamespace(name="news_thread"))))

    def test_bot_owned_prefixed_thread_is_open(self):
        self.assertIsNone(thread_reply_block_reason(_thread(), bot_id=BOT_ID, prefix="💬"))

    def test_block_reasons(self):
        self.assertEqual(thread_reply_block_reason(_thread(owner_id=1), bot_id=BOT_ID, prefix="💬"), "not_bot_owned")
        self.assertEqual(
            thread_reply_block_reason(_thread(archived=True), bot_id=BOT_ID, prefix="💬"), "archived_or_locked"
        )
        self.assertEqual(
            thread_reply_block_reason(_thread(locked=True), bot_id=BOT_ID, prefix="💬"), "archived_or_locked"
        )
        self.assertEqual(
            thread_reply_block_reason(_thread(name="Trip planning"), bot_id=BOT_ID, prefix="💬"), "missing_prefix"
        )

    def test_empty_prefix_accepts_any_name(self):
        self.assertIsNone(thread_reply_block_reason(_thread(name="anything"), bot_id=BOT_ID, prefix=""))

    def test_ignored_messages(self):
        def msg(**overrides):
            base = dict(
                author=SimpleNamespace(id=1),
                type=SimpleNamespace(name="default"),
                content="hello",
                attachments=[],
                embeds=[],
                mentions=[],
            )
            base.update(overrides)
            return SimpleNamespace(**base)

        self.assertFalse(should_ignore_message(msg(), bot_id=BOT_ID))
        self.assertTrue(should_ignore_message(msg(author=SimpleNamespace(id=BOT_ID)), bot_id=BOT_ID))
        self.assertTrue(should_ignore_message(msg(type=SimpleNamespace(name="thread_created")), bot_id=BOT_ID))
        self.assertTrue(should_ignore_message(msg(content=""), bot_id=BOT_ID))
        self.assertFalse(should_ignore_message(msg(content="", attachments=[object()]), bot_id=BOT_ID))
        self.assertTrue(should_ignore_message(msg(embeds=[object()]), bot_id=BOT_ID))
        self.assertTrue(should_ignore_message(msg(mentions=[object()]), bot_id=BOT_ID))


if __name__ == "__main__":
    unittest.main()
