from __future__ import annotations

import unittest
from datetime import datetime
from types import SimpleNamespace

from controller.attachments import strip_image_payload
from controller.context import ROLE_ASSISTANT
from controller.context import ROLE_SYSTEM
from controller.context import ROLE_USER
from controller.context import build_direct_message_context
from controller.context import build_thread_context
from controller.context import filter_history
from controller.context import format_long_date
from controller.context import read_starter_fields
from controller.context import resolve_instruction

BOT_ID = 999
NOW = datetime(2026, 10, 18, 12, 0, 0)


def _author(uid: int, name: str = "alice"):
    return SimpleNamespace(id=uid, display_name=name)


def _msg(mid: int, content: str, *, author_id: int = 1, **extra):
    base = dict(
        id=mid,
        content=content,
        author=_author(author_id),
        type=SimpleNamespace(name="default"),
        attachments=[],
        embeds=[],
        mentions=[],
    )
    base.update(extra)
    return SimpleNamespace(**base)


def _starter(fields, *, embeds_count: int = 1):
    embed = SimpleNamespace(fields=[SimpleNamespace(name=n, value=v) for n, v in fields])
    return SimpleNamespace(id=1, embeds=[embed] * embeds_count)


class InstructionTests(unittest.TestCase):
    def test_long_date_ordinals(self):
        self.assertEqual(format_long_date(datetime(2026, 10, 18)), "October 18th, 2026")
        self.assertEqual(format_long_date(datetime(2026, 3, 1)), "March 1st, 2026")
        self.assertEqual(format_long_date(datetime(2026, 3, 22)), "March 22nd, 2026")
        self.assertEqual(format_long_date(datetime(2026, 3, 13)), "March 13th, 2026")

    def test_default_sentinel_uses_persona_instruction(self):
        out = resolve_instruction("Default", "You are Bocchi", user_name="alice", now=NOW)
        self.assertEqual(
            out,
            "You are Bocchi. The current date is October 18th, 2026. The latest message is from alice.",
        )

    def test_custom_behavior_substitutes_user_and_collapses_periods(self):
        out = resolve_instruction("Be terse with {{user}}...", "ignored", user_name="bob", now=NOW)
        self.assertTrue(out.startswith("Be terse with bob. The current date"))
        self.assertTrue(out.endswith("The latest message is from bob."))


class StarterShapeTests(unittest.TestCase):
    def test_valid_starter(self):
        starter = _starter([("Message", "hi there"), ("Behavior", "Default")])
        self.assertEqual(read_starter_fields(starter), ("hi there", "Default"))

    def test_rejects_wrong_embed_count(self):
        self.assertIsNone(read_starter_fields(_starter([("Message", "a"), ("Behavior", "b")], embeds_count=0)))
        self.assertIsNone(read_starter_fields(_starter([("Message", "a"), ("Behavior", "b")], embeds_count=2)))

    def test_rejects_wrong_field_count_or_names(self):
        self.assertIsNone(read_starter_fields(_starter([("Message", "a")])))
        self.assertIsNone(read_starter_fields(_starter([("Message", "a"), ("Behavior", "b"), ("Thread", "c")])))
        self.assertIsNone(read_starter_fields(_starter([("Prompt", "a"), ("Behavior", "b")])))
        self.assertIsNone(read_starter_fields(None))


class HistoryFilterTests(unittest.TestCase):
    def test_filters_and_reverses(self):
        newest_first = [
            _msg(5, "newest"),
            _msg(4, "", attachments=[]),
            _msg(3, "with embed", embeds=[object()]),
            _msg(2, "pinged", mentions=[object()]),
            _msg(1, "system", type=SimpleNamespace(name="pins_add")),
            _msg(0, "oldest"),
        ]
        kept = filter_history(newest_first)
        self.assertEqual([m.id for m in kept], [0, 5])


class ThreadContextTests(unittest.IsolatedAsyncioTestCase):
    async def test_thread_context_order_and_roles(self):
        starter = _starter([("Message", "start prompt"), ("Behavior", "Be kind to {{user}}")])
        history = [_msg(12, "bot reply", author_id=BOT_ID), _msg(11, "user follow-up")]
        trigger = _msg(13, "latest question")

        context = await build_thread_context(
            starter,
            history,
            trigger,
            bot_id=BOT_ID,
            default_instruction="persona",
            tokens_per_message=500,
            now=NOW,
        )

        self.assertEqual(
            [(e.role, e.content) for e in context],
            [
                (ROLE_SYSTEM, context[0].content),
                (ROLE_USER, "start prompt"),
                (ROLE_USER, "user follow-up"),
                (ROLE_ASSISTANT, "bot reply"),
                (ROLE_USER, "latest question"),
            ],
        )
        self.assertTrue(context[0].content.startswith("Be kind to alice."))

    async def test_unrecognised_starter_degrades_to_instruction_and_user(self):
        starter = _starter([("Message", "only one field")])
        trigger = _msg(13, "latest question")
        context = await build_thread_context(
            starter,
            [_msg(11, "ignored history")],
            trigger,
            bot_id=BOT_ID,
            default_instruction="persona",
            tokens_per_message=500,
            now=NOW,
        )
        self.assertEqual([e.role for e in context], [ROLE_SYSTEM, ROLE_USER])
        self.assertTrue(context[0].content.startswith("persona."))
        self.assertEqual(context[1].content, "latest question")

    async def test_building_twice_is_identical(self):
        starter = _starter([("Message", "start"), ("Behavior", "Default")])
        history = [_msg(2, "b", author_id=BOT_ID), _msg(1, "a")]
        trigger = _msg(3, "c")
        kwargs = dict(bot_id=BOT_ID, default_instruction="persona", tokens_per_message=10, now=NOW)
        first = await build_thread_context(starter, history, trigger, **kwargs)
        second = await build_thread_context(starter, history, trigger, **kwargs)
        self.assertEqual(first, second)

    async def test_history_is_bounded_by_per_message_budget(self):
        starter = _starter([("Message", "s" * 4), ("Behavior", "Default")])
        history = [_msg(2, "x" * 400)]
        context = await build_thread_context(
            starter,
            history,
            _msg(3, "question"),
            bot_id=BOT_ID,
            default_instruction="persona",
            tokens_per_message=3,
            now=NOW,
        )
        # budget = 3 tokens * 2 history entries = 24 chars
        self.assertEqual(context[1].content, "ssss")
        self.assertEqual(context[2].content, "x" * 20)
        self.assertEqual(context[-1].content, "question")


class DirectMessageContextTests(unittest.IsolatedAsyncioTestCase):
    async def test_direct_message_uses_persona_and_normalizer(self):
        calls = []

        async def normalize(message, *, with_payload=True):
            calls.append((message.id, with_payload))
            return "data:image/png;base64,AAAA" if with_payload else "data:image/png"

        image_msg = _msg(1, "", attachments=[SimpleNamespace(filename="a.png")])
        trigger = _msg(2, "what is this?")

        context = await build_direct_message_context(
            [image_msg],
            trigger,
            bot_id=BOT_ID,
            default_instruction="persona",
            tokens_per_message=500,
            normalize_attachment=normalize,
            now=NOW,
        )
        self.assertEqual(calls, [(1, False)])
        self.assertEqual(context[1].content, "data:image/png")
        self.assertEqual(context[-1].content, "what is this?")
        self.assertTrue(context[0].content.startswith("persona."))

    async def test_uncached_history_image_does_not_crowd_out_newer_turns(self):
        payload = "data:image/png;base64," + "A" * 40_000

        async def normalize(message, *, with_payload=True):
            # Ignores the flag, like a normalizer that always downloads.
            return payload

        image_msg = _msg(1, "", attachments=[SimpleNamespace(filename="cat.png")])
        bot_reply = _msg(2, "It is a cat.", author_id=BOT_ID)
        trigger = _msg(3, "and what about the sky?")

        context = await build_direct_message_context(
            [bot_reply, image_msg],
            trigger,
            bot_id=BOT_ID,
            default_instruction="persona",
            tokens_per_message=500,
            normalize_attachment=normalize,
            now=NOW,
        )
        self.assertEqual(
            [(e.role, e.content) for e in context[1:]],
            [
                (ROLE_USER, "data:image/png"),
                (ROLE_ASSISTANT, "It is a cat."),
                (ROLE_USER, "and what about the sky?"),
            ],
        )

    async def test_trigger_image_keeps_its_payload(self):
        async def normalize(message, *, with_payload=True):
            return "data:image/png;base64,QUJD" if with_payload else "data:image/png"

        trigger = _msg(5, "", attachments=[SimpleNamespace(filename="new.png")])
        context = await build_direct_message_context(
            [],
            trigger,
            bot_id=BOT_ID,
            default_instruction="persona",
            tokens_per_message=500,
            normalize_attachment=normalize,
            now=NOW,
        )
        self.assertEqual(context[-1].content, "data:image/png;base64,QUJD")


class ImagePayloadTests(unittest.TestCase):
    def test_strip_image_payload(self):
        self.assertEqual(strip_image_payload("data:image/jpeg;base64,/9j/AAAA"), "data:image/jpeg")
        self.assertEqual(strip_image_payload("data:image/jpeg"), "data:image/jpeg")
        self.assertEqual(strip_image_payload("plain; text"), "plain; text")


if __name__ == "__main__":
    unittest.main()
