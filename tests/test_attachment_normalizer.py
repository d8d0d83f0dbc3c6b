from __future__ import annotations

import asyncio
import sqlite3
import unittest
from types import SimpleNamespace

from controller.attachments import AttachmentNormalizer
from controller.store import set_attachment_annotation_sync
from db.migrate import apply_sqlite_migrations
from db.migrate import default_migrations_dir


class _Attachment:
    def __init__(self, filename: str, content_type: str | None, payload: bytes = b"ABC"):
        self.filename = filename
        self.content_type = content_type
        self.payload = payload
        self.reads = 0

    async def read(self):
        self.reads += 1
        return self.payload


def _message(mid: int, attachment: _Attachment, content: str = ""):
    return SimpleNamespace(id=mid, content=content, attachments=[attachment])


class AttachmentNormalizerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, default_migrations_dir())
        self.normalizer = AttachmentNormalizer(db_conn=self.conn, db_lock=asyncio.Lock())

    def tearDown(self):
        self.conn.close()

    async def test_uncached_image_is_read_into_data_uri(self):
        attachment = _Attachment("cat.png", "image/png")
        out = await self.normalizer(_message(1, attachment))
        self.assertEqual(out, "data:image/png;base64,QUJD")
        self.assertEqual(attachment.reads, 1)

    async def test_without_payload_image_is_never_read(self):
        attachment = _Attachment("cat.png", "image/png", payload=b"x" * 30_000)
        out = await self.normalizer(_message(1, attachment), with_payload=False)
        self.assertEqual(out, "data:image/png")
        self.assertEqual(attachment.reads, 0)

    async def test_cached_annotation_skips_download(self):
        set_attachment_annotation_sync(self.conn, 7, "a cat")
        attachment = _Attachment("cat.jpg", None)
        out = await self.normalizer(_message(7, attachment))
        self.assertEqual(out, "data:image/jpeg")
        self.assertEqual(attachment.reads, 0)

    async def test_non_image_attachment_is_named(self):
        attachment = _Attachment("notes.txt", "text/plain")
        out = await self.normalizer(_message(2, attachment, content="see file"), with_payload=False)
        self.assertEqual(out, "see file\n[attachment: notes.txt]")


if __name__ == "__main__":
    unittest.main()
