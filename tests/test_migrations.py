from __future__ import annotations

import os
import shutil
import sqlite3
import tempfile
import unittest

from db.migrate import apply_sqlite_migrations
from db.migrate import default_migrations_dir
from db.migrate import discover_migrations


class MigrationTests(unittest.TestCase):
    def test_all_tables_created_and_rerun_is_noop(self):
        conn = sqlite3.connect(":memory:")
        applied = apply_sqlite_migrations(conn, default_migrations_dir())
        self.assertEqual(
            applied,
            [
                "0001_conversations.py",
                "0002_webhook_routes.py",
                "0003_rss_feeds.py",
                "0004_attachment_annotations.sql",
            ],
        )
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        for name in ("conversations", "webhook_routes", "rss_feeds", "attachment_annotations", "schema_migrations"):
            self.assertIn(name, tables)
        self.assertEqual(apply_sqlite_migrations(conn, default_migrations_dir()), [])
        conn.close()

    def test_edited_migration_is_rejected(self):
        workdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, workdir)
        path = os.path.join(workdir, "0001_things.sql")
        with open(path, "w", encoding="utf-8") as f:
            f.write("CREATE TABLE things (id INTEGER PRIMARY KEY);")

        conn = sqlite3.connect(":memory:")
        apply_sqlite_migrations(conn, workdir)
        with open(path, "a", encoding="utf-8") as f:
            f.write("\n-- edited\n")
        with self.assertRaises(RuntimeError):
            apply_sqlite_migrations(conn, workdir)
        conn.close()

    def test_discovery_ignores_unrelated_files(self):
        workdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, workdir)
        for name in ("0002_b.sql", "0001_a.py", "README.md", "99_bad.sql"):
            with open(os.path.join(workdir, name), "w", encoding="utf-8") as f:
                f.write("")
        self.assertEqual([m.label for m in discover_migrations(workdir)], ["0001_a.py", "0002_b.sql"])


if __name__ == "__main__":
    unittest.main()
