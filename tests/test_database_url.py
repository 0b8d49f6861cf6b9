from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from common.errors import ConfigurationError
from db.factory import open_store
from db.factory import parse_database_url


class DatabaseUrlTests(unittest.TestCase):
    def test_sqlite_forms(self):
        self.assertEqual(parse_database_url("sqlite:chat_database.db"), ("sqlite", "chat_database.db"))
        self.assertEqual(parse_database_url("sqlite://chat.db"), ("sqlite", "chat.db"))
        self.assertEqual(parse_database_url("sqlite:///var/lib/relay/chat.db"), ("sqlite", "/var/lib/relay/chat.db"))
        self.assertEqual(parse_database_url("sqlite:chat.db?mode=rwc"), ("sqlite", "chat.db"))
        self.assertEqual(parse_database_url("sqlite::memory:"), ("sqlite", ":memory:"))

    def test_postgres_forms(self):
        url = "postgres://relay:pw@db.internal:5432/relay"
        self.assertEqual(parse_database_url(url), ("postgres", url))
        self.assertEqual(parse_database_url("postgresql://localhost/relay")[0], "postgres")

    def test_unknown_scheme_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            parse_database_url("mysql://localhost/relay")

    def test_malformed_urls_are_rejected(self):
        for url in ("", "chat.db", "sqlite:", "postgres:relay", "postgres://host:notaport/db"):
            with self.subTest(url=url):
                with self.assertRaises(ConfigurationError):
                    parse_database_url(url)

    def test_open_store_creates_sqlite_file_and_schema(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "relay.db"
            store = open_store(f"sqlite:{path}")
            try:
                self.assertEqual(store.backend_name, "sqlite")
                self.assertTrue(path.exists())
                self.assertEqual(store.list_admins_sync(), [])
            finally:
                store.close()

    def test_open_store_unreachable_sqlite_path_is_configuration_error(self):
        with tempfile.TemporaryDirectory() as tmp:
            bad = Path(tmp) / "missing-dir" / "relay.db"
            with self.assertRaises(ConfigurationError):
                open_store(f"sqlite:{bad}")


if __name__ == "__main__":
    unittest.main()
