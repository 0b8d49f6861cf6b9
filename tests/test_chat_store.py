from __future__ import annotations

import os
import unittest
from pathlib import Path

from common.errors import StorageError
from db.sqlite_store import SqliteStore

try:
    import psycopg
except ModuleNotFoundError:
    psycopg = None

MIGRATIONS_ROOT = Path(__file__).resolve().parents[1] / "migrations"
POSTGRES_URL = os.getenv("RELAY_TEST_POSTGRES_URL", "").strip()


class ChatStoreContract:
    """Behaviour every backend must share. Subclasses provide make_store()."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()

    def tearDown(self):
        self.store.close()

    def test_session_is_created_once_per_user(self):
        first = self.store.get_or_create_session_sync(555)
        second = self.store.get_or_create_session_sync(555)
        other = self.store.get_or_create_session_sync(556)
        self.assertEqual(first, second)
        self.assertNotEqual(first, other)
        self.assertEqual(self.store.find_session_sync(555), first)
        self.assertIsNone(self.store.find_session_sync(999))

    def test_history_is_most_recent_first_and_capped(self):
        session_id = self.store.get_or_create_session_sync(555)
        for i in range(6):
            role = "user" if i % 2 == 0 else "assistant"
            self.store.append_message_sync(session_id, role, f"m{i}")

        rows = self.store.fetch_history_sync(session_id, 4)
        self.assertEqual([r["content"] for r in rows], ["m5", "m4", "m3", "m2"])
        self.assertEqual(rows[0]["role"], "assistant")
        self.assertEqual(self.store.fetch_history_sync(session_id, 0), [])

    def test_history_since_filter(self):
        session_id = self.store.get_or_create_session_sync(555)
        self.store.append_message_sync(session_id, "user", "hello")
        self.assertEqual(self.store.fetch_history_sync(session_id, 10, since_utc="9999-01-01T00:00:00+00:00"), [])
        self.assertEqual(len(self.store.fetch_history_sync(session_id, 10, since_utc="2000-01-01T00:00:00+00:00")), 1)

    def test_unknown_role_is_rejected(self):
        session_id = self.store.get_or_create_session_sync(555)
        with self.assertRaises(ValueError):
            self.store.append_message_sync(session_id, "system", "nope")

    def test_clear_history_only_touches_one_session(self):
        mine = self.store.get_or_create_session_sync(555)
        theirs = self.store.get_or_create_session_sync(556)
        self.store.append_message_sync(mine, "user", "a")
        self.store.append_message_sync(mine, "assistant", "b")
        self.store.append_message_sync(theirs, "user", "c")

        self.assertEqual(self.store.clear_history_sync(mine), 2)
        self.assertEqual(self.store.fetch_history_sync(mine, 10), [])
        self.assertEqual(len(self.store.fetch_history_sync(theirs, 10)), 1)
        self.assertEqual(self.store.clear_history_sync(mine), 0)

    def test_whitelist_upsert_is_idempotent(self):
        self.assertTrue(self.store.upsert_whitelist_sync(555, added_by=1, notes="friend"))
        self.assertFalse(self.store.upsert_whitelist_sync(555, added_by=1))
        rows = self.store.list_whitelist_sync()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["user_id"], 555)
        self.assertEqual(rows[0]["added_by"], 1)
        self.assertEqual(rows[0]["notes"], "friend")

    def test_whitelist_readd_updates_notes(self):
        self.store.upsert_whitelist_sync(555, notes="old")
        self.store.upsert_whitelist_sync(555, notes="new")
        self.assertEqual(self.store.list_whitelist_sync()[0]["notes"], "new")

    def test_whitelist_remove(self):
        self.store.upsert_whitelist_sync(555)
        self.assertTrue(self.store.remove_whitelist_sync(555))
        self.assertFalse(self.store.remove_whitelist_sync(555))
        self.assertEqual(self.store.list_whitelist_sync(), [])

    def test_admin_upsert_remove_and_list_order(self):
        self.assertTrue(self.store.upsert_admin_sync(20, added_by=1))
        self.assertTrue(self.store.upsert_admin_sync(10, added_by=1))
        self.assertFalse(self.store.upsert_admin_sync(20, added_by=1))
        self.assertEqual([r["user_id"] for r in self.store.list_admins_sync()], [20, 10])
        self.assertTrue(self.store.remove_admin_sync(20))
        self.assertFalse(self.store.remove_admin_sync(20))
        self.assertEqual([r["user_id"] for r in self.store.list_admins_sync()], [10])

    def test_turn_is_stored_as_adjacent_pair(self):
        session_id = self.store.get_or_create_session_sync(555)
        user_id, assistant_id = self.store.append_turn_sync(session_id, "question", "answer")
        self.assertLess(user_id, assistant_id)
        rows = self.store.fetch_history_sync(session_id, 10)
        self.assertEqual([(r["role"], r["content"]) for r in rows], [("assistant", "answer"), ("user", "question")])

    def test_out_of_range_id_is_storage_error(self):
        with self.assertRaises(StorageError):
            self.store.upsert_whitelist_sync(2**64)

    def test_tier_lookup(self):
        self.store.upsert_whitelist_sync(1)
        self.store.upsert_admin_sync(2)
        self.store.upsert_whitelist_sync(2)
        self.assertEqual(self.store.get_tier_sync(1), "whitelisted")
        self.assertEqual(self.store.get_tier_sync(2), "admin")
        self.assertEqual(self.store.get_tier_sync(3), "none")

    def test_removing_whitelist_keeps_history(self):
        self.store.upsert_whitelist_sync(555)
        session_id = self.store.get_or_create_session_sync(555)
        self.store.append_message_sync(session_id, "user", "still here")
        self.store.remove_whitelist_sync(555)
        self.assertEqual(len(self.store.fetch_history_sync(session_id, 10)), 1)


class SqliteChatStoreTests(ChatStoreContract, unittest.TestCase):
    def make_store(self):
        return SqliteStore(":memory:", MIGRATIONS_ROOT / "sqlite")

    def test_engine_errors_become_storage_errors(self):
        self.store.conn.execute("DROP TABLE whitelist_users")
        with self.assertRaises(StorageError) as ctx:
            self.store.list_whitelist_sync()
        self.assertEqual(ctx.exception.operation, "list_whitelist")
        self.assertEqual(ctx.exception.code, "storage_error")

    def test_missing_session_message_is_storage_error(self):
        with self.assertRaises(StorageError):
            self.store.append_message_sync(424242, "user", "orphan")

    def test_out_of_range_lookup_is_storage_error(self):
        with self.assertRaises(StorageError) as ctx:
            self.store.get_tier_sync(2**64)
        self.assertEqual(ctx.exception.operation, "get_tier")

    def test_failed_assistant_insert_keeps_user_message(self):
        session_id = self.store.get_or_create_session_sync(555)
        self.store.conn.execute(
            "CREATE TRIGGER fail_assistant BEFORE INSERT ON messages "
            "WHEN NEW.role = 'assistant' BEGIN SELECT RAISE(ABORT, 'disk full'); END"
        )
        with self.assertRaises(StorageError) as ctx:
            self.store.append_turn_sync(session_id, "question", "answer")
        self.assertEqual(ctx.exception.operation, "append_turn")
        rows = self.store.fetch_history_sync(session_id, 10)
        self.assertEqual([(r["role"], r["content"]) for r in rows], [("user", "question")])


@unittest.skipIf(psycopg is None or not POSTGRES_URL, "RELAY_TEST_POSTGRES_URL not set")
class PostgresChatStoreTests(ChatStoreContract, unittest.TestCase):
    def make_store(self):
        from db.postgres_store import PostgresStore

        store = PostgresStore(POSTGRES_URL, MIGRATIONS_ROOT / "postgres")
        with store._connect() as conn:
            conn.execute("TRUNCATE messages, sessions, admins, whitelist_users RESTART IDENTITY CASCADE")
        return store


if __name__ == "__main__":
    unittest.main()
