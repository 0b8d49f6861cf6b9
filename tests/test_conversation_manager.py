from __future__ import annotations

import unittest
from pathlib import Path

from common.errors import ConfigurationError
from db.sqlite_store import SqliteStore
from memory.conversation import ConversationManager

MIGRATIONS_ROOT = Path(__file__).resolve().parents[1] / "migrations"


class ConversationManagerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = SqliteStore(":memory:", MIGRATIONS_ROOT / "sqlite")

    def tearDown(self):
        self.store.close()

    async def test_first_context_is_empty_and_creates_session(self):
        manager = ConversationManager(self.store, max_messages=10)
        self.assertEqual(await manager.get_context(555), [])
        self.assertIsNotNone(self.store.find_session_sync(555))

    async def test_context_is_chronological_and_bounded(self):
        manager = ConversationManager(self.store, max_messages=4)
        for i in range(3):
            await manager.record_turn(555, f"q{i}", f"a{i}")

        context = await manager.get_context(555)
        self.assertEqual(
            context,
            [
                {"role": "user", "content": "q1"},
                {"role": "assistant", "content": "a1"},
                {"role": "user", "content": "q2"},
                {"role": "assistant", "content": "a2"},
            ],
        )
        # Older messages stay stored.
        session_id = self.store.find_session_sync(555)
        self.assertEqual(len(self.store.fetch_history_sync(session_id, 100)), 6)

    async def test_odd_window_may_start_with_assistant(self):
        manager = ConversationManager(self.store, max_messages=3)
        await manager.record_turn(555, "q0", "a0")
        await manager.record_turn(555, "q1", "a1")
        context = await manager.get_context(555)
        self.assertEqual([m["content"] for m in context], ["a0", "q1", "a1"])

    async def test_identities_are_isolated(self):
        manager = ConversationManager(self.store, max_messages=10)
        await manager.record_turn(1, "mine", "ok")
        self.assertEqual(await manager.get_context(2), [])

    async def test_clear_without_session_is_zero(self):
        manager = ConversationManager(self.store, max_messages=10)
        self.assertEqual(await manager.clear(777), 0)
        self.assertIsNone(self.store.find_session_sync(777))

    async def test_clear_then_context_is_empty(self):
        manager = ConversationManager(self.store, max_messages=10)
        await manager.record_turn(555, "q", "a")
        self.assertEqual(await manager.clear(555), 2)
        self.assertEqual(await manager.get_context(555), [])

    async def test_age_bound_drops_old_messages(self):
        manager = ConversationManager(self.store, max_messages=10, max_age_seconds=3600)
        session_id = self.store.get_or_create_session_sync(555)
        self.store.conn.execute(
            "INSERT INTO messages (session_id, role, content, created_at_utc) VALUES (?, 'user', 'ancient', ?)",
            (session_id, "2001-01-01T00:00:00+00:00"),
        )
        self.store.conn.commit()
        await manager.record_turn(555, "fresh", "reply")
        context = await manager.get_context(555)
        self.assertEqual([m["content"] for m in context], ["fresh", "reply"])

    def test_window_must_hold_a_message(self):
        with self.assertRaises(ConfigurationError):
            ConversationManager(self.store, max_messages=0)


if __name__ == "__main__":
    unittest.main()
