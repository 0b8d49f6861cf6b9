from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from common.errors import ConfigurationError


class ConversationManager:
    """
    Bounded model context per identity.

    Only the newest `max_messages` messages (optionally no older than
    `max_age_seconds`) are returned as context; older ones stay stored.
    """

    def __init__(self, store, *, max_messages: int, max_age_seconds: int = 0):
        if int(max_messages) < 1:
            raise ConfigurationError("context window must hold at least one message")
        self._store = store
        self.max_messages = int(max_messages)
        self.max_age_seconds = max(0, int(max_age_seconds or 0))

    def _since_utc(self) -> str | None:
        if not self.max_age_seconds:
            return None
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.max_age_seconds)
        return cutoff.isoformat()

    async def get_context(self, identity: int) -> list[dict[str, str]]:
        session_id = await asyncio.to_thread(self._store.get_or_create_session_sync, int(identity))
        rows = await asyncio.to_thread(
            self._store.fetch_history_sync,
            session_id,
            self.max_messages,
            since_utc=self._since_utc(),
        )
        # Store returns newest first.
        return [{"role": r["role"], "content": r["content"]} for r in reversed(rows)]

    async def record_turn(self, identity: int, user_text: str, assistant_text: str) -> None:
        # Pair stays adjacent; if the assistant insert fails the user message stays.
        session_id = await asyncio.to_thread(self._store.get_or_create_session_sync, int(identity))
        await asyncio.to_thread(self._store.append_turn_sync, session_id, user_text, assistant_text)

    async def clear(self, identity: int) -> int:
        session_id = await asyncio.to_thread(self._store.find_session_sync, int(identity))
        if session_id is None:
            return 0
        return await asyncio.to_thread(self._store.clear_history_sync, session_id)
