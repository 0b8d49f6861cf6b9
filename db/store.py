from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from common.errors import StorageError
from common.permissions import MESSAGE_ROLES
from common.permissions import ROLE_ASSISTANT
from common.permissions import ROLE_USER
from common.permissions import TIER_ADMIN
from common.permissions import TIER_NONE
from common.permissions import TIER_PRECEDENCE
from common.permissions import TIER_WHITELISTED


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


TURN_INSERT_SQL = "INSERT INTO messages (session_id, role, content, created_at_utc) VALUES (?, ?, ?, ?)"


def turn_rows(session_id: int, user_content: str, assistant_content: str) -> list[tuple]:
    now = _utc_now_iso()
    return [
        (int(session_id), ROLE_USER, str(user_content or ""), now),
        (int(session_id), ROLE_ASSISTANT, str(assistant_content or ""), now),
    ]


def _permission_row(row: tuple) -> dict[str, Any]:
    user_id, added_by, added_at_utc = row[0], row[1], row[2]
    out: dict[str, Any] = {
        "user_id": int(user_id),
        "added_by": int(added_by) if added_by is not None else None,
        "added_at_utc": str(added_at_utc),
    }
    if len(row) > 3:
        out["notes"] = row[3]
    return out


class ChatStore:
    """
    Sessions, messages and persisted permission records behind one contract.

    Subclasses own the connection handling for their engine: `_run` executes a
    single statement atomically and translates engine errors to StorageError,
    `_insert_returning_id` inserts one row and returns its id.
    SQL here uses `?` placeholders; `_q` rewrites them for the engine.
    """

    backend_name = "base"
    placeholder = "?"

    def _q(self, sql: str) -> str:
        if self.placeholder == "?":
            return sql
        return sql.replace("?", self.placeholder)

    def _run(self, operation: str, sql: str, params: tuple = (), *, fetch: str = "none") -> Any:
        raise NotImplementedError

    def _insert_returning_id(self, operation: str, sql: str, params: tuple) -> int:
        raise NotImplementedError

    def get_or_create_session_sync(self, user_id: int) -> int:
        raise NotImplementedError

    def append_turn_sync(self, session_id: int, user_content: str, assistant_content: str) -> tuple[int, int]:
        """
        Insert a user message and its reply as adjacent rows.
        Each insert commits separately: if the reply fails the user message stays.
        """
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    # ---- admins ----

    def upsert_admin_sync(self, user_id: int, *, added_by: int | None = None) -> bool:
        changed = self._run(
            "upsert_admin",
            """
            INSERT INTO admins (user_id, added_by, added_at_utc)
            VALUES (?, ?, ?)
            ON CONFLICT (user_id) DO NOTHING
            """,
            (int(user_id), added_by, _utc_now_iso()),
            fetch="rowcount",
        )
        return int(changed or 0) == 1

    def remove_admin_sync(self, user_id: int) -> bool:
        changed = self._run(
            "remove_admin",
            "DELETE FROM admins WHERE user_id = ?",
            (int(user_id),),
            fetch="rowcount",
        )
        return int(changed or 0) > 0

    def list_admins_sync(self) -> list[dict[str, Any]]:
        rows = self._run(
            "list_admins",
            "SELECT user_id, added_by, added_at_utc FROM admins ORDER BY id ASC",
            fetch="all",
        )
        return [_permission_row(r) for r in rows]

    # ---- whitelist ----

    def upsert_whitelist_sync(
        self,
        user_id: int,
        *,
        added_by: int | None = None,
        notes: str | None = None,
    ) -> bool:
        clean_notes = (notes or "").strip() or None
        changed = self._run(
            "upsert_whitelist",
            """
            INSERT INTO whitelist_users (user_id, added_by, added_at_utc, notes)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (user_id) DO NOTHING
            """,
            (int(user_id), added_by, _utc_now_iso(), clean_notes),
            fetch="rowcount",
        )
        if int(changed or 0) == 1:
            return True
        if clean_notes is not None:
            self._run(
                "upsert_whitelist",
                "UPDATE whitelist_users SET notes = ? WHERE user_id = ?",
                (clean_notes, int(user_id)),
                fetch="rowcount",
            )
        return False

    def remove_whitelist_sync(self, user_id: int) -> bool:
        changed = self._run(
            "remove_whitelist",
            "DELETE FROM whitelist_users WHERE user_id = ?",
            (int(user_id),),
            fetch="rowcount",
        )
        return int(changed or 0) > 0

    def list_whitelist_sync(self) -> list[dict[str, Any]]:
        rows = self._run(
            "list_whitelist",
            "SELECT user_id, added_by, added_at_utc, notes FROM whitelist_users ORDER BY id ASC",
            fetch="all",
        )
        return [_permission_row(r) for r in rows]

    def get_tier_sync(self, user_id: int) -> str:
        uid = int(user_id)
        row = self._run(
            "get_tier",
            """
            SELECT
                (SELECT COUNT(*) FROM admins WHERE user_id = ?),
                (SELECT COUNT(*) FROM whitelist_users WHERE user_id = ?)
            """,
            (uid, uid),
            fetch="one",
        )
        held = set()
        if row and int(row[0] or 0) > 0:
            held.add(TIER_ADMIN)
        if row and int(row[1] or 0) > 0:
            held.add(TIER_WHITELISTED)
        for tier in TIER_PRECEDENCE:
            if tier in held:
                return tier
        return TIER_NONE

    # ---- sessions + messages ----

    def find_session_sync(self, user_id: int) -> int | None:
        row = self._run(
            "find_session",
            "SELECT id FROM sessions WHERE user_id = ?",
            (int(user_id),),
            fetch="one",
        )
        if not row:
            return None
        return int(row[0])

    def append_message_sync(self, session_id: int, role: str, content: str) -> int:
        if role not in MESSAGE_ROLES:
            raise ValueError(f"unsupported message role: {role!r}")
        return self._insert_returning_id(
            "append_message",
            TURN_INSERT_SQL,
            (int(session_id), role, str(content or ""), _utc_now_iso()),
        )

    def fetch_history_sync(
        self,
        session_id: int,
        limit: int,
        *,
        since_utc: str | None = None,
    ) -> list[dict[str, Any]]:
        """Most recent first, by insertion sequence."""
        lim = int(limit)
        if lim <= 0:
            return []
        where = "session_id = ?"
        params: list[Any] = [int(session_id)]
        if since_utc:
            where += " AND created_at_utc >= ?"
            params.append(str(since_utc))
        params.append(lim)
        rows = self._run(
            "fetch_history",
            f"""
            SELECT id, role, content, created_at_utc
            FROM messages
            WHERE {where}
            ORDER BY id DESC
            LIMIT ?
            """,
            tuple(params),
            fetch="all",
        )
        return [
            {
                "id": int(r[0]),
                "role": str(r[1]),
                "content": str(r[2]),
                "created_at_utc": str(r[3]),
            }
            for r in rows
        ]

    def clear_history_sync(self, session_id: int) -> int:
        changed = self._run(
            "clear_history",
            "DELETE FROM messages WHERE session_id = ?",
            (int(session_id),),
            fetch="rowcount",
        )
        return max(0, int(changed or 0))


def storage_error(operation: str, exc: BaseException) -> StorageError:
    return StorageError(f"{operation} failed: {exc}", operation=operation)
