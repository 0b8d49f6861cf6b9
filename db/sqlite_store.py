from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Any

from db.migrate import apply_sqlite_migrations
from db.store import ChatStore
from db.store import TURN_INSERT_SQL
from db.store import _utc_now_iso
from db.store import turn_rows
from db.store import storage_error


class SqliteStore(ChatStore):
    backend_name = "sqlite"
    placeholder = "?"

    def __init__(self, db_path: str, migrations_dir: str | Path):
        self.db_path = db_path
        # check_same_thread=False because every call arrives via asyncio.to_thread
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self._lock = threading.Lock()
        cur = self.conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON;")
        if db_path != ":memory:":
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute("PRAGMA synchronous=NORMAL;")
        apply_sqlite_migrations(self.conn, migrations_dir)
        self.conn.commit()

    def _run(self, operation: str, sql: str, params: tuple = (), *, fetch: str = "none") -> Any:
        with self._lock:
            try:
                cur = self.conn.cursor()
                cur.execute(self._q(sql), params)
                if fetch == "one":
                    result = cur.fetchone()
                elif fetch == "all":
                    result = cur.fetchall()
                elif fetch == "rowcount":
                    result = cur.rowcount
                else:
                    result = None
                self.conn.commit()
                return result
            except (sqlite3.Error, OverflowError) as exc:
                self.conn.rollback()
                raise storage_error(operation, exc) from exc

    def _insert_returning_id(self, operation: str, sql: str, params: tuple) -> int:
        with self._lock:
            try:
                cur = self.conn.cursor()
                cur.execute(self._q(sql), params)
                self.conn.commit()
                return int(cur.lastrowid)
            except (sqlite3.Error, OverflowError) as exc:
                self.conn.rollback()
                raise storage_error(operation, exc) from exc

    def get_or_create_session_sync(self, user_id: int) -> int:
        now = _utc_now_iso()
        with self._lock:
            try:
                cur = self.conn.cursor()
                cur.execute(
                    """
                    INSERT INTO sessions (user_id, created_at_utc, last_activity_at_utc)
                    VALUES (?, ?, ?)
                    ON CONFLICT (user_id) DO UPDATE SET
                        last_activity_at_utc = excluded.last_activity_at_utc
                    """,
                    (int(user_id), now, now),
                )
                cur.execute("SELECT id FROM sessions WHERE user_id = ?", (int(user_id),))
                row = cur.fetchone()
                self.conn.commit()
            except (sqlite3.Error, OverflowError) as exc:
                self.conn.rollback()
                raise storage_error("get_or_create_session", exc) from exc
        return int(row[0])

    def append_turn_sync(self, session_id: int, user_content: str, assistant_content: str) -> tuple[int, int]:
        # One lock hold keeps the pair adjacent; each insert commits on its own.
        ids: list[int] = []
        with self._lock:
            for params in turn_rows(session_id, user_content, assistant_content):
                try:
                    cur = self.conn.cursor()
                    cur.execute(TURN_INSERT_SQL, params)
                    self.conn.commit()
                except (sqlite3.Error, OverflowError) as exc:
                    self.conn.rollback()
                    raise storage_error("append_turn", exc) from exc
                ids.append(int(cur.lastrowid))
        return (ids[0], ids[1])

    def close(self) -> None:
        with self._lock:
            self.conn.close()
