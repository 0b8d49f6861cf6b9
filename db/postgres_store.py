from __future__ import annotations

from pathlib import Path
from typing import Any

import psycopg
from psycopg_pool import ConnectionPool

from db.migrate import apply_postgres_migrations
from db.store import ChatStore
from db.store import TURN_INSERT_SQL
from db.store import _utc_now_iso
from db.store import storage_error
from db.store import turn_rows


class PostgresStore(ChatStore):
    backend_name = "postgres"
    placeholder = "%s"

    def __init__(
        self,
        dsn: str,
        migrations_dir: str | Path,
        *,
        min_size: int = 1,
        max_size: int = 5,
        connect_timeout: float = 10.0,
    ):
        self.dsn = dsn
        self.pool = ConnectionPool(
            dsn,
            min_size=min_size,
            max_size=max_size,
            timeout=connect_timeout,
            kwargs={"autocommit": False},
            open=True,
        )
        try:
            # Unreachable databases fail here instead of on the first message.
            self.pool.wait(timeout=connect_timeout)
            with self.pool.connection() as conn:
                apply_postgres_migrations(conn, migrations_dir)
        except Exception:
            self.pool.close()
            raise

    def _connect(self):
        return self.pool.connection()

    def _run(self, operation: str, sql: str, params: tuple = (), *, fetch: str = "none") -> Any:
        try:
            with self._connect() as conn:
                cur = conn.execute(self._q(sql), params)
                if fetch == "one":
                    return cur.fetchone()
                if fetch == "all":
                    return cur.fetchall()
                if fetch == "rowcount":
                    return cur.rowcount
                return None
        except psycopg.Error as exc:
            raise storage_error(operation, exc) from exc

    def _insert_returning_id(self, operation: str, sql: str, params: tuple) -> int:
        row = self._run(operation, sql + " RETURNING id", params, fetch="one")
        return int(row[0])

    def get_or_create_session_sync(self, user_id: int) -> int:
        now = _utc_now_iso()
        row = self._run(
            "get_or_create_session",
            """
            INSERT INTO sessions (user_id, created_at_utc, last_activity_at_utc)
            VALUES (?, ?, ?)
            ON CONFLICT (user_id) DO UPDATE SET
                last_activity_at_utc = EXCLUDED.last_activity_at_utc
            RETURNING id
            """,
            (int(user_id), now, now),
            fetch="one",
        )
        return int(row[0])

    def append_turn_sync(self, session_id: int, user_content: str, assistant_content: str) -> tuple[int, int]:
        # Session-level advisory lock survives the per-insert commits.
        ids: list[int] = []
        try:
            with self._connect() as conn:
                conn.execute("SELECT pg_advisory_lock(%s::bigint)", (int(session_id),))
                conn.commit()
                try:
                    for params in turn_rows(session_id, user_content, assistant_content):
                        row = conn.execute(self._q(TURN_INSERT_SQL) + " RETURNING id", params).fetchone()
                        conn.commit()
                        ids.append(int(row[0]))
                finally:
                    conn.rollback()
                    conn.execute("SELECT pg_advisory_unlock(%s::bigint)", (int(session_id),))
                    conn.commit()
        except psycopg.Error as exc:
            raise storage_error("append_turn", exc) from exc
        return (ids[0], ids[1])

    def close(self) -> None:
        self.pool.close()
