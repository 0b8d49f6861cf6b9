from __future__ import annotations

from typing import Any


def upgrade(conn: Any) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS admins (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL UNIQUE,
            added_by BIGINT,
            added_at_utc TEXT NOT NULL
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS whitelist_users (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL UNIQUE,
            added_by BIGINT,
            added_at_utc TEXT NOT NULL,
            notes TEXT
        )
        """
    )
    conn.commit()
