from __future__ import annotations

import sqlite3
from pathlib import Path
from urllib.parse import urlparse

from common.errors import ConfigurationError
from db.sqlite_store import SqliteStore
from db.store import ChatStore


def default_migrations_root() -> Path:
    return Path(__file__).resolve().parents[1] / "migrations"


def parse_database_url(url: str) -> tuple[str, str]:
    """
    Resolve a connection string to (backend, target).

      sqlite:chat.db | sqlite://chat.db | sqlite:///abs/chat.db | sqlite::memory:
      postgres://user:pw@host:5432/db | postgresql://...

    Raises ConfigurationError for anything else.
    """
    raw = (url or "").strip()
    if not raw:
        raise ConfigurationError("Database URL is empty")

    scheme, sep, rest = raw.partition(":")
    scheme = scheme.lower()
    if not sep:
        raise ConfigurationError(f"Database URL has no scheme: {raw!r}")

    if scheme == "sqlite":
        # sqlx-style options (?mode=rwc) carry no meaning for sqlite3.
        target = rest.split("?", 1)[0]
        if target.startswith("//"):
            target = target[2:]
        if target.strip("/") == ":memory:":
            return ("sqlite", ":memory:")
        if not target.strip():
            raise ConfigurationError(f"SQLite URL is missing a database path: {raw!r}")
        return ("sqlite", target)

    if scheme in {"postgres", "postgresql"}:
        parsed = urlparse(raw)
        if not rest.startswith("//") or not (parsed.hostname or parsed.path.strip("/")):
            raise ConfigurationError(f"Malformed PostgreSQL URL: {raw!r}")
        try:
            _ = parsed.port
        except ValueError as exc:
            raise ConfigurationError(f"Malformed PostgreSQL URL port: {raw!r}") from exc
        return ("postgres", raw)

    raise ConfigurationError(f"Unsupported database URL scheme {scheme!r}; use sqlite: or postgres://")


def open_store(database_url: str, *, migrations_root: str | Path | None = None) -> ChatStore:
    backend, target = parse_database_url(database_url)
    root = Path(migrations_root) if migrations_root is not None else default_migrations_root()
    migrations_dir = root / backend

    if backend == "sqlite":
        try:
            store: ChatStore = SqliteStore(target, migrations_dir)
        except (sqlite3.Error, RuntimeError, OSError) as exc:
            raise ConfigurationError(f"Could not initialize SQLite store at {target!r}: {exc}") from exc
    else:
        from db.postgres_store import PostgresStore

        try:
            store = PostgresStore(target, migrations_dir)
        except Exception as exc:
            raise ConfigurationError(f"Could not initialize PostgreSQL store: {exc}") from exc

    print(f"[DB] backend={store.backend_name} ready")
    return store
