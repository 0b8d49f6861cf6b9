from __future__ import annotations

import hashlib
import importlib.util
import re
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


MIGRATION_RE = re.compile(r"^(\d{4})_([a-zA-Z0-9_]+)\.(sql|py)$")

# Bookkeeping insert, per paramstyle.
_RECORD_SQL = {
    "sqlite": "INSERT INTO schema_migrations (version, name, checksum, applied_at_utc) VALUES (?, ?, ?, ?)",
    "postgres": "INSERT INTO schema_migrations (version, name, checksum, applied_at_utc) VALUES (%s, %s, %s, %s)",
}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _checksum_file(path: Path) -> str:
    data = path.read_bytes()
    return hashlib.sha256(data).hexdigest()


def _ensure_migration_table(conn: Any) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at_utc TEXT NOT NULL
        )
        """
    )
    conn.commit()


def _load_applied(conn: Any) -> dict[str, tuple[str, str, str]]:
    cur = conn.cursor()
    cur.execute("SELECT version, name, checksum, applied_at_utc FROM schema_migrations")
    out: dict[str, tuple[str, str, str]] = {}
    for version, name, checksum, applied_at_utc in cur.fetchall():
        out[str(version)] = (str(name), str(checksum), str(applied_at_utc))
    return out


def _run_sql(conn: Any, path: Path, dialect: str) -> None:
    sql = path.read_text(encoding="utf-8")
    if dialect == "sqlite":
        conn.executescript(sql)
    else:
        # psycopg accepts several statements in one parameterless execute.
        conn.execute(sql)


def _run_py(conn: Any, path: Path, dialect: str) -> None:
    mod_name = f"relay_migration_{dialect}_{path.stem}"
    spec = importlib.util.spec_from_file_location(mod_name, str(path))
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Could not load migration module: {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    upgrade = getattr(module, "upgrade", None)
    if not callable(upgrade):
        raise RuntimeError(f"Python migration missing upgrade(conn): {path}")
    upgrade(conn)


def list_migration_files(migrations_dir: str | Path) -> list[tuple[str, str, str, Path]]:
    base = Path(migrations_dir)
    if not base.exists():
        raise RuntimeError(f"Migrations directory not found: {migrations_dir}")

    files: list[tuple[str, str, str, Path]] = []
    for p in sorted(base.iterdir()):
        if not p.is_file():
            continue
        m = MIGRATION_RE.match(p.name)
        if not m:
            continue
        version, name, ext = m.group(1), m.group(2), m.group(3)
        files.append((version, name, ext, p))
    return files


def _apply_migrations(conn: Any, migrations_dir: str | Path, dialect: str) -> list[str]:
    _ensure_migration_table(conn)
    applied = _load_applied(conn)
    files = list_migration_files(migrations_dir)

    newly_applied: list[str] = []
    for version, name, ext, path in files:
        checksum = _checksum_file(path)
        existing = applied.get(version)
        if existing:
            old_name, old_checksum, _applied_at = existing
            if old_name != name or old_checksum != checksum:
                raise RuntimeError(
                    f"Migration version {version} already applied with different content "
                    f"(existing name={old_name}, file name={name})."
                )
            continue

        print(f"[DB] Applying {dialect} migration {version}_{name}.{ext}")
        if ext == "sql":
            _run_sql(conn, path, dialect)
        elif ext == "py":
            _run_py(conn, path, dialect)
        else:
            raise RuntimeError(f"Unsupported migration extension: {path.name}")

        cur = conn.cursor()
        cur.execute(_RECORD_SQL[dialect], (version, name, checksum, _utc_now_iso()))
        conn.commit()
        newly_applied.append(f"{version}_{name}")
    return newly_applied


def apply_sqlite_migrations(conn: sqlite3.Connection, migrations_dir: str | Path) -> list[str]:
    return _apply_migrations(conn, migrations_dir, "sqlite")


def apply_postgres_migrations(conn: Any, migrations_dir: str | Path) -> list[str]:
    return _apply_migrations(conn, migrations_dir, "postgres")
