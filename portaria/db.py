from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List

_TABLE_COL_CACHE: Dict[str, List[str]] = {}

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS condominiums (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  super_user_id TEXT,
  super_user_name TEXT,
  super_user_identifier TEXT,
  super_user_secret,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS employees (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  identifier TEXT NOT NULL,
  secret TEXT NOT NULL,
  role TEXT NOT NULL DEFAULT 'porter',
  active INTEGER NOT NULL DEFAULT 1,
  condominium_id TEXT NOT NULL REFERENCES condominiums(id) ON DELETE CASCADE,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_employees_identifier ON employees(identifier);
CREATE INDEX IF NOT EXISTS ix_employees_condominium ON employees(condominium_id);

CREATE TABLE IF NOT EXISTS residents (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  unit TEXT NOT NULL,
  block TEXT,
  phone TEXT NOT NULL DEFAULT '',
  email TEXT,
  active INTEGER NOT NULL DEFAULT 1,
  condominium_id TEXT NOT NULL REFERENCES condominiums(id) ON DELETE CASCADE,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_residents_condominium ON residents(condominium_id);

CREATE TABLE IF NOT EXISTS deliveries (
  id TEXT PRIMARY KEY,
  resident_id TEXT REFERENCES residents(id) ON DELETE SET NULL,
  staff_id TEXT NOT NULL,
  pickup_code TEXT NOT NULL,
  photo_url TEXT NOT NULL,
  notes TEXT NOT NULL DEFAULT '',
  status TEXT NOT NULL DEFAULT 'pending',
  arrived_at TEXT NOT NULL,
  picked_up_at TEXT,
  pickup_description TEXT,
  notification_sent INTEGER NOT NULL DEFAULT 0,
  condominium_id TEXT,
  created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_deliveries_code ON deliveries(pickup_code);
CREATE INDEX IF NOT EXISTS ix_deliveries_condominium_status ON deliveries(condominium_id, status);

CREATE TABLE IF NOT EXISTS notification_log (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  kind TEXT NOT NULL,
  recipient TEXT NOT NULL,
  payload_json TEXT NOT NULL,
  status TEXT NOT NULL,
  error TEXT,
  created_at TEXT NOT NULL
);
"""


def connect(db_path: Path, *, timeout_sec: float = 30.0) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(str(db_path), timeout=timeout_sec)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys=ON;")
    busy_ms = int(max(1000, min(60000, timeout_sec * 1000)))
    con.execute(f"PRAGMA busy_timeout={busy_ms};")
    return con


@contextmanager
def db_conn(db_path: Path, *, timeout_sec: float = 30.0) -> Iterator[sqlite3.Connection]:
    con = connect(db_path, timeout_sec=timeout_sec)
    try:
        yield con
        con.commit()
    except Exception:
        con.rollback()
        raise
    finally:
        con.close()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def new_id() -> str:
    return uuid.uuid4().hex


def table_columns(con: sqlite3.Connection, table: str) -> List[str]:
    cols = _TABLE_COL_CACHE.get(table)
    if cols:
        return cols
    cols = [r[1] for r in con.execute(f"PRAGMA table_info({table})").fetchall()]
    if cols:
        _TABLE_COL_CACHE[table] = cols
    return cols


def _ensure_column(con: sqlite3.Connection, table: str, col_def: str) -> None:
    col_name = col_def.split()[0]
    if col_name in table_columns(con, table):
        return
    con.execute(f"ALTER TABLE {table} ADD COLUMN {col_def}")
    _TABLE_COL_CACHE.pop(table, None)


def ensure_schema(db_path: Path, *, timeout_sec: float = 30.0) -> None:
    with db_conn(db_path, timeout_sec=timeout_sec) as con:
        con.executescript(SCHEMA_SQL)
        # older databases predate resident e-mail
        _ensure_column(con, "residents", "email TEXT")
