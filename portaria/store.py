"""Remote store adapter.

The delivery and credential code only ever talks to :class:`RemoteStore`:
pick a table, compose equality/inclusion filters, ordering and a limit, then
select, update or delete. Filters always AND together. There are no
cross-table transactions, so callers issue their own follow-up writes.
"""
from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from portaria.db import connect, new_id, now_iso
from portaria.errors import RecordNotFound, StoreError


_IDENT_RE = re.compile(r"^[a-z_][a-z0-9_]*$")
_BOOL_COLUMNS = {
    "employees": {"active"},
    "residents": {"active"},
    "deliveries": {"notification_sent"},
}
_TIMESTAMPED = {"condominiums", "employees", "residents"}
_ROWID_TABLES = {"notification_log"}


def _ident(name: str) -> str:
    clean = str(name or "").strip()
    if not _IDENT_RE.fullmatch(clean):
        raise ValueError(f"invalid identifier: {name!r}")
    return clean


class Query:
    def __init__(self, store: "RemoteStore", table: str) -> None:
        self._store = store
        self.table = _ident(table)
        self.columns: Tuple[str, ...] = ()
        self.filters: List[Tuple[str, str, Any]] = []
        self.ordering: List[Tuple[str, bool]] = []
        self.row_limit: Optional[int] = None

    def select(self, *columns: str) -> "Query":
        self.columns = tuple(_ident(c) for c in columns)
        return self

    def eq(self, column: str, value: Any) -> "Query":
        self.filters.append((_ident(column), "=", value))
        return self

    def in_(self, column: str, values: Iterable[Any]) -> "Query":
        self.filters.append((_ident(column), "IN", list(values)))
        return self

    def order(self, column: str, *, desc: bool = False) -> "Query":
        self.ordering.append((_ident(column), bool(desc)))
        return self

    def limit(self, n: int) -> "Query":
        self.row_limit = max(1, int(n))
        return self

    def execute(self) -> List[Dict[str, Any]]:
        return self._store.run_select(self)

    def maybe_single(self) -> Optional[Dict[str, Any]]:
        rows = self.limit(2).execute()
        if len(rows) > 1:
            raise StoreError(f"multiple rows returned from {self.table}")
        return rows[0] if rows else None

    def single(self) -> Dict[str, Any]:
        row = self.maybe_single()
        if row is None:
            raise RecordNotFound(f"no row in {self.table}")
        return row

    def update(self, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self._store.run_update(self, values)

    def delete(self) -> int:
        return self._store.run_delete(self)


class RemoteStore:
    """Primitive operations the application relies on."""

    def table(self, name: str) -> Query:
        return Query(self, name)

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def run_select(self, query: Query) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def run_update(self, query: Query, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def run_delete(self, query: Query) -> int:
        raise NotImplementedError


def _where(filters: Sequence[Tuple[str, str, Any]]) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    for column, op, value in filters:
        if op == "IN":
            if not value:
                clauses.append("1=0")
                continue
            clauses.append(f"{column} IN ({', '.join(['?'] * len(value))})")
            params.extend(value)
        elif value is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = ?")
            params.append(value)
    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


class SqliteStore(RemoteStore):
    def __init__(self, db_path: Path, *, timeout_sec: float = 30.0) -> None:
        self.db_path = Path(db_path)
        self.timeout_sec = timeout_sec

    def _connect(self) -> sqlite3.Connection:
        return connect(self.db_path, timeout_sec=self.timeout_sec)

    def _row(self, table: str, row: sqlite3.Row) -> Dict[str, Any]:
        out = dict(row)
        for col in _BOOL_COLUMNS.get(table, ()):
            if col in out and out[col] is not None:
                out[col] = bool(out[col])
        return out

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        table = _ident(table)
        values = dict(row)
        if table not in _ROWID_TABLES:
            values.setdefault("id", new_id())
        ts = now_iso()
        if table in _TIMESTAMPED:
            values.setdefault("created_at", ts)
            values.setdefault("updated_at", ts)
        cols = [_ident(c) for c in values]
        sql = f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join(['?'] * len(cols))})"
        try:
            con = self._connect()
            try:
                cur = con.execute(sql, tuple(values.values()))
                con.commit()
                row_id = values["id"] if "id" in values else cur.lastrowid
                out = con.execute(f"SELECT * FROM {table} WHERE id=?", (row_id,)).fetchone()
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return self._row(table, out)

    def run_select(self, query: Query) -> List[Dict[str, Any]]:
        cols = ", ".join(query.columns) if query.columns else "*"
        where, params = _where(query.filters)
        sql = f"SELECT {cols} FROM {query.table}{where}"
        if query.ordering:
            sql += " ORDER BY " + ", ".join(f"{c} {'DESC' if d else 'ASC'}" for c, d in query.ordering)
        if query.row_limit is not None:
            sql += f" LIMIT {int(query.row_limit)}"
        try:
            con = self._connect()
            try:
                rows = con.execute(sql, tuple(params)).fetchall()
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return [self._row(query.table, r) for r in rows]

    def run_update(self, query: Query, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not values:
            return []
        changes = dict(values)
        if query.table in _TIMESTAMPED:
            changes.setdefault("updated_at", now_iso())
        sets = ", ".join(f"{_ident(c)}=?" for c in changes)
        where, params = _where(query.filters)
        try:
            con = self._connect()
            try:
                # write lock first: the id scan and the update see the same rows
                con.execute("BEGIN IMMEDIATE")
                ids = [r["id"] for r in con.execute(f"SELECT id FROM {query.table}{where}", tuple(params)).fetchall()]
                if not ids:
                    con.rollback()
                    return []
                marks = ", ".join(["?"] * len(ids))
                con.execute(
                    f"UPDATE {query.table} SET {sets} WHERE id IN ({marks})",
                    tuple(changes.values()) + tuple(ids),
                )
                con.commit()
                rows = con.execute(f"SELECT * FROM {query.table} WHERE id IN ({marks})", tuple(ids)).fetchall()
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return [self._row(query.table, r) for r in rows]

    def run_delete(self, query: Query) -> int:
        where, params = _where(query.filters)
        try:
            con = self._connect()
            try:
                cur = con.execute(f"DELETE FROM {query.table}{where}", tuple(params))
                con.commit()
                return int(cur.rowcount or 0)
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
