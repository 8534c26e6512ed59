# Shared pytest fixtures: an in-memory stand-in for a PostgreSQL schema
from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import psycopg2
import pytest
from psycopg2.extras import Json

from tablesync.logging.init import LOGGER_NAME, reset_logging
from tablesync.models.config_models import SyncConfig


@dataclass
class FakeTable:
    name: str
    # (column_name, data_type, udt_name, nullable, default)
    columns: list[tuple[str, str, str, bool, str | None]]
    primary_key: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    serial_id: bool = False
    next_id: int = 1
    reltuples: int = 0

    @property
    def column_names(self) -> list[str]:
        return [c[0] for c in self.columns]


_INSERT_RE = re.compile(
    r'^INSERT INTO "(?P<schema>\w+)"\."(?P<table>\w+)" \((?P<cols>.*?)\) VALUES \((?P<vals>.*?)\)'
    r'(?: ON CONFLICT \("(?P<conflict>\w+)"\) DO UPDATE SET (?P<updates>.*?))?'
    r'(?: RETURNING .*)?$'
)
_FROM_RE = re.compile(r'FROM "(?P<schema>\w+)"\."(?P<table>\w+)"')
_ILIKE_RE = re.compile(r'"(\w+)"::text ILIKE %s')
_ORDER_RE = re.compile(r'ORDER BY "(\w+)" (ASC|DESC)')
_QUALIFIED_RE = re.compile(r'^"(\w+)"\."(\w+)"$')


class FakeDatabase:
    """Tables of one schema plus BEGIN/COMMIT/ROLLBACK snapshots."""

    def __init__(self, schema: str = "public") -> None:
        self.schema = schema
        self.tables: dict[str, FakeTable] = {}
        self.statements: list[str] = []
        self.setval_calls: list[tuple[str, int]] = []
        self._snapshot: dict[str, tuple[list[dict[str, Any]], int]] | None = None
        self.fail_on: str | None = None  # raise OperationalError when a statement contains this

    @property
    def in_transaction(self) -> bool:
        return self._snapshot is not None

    def add_table(
        self,
        name: str,
        columns: list[tuple[str, str, bool]] | list[tuple[str, str, str, bool, str | None]],
        *,
        primary_key: list[str] | None = None,
        rows: list[dict[str, Any]] | None = None,
        serial_id: bool = False,
    ) -> FakeTable:
        normalized = []
        for col in columns:
            if len(col) == 3:
                col_name, data_type, nullable = col
                udt = {"integer": "int4", "text": "text", "boolean": "bool", "jsonb": "jsonb"}.get(data_type, data_type)
                default = "nextval('seq'::regclass)" if (serial_id and col_name == "id") else None
                normalized.append((col_name, data_type, udt, nullable, default))
            else:
                normalized.append(col)
        table = FakeTable(name=name, columns=normalized, primary_key=primary_key or [], serial_id=serial_id)
        for row in rows or []:
            table.rows.append({c: row.get(c) for c in table.column_names})
        if serial_id and table.rows:
            table.next_id = max(int(r["id"]) for r in table.rows if r.get("id") is not None) + 1
        table.reltuples = len(table.rows)
        self.tables[name] = table
        return table

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables[table].rows

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    # --- transaction handling -------------------------------------------

    def begin(self) -> None:
        self._snapshot = {n: (copy.deepcopy(t.rows), t.next_id) for n, t in self.tables.items()}

    def commit(self) -> None:
        self._snapshot = None

    def rollback(self) -> None:
        if self._snapshot is None:
            return
        for n, (rows, next_id) in self._snapshot.items():
            self.tables[n].rows = rows
            self.tables[n].next_id = next_id
        self._snapshot = None


class FakeCursor:
    """DB-API cursor over FakeDatabase returning dict rows (like RealDictCursor)."""

    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self._result: list[dict[str, Any]] = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def fetchone(self) -> dict[str, Any] | None:
        if not self._result:
            return None
        return self._result.pop(0)

    def fetchall(self) -> list[dict[str, Any]]:
        result, self._result = self._result, []
        return result

    def execute(self, query: str, params: tuple[Any, ...] | list[Any] | None = None) -> None:
        sql = " ".join(query.split())
        params = tuple(params or ())
        self.db.statements.append(sql)
        self._result = []

        if self.db.fail_on and self.db.fail_on in sql:
            raise psycopg2.OperationalError("server closed the connection unexpectedly")

        if sql == "BEGIN":
            self.db.begin()
        elif sql == "COMMIT":
            self.db.commit()
        elif sql == "ROLLBACK":
            self.db.rollback()
        elif "FROM information_schema.tables" in sql:
            self._result = [{"table_name": n} for n in sorted(self.db.tables)] if params[0] == self.db.schema else []
        elif "FROM information_schema.columns" in sql:
            self._result = self._columns(*params)
        elif "information_schema.table_constraints" in sql:
            table = self._table_or_none(*params)
            self._result = [{"column_name": c} for c in (table.primary_key if table else [])]
        elif "FROM pg_class" in sql:
            self._result = [
                {"table_name": t.name, "row_estimate": t.reltuples} for t in self.db.tables.values()
            ]
        elif "pg_get_serial_sequence" in sql:
            match = _QUALIFIED_RE.match(params[0])
            table = self.db.tables.get(match.group(2)) if match else None
            seq = f"{self.db.schema}.{table.name}_id_seq" if table is not None and table.serial_id else None
            self._result = [{"seq": seq}]
        elif sql.startswith("SELECT setval("):
            self._setval(sql, params)
        elif sql.startswith("INSERT INTO"):
            self._insert(sql, params)
        elif sql.startswith("SELECT COUNT(*)"):
            rows = self._filtered(sql, params)
            self._result = [{"total": len(rows)}]
        elif sql.startswith("SELECT * FROM"):
            self._select(sql, params)
        else:
            raise AssertionError(f"unexpected SQL: {sql}")

    # --- helpers ----------------------------------------------------------

    def _table_or_none(self, schema: str, name: str) -> FakeTable | None:
        if schema != self.db.schema:
            return None
        return self.db.tables.get(name)

    def _table_from_sql(self, sql: str) -> FakeTable:
        match = _FROM_RE.search(sql)
        assert match, sql
        table = self._table_or_none(match.group("schema"), match.group("table"))
        if table is None:
            raise psycopg2.ProgrammingError(f'relation "{match.group("table")}" does not exist')
        return table

    def _columns(self, schema: str, name: str) -> list[dict[str, Any]]:
        table = self._table_or_none(schema, name)
        if table is None:
            return []
        return [
            {
                "column_name": col_name,
                "data_type": data_type,
                "udt_name": udt,
                "is_nullable": "YES" if nullable else "NO",
                "column_default": default,
                "ordinal_position": i + 1,
            }
            for i, (col_name, data_type, udt, nullable, default) in enumerate(table.columns)
        ]

    def _setval(self, sql: str, params: tuple[Any, ...]) -> None:
        table = self._table_from_sql(sql)
        ids = [int(r["id"]) for r in table.rows if r.get("id") is not None]
        value = max(ids) if ids else 1
        table.next_id = value + 1
        self.db.setval_calls.append((params[0], value))
        self._result = [{"setval": value}]

    def _check_value(self, table: FakeTable, column: str, value: Any) -> None:
        data_type = next(c[1] for c in table.columns if c[0] == column)
        if data_type == "date" and value is not None and not isinstance(value, date):
            try:
                date.fromisoformat(str(value))
            except ValueError:
                raise psycopg2.DataError(f'invalid input syntax for type date: "{value}"') from None

    def _insert(self, sql: str, params: tuple[Any, ...]) -> None:
        match = _INSERT_RE.match(sql)
        assert match, sql
        table = self._table_or_none(match.group("schema"), match.group("table"))
        assert table is not None, sql
        columns = [c.strip().strip('"') for c in match.group("cols").split(",")]
        unknown = [c for c in columns if c not in table.column_names]
        if unknown:
            raise psycopg2.ProgrammingError(f'column "{unknown[0]}" does not exist')
        values = {c: (v.adapted if isinstance(v, Json) else v) for c, v in zip(columns, params)}
        for column, value in values.items():
            self._check_value(table, column, value)

        conflict = match.group("conflict")
        if conflict:
            existing = next((r for r in table.rows if r.get(conflict) == values[conflict]), None)
            if existing is not None:
                existing.update({c: v for c, v in values.items() if c != conflict})
                self._result = [{"inserted": False}]
                return

        new_row = {c: values.get(c) for c in table.column_names}
        if table.serial_id and "id" not in values:
            new_row["id"] = table.next_id
            table.next_id += 1
        for col_name, _dt, _udt, nullable, _default in table.columns:
            if not nullable and new_row.get(col_name) is None:
                raise psycopg2.IntegrityError(
                    f'null value in column "{col_name}" of relation "{table.name}" violates not-null constraint'
                )
        if table.primary_key:
            key = tuple(new_row[c] for c in table.primary_key)
            if any(tuple(r[c] for c in table.primary_key) == key for r in table.rows):
                raise psycopg2.IntegrityError(
                    f'duplicate key value violates unique constraint "{table.name}_pkey"'
                )
        table.rows.append(new_row)
        self._result = [{"inserted": True}] if conflict else []

    def _filtered(self, sql: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        table = self._table_from_sql(sql)
        search_columns = _ILIKE_RE.findall(sql)
        if not search_columns:
            return list(table.rows)
        term = str(params[0]).strip("%").lower()
        return [
            r for r in table.rows
            if any(r.get(c) is not None and term in str(r[c]).lower() for c in search_columns)
        ]

    def _select(self, sql: str, params: tuple[Any, ...]) -> None:
        rows = self._filtered(sql, params)
        order = _ORDER_RE.search(sql)
        if order:
            column, direction = order.groups()
            rows = sorted(rows, key=lambda r: (r.get(column) is None, r.get(column)))
            if direction == "DESC":
                rows.reverse()
        if "LIMIT %s OFFSET %s" in sql:
            limit, offset = params[-2], params[-1]
            rows = rows[offset:offset + limit]
        self._result = [dict(r) for r in rows]


@pytest.fixture()
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture()
def widgets_db(fake_db: FakeDatabase) -> FakeDatabase:
    """widgets(id serial PK, name text not null, qty integer)."""
    fake_db.add_table(
        "widgets",
        [("id", "integer", False), ("name", "text", False), ("qty", "integer", True)],
        primary_key=["id"],
        serial_id=True,
    )
    return fake_db


@pytest.fixture()
def cursor(fake_db: FakeDatabase) -> FakeCursor:
    return fake_db.cursor()


@pytest.fixture(autouse=True)
def _fresh_logging():
    # handlers bound to a previous test's captured stdout must not leak
    logger = logging.getLogger(LOGGER_NAME)
    reset_logging()
    yield
    reset_logging()
    logger.handlers.clear()
    logger.propagate = True


@pytest.fixture()
def temp_workdir(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "logs").mkdir()
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture()
def sync_config(tmp_path: Path) -> SyncConfig:
    return SyncConfig(temp_root=str(tmp_path), error_log_dir=str(tmp_path / "logs"))


@pytest.fixture()
def db_factory():
    """Build additional independent FakeDatabase instances within one test."""
    return FakeDatabase
