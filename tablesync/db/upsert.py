from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import psycopg2
from psycopg2.extras import Json

from tablesync.db.identifiers import qualified_name, quote_identifier
from tablesync.models.catalog import ColumnKind, TableDescriptor
from tablesync.models.row_data import ImportRow

"""Row-by-row write engine for one table.

Rows are applied strictly in file order inside a transaction owned by the
caller. Each row is classified as inserted / updated / skipped:

- no usable column                        -> skipped, no statement issued
- single-column PK with a non-empty value -> INSERT .. ON CONFLICT (pk) DO UPDATE,
                                             RETURNING (xmax = 0) tells insert vs update
- otherwise                               -> plain INSERT without the PK column
                                             (skipped if nothing is left)

The first database error stops processing and is raised as RowWriteError;
rolling back is the caller's job.
"""

__all__ = [
    "RowWriteError",
    "WriteCounts",
    "adapt_value",
    "has_key_value",
    "upsert_row",
    "insert_row",
    "apply_rows",
    "resync_id_sequence",
]


class RowWriteError(Exception):
    def __init__(self, row_number: int, message: str) -> None:
        super().__init__(message)
        self.row_number = row_number
        self.message = message


@dataclass(frozen=True)
class WriteCounts:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    elapsed_seconds: float = 0.0


def adapt_value(value: Any, kind: ColumnKind) -> Any:
    """Wrap parsed JSON so psycopg2 sends it as json, not as an ARRAY/record."""
    if kind is ColumnKind.JSON and value is not None:
        return Json(value)
    return value


def has_key_value(row: ImportRow, primary_key: str | None) -> bool:
    if primary_key is None:
        return False
    value = row.values.get(primary_key)
    return value is not None and str(value).strip() != ""


def _placeholders(count: int) -> str:
    return ", ".join(["%s"] * count)


def upsert_row(cursor: Any, schema: str, table: TableDescriptor, row: ImportRow, primary_key: str) -> bool | None:
    """Insert-or-update keyed by ``primary_key``.

    Returns True when a new tuple was created, False when an existing one was
    updated, None when the row only carries the key (nothing to update).
    """
    allowed = set(table.column_names)
    kinds = {c.name: c.kind for c in table.columns}
    insert_columns = list(dict.fromkeys([primary_key, *row.values.keys()]))
    update_columns = [c for c in insert_columns if c != primary_key]
    if not update_columns:
        return None

    cols_sql = ", ".join(quote_identifier(c, allowed) for c in insert_columns)
    update_sql = ", ".join(
        f"{quote_identifier(c, allowed)} = EXCLUDED.{quote_identifier(c, allowed)}" for c in update_columns
    )
    query = (
        f"INSERT INTO {qualified_name(schema, table.name, {table.name})} ({cols_sql}) "
        f"VALUES ({_placeholders(len(insert_columns))}) "
        f"ON CONFLICT ({quote_identifier(primary_key, allowed)}) DO UPDATE SET {update_sql} "
        "RETURNING (xmax = 0) AS inserted"
    )
    params = tuple(adapt_value(row.values[c], kinds[c]) for c in insert_columns)
    cursor.execute(query, params)
    result = cursor.fetchone()
    return bool(result and result["inserted"])


def insert_row(cursor: Any, schema: str, table: TableDescriptor, row: ImportRow, primary_key: str | None) -> bool:
    """Plain INSERT of every present column except the PK; False when nothing is left."""
    allowed = set(table.column_names)
    kinds = {c.name: c.kind for c in table.columns}
    insert_columns = [c for c in row.values if c != primary_key]
    if not insert_columns:
        return False

    cols_sql = ", ".join(quote_identifier(c, allowed) for c in insert_columns)
    query = (
        f"INSERT INTO {qualified_name(schema, table.name, {table.name})} ({cols_sql}) "
        f"VALUES ({_placeholders(len(insert_columns))})"
    )
    params = tuple(adapt_value(row.values[c], kinds[c]) for c in insert_columns)
    cursor.execute(query, params)
    return True


def apply_rows(cursor: Any, schema: str, table: TableDescriptor, rows: Iterable[ImportRow]) -> WriteCounts:
    """Apply rows in order; stop at the first database error.

    Raises:
        RowWriteError: carrying the failing row number and the database message
    """
    primary_key = table.single_primary_key
    inserted = updated = skipped = 0
    start_time = time.time()

    for row in rows:
        if row.is_empty:
            skipped += 1
            continue
        try:
            if has_key_value(row, primary_key):
                created = upsert_row(cursor, schema, table, row, primary_key)  # type: ignore[arg-type]
                if created is None:
                    skipped += 1
                elif created:
                    inserted += 1
                else:
                    updated += 1
            elif insert_row(cursor, schema, table, row, primary_key):
                inserted += 1
            else:
                skipped += 1
        except psycopg2.Error as e:
            message = (e.pgerror or str(e)).strip()
            raise RowWriteError(row.row_number, message or e.__class__.__name__) from e

    return WriteCounts(
        inserted=inserted,
        updated=updated,
        skipped=skipped,
        elapsed_seconds=time.time() - start_time,
    )


def resync_id_sequence(cursor: Any, schema: str, table: str, primary_key: str | None) -> str | None:
    """Move the serial sequence behind an ``id`` PK to MAX(id).

    Explicit-id upserts do not advance the sequence; without this the next
    engine-assigned id could collide. No-op when the PK is not ``id`` or no
    sequence backs it. Returns the sequence name when it was reset.
    """
    if primary_key != "id":
        return None

    target = qualified_name(schema, table, {table})
    cursor.execute("SELECT pg_get_serial_sequence(%s, 'id') AS seq", (target,))
    result = cursor.fetchone()
    seq_name = result["seq"] if result else None
    if not seq_name:
        return None

    cursor.execute(
        f'SELECT setval(%s::regclass, COALESCE((SELECT MAX("id") FROM {target}), 1), true)',
        (seq_name,),
    )
    return seq_name
