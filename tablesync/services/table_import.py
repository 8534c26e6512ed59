from __future__ import annotations

import logging
from typing import Any

import psycopg2

from tablesync.db.catalog import SchemaCatalog
from tablesync.db.upsert import RowWriteError, apply_rows, resync_id_sequence
from tablesync.logging.error_log import ErrorLogBuffer
from tablesync.models.import_result import DEFAULT_ERROR_CAP, ImportOutcome, RowError
from tablesync.tabular.parser import (
    CsvStructureError,
    normalize_rows,
    parse_tabular_text,
    read_header,
    strip_bom,
)

"""Single-table CSV import.

State machine per call:
1. resolve schema (columns, PK; upsert only with exactly one PK column)
2. parse & validate -> any failure rejects the file before a transaction exists
3. BEGIN
4. apply rows in file order, fail fast on the first database error
5. resync the ``id`` sequence
6. COMMIT

A single CSV file is atomic: either every row is applied or none is.
"""

__all__ = [
    "TableImportError",
    "import_table_csv",
]

logger = logging.getLogger(__name__)


class TableImportError(Exception):
    """Import rejected or rolled back.

    ``outcome`` is attached for validation/write failures; status_code is the
    HTTP status the failure maps to (400 user error, 500 unexpected).
    """

    def __init__(self, message: str, outcome: ImportOutcome | None = None, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.outcome = outcome
        self.status_code = status_code


def _rollback_quietly(cursor: Any) -> None:
    # the primary error is already being propagated
    try:
        cursor.execute("ROLLBACK")
    except psycopg2.Error as e:
        logger.debug(f"rollback after failure also failed: {e}")


def _record(error_log: ErrorLogBuffer | None, source: str, table: str, error_type: str, errors: list[RowError]) -> None:
    if error_log is None:
        return
    for err in errors:
        error_log.record(source, table, err.row, error_type, err.reason)


def import_table_csv(
    cursor: Any,
    table: str,
    raw_text: str,
    *,
    schema: str = "public",
    error_cap: int = DEFAULT_ERROR_CAP,
    error_log: ErrorLogBuffer | None = None,
    source: str | None = None,
) -> ImportOutcome:
    """Import CSV text into ``table`` as one all-or-nothing unit.

    The table must exist (callers check with SchemaCatalog.require_table).

    Raises:
        TableImportError: validation failure (400, nothing written), write
            failure (400, rolled back) or unexpected failure (500)
    """
    source = source or f"{table}.csv"
    transaction_started = False

    try:
        catalog = SchemaCatalog(cursor, schema)
        descriptor = catalog.describe_table(table)

        rows = parse_tabular_text(strip_bom(raw_text))
        try:
            headers = read_header(rows, descriptor.columns)
        except CsvStructureError as e:
            _record(error_log, source, table, "VALIDATION_ERROR", [RowError(row=-1, reason=str(e))])
            raise TableImportError(str(e)) from e

        data_rows = rows[1:]
        if not data_rows:
            _record(error_log, source, table, "VALIDATION_ERROR", [RowError(row=-1, reason="CSV 没有数据行")])
            raise TableImportError("CSV 没有数据行")

        import_rows, validation_errors = normalize_rows(headers, data_rows, descriptor.columns)
        if validation_errors:
            outcome = ImportOutcome.rejected(len(data_rows), validation_errors, error_cap)
            _record(error_log, source, table, "VALIDATION_ERROR", outcome.errors)
            logger.info(f"import {table}: rejected, {len(validation_errors)} invalid cells")
            raise TableImportError("CSV 校验失败", outcome)

        cursor.execute("BEGIN")
        transaction_started = True

        try:
            counts = apply_rows(cursor, schema, descriptor, import_rows)
        except RowWriteError as e:
            _rollback_quietly(cursor)
            transaction_started = False
            errors = [RowError(row=e.row_number, reason=e.message)]
            outcome = ImportOutcome.rejected(len(data_rows), errors, error_cap)
            _record(error_log, source, table, "WRITE_ERROR", outcome.errors)
            logger.warning(f"import {table}: row {e.row_number} failed, rolled back: {e.message}")
            raise TableImportError("导入失败，事务已回滚", outcome) from e

        resync_id_sequence(cursor, schema, table, descriptor.single_primary_key)
        cursor.execute("COMMIT")
        transaction_started = False

        logger.info(
            f"import {table}: total={len(data_rows)} inserted={counts.inserted} "
            f"updated={counts.updated} skipped={counts.skipped}"
        )
        return ImportOutcome(
            total=len(data_rows),
            inserted=counts.inserted,
            updated=counts.updated,
            skipped=counts.skipped,
            errors=[],
        )
    except TableImportError:
        raise
    except Exception as e:
        if transaction_started:
            _rollback_quietly(cursor)
        _record(error_log, source, table, "IMPORT_ERROR", [RowError(row=-1, reason=str(e))])
        logger.error(f"import {table}: unexpected failure: {e}")
        raise TableImportError(str(e) or "导入失败", None, 500) from e
