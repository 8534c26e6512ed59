from __future__ import annotations

import logging
import tempfile
import time
import zipfile
import zlib
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from tablesync.db.catalog import SchemaCatalog
from tablesync.db.identifiers import is_identifier
from tablesync.logging.error_log import ErrorLogBuffer
from tablesync.models.import_result import (
    DEFAULT_ERROR_CAP,
    BulkImportOutcome,
    EntryStatus,
    TableEntryResult,
)
from tablesync.services.progress import ProgressTracker
from tablesync.services.table_import import TableImportError, import_table_csv
from tablesync.tabular.writer import export_table_csv

"""Archive orchestration: every table as one ZIP of CSV files, and back.

Export writes ``<table>.csv`` for each base table into a scoped temporary
directory and zips them flat. Import applies each CSV entry independently:
one table's failure rolls back only that table and never aborts its
siblings. Temporary directories are removed on every exit path.
"""

__all__ = [
    "CSV_SUFFIX",
    "ArchiveError",
    "ArchiveExport",
    "table_name_from_entry",
    "export_all_tables",
    "import_archive",
]

logger = logging.getLogger(__name__)

CSV_SUFFIX = ".csv"
MAX_ENTRY_BYTES = 200 * 1024 * 1024

IGNORED_INVALID_NAME = "invalid_filename_or_nested_path"
IGNORED_TABLE_NOT_FOUND = "table_not_found"


class ArchiveError(Exception):
    """Archive-level failure; nothing was imported."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class ArchiveExport:
    filename: str
    content: bytes
    tables: list[str]


def _today() -> str:
    return datetime.now(UTC).date().isoformat()


def table_name_from_entry(entry_name: str) -> str | None:
    """Derive the target table from an archive entry name.

    Only flat ``<identifier>.csv`` entries map to a table; nested paths and
    non-identifier stems return None.
    """
    normalized = str(entry_name or "").strip()
    if not normalized.lower().endswith(CSV_SUFFIX):
        return None
    if "/" in normalized or "\\" in normalized:
        return None
    table = normalized[: -len(CSV_SUFFIX)]
    if not is_identifier(table):
        return None
    return table


def export_all_tables(cursor: Any, *, schema: str = "public", temp_root: str | None = None) -> ArchiveExport:
    catalog = SchemaCatalog(cursor, schema)
    tables = catalog.list_tables()
    filename = f"data_center_all_{_today()}.zip"

    with tempfile.TemporaryDirectory(prefix="data-center-export-", dir=temp_root, ignore_cleanup_errors=True) as tmp:
        tmp_dir = Path(tmp)
        csv_paths: list[Path] = []
        for table in tables:
            descriptor = catalog.describe_table(table)
            csv_path = tmp_dir / f"{table}{CSV_SUFFIX}"
            csv_path.write_text(export_table_csv(cursor, schema, descriptor), encoding="utf-8")
            csv_paths.append(csv_path)

        zip_path = tmp_dir / filename
        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for csv_path in csv_paths:
                archive.write(csv_path, arcname=csv_path.name)
        content = zip_path.read_bytes()

    logger.info(f"export: {len(tables)} tables -> {filename} ({len(content)} bytes)")
    return ArchiveExport(filename=filename, content=content, tables=tables)


def _read_entry(archive: zipfile.ZipFile, entry_name: str, max_entry_bytes: int) -> str:
    info = archive.getinfo(entry_name)
    if info.file_size > max_entry_bytes:
        raise ArchiveError(f"entry too large: {entry_name} ({info.file_size} bytes)")
    return archive.read(info).decode("utf-8", errors="replace")


def import_archive(
    cursor: Any,
    content: bytes,
    *,
    filename: str = "uploaded.zip",
    schema: str = "public",
    temp_root: str | None = None,
    error_cap: int = DEFAULT_ERROR_CAP,
    error_log: ErrorLogBuffer | None = None,
    show_progress: bool = False,
    max_entry_bytes: int = MAX_ENTRY_BYTES,
) -> BulkImportOutcome:
    """Import every ``<table>.csv`` entry of a ZIP archive.

    Raises:
        ArchiveError: archive unreadable, or it holds no CSV entry
    """
    start_time = time.time()

    with tempfile.TemporaryDirectory(prefix="data-center-import-", dir=temp_root, ignore_cleanup_errors=True) as tmp:
        zip_path = Path(tmp) / "uploaded.zip"
        zip_path.write_bytes(content)
        try:
            archive = zipfile.ZipFile(zip_path)
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveError("ZIP 文件无效或已损坏") from e

        with archive:
            csv_entries = [
                name for name in archive.namelist()
                if name.strip() and name.strip().lower().endswith(CSV_SUFFIX)
            ]
            if not csv_entries:
                raise ArchiveError("ZIP 中未找到 CSV 文件")

            known_tables = set(SchemaCatalog(cursor, schema).list_tables())
            results: list[TableEntryResult] = []

            tracker = ProgressTracker(len(csv_entries)) if show_progress else None
            try:
                for entry_name in csv_entries:
                    if tracker is not None:
                        tracker.start_entry(entry_name)
                    result = _import_entry(
                        cursor, archive, entry_name, known_tables,
                        schema=schema, error_cap=error_cap, error_log=error_log,
                        max_entry_bytes=max_entry_bytes,
                    )
                    results.append(result)
                    if tracker is not None:
                        tracker.finish_entry()
                        tracker.set_postfix(
                            success=sum(1 for r in results if r.status is EntryStatus.SUCCESS),
                            failed=sum(1 for r in results if r.status is EntryStatus.FAILED),
                        )
            finally:
                if tracker is not None:
                    tracker.close()

    outcome = BulkImportOutcome(
        zip_file_name=filename,
        total_csv_files=len(csv_entries),
        tables=results,
        elapsed_seconds=time.time() - start_time,
    )
    logger.info(
        f"archive {filename}: csv={outcome.total_csv_files} succeeded={outcome.succeeded_tables} "
        f"failed={outcome.failed_tables} ignored={outcome.skipped_tables}"
    )
    return outcome


def _import_entry(
    cursor: Any,
    archive: zipfile.ZipFile,
    entry_name: str,
    known_tables: set[str],
    *,
    schema: str,
    error_cap: int,
    error_log: ErrorLogBuffer | None,
    max_entry_bytes: int,
) -> TableEntryResult:
    table = table_name_from_entry(entry_name)
    if table is None:
        if error_log is not None:
            error_log.record(entry_name, "", -1, "ARCHIVE_ENTRY_IGNORED", IGNORED_INVALID_NAME)
        return TableEntryResult(table_name=entry_name, status=EntryStatus.IGNORED, reason=IGNORED_INVALID_NAME)

    if table not in known_tables:
        if error_log is not None:
            error_log.record(entry_name, table, -1, "ARCHIVE_ENTRY_IGNORED", IGNORED_TABLE_NOT_FOUND)
        return TableEntryResult(table_name=table, status=EntryStatus.IGNORED, reason=IGNORED_TABLE_NOT_FOUND)

    try:
        csv_text = _read_entry(archive, entry_name, max_entry_bytes)
    except (ArchiveError, zipfile.BadZipFile, zlib.error, OSError, RuntimeError) as e:
        logger.warning(f"archive entry {entry_name}: unreadable: {e}")
        return TableEntryResult(table_name=table, status=EntryStatus.FAILED, reason=str(e) or "import_failed")

    try:
        outcome = import_table_csv(
            cursor, table, csv_text,
            schema=schema, error_cap=error_cap, error_log=error_log, source=entry_name,
        )
    except TableImportError as e:
        return TableEntryResult(
            table_name=table,
            status=EntryStatus.FAILED,
            reason=e.message or "import_failed",
            result=e.outcome,
        )
    return TableEntryResult(table_name=table, status=EntryStatus.SUCCESS, result=outcome)
