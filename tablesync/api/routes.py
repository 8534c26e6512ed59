from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import Response

from tablesync.api.deps import get_config, get_cursor, get_error_log
from tablesync.api.errors import ApiError, UploadTooLargeError
from tablesync.api.responses import success_response
from tablesync.db.catalog import SchemaCatalog
from tablesync.logging.error_log import ErrorLogBuffer
from tablesync.models.config_models import SyncConfig
from tablesync.services.archive import export_all_tables, import_archive
from tablesync.services.browse import browse_rows
from tablesync.services.table_import import import_table_csv
from tablesync.tabular.writer import build_template_csv, export_table_csv

router = APIRouter(prefix="/api/data-center", tags=["data-center"])

logger = logging.getLogger(__name__)

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
ZIP_MEDIA_TYPE = "application/zip"


def _today() -> str:
    return datetime.now(UTC).date().isoformat()


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


def _read_upload(file: UploadFile | None, limit: int, missing_message: str) -> bytes:
    if file is None:
        raise ApiError(missing_message)
    content = file.file.read(limit + 1)
    if len(content) > limit:
        raise UploadTooLargeError(limit)
    return content


@router.get("/tables")
def list_tables(
    cursor: Any = Depends(get_cursor),
    config: SyncConfig = Depends(get_config),
) -> dict[str, Any]:
    """All base tables with column metadata and row estimates."""
    tables = SchemaCatalog(cursor, config.schema).describe_all()
    return success_response([t.to_dict() for t in tables])


@router.get("/tables/{table}/rows")
def list_rows(
    table: str,
    page: str | None = Query(default=None),
    page_size: str | None = Query(default=None, alias="pageSize"),
    search: str | None = Query(default=None),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    sort_order: str | None = Query(default=None, alias="sortOrder"),
    cursor: Any = Depends(get_cursor),
    config: SyncConfig = Depends(get_config),
) -> dict[str, Any]:
    data = browse_rows(
        cursor, table,
        schema=config.schema,
        page=page,
        page_size=page_size,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return success_response(data)


@router.get("/tables/{table}/export.csv")
def export_table(
    table: str,
    cursor: Any = Depends(get_cursor),
    config: SyncConfig = Depends(get_config),
) -> Response:
    catalog = SchemaCatalog(cursor, config.schema)
    catalog.require_table(table)
    csv_text = export_table_csv(cursor, config.schema, catalog.describe_table(table))
    return Response(
        content=csv_text,
        media_type=CSV_MEDIA_TYPE,
        headers=_attachment(f"{table}_{_today()}.csv"),
    )


@router.get("/tables/{table}/template.csv")
def download_template(
    table: str,
    cursor: Any = Depends(get_cursor),
    config: SyncConfig = Depends(get_config),
) -> Response:
    catalog = SchemaCatalog(cursor, config.schema)
    catalog.require_table(table)
    return Response(
        content=build_template_csv(catalog.describe_table(table)),
        media_type=CSV_MEDIA_TYPE,
        headers=_attachment(f"{table}_template_{_today()}.csv"),
    )


@router.post("/tables/{table}/import.csv")
def import_table(
    table: str,
    file: UploadFile | None = File(default=None),
    cursor: Any = Depends(get_cursor),
    config: SyncConfig = Depends(get_config),
    error_log: ErrorLogBuffer | None = Depends(get_error_log),
) -> dict[str, Any]:
    """Import one CSV file into ``table`` (all rows or none)."""
    SchemaCatalog(cursor, config.schema).require_table(table)
    content = _read_upload(file, config.max_upload_bytes, "请上传 CSV 文件")
    outcome = import_table_csv(
        cursor, table, content.decode("utf-8", errors="replace"),
        schema=config.schema,
        error_cap=config.error_cap,
        error_log=error_log,
        source=file.filename or f"{table}.csv",
    )
    return success_response(outcome.to_dict())


@router.get("/export/all.zip")
def export_all(
    cursor: Any = Depends(get_cursor),
    config: SyncConfig = Depends(get_config),
) -> Response:
    export = export_all_tables(cursor, schema=config.schema, temp_root=config.temp_root)
    return Response(
        content=export.content,
        media_type=ZIP_MEDIA_TYPE,
        headers=_attachment(export.filename),
    )


@router.post("/import/all.zip")
def import_all(
    file: UploadFile | None = File(default=None),
    cursor: Any = Depends(get_cursor),
    config: SyncConfig = Depends(get_config),
    error_log: ErrorLogBuffer | None = Depends(get_error_log),
) -> dict[str, Any]:
    """Import every ``<table>.csv`` of an uploaded ZIP; tables succeed or fail independently."""
    content = _read_upload(file, config.max_upload_bytes, "请上传 ZIP 文件")
    outcome = import_archive(
        cursor, content,
        filename=file.filename or "uploaded.zip",
        schema=config.schema,
        temp_root=config.temp_root,
        error_cap=config.error_cap,
        error_log=error_log,
    )
    return success_response(outcome.to_dict())
