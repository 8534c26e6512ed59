from __future__ import annotations

import logging

import psycopg2
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tablesync.api.responses import error_response
from tablesync.db.catalog import TableNotFoundError
from tablesync.db.connection import DatabaseUnavailableError
from tablesync.db.identifiers import IdentifierError
from tablesync.services.archive import ArchiveError
from tablesync.services.table_import import TableImportError

"""Exception -> JSON envelope translation.

Taxonomy:
- connectivity (DatabaseUnavailableError, psycopg2.Error)  -> 500, raw message
- not found (TableNotFoundError)                           -> 404
- validation / write (TableImportError)                    -> 400 + outcome
- archive (ArchiveError)                                   -> 400
- upload problems (ApiError)                               -> 400 / 413
"""

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UploadTooLargeError(ApiError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"上传文件超过大小限制 ({limit} bytes)", status_code=413)
        self.limit = limit


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc.message, exc.status_code)


async def table_import_error_handler(request: Request, exc: TableImportError) -> JSONResponse:
    data = exc.outcome.to_dict() if exc.outcome is not None else None
    return error_response(exc.message, exc.status_code, data)


async def archive_error_handler(request: Request, exc: ArchiveError) -> JSONResponse:
    return error_response(exc.message, exc.status_code)


async def table_not_found_handler(request: Request, exc: TableNotFoundError) -> JSONResponse:
    return error_response(str(exc), 404)


async def identifier_error_handler(request: Request, exc: IdentifierError) -> JSONResponse:
    return error_response(str(exc), 400)


async def database_unavailable_handler(request: Request, exc: DatabaseUnavailableError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return error_response(str(exc), 500)


async def database_error_handler(request: Request, exc: psycopg2.Error) -> JSONResponse:
    message = (exc.pgerror or str(exc)).strip()
    logger.error(f"{request.method} {request.url.path}: database error: {message}")
    return error_response(message, 500)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(str(exc.detail), exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response("请求参数无效", 422, jsonable_encoder(exc.errors()))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"{request.method} {request.url.path}: unhandled error")
    return error_response(str(exc) or exc.__class__.__name__, 500)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(TableImportError, table_import_error_handler)
    app.add_exception_handler(ArchiveError, archive_error_handler)
    app.add_exception_handler(TableNotFoundError, table_not_found_handler)
    app.add_exception_handler(IdentifierError, identifier_error_handler)
    app.add_exception_handler(DatabaseUnavailableError, database_unavailable_handler)
    app.add_exception_handler(psycopg2.Error, database_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
