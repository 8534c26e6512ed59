from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from fastapi import Depends, Request

from tablesync.db.connection import db_connection
from tablesync.logging.error_log import ErrorLogBuffer
from tablesync.models.config_models import SyncConfig


def get_config(request: Request) -> SyncConfig:
    return request.app.state.config


def get_cursor(config: SyncConfig = Depends(get_config)) -> Iterator[Any]:
    # one connection per request, closed on success and on error
    with db_connection(config) as cursor:
        yield cursor


def get_error_log(config: SyncConfig = Depends(get_config)) -> Iterator[ErrorLogBuffer | None]:
    if not config.error_log_dir:
        yield None
        return
    buffer = ErrorLogBuffer(config.error_log_dir)
    try:
        yield buffer
    finally:
        buffer.safe_flush()
