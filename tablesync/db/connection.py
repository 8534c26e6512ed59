from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor

from tablesync.models.config_models import DatabaseConfig, SyncConfig

"""PostgreSQL connection handling.

接続情報の解決優先順位:
    1. DATABASE_URL / PGDSN 環境変数 (DSN 全体)
    2. config の database.dsn
    3. 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE 環境変数
       (不足分は config の database セクション、さらに既定値)

Connections run in autocommit mode: the import pipeline owns its transaction
boundaries through explicit BEGIN / COMMIT / ROLLBACK statements.
"""

__all__ = [
    "DatabaseUnavailableError",
    "resolve_dsn",
    "db_connection",
]

logger = logging.getLogger(__name__)


class DatabaseUnavailableError(Exception):
    """Raised when no database connection can be established."""


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def db_connection(cfg: SyncConfig) -> Iterator[Any]:
    """Yield a RealDictCursor on a fresh autocommit connection.

    Cursor and connection are closed on every exit path.
    """
    try:
        conn = psycopg2.connect(resolve_dsn(cfg.database), cursor_factory=RealDictCursor)
    except psycopg2.Error as e:
        raise DatabaseUnavailableError(f"数据库未连接: {e}") from e

    cur = None
    try:
        conn.autocommit = True
        cur = conn.cursor()
        yield cur
    finally:
        if cur is not None:
            try:
                cur.close()
            except psycopg2.Error as e:  # pragma: no cover
                logger.debug(f"cursor close failed: {e}")
        try:
            conn.close()
        except psycopg2.Error as e:  # pragma: no cover
            logger.debug(f"connection close failed: {e}")
