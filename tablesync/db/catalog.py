from __future__ import annotations

import logging
from typing import Any

from tablesync.models.catalog import ColumnDescriptor, TableDescriptor

"""Schema catalog reader.

Every other component treats the live catalog as the single source of truth
for table names, column order, nullability and type. Nothing is cached:
each call re-queries information_schema / pg_class.
"""

__all__ = [
    "TableNotFoundError",
    "SchemaCatalog",
]

logger = logging.getLogger(__name__)

LIST_TABLES_SQL = """
SELECT t.table_name
FROM information_schema.tables t
WHERE t.table_schema = %s
  AND t.table_type = 'BASE TABLE'
ORDER BY t.table_name ASC
"""

LIST_COLUMNS_SQL = """
SELECT
    c.column_name,
    c.data_type,
    c.udt_name,
    c.is_nullable,
    c.column_default,
    c.ordinal_position
FROM information_schema.columns c
WHERE c.table_schema = %s
  AND c.table_name = %s
ORDER BY c.ordinal_position ASC
"""

LIST_PRIMARY_KEY_SQL = """
SELECT kcu.column_name
FROM information_schema.table_constraints tc
JOIN information_schema.key_column_usage kcu
  ON tc.constraint_name = kcu.constraint_name
 AND tc.table_schema = kcu.table_schema
WHERE tc.table_schema = %s
  AND tc.table_name = %s
  AND tc.constraint_type = 'PRIMARY KEY'
ORDER BY kcu.ordinal_position ASC
"""

ROW_ESTIMATES_SQL = """
SELECT c.relname AS table_name,
       GREATEST(COALESCE(c.reltuples, 0), 0)::bigint AS row_estimate
FROM pg_class c
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE n.nspname = %s
  AND c.relkind = 'r'
"""


class TableNotFoundError(LookupError):
    def __init__(self, table: str) -> None:
        super().__init__("表不存在")
        self.table = table


class SchemaCatalog:
    """Reads table/column metadata of one schema through a DB-API cursor.

    The cursor must return mapping rows (psycopg2 RealDictCursor).
    Connectivity errors propagate unchanged.
    """

    def __init__(self, cursor: Any, schema: str = "public") -> None:
        self.cursor = cursor
        self.schema = schema

    def _fetchall(self, query: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        self.cursor.execute(query, params)
        return list(self.cursor.fetchall())

    def list_tables(self) -> list[str]:
        rows = self._fetchall(LIST_TABLES_SQL, (self.schema,))
        return [r["table_name"] for r in rows]

    def list_columns(self, table: str) -> list[ColumnDescriptor]:
        """Columns in ordinal order; empty list when the table does not exist."""
        rows = self._fetchall(LIST_COLUMNS_SQL, (self.schema, table))
        return [
            ColumnDescriptor(
                name=r["column_name"],
                data_type=r["data_type"] or "",
                udt_name=r["udt_name"] or "",
                is_nullable=r["is_nullable"] == "YES",
                default_value=r["column_default"],
                ordinal_position=int(r["ordinal_position"]),
            )
            for r in rows
        ]

    def list_primary_key_columns(self, table: str) -> list[str]:
        rows = self._fetchall(LIST_PRIMARY_KEY_SQL, (self.schema, table))
        return [r["column_name"] for r in rows]

    def estimate_row_counts(self) -> dict[str, int]:
        """pg_class.reltuples per table; tables never analyzed report 0."""
        rows = self._fetchall(ROW_ESTIMATES_SQL, (self.schema,))
        return {r["table_name"]: max(int(r["row_estimate"] or 0), 0) for r in rows}

    def table_exists(self, table: str) -> bool:
        return table in self.list_tables()

    def require_table(self, table: str) -> None:
        if not self.table_exists(table):
            raise TableNotFoundError(table)

    def describe_table(self, table: str, row_estimates: dict[str, int] | None = None) -> TableDescriptor:
        return TableDescriptor(
            name=table,
            columns=self.list_columns(table),
            primary_key_columns=self.list_primary_key_columns(table),
            row_count_estimate=(row_estimates or {}).get(table, 0),
        )

    def describe_all(self) -> list[TableDescriptor]:
        tables = self.list_tables()
        estimates = self.estimate_row_counts()
        logger.debug(f"catalog: schema={self.schema} tables={len(tables)}")
        return [self.describe_table(t, estimates) for t in tables]
