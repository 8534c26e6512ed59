from __future__ import annotations

import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from tablesync.db.catalog import SchemaCatalog
from tablesync.db.identifiers import qualified_name, quote_identifier

"""Paginated, searchable, sortable row browsing for one table."""

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "parse_positive_int",
    "browse_rows",
]

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def parse_positive_int(value: Any, fallback: int, max_value: int | None = None) -> int:
    try:
        parsed = int(str(value if value is not None else "").strip())
    except ValueError:
        return fallback
    if parsed <= 0:
        return fallback
    if max_value is not None and parsed > max_value:
        return max_value
    return parsed


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        return "\\x" + bytes(value).hex()
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def browse_rows(
    cursor: Any,
    table: str,
    *,
    schema: str = "public",
    page: Any = None,
    page_size: Any = None,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> dict[str, Any]:
    """One page of rows plus column metadata.

    Search is a case-insensitive substring match OR'd across text-like
    columns. sort_by must name a real column, otherwise the first PK column
    (or the first column) is used; the direction is DESC unless ``asc``.
    """
    catalog = SchemaCatalog(cursor, schema)
    catalog.require_table(table)
    descriptor = catalog.describe_table(table)
    column_names = descriptor.column_names
    allowed = set(column_names)

    page_num = parse_positive_int(page, 1)
    size = parse_positive_int(page_size, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    term = (search or "").strip()
    sort_by_raw = (sort_by or "").strip()
    order = "ASC" if (sort_order or "desc").strip().lower() == "asc" else "DESC"

    if sort_by_raw in allowed:
        sort_column = sort_by_raw
    elif descriptor.primary_key_columns:
        sort_column = descriptor.primary_key_columns[0]
    elif column_names:
        sort_column = column_names[0]
    else:
        sort_column = None

    params: list[Any] = []
    where_sql = ""
    if term:
        searchable = [c.name for c in descriptor.columns if c.searchable]
        if searchable:
            conditions = []
            for name in searchable:
                params.append(f"%{term}%")
                conditions.append(f"{quote_identifier(name, allowed)}::text ILIKE %s")
            where_sql = f" WHERE ({' OR '.join(conditions)})"

    target = qualified_name(schema, table, {table})
    cursor.execute(f"SELECT COUNT(*)::int AS total FROM {target}{where_sql}", tuple(params))
    count_row = cursor.fetchone()
    total = int(count_row["total"]) if count_row else 0

    order_sql = f" ORDER BY {quote_identifier(sort_column, allowed)} {order}" if sort_column else ""
    cursor.execute(
        f"SELECT * FROM {target}{where_sql}{order_sql} LIMIT %s OFFSET %s",
        (*params, size, (page_num - 1) * size),
    )
    rows = [{k: _json_safe(v) for k, v in dict(r).items()} for r in cursor.fetchall()]

    return {
        "rows": rows,
        "columnMeta": [c.to_dict() for c in descriptor.columns],
        "pagination": {
            "page": page_num,
            "pageSize": size,
            "total": total,
            "totalPages": max(1, math.ceil(total / size)),
        },
        "sort": {
            "sortBy": sort_column,
            "sortOrder": order.lower(),
        },
    }
