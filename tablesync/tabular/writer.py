from __future__ import annotations

import json
from collections.abc import Collection, Iterable, Sequence
from datetime import UTC, date, datetime, time
from typing import Any

from tablesync.db.identifiers import qualified_name
from tablesync.models.catalog import ColumnKind, TableDescriptor

"""CSV rendering (export direction).

Output: UTF-8 without BOM, ``\\n`` line endings, columns in catalog ordinal
order so that an export can be re-imported without reordering.
"""

__all__ = [
    "to_cell_text",
    "render_csv",
    "export_table_csv",
    "build_template_csv",
]

_QUOTE_TRIGGERS = (",", '"', "\n", "\r")


def _json_text(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def _render_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return _json_text(value)
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        return "\\x" + bytes(value).hex()
    return str(value)


def to_cell_text(value: Any) -> str:
    """Render one value as a CSV cell, quoting when needed."""
    text = _render_value(value)
    if any(ch in text for ch in _QUOTE_TRIGGERS):
        return '"' + text.replace('"', '""') + '"'
    return text


def render_csv(headers: Sequence[str], rows: Iterable[Any], *, json_columns: Collection[str] = ()) -> str:
    """Header line plus one line per row; rows are mappings keyed by header.

    Non-null values of ``json_columns`` are always JSON-encoded, so a string
    scalar comes out as ``"hello"`` and parses back as JSON.
    """
    lines = [",".join(to_cell_text(h) for h in headers)]
    for row in rows:
        cells = []
        for h in headers:
            value = row.get(h)
            if h in json_columns and value is not None:
                value = _json_text(value)
            cells.append(to_cell_text(value))
        lines.append(",".join(cells))
    return "\n".join(lines)


def export_table_csv(cursor: Any, schema: str, table: TableDescriptor) -> str:
    headers = table.column_names
    cursor.execute(f"SELECT * FROM {qualified_name(schema, table.name, {table.name})}")
    json_columns = {c.name for c in table.columns if c.kind is ColumnKind.JSON}
    return render_csv(headers, cursor.fetchall(), json_columns=json_columns)


def build_template_csv(table: TableDescriptor) -> str:
    return ",".join(to_cell_text(c) for c in table.column_names) + "\n"
