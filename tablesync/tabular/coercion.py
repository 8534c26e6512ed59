from __future__ import annotations

import json
import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any

from tablesync.models.catalog import ColumnDescriptor, ColumnKind

"""Per-cell coercion of CSV text into typed values.

Dispatch is on ColumnKind (derived from the catalog), never on raw type
strings. Every failure message names the 1-based row number (header = 1)
and the column.
"""

__all__ = [
    "UNSET",
    "CellError",
    "convert_cell",
]

TRUE_VALUES = frozenset({"true", "1", "yes"})
FALSE_VALUES = frozenset({"false", "0", "no"})
DECIMAL_DATA_TYPES = frozenset({"numeric", "decimal"})

_INTEGER_RE = re.compile(r"^[+-]?\d+$")


class _Unset:
    """Marker for an empty cell of a NOT NULL column: the column is left out."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


class CellError(ValueError):
    pass


def _fail(row_number: int, column: ColumnDescriptor, what: str) -> CellError:
    return CellError(f"第 {row_number} 行字段 {column.name} {what}")


def _parse_float(value: str, column: ColumnDescriptor, row_number: int) -> float | Decimal:
    if "_" in value:
        raise _fail(row_number, column, "数值无效")
    try:
        if column.data_type.lower() in DECIMAL_DATA_TYPES:
            parsed: float | Decimal = Decimal(value)
            is_nan = parsed.is_nan()
        else:
            parsed = float(value)
            is_nan = math.isnan(parsed)
    except (ValueError, InvalidOperation):
        raise _fail(row_number, column, "数值无效") from None
    # NaN / sNaN rejected; Infinity is left to PostgreSQL
    if is_nan:
        raise _fail(row_number, column, "数值无效")
    return parsed


def convert_cell(raw: str | None, column: ColumnDescriptor, row_number: int) -> Any:
    """Convert one raw cell.

    Returns:
        the typed value, None for an empty nullable cell, or UNSET for an
        empty NOT NULL cell

    Raises:
        CellError: the text is not valid for the column type
    """
    value = (raw or "").strip()
    if value == "":
        return None if column.is_nullable else UNSET

    kind = column.kind
    if kind is ColumnKind.VECTOR:
        raise _fail(row_number, column, "暂不支持导入非空 vector 值")

    if kind is ColumnKind.BOOLEAN:
        normalized = value.lower()
        if normalized in TRUE_VALUES:
            return True
        if normalized in FALSE_VALUES:
            return False
        raise _fail(row_number, column, "布尔值无效")

    if kind is ColumnKind.INTEGER:
        if not _INTEGER_RE.match(value):
            raise _fail(row_number, column, "整数值无效")
        return int(value, 10)

    if kind is ColumnKind.FLOAT:
        return _parse_float(value, column, row_number)

    if kind is ColumnKind.JSON:
        try:
            return json.loads(value)
        except ValueError:
            raise _fail(row_number, column, "JSON 格式无效") from None

    if kind is ColumnKind.ARRAY:
        try:
            parsed = json.loads(value)
        except ValueError:
            parsed = None
        if not isinstance(parsed, list):
            raise _fail(row_number, column, "需要 JSON 数组")
        return parsed

    # TEXT / OTHER: PostgreSQL parses the text itself
    return value
