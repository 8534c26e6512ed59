from __future__ import annotations

from collections.abc import Sequence

from tablesync.models.catalog import ColumnDescriptor
from tablesync.models.import_result import RowError
from tablesync.models.row_data import ImportRow
from tablesync.tabular.coercion import UNSET, CellError, convert_cell

"""CSV parsing (import direction).

- 1 行目をヘッダとして扱い、2 行目以降をデータ行とする (行番号はヘッダ = 1)
- ヘッダはテーブル列名と名前で照合 (列順は無関係)。未知の列が 1 つでもあればファイル全体を拒否
- 行の正規化はスキーマ (ColumnDescriptor) に従って型変換し、失敗はすべて行エラーとして収集
"""

__all__ = [
    "BOM",
    "CsvStructureError",
    "UnknownColumnsError",
    "strip_bom",
    "parse_tabular_text",
    "read_header",
    "normalize_rows",
]

BOM = "\ufeff"


class CsvStructureError(Exception):
    """File-level rejection: empty file, empty header, unknown columns, no data rows."""


class UnknownColumnsError(CsvStructureError):
    def __init__(self, columns: list[str]) -> None:
        super().__init__(f"存在无效列: {', '.join(columns)}")
        self.columns = columns


def strip_bom(text: str) -> str:
    if text.startswith(BOM):
        return text[1:]
    return text


def _is_degenerate(row: list[str]) -> bool:
    # a row made of one empty field is a blank line, not data
    return len(row) == 1 and row[0] == ""


def parse_tabular_text(text: str) -> list[list[str]]:
    """Split CSV text into rows of raw cell strings.

    Supports quoted fields, doubled-quote escapes and \\n, \\r\\n or \\r line
    endings. Blank lines (a single empty field) are dropped, including a
    trailing one, so text rendered by ``render_csv`` parses back to its rows.
    """
    rows: list[list[str]] = []
    row: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    length = len(text)

    while i < length:
        char = text[i]
        next_char = text[i + 1] if i + 1 < length else ""

        if char == '"':
            if in_quotes and next_char == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
            i += 1
            continue

        if char == "," and not in_quotes:
            row.append("".join(current))
            current = []
            i += 1
            continue

        if char in ("\n", "\r") and not in_quotes:
            if char == "\r" and next_char == "\n":
                i += 1
            row.append("".join(current))
            current = []
            if not _is_degenerate(row):
                rows.append(row)
            row = []
            i += 1
            continue

        current.append(char)
        i += 1

    # final unterminated row
    row.append("".join(current))
    if not _is_degenerate(row):
        rows.append(row)

    return rows


def read_header(rows: Sequence[Sequence[str]], columns: Sequence[ColumnDescriptor]) -> list[str]:
    """Validate the header row against the table columns.

    Raises:
        CsvStructureError: no rows, or every header cell blank
        UnknownColumnsError: any header cell is not a column of the table
    """
    if not rows:
        raise CsvStructureError("CSV 内容为空")

    headers = [str(h or "").strip() for h in rows[0]]
    if not headers or all(not h for h in headers):
        raise CsvStructureError("CSV 表头为空")

    known = {c.name for c in columns}
    unknown = [h for h in headers if h not in known]
    if unknown:
        raise UnknownColumnsError(unknown)
    return headers


def normalize_rows(
    headers: Sequence[str],
    data_rows: Sequence[Sequence[str]],
    columns: Sequence[ColumnDescriptor],
) -> tuple[list[ImportRow], list[RowError]]:
    """Coerce every data row against the schema.

    Returns all rows plus every cell error found; the caller decides whether
    errors reject the file. Missing trailing cells are read as empty, cells
    beyond the header are ignored. A repeated header keeps its last cell.
    """
    column_map = {c.name: c for c in columns}
    rows: list[ImportRow] = []
    errors: list[RowError] = []

    for index, raw_row in enumerate(data_rows):
        row_number = index + 2
        record: dict[str, str] = {}
        for header_index, header in enumerate(headers):
            record[header] = raw_row[header_index] if header_index < len(raw_row) else ""

        values: dict[str, object] = {}
        for column_name, raw_value in record.items():
            column = column_map.get(column_name)
            if column is None:
                continue
            try:
                converted = convert_cell(raw_value, column, row_number)
            except CellError as e:
                errors.append(RowError(row=row_number, reason=str(e)))
                continue
            if converted is not UNSET:
                values[column_name] = converted

        rows.append(ImportRow(row_number=row_number, values=values))

    return rows, errors
