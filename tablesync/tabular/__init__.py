"""CSV codec: RFC-4180 style parsing, schema-guided coercion and export rendering."""

from .coercion import UNSET, CellError, convert_cell
from .parser import (
    CsvStructureError,
    UnknownColumnsError,
    normalize_rows,
    parse_tabular_text,
    read_header,
    strip_bom,
)
from .writer import build_template_csv, export_table_csv, render_csv, to_cell_text

__all__ = [
    "UNSET",
    "CellError",
    "convert_cell",
    "CsvStructureError",
    "UnknownColumnsError",
    "normalize_rows",
    "parse_tabular_text",
    "read_header",
    "strip_bom",
    "build_template_csv",
    "export_table_csv",
    "render_csv",
    "to_cell_text",
]
