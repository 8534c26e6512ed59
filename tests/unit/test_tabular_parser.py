from __future__ import annotations

import pytest

from tablesync.models.catalog import ColumnDescriptor
from tablesync.tabular.parser import (
    BOM,
    CsvStructureError,
    UnknownColumnsError,
    normalize_rows,
    parse_tabular_text,
    read_header,
    strip_bom,
)


def _col(name: str, data_type: str = "text", nullable: bool = True, udt: str | None = None) -> ColumnDescriptor:
    return ColumnDescriptor(
        name=name,
        data_type=data_type,
        udt_name=udt or data_type,
        is_nullable=nullable,
        default_value=None,
        ordinal_position=1,
    )


WIDGET_COLUMNS = [_col("id", "integer", nullable=False), _col("name", nullable=False), _col("qty", "integer")]


def test_parse_simple_rows():
    assert parse_tabular_text("a,b\n1,2") == [["a", "b"], ["1", "2"]]


def test_parse_quoted_fields_with_separators_and_escaped_quotes():
    text = 'a,b\n"x, y","say ""hi"""\n"multi\nline",z'
    assert parse_tabular_text(text) == [["a", "b"], ["x, y", 'say "hi"'], ["multi\nline", "z"]]


@pytest.mark.parametrize("newline", ["\n", "\r\n", "\r"])
def test_parse_line_endings(newline: str):
    text = newline.join(["a,b", "1,2", "3,4"])
    assert parse_tabular_text(text) == [["a", "b"], ["1", "2"], ["3", "4"]]


def test_blank_lines_are_dropped_but_empty_fields_are_kept():
    text = "a,b\n\n1,2\n,\n"
    # "\n\n" is a blank line; "," is a row of two empty fields
    assert parse_tabular_text(text) == [["a", "b"], ["1", "2"], ["", ""]]


def test_trailing_newline_does_not_add_a_row():
    assert parse_tabular_text("a\n1\n") == [["a"], ["1"]]


def test_final_unterminated_row_is_kept():
    assert parse_tabular_text("a,b\n1,") == [["a", "b"], ["1", ""]]


def test_empty_text_has_no_rows():
    assert parse_tabular_text("") == []


def test_strip_bom():
    assert strip_bom(BOM + "id,name") == "id,name"
    assert strip_bom("id,name") == "id,name"


def test_read_header_trims_cells():
    rows = [[" id ", "name"], ["1", "x"]]
    assert read_header(rows, WIDGET_COLUMNS) == ["id", "name"]


def test_read_header_empty_content():
    with pytest.raises(CsvStructureError, match="CSV 内容为空"):
        read_header([], WIDGET_COLUMNS)


def test_read_header_blank_header():
    with pytest.raises(CsvStructureError, match="CSV 表头为空"):
        read_header([[" ", ""]], WIDGET_COLUMNS)


def test_read_header_lists_every_unknown_column():
    with pytest.raises(UnknownColumnsError) as exc:
        read_header([["id", "colour", "name", "size"]], WIDGET_COLUMNS)
    assert exc.value.columns == ["colour", "size"]
    assert str(exc.value) == "存在无效列: colour, size"


def test_normalize_rows_numbers_rows_from_two():
    rows, errors = normalize_rows(["id", "name", "qty"], [["", "Foo", "10"], ["3", "Bar", "abc"]], WIDGET_COLUMNS)
    assert errors[0].row == 3
    assert errors[0].reason == "第 3 行字段 qty 整数值无效"
    assert rows[0].row_number == 2
    # empty NOT NULL id is left out, not sent as NULL
    assert rows[0].values == {"name": "Foo", "qty": 10}


def test_normalize_rows_pads_missing_cells_and_ignores_extra_ones():
    rows, errors = normalize_rows(["name", "qty"], [["Foo"], ["Bar", "2", "extra"]], WIDGET_COLUMNS)
    assert errors == []
    assert rows[0].values == {"name": "Foo", "qty": None}
    assert rows[1].values == {"name": "Bar", "qty": 2}


def test_normalize_rows_header_order_is_irrelevant():
    rows, _ = normalize_rows(["qty", "name"], [["5", "Baz"]], WIDGET_COLUMNS)
    assert rows[0].values == {"qty": 5, "name": "Baz"}


def test_normalize_rows_collects_every_cell_error():
    rows, errors = normalize_rows(["id", "qty"], [["x", "y"]], WIDGET_COLUMNS)
    assert [e.reason for e in errors] == ["第 2 行字段 id 整数值无效", "第 2 行字段 qty 整数值无效"]
    assert rows[0].is_empty
