from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from tablesync.db.catalog import SchemaCatalog
from tablesync.services.archive import export_all_tables, import_archive
from tablesync.services.table_import import import_table_csv
from tablesync.tabular.writer import export_table_csv

"""export -> import into an empty table with the same schema reproduces the rows."""

PRODUCT_COLUMNS = [
    ("id", "integer", "int4", False, "nextval('products_id_seq'::regclass)"),
    ("name", "text", "text", False, None),
    ("price", "numeric", "numeric", True, None),
    ("active", "boolean", "bool", True, None),
    ("tags", "ARRAY", "_text", True, None),
    ("meta", "jsonb", "jsonb", True, None),
    ("released", "date", "date", True, None),
    ("embedding", "USER-DEFINED", "vector", True, None),
]

PRODUCT_ROWS = [
    {"id": 1, "name": "Plain", "price": Decimal("9.50"), "active": True, "tags": ["a", "b"], "meta": {"k": [1, 2]},
     "released": date(2024, 1, 31), "embedding": None},
    {"id": 2, "name": 'Quoted "name", with comma', "price": None, "active": False, "tags": [], "meta": "hello",
     "released": None, "embedding": None},
    {"id": 5, "name": "multi\nline", "price": None, "active": None, "tags": None, "meta": {"s": "x,y"},
     "released": None, "embedding": None},
    {"id": 7, "name": "Flags", "price": Decimal("-0.25"), "active": True, "tags": ["x, y", "z"], "meta": True,
     "released": None, "embedding": None},
    {"id": 8, "name": "Nulls", "price": None, "active": None, "tags": None, "meta": None,
     "released": None, "embedding": None},
]


def _products_db(db_factory, rows=None):
    db = db_factory()
    db.add_table("products", PRODUCT_COLUMNS, primary_key=["id"], rows=rows, serial_id=True)
    return db


def _normalized(rows):
    out = []
    for r in sorted(rows, key=lambda r: r["id"]):
        r = dict(r)
        if isinstance(r["released"], str):
            r["released"] = date.fromisoformat(r["released"])
        out.append(r)
    return out


def test_single_table_round_trip(db_factory):
    source = _products_db(db_factory, PRODUCT_ROWS)
    cur = source.cursor()
    csv_text = export_table_csv(cur, "public", SchemaCatalog(cur).describe_table("products"))

    target = _products_db(db_factory)
    outcome = import_table_csv(target.cursor(), "products", csv_text)

    assert outcome.inserted == len(PRODUCT_ROWS)
    assert outcome.errors == []
    assert _normalized(target.rows("products")) == _normalized(source.rows("products"))


def test_reimport_into_same_table_updates(db_factory):
    db = _products_db(db_factory, PRODUCT_ROWS)
    cur = db.cursor()
    csv_text = export_table_csv(cur, "public", SchemaCatalog(cur).describe_table("products"))

    outcome = import_table_csv(db.cursor(), "products", csv_text)

    assert (outcome.inserted, outcome.updated) == (0, len(PRODUCT_ROWS))
    assert len(db.rows("products")) == len(PRODUCT_ROWS)


@pytest.mark.parametrize("extra_tables", [0, 2])
def test_archive_round_trip(db_factory, tmp_path, extra_tables: int):
    source = _products_db(db_factory, PRODUCT_ROWS)
    target = _products_db(db_factory)
    for i in range(extra_tables):
        for db in (source, target):
            db.add_table(f"t{i}", [("id", "integer", False), ("label", "text", True)], primary_key=["id"], serial_id=True)
        source.tables[f"t{i}"].rows.append({"id": 1, "label": f"label {i}"})

    export = export_all_tables(source.cursor(), temp_root=str(tmp_path))
    outcome = import_archive(target.cursor(), export.content, filename=export.filename, temp_root=str(tmp_path))

    assert outcome.succeeded_tables == 1 + extra_tables
    assert outcome.failed_tables == 0
    assert _normalized(target.rows("products")) == _normalized(source.rows("products"))
    for i in range(extra_tables):
        assert target.rows(f"t{i}") == source.rows(f"t{i}")
