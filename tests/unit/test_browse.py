from __future__ import annotations

import pytest

from tablesync.db.catalog import TableNotFoundError
from tablesync.services.browse import MAX_PAGE_SIZE, browse_rows, parse_positive_int


@pytest.fixture()
def people_db(fake_db):
    fake_db.add_table(
        "people",
        [("id", "integer", False), ("name", "text", False), ("city", "text", True), ("age", "integer", True)],
        primary_key=["id"],
        rows=[
            {"id": i, "name": n, "city": c, "age": a}
            for i, (n, c, a) in enumerate(
                [("Ann", "Oslo", 31), ("Bob", "Rome", 25), ("Cid", "oslo", 40), ("Dee", None, 19)], start=1
            )
        ],
        serial_id=True,
    )
    return fake_db


@pytest.mark.parametrize("value,expected", [
    (None, 7), ("", 7), ("abc", 7), ("0", 7), ("-3", 7), ("3", 3), (" 4 ", 4), (500, 10),
])
def test_parse_positive_int(value, expected):
    assert parse_positive_int(value, 7, max_value=10) == expected


def test_defaults_sort_by_primary_key_descending(people_db):
    data = browse_rows(people_db.cursor(), "people")
    assert [r["id"] for r in data["rows"]] == [4, 3, 2, 1]
    assert data["sort"] == {"sortBy": "id", "sortOrder": "desc"}
    assert data["pagination"] == {"page": 1, "pageSize": 50, "total": 4, "totalPages": 1}
    assert [c["name"] for c in data["columnMeta"]] == ["id", "name", "city", "age"]


def test_pagination(people_db):
    data = browse_rows(people_db.cursor(), "people", page="2", page_size="3", sort_order="asc")
    assert [r["id"] for r in data["rows"]] == [4]
    assert data["pagination"] == {"page": 2, "pageSize": 3, "total": 4, "totalPages": 2}


def test_page_size_is_capped(people_db):
    data = browse_rows(people_db.cursor(), "people", page_size="10000")
    assert data["pagination"]["pageSize"] == MAX_PAGE_SIZE


def test_search_is_case_insensitive_over_text_columns(people_db):
    data = browse_rows(people_db.cursor(), "people", search=" OSLO ", sort_by="name", sort_order="ASC")
    assert [r["name"] for r in data["rows"]] == ["Ann", "Cid"]
    assert data["pagination"]["total"] == 2
    count_sql = [s for s in people_db.statements if s.startswith("SELECT COUNT(*)")][-1]
    # integer columns are not searched
    assert count_sql == (
        'SELECT COUNT(*)::int AS total FROM "public"."people" '
        'WHERE ("name"::text ILIKE %s OR "city"::text ILIKE %s)'
    )


def test_unknown_sort_column_falls_back_to_primary_key(people_db):
    data = browse_rows(people_db.cursor(), "people", sort_by='age"; DROP TABLE people; --')
    assert data["sort"]["sortBy"] == "id"


def test_sort_by_real_column(people_db):
    data = browse_rows(people_db.cursor(), "people", sort_by="age", sort_order="asc")
    assert [r["age"] for r in data["rows"]] == [19, 25, 31, 40]


def test_table_without_key_sorts_by_first_column(fake_db):
    fake_db.add_table("notes", [("body", "text", True), ("n", "integer", True)], rows=[{"body": "b"}, {"body": "a"}])
    data = browse_rows(fake_db.cursor(), "notes", sort_order="asc")
    assert data["sort"]["sortBy"] == "body"
    assert [r["body"] for r in data["rows"]] == ["a", "b"]


def test_missing_table(people_db):
    with pytest.raises(TableNotFoundError):
        browse_rows(people_db.cursor(), "ghosts")
