from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

"""Catalog domain models.

TableDescriptor / ColumnDescriptor are rebuilt from information_schema on every
request and never cached. ColumnKind is derived once from the raw catalog type
strings so the tabular codec can dispatch on a closed set instead of strings.
"""

__all__ = [
    "ColumnKind",
    "ColumnDescriptor",
    "TableDescriptor",
    "SEARCHABLE_DATA_TYPES",
]

INTEGER_TYPES = frozenset({"smallint", "integer", "bigint"})
FLOAT_TYPES = frozenset({"real", "double precision", "numeric", "decimal"})
TEXT_TYPES = frozenset({"character varying", "character", "text"})

# browse 検索対象 (col::text ILIKE)
SEARCHABLE_DATA_TYPES = frozenset({
    "character varying",
    "text",
    "uuid",
    "date",
    "timestamp with time zone",
    "timestamp without time zone",
})


class ColumnKind(Enum):
    """Semantic category of a column, used for CSV cell coercion."""
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    JSON = "json"
    ARRAY = "array"
    VECTOR = "vector"
    TEXT = "text"
    OTHER = "other"

    @classmethod
    def from_catalog(cls, data_type: str | None, udt_name: str | None) -> ColumnKind:
        data_type = (data_type or "").lower()
        udt_name = (udt_name or "").lower()
        # pgvector は data_type=USER-DEFINED で届くので udt_name で判定
        if udt_name == "vector":
            return cls.VECTOR
        if data_type == "boolean":
            return cls.BOOLEAN
        if data_type in INTEGER_TYPES:
            return cls.INTEGER
        if data_type in FLOAT_TYPES:
            return cls.FLOAT
        if data_type in ("json", "jsonb"):
            return cls.JSON
        if data_type == "array":
            return cls.ARRAY
        if data_type in TEXT_TYPES:
            return cls.TEXT
        return cls.OTHER


@dataclass(frozen=True)
class ColumnDescriptor:
    """One column of a base table, as reported by information_schema.columns."""
    name: str
    data_type: str  # information_schema data_type (e.g. "integer", "ARRAY")
    udt_name: str  # underlying type name (e.g. "int4", "vector")
    is_nullable: bool
    default_value: str | None  # opaque, informational only
    ordinal_position: int
    kind: ColumnKind = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ColumnKind.from_catalog(self.data_type, self.udt_name))

    @property
    def searchable(self) -> bool:
        return self.data_type.lower() in SEARCHABLE_DATA_TYPES

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "dataType": self.data_type,
            "udtName": self.udt_name,
            "isNullable": self.is_nullable,
            "defaultValue": self.default_value,
        }


@dataclass(frozen=True)
class TableDescriptor:
    """A base table with its ordered columns and primary key."""
    name: str
    columns: list[ColumnDescriptor]
    primary_key_columns: list[str]
    row_count_estimate: int = 0

    @property
    def single_primary_key(self) -> str | None:
        """PK column usable for upsert; composite keys disable upsert-by-key."""
        if len(self.primary_key_columns) == 1:
            return self.primary_key_columns[0]
        return None

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def column_map(self) -> dict[str, ColumnDescriptor]:
        return {c.name: c for c in self.columns}

    def to_dict(self) -> dict[str, Any]:
        return {
            "tableName": self.name,
            "rowCountEstimate": self.row_count_estimate,
            "primaryKey": self.single_primary_key,
            "primaryKeyColumns": list(self.primary_key_columns),
            "columns": [c.to_dict() for c in self.columns],
        }
