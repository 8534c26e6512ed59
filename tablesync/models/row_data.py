from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""ImportRow model.

One coerced CSV data row. ``values`` only holds columns that appear in the
(validated) header and produced a value; an empty cell of a non-nullable
column is omitted rather than stored as None.
"""

__all__ = [
    "ImportRow",
]


@dataclass(frozen=True)
class ImportRow:
    row_number: int  # CSV line number, header = 1, first data row = 2
    values: dict[str, Any]  # column name -> coerced value (None = SQL NULL)

    @property
    def is_empty(self) -> bool:
        """True when no cell carries a value (every cell blank); such rows are skipped."""
        return all(v is None for v in self.values.values())
