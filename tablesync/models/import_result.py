from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

"""Import result models.

ImportOutcome is the per-table result of one CSV import; BulkImportOutcome
aggregates one TableEntryResult per CSV entry of an uploaded archive.

Counting rules:
- success: inserted + updated + skipped == total, errors == []
- failure (validation or write stage): inserted = updated = 0, skipped = total,
  errors capped at ``error_cap`` (default 200)
"""

__all__ = [
    "DEFAULT_ERROR_CAP",
    "RowError",
    "ImportOutcome",
    "EntryStatus",
    "TableEntryResult",
    "BulkImportOutcome",
]

DEFAULT_ERROR_CAP = 200


@dataclass(frozen=True)
class RowError:
    row: int  # 1-based, header = row 1
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "reason": self.reason}


@dataclass(frozen=True)
class ImportOutcome:
    """Result of importing one CSV file into one table."""
    total: int
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[RowError] = field(default_factory=list)

    @classmethod
    def rejected(cls, total: int, errors: list[RowError], error_cap: int = DEFAULT_ERROR_CAP) -> ImportOutcome:
        """Outcome for a file that was rejected as a whole (nothing written)."""
        return cls(total=total, inserted=0, updated=0, skipped=total, errors=list(errors[:error_cap]))

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": [e.to_dict() for e in self.errors],
        }


class EntryStatus(Enum):
    """Status of one archive entry.

    - SUCCESS: table imported and committed
    - FAILED: table import rejected or rolled back
    - IGNORED: entry did not map to a known table
    """
    SUCCESS = "success"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class TableEntryResult:
    table_name: str  # entry name when no table name could be derived
    status: EntryStatus
    reason: str | None = None
    result: ImportOutcome | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"tableName": self.table_name, "status": self.status.value}
        if self.reason is not None:
            data["reason"] = self.reason
        if self.result is not None:
            data["result"] = self.result.to_dict()
        return data


@dataclass(frozen=True)
class BulkImportOutcome:
    """Aggregated result of an archive import."""
    zip_file_name: str
    total_csv_files: int
    tables: list[TableEntryResult]
    elapsed_seconds: float = 0.0

    def _count(self, status: EntryStatus) -> int:
        return sum(1 for t in self.tables if t.status is status)

    @property
    def succeeded_tables(self) -> int:
        return self._count(EntryStatus.SUCCESS)

    @property
    def failed_tables(self) -> int:
        return self._count(EntryStatus.FAILED)

    @property
    def skipped_tables(self) -> int:
        return self._count(EntryStatus.IGNORED)

    @property
    def processed_tables(self) -> int:
        return self.succeeded_tables + self.failed_tables

    def _sum_success(self, attr: str) -> int:
        return sum(
            getattr(t.result, attr)
            for t in self.tables
            if t.status is EntryStatus.SUCCESS and t.result is not None
        )

    @property
    def inserted(self) -> int:
        return self._sum_success("inserted")

    @property
    def updated(self) -> int:
        return self._sum_success("updated")

    @property
    def skipped(self) -> int:
        return self._sum_success("skipped")

    @property
    def errored_rows(self) -> int:
        return sum(
            len(t.result.errors)
            for t in self.tables
            if t.status is EntryStatus.FAILED and t.result is not None
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "zipFileName": self.zip_file_name,
            "totalCsvFiles": self.total_csv_files,
            "processedTables": self.processed_tables,
            "skippedTables": self.skipped_tables,
            "succeededTables": self.succeeded_tables,
            "failedTables": self.failed_tables,
            "elapsedSeconds": self.elapsed_seconds,
            "summary": {
                "inserted": self.inserted,
                "updated": self.updated,
                "skipped": self.skipped,
                "erroredRows": self.errored_rows,
            },
            "tables": [t.to_dict() for t in self.tables],
        }
