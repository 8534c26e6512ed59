from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines error log.

row=-1 is used for file-level failures where no data row applies
(empty file, unknown headers, archive entry ignored, ...).
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        source: uploaded file or archive entry name
        table: target table name
        row: 1-based row number (header = 1), -1 when unknown
        error_type: UPPER_SNAKE classification
        message: user-facing reason or database message
    """
    timestamp: str
    source: str
    table: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(source: str, table: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            source=source,
            table=table,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
