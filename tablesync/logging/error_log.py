from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

from tablesync.models.error_record import ErrorRecord

"""Error log buffering.

Import failures are buffered in memory per request and appended as JSON Lines
to ``<error_log_dir>/errors-YYYYMMDD-HHMMSS.log`` (UTC) on flush. The file
name is fixed on first access so repeated flushes of one buffer share a file.
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

TIMESTAMP_FMT = "%Y%m%d-%H%M%S"

logger = logging.getLogger(__name__)


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush writes JSON Lines.

    Not thread safe; each request owns its own buffer.
    """
    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self.directory / f"errors-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def record(self, source: str, table: str, row: int, error_type: str, message: str) -> None:
        self.append(ErrorRecord.create(source, table, row, error_type, message))

    def __len__(self) -> int:
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records to the log file; returns None when empty."""
        if not self._records:
            return None
        self.directory.mkdir(parents=True, exist_ok=True)
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp

    def safe_flush(self) -> Path | None:
        """flush() that never raises; the request result always wins."""
        try:
            return self.flush()
        except OSError as e:
            logger.warning(f"error log flush failed: {e}")
            return None
