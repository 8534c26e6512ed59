"""Domain models for tablesync.

Catalog descriptors, import outcomes, error records and configuration.
"""

from .catalog import ColumnDescriptor, ColumnKind, TableDescriptor
from .config_models import DatabaseConfig, ServerConfig, SyncConfig
from .error_record import ErrorRecord
from .row_data import ImportRow
from .import_result import (
    BulkImportOutcome,
    EntryStatus,
    ImportOutcome,
    RowError,
    TableEntryResult,
)

__all__ = [
    # Catalog models
    "ColumnDescriptor",
    "ColumnKind",
    "TableDescriptor",
    # Configuration models
    "DatabaseConfig",
    "ServerConfig",
    "SyncConfig",
    # Result models
    "BulkImportOutcome",
    "EntryStatus",
    "ErrorRecord",
    "ImportOutcome",
    "ImportRow",
    "RowError",
    "TableEntryResult",
]
