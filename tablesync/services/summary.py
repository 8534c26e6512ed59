from __future__ import annotations

from tablesync.models.import_result import BulkImportOutcome

"""SUMMARY line rendering for archive imports."""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation for very small numbers
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(outcome: BulkImportOutcome) -> str:
    """Render the SUMMARY line of an archive import.

    Examples:
        >>> outcome = BulkImportOutcome(zip_file_name="a.zip", total_csv_files=0, tables=[], elapsed_seconds=2.0)
        >>> render_summary_line(outcome)
        'SUMMARY files=0 processed=0 succeeded=0 failed=0 skipped_tables=0 inserted=0 updated=0 skipped_rows=0 errored_rows=0 elapsed_sec=2'
    """
    return (
        f"SUMMARY files={outcome.total_csv_files} "
        f"processed={outcome.processed_tables} "
        f"succeeded={outcome.succeeded_tables} "
        f"failed={outcome.failed_tables} "
        f"skipped_tables={outcome.skipped_tables} "
        f"inserted={outcome.inserted} "
        f"updated={outcome.updated} "
        f"skipped_rows={outcome.skipped} "
        f"errored_rows={outcome.errored_rows} "
        f"elapsed_sec={_format_seconds(outcome.elapsed_seconds)}"
    )
