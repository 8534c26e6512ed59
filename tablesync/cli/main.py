from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import pandas as pd
from dotenv import load_dotenv

from tablesync.config.loader import ConfigError, resolve_config
from tablesync.db.catalog import SchemaCatalog, TableNotFoundError
from tablesync.db.connection import DatabaseUnavailableError, db_connection
from tablesync.logging.error_log import ErrorLogBuffer
from tablesync.logging.init import log_summary, setup_logging
from tablesync.models.config_models import SyncConfig
from tablesync.services.archive import ArchiveError, export_all_tables, import_archive
from tablesync.services.summary import render_summary_line
from tablesync.services.table_import import TableImportError, import_table_csv
from tablesync.tabular.parser import CsvStructureError, normalize_rows, parse_tabular_text, read_header, strip_bom
from tablesync.tabular.writer import build_template_csv, export_table_csv

"""CLI entrypoint.

Same operations as the HTTP surface, against the configured database:
- serve / tables / export / template / import / export-all / import-all
- inspect: offline CSV preview (pandas), optionally validated against a table

Exit codes: 0 success, 1 fatal (config, connectivity, missing table, bad
archive), 2 import rejected or archive partially failed.
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2

DEFAULT_PREVIEW_ROWS = 5


def _load_env_file(path: Path, override: bool = True) -> None:
    # .env は既存の環境変数より優先 (DB 接続パラメータ)
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tablesync", description="PostgreSQL table CSV/ZIP sync")
    p.add_argument("--config", type=Path, default=None, help="YAML config path (default: config/tablesync.yml)")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    sub.add_parser("tables", help="List tables with row estimates")

    export = sub.add_parser("export", help="Export one table as CSV")
    export.add_argument("table")
    export.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: stdout)")

    template = sub.add_parser("template", help="Write the header-only CSV template of a table")
    template.add_argument("table")
    template.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: stdout)")

    imp = sub.add_parser("import", help="Import one CSV file into a table")
    imp.add_argument("table")
    imp.add_argument("file", type=Path)

    export_all = sub.add_parser("export-all", help="Export every table as one ZIP")
    export_all.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: data_center_all_<date>.zip)")

    import_all = sub.add_parser("import-all", help="Import a ZIP of <table>.csv files")
    import_all.add_argument("file", type=Path)

    inspect = sub.add_parser("inspect", help="Preview a CSV file without writing anything")
    inspect.add_argument("file", type=Path)
    inspect.add_argument("--table", default=None, help="Validate headers and cells against this table")
    inspect.add_argument("--rows", type=int, default=DEFAULT_PREVIEW_ROWS, help="Rows to preview")
    return p


def _write_output(text: str, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(text)
        if not text.endswith("\n"):
            sys.stdout.write("\n")
        return
    output.write_text(text, encoding="utf-8")


def _error_log(cfg: SyncConfig) -> ErrorLogBuffer | None:
    return ErrorLogBuffer(cfg.error_log_dir) if cfg.error_log_dir else None


def _cmd_serve(cfg: SyncConfig, args: argparse.Namespace) -> int:  # pragma: no cover (blocks)
    import uvicorn

    from tablesync.api.app import create_app

    uvicorn.run(
        create_app(cfg),
        host=args.host or cfg.server.host,
        port=args.port or cfg.server.port,
        log_level="debug" if args.debug else "info",
    )
    return EXIT_SUCCESS_ALL


def _cmd_tables(cfg: SyncConfig, args: argparse.Namespace) -> int:
    with db_connection(cfg) as cur:
        tables = SchemaCatalog(cur, cfg.schema).describe_all()
    for t in tables:
        pk = ",".join(t.primary_key_columns) or "-"
        print(f"{t.name}\trows~{t.row_count_estimate}\tpk={pk}\tcolumns={len(t.columns)}")
    return EXIT_SUCCESS_ALL


def _cmd_export(cfg: SyncConfig, args: argparse.Namespace) -> int:
    with db_connection(cfg) as cur:
        catalog = SchemaCatalog(cur, cfg.schema)
        catalog.require_table(args.table)
        text = export_table_csv(cur, cfg.schema, catalog.describe_table(args.table))
    _write_output(text, args.output)
    return EXIT_SUCCESS_ALL


def _cmd_template(cfg: SyncConfig, args: argparse.Namespace) -> int:
    with db_connection(cfg) as cur:
        catalog = SchemaCatalog(cur, cfg.schema)
        catalog.require_table(args.table)
        text = build_template_csv(catalog.describe_table(args.table))
    _write_output(text, args.output)
    return EXIT_SUCCESS_ALL


def _cmd_import(cfg: SyncConfig, args: argparse.Namespace, logger: Any) -> int:
    path: Path = args.file
    if not path.exists():
        logger.error(f"file not found: {path}")
        return EXIT_FATAL
    raw_text = path.read_bytes().decode("utf-8", errors="replace")
    error_log = _error_log(cfg)
    try:
        with db_connection(cfg) as cur:
            SchemaCatalog(cur, cfg.schema).require_table(args.table)
            outcome = import_table_csv(
                cur, args.table, raw_text,
                schema=cfg.schema, error_cap=cfg.error_cap, error_log=error_log, source=path.name,
            )
    except TableImportError as e:
        logger.error(f"import {args.table}: {e.message}")
        if e.outcome is not None:
            for err in e.outcome.errors:
                logger.error(f"  row {err.row}: {err.reason}")
        return EXIT_PARTIAL_FAILURE
    finally:
        if error_log is not None:
            error_log.safe_flush()

    print(json.dumps(outcome.to_dict(), ensure_ascii=False))
    return EXIT_SUCCESS_ALL


def _cmd_export_all(cfg: SyncConfig, args: argparse.Namespace, logger: Any) -> int:
    with db_connection(cfg) as cur:
        export = export_all_tables(cur, schema=cfg.schema, temp_root=cfg.temp_root)
    output: Path = args.output or Path(export.filename)
    output.write_bytes(export.content)
    logger.info(f"wrote {output} ({len(export.tables)} tables)")
    return EXIT_SUCCESS_ALL


def _cmd_import_all(cfg: SyncConfig, args: argparse.Namespace, logger: Any) -> int:
    path: Path = args.file
    if not path.exists():
        logger.error(f"file not found: {path}")
        return EXIT_FATAL
    error_log = _error_log(cfg)
    try:
        with db_connection(cfg) as cur:
            outcome = import_archive(
                cur, path.read_bytes(),
                filename=path.name,
                schema=cfg.schema,
                temp_root=cfg.temp_root,
                error_cap=cfg.error_cap,
                error_log=error_log,
                show_progress=True,
            )
    finally:
        if error_log is not None:
            error_log.safe_flush()

    for entry in outcome.tables:
        if entry.reason:
            logger.warning(f"{entry.table_name}: {entry.status.value} ({entry.reason})")

    # render_summary_line includes the "SUMMARY " prefix that log_summary adds again
    log_summary(render_summary_line(outcome)[len("SUMMARY "):])

    if outcome.failed_tables > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _cmd_inspect(cfg: SyncConfig, args: argparse.Namespace) -> int:
    path: Path = args.file
    if not path.exists():
        print(f"inspect: file not found: {path}")
        return EXIT_FATAL

    rows = parse_tabular_text(strip_bom(path.read_bytes().decode("utf-8", errors="replace")))
    if not rows:
        print(f"inspect: {path.name} is empty")
        return EXIT_PARTIAL_FAILURE

    headers = [h.strip() for h in rows[0]]
    data_rows = rows[1:]
    sample = [list(r) + [""] * (len(headers) - len(r)) for r in data_rows[: args.rows]]
    frame = pd.DataFrame([r[: len(headers)] for r in sample], columns=headers)
    print(f"FILE: {path.name} columns={len(headers)} data_rows={len(data_rows)}")
    with pd.option_context("display.max_columns", None, "display.width", 200):
        print(frame.to_string(index=False) if not frame.empty else "  (no data rows)")

    if args.table is None:
        return EXIT_SUCCESS_ALL

    with db_connection(cfg) as cur:
        catalog = SchemaCatalog(cur, cfg.schema)
        catalog.require_table(args.table)
        descriptor = catalog.describe_table(args.table)

    try:
        checked_headers = read_header(rows, descriptor.columns)
    except CsvStructureError as e:
        print(f"  header_error: {e}")
        return EXIT_PARTIAL_FAILURE

    _, errors = normalize_rows(checked_headers, data_rows, descriptor.columns)
    if errors:
        for err in errors[: cfg.error_cap]:
            print(f"  row {err.row}: {err.reason}")
        print(f"inspect: {len(errors)} invalid cells against {args.table}")
        return EXIT_PARTIAL_FAILURE
    print(f"inspect: all {len(data_rows)} rows valid for {args.table}")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # None のときのみ sys.argv を読む (テストから main([...]) で呼ぶため)
    if argv is None:
        argv = sys.argv[1:]
    args = _build_parser().parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = resolve_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        if args.command == "serve":
            return _cmd_serve(cfg, args)
        if args.command == "tables":
            return _cmd_tables(cfg, args)
        if args.command == "export":
            return _cmd_export(cfg, args)
        if args.command == "template":
            return _cmd_template(cfg, args)
        if args.command == "import":
            return _cmd_import(cfg, args, logger)
        if args.command == "export-all":
            return _cmd_export_all(cfg, args, logger)
        if args.command == "import-all":
            return _cmd_import_all(cfg, args, logger)
        if args.command == "inspect":
            return _cmd_inspect(cfg, args)
    except DatabaseUnavailableError as e:
        logger.error(str(e))
        return EXIT_FATAL
    except TableNotFoundError as e:
        logger.error(f"{e}: {e.table}")
        return EXIT_FATAL
    except ArchiveError as e:
        logger.error(f"archive: {e.message}")
        return EXIT_FATAL
    return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
