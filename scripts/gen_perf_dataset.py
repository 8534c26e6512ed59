#!/usr/bin/env python3
"""Dataset generation script for import performance testing.

Generates synthetic CSV data shaped for a table like

    CREATE TABLE <name> (
        id serial PRIMARY KEY, name text NOT NULL, category text,
        price numeric, qty integer, active boolean, created_on date
    );

Output is a single ``<table>.csv`` or, when the output path ends in ``.zip``,
an archive holding one ``<table>.csv`` per ``--tables`` entry (the layout
``tablesync import-all`` expects).
"""
from __future__ import annotations

import argparse
import sys
import zipfile
from pathlib import Path

import numpy as np
import pandas as pd

CATEGORIES = ["Electronics", "Clothing", "Books", "Food", "Sports", "Home"]


def generate_synthetic_data(rows: int, seed: int = 42, with_ids: bool = True) -> pd.DataFrame:
    """Generate a DataFrame of synthetic rows.

    Args:
        rows: Number of data rows to generate
        seed: Random seed for reproducible data
        with_ids: include explicit ids (upsert path); without them every row
            is a plain insert with an engine-assigned id
    """
    np.random.seed(seed)
    date_range = pd.date_range(pd.Timestamp("2023-01-01"), pd.Timestamp("2024-12-31"), periods=100)

    data = {
        "name": [f"Item_{np.random.randint(1000, 9999)}_{chr(65 + (j % 26))}" for j in range(rows)],
        "category": np.random.choice(CATEGORIES, rows).tolist(),
        "price": np.round(np.random.uniform(0.01, 9999.99, rows), 2).tolist(),
        "qty": np.random.randint(1, 1000, rows).tolist(),
        "active": np.random.choice(["true", "false"], rows).tolist(),
        "created_on": pd.Series(np.random.choice(date_range, rows)).dt.strftime("%Y-%m-%d").tolist(),
    }
    frame = pd.DataFrame(data)
    if with_ids:
        frame.insert(0, "id", range(1, rows + 1))
    return frame


def to_csv_text(frame: pd.DataFrame) -> str:
    return frame.to_csv(index=False, lineterminator="\n")


def write_dataset(output: Path, tables: list[str], rows: int, seed: int, with_ids: bool) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    if output.suffix.lower() == ".zip":
        with zipfile.ZipFile(output, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for offset, table in enumerate(tables):
                frame = generate_synthetic_data(rows, seed + offset, with_ids)
                archive.writestr(f"{table}.csv", to_csv_text(frame))
    else:
        output.write_text(to_csv_text(generate_synthetic_data(rows, seed, with_ids)), encoding="utf-8")

    print(f"Created dataset: {output}")
    print(f"  Tables: {len(tables)} ({', '.join(tables)})")
    print(f"  Rows per table: {rows:,}")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate synthetic CSV / ZIP datasets for import performance testing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s products.csv --rows 100000
  %(prog)s backup.zip --tables products products_archive --rows 20000
  %(prog)s inserts.csv --no-ids
        """,
    )
    parser.add_argument("output", type=Path, help="Output .csv or .zip path")
    parser.add_argument("--rows", type=int, default=50_000, help="Rows per table (default: 50,000)")
    parser.add_argument("--tables", nargs="+", default=["products"], help="Table names for .zip output")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--no-ids", action="store_true", help="Omit the id column (insert-only path)")
    parser.add_argument("--dry-run", action="store_true", help="Show the plan without writing files")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1

    tables = args.tables if args.output.suffix.lower() == ".zip" else [args.output.stem]
    print("Dataset generation plan:")
    print(f"  Output file: {args.output}")
    print(f"  Tables: {', '.join(tables)}")
    print(f"  Rows per table: {args.rows:,}")
    print(f"  Explicit ids: {not args.no_ids}")

    if args.dry_run:
        print("\n[DRY RUN] Would generate files but not creating them.")
        return 0

    try:
        write_dataset(args.output, tables, args.rows, args.seed, not args.no_ids)
    except OSError as e:
        print(f"\nError generating dataset: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
