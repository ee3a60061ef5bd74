#!/usr/bin/env python
# scripts/apply_schema.py
from __future__ import annotations

import argparse

from tripindex.db import get_connection
from tripindex.schema import apply_schema


def run(db_path: str | None, include_source: bool) -> None:
    conn = get_connection(db_path)
    try:
        print("[schema] Creating trip search surface, fact and dirty-queue tables ...")
        if include_source:
            print("[schema] Including trip source tables (dev/test databases) ...")
        apply_schema(conn, include_source=include_source)
        print("Schema applied successfully.")
    finally:
        conn.close()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create the trip index tables in a SQLite database (idempotent)."
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to SQLite database file (default: DATABASE_URL / DATABASE_PATH / dev.db)",
    )
    parser.add_argument(
        "--owned-only",
        action="store_true",
        help="Skip the trip source tables; only create tables this package owns.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    run(args.db_path, include_source=not args.owned_only)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
