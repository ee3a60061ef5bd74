# tripindex/cli.py
from __future__ import annotations

import argparse
import json
import logging
import sqlite3
from typing import Any

from tripindex import operations
from tripindex.config import load_settings
from tripindex.db import get_connection
from tripindex.exceptions import InvalidFilterError, InvalidQueryError, InvalidTripIdError
from tripindex.facts.aggregator import FACT_STATUSES, FactsQuery
from tripindex.schema import apply_schema
from tripindex.search.dirty_queue import FACTS_DIRTY_TABLE, SURFACE_DIRTY_TABLE, DirtyQueue


def _section(title: str) -> None:
    """
    Print a simple section heading used by the human-readable output.
    """
    print(f"=== {title} ===")


def _emit_json(payload: Any) -> int:
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


def _open(args: argparse.Namespace) -> sqlite3.Connection:
    return get_connection(getattr(args, "db_path", None))


def _print_matches(payload: dict[str, Any]) -> None:
    _section(f"Matches for {payload['query']!r}")
    matches = payload.get("matches") or []
    if not matches:
        print("  (no matches)")
        print()
        return

    header = f"{'trip':>6} {'score':>6}  {'name':40} reasons"
    print("  " + header)
    print("  " + "-" * len(header))
    for m in matches:
        name = str(m.get("trip_name", ""))[:40]
        reasons = ",".join(m.get("match_reasons") or [])
        print(f"  {m['trip_id']:6d} {m['score']:6d}  {name:40} {reasons}")
        travelers = ", ".join(m.get("traveler_names") or [])
        if travelers:
            print(f"  {'':6} {'':6}  travelers: {travelers}")
    print()
    print(f"  Total: {payload.get('count', 0)}")
    print()


def _print_facts(facts: dict[str, Any]) -> None:
    _section(f"Facts for trip {facts['trip_id']}")
    for key in (
        "total_nights",
        "total_hotels",
        "total_activities",
        "total_cost",
        "transit_minutes",
        "traveler_count",
    ):
        print(f"  {key:18} {facts.get(key)}")
    print(f"  {'travelers':18} {', '.join(facts.get('traveler_names') or [])}")
    print(f"  {'last_computed':18} {facts.get('last_computed')}")
    print()


def _print_refresh(result: dict[str, Any]) -> None:
    _section(f"Search surface refresh ({result['mode']})")
    print(f"  {result.get('message', '')}")
    print(f"  Refreshed: {result.get('refreshed', 0)}")
    if "remaining" in result:
        print(f"  Remaining in queue: {result['remaining']}")
    if result.get("failed"):
        print(f"  Failed: {', '.join(str(t) for t in result['failed'])}")
    print()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_init_db(args: argparse.Namespace) -> int:
    conn = _open(args)
    try:
        apply_schema(conn, include_source=not args.owned_only)
    finally:
        conn.close()
    print("Schema applied.")
    return 0


def _cmd_refresh_surface(args: argparse.Namespace) -> int:
    conn = _open(args)
    try:
        result = operations.refresh_trip_search_surface(
            conn,
            args.trip_id,
            drain_all=args.drain_all,
            refresh_all=args.refresh_all,
            limit=args.limit,
        )
    except InvalidTripIdError as exc:
        print(f"error: {exc}")
        return 2
    finally:
        conn.close()

    if args.json:
        _emit_json(result)
    else:
        _print_refresh(result)
    if result["mode"] == operations.MODE_SINGLE and not result["found"]:
        return 1
    return 0


def _cmd_refresh_facts(args: argparse.Namespace) -> int:
    conn = _open(args)
    try:
        if args.dirty:
            result = operations.refresh_dirty_trip_facts(conn, args.limit)
            return _emit_json(result) if args.json else _print_dirty_facts(result)
        if args.trip_id is None:
            print("error: pass a trip id or --dirty")
            return 2
        facts = operations.refresh_trip_facts(conn, args.trip_id)
    except InvalidTripIdError as exc:
        print(f"error: {exc}")
        return 2
    finally:
        conn.close()

    if facts is None:
        print(f"Trip {args.trip_id} not found.")
        return 1
    if args.json:
        return _emit_json(facts)
    _print_facts(facts)
    return 0


def _print_dirty_facts(result: dict[str, Any]) -> int:
    _section("Facts dirty queue")
    print(f"  Refreshed: {result['refreshed']}")
    print(f"  Remaining in queue: {result['remaining']}")
    if result.get("missing"):
        print(f"  Missing: {', '.join(str(t) for t in result['missing'])}")
    if result.get("failed"):
        print(f"  Failed: {', '.join(str(t) for t in result['failed'])}")
    print()
    return 0


def _cmd_facts_query(args: argparse.Namespace) -> int:
    filters = FactsQuery(
        trip_ids=tuple(args.trip_ids or ()),
        destination=args.destination,
        client_email=args.client_email,
        status=args.status,
        start_date=args.start,
        end_date=args.end,
        min_cost=args.min_cost,
        max_cost=args.max_cost,
    )
    conn = _open(args)
    try:
        payload = operations.query_trip_facts(conn, filters, args.limit)
    except InvalidFilterError as exc:
        print(f"error: {exc}")
        return 2
    finally:
        conn.close()

    if args.json:
        return _emit_json(payload)

    _section("Trip facts")
    facts = payload["facts"]
    if not facts:
        print("  (no matching facts)")
        print()
        return 0
    header = f"{'trip':>6} {'nights':>6} {'cost':>12} {'hotels':>6}  travelers"
    print("  " + header)
    print("  " + "-" * len(header))
    for f in facts:
        travelers = ", ".join(f.get("traveler_names") or [])
        print(
            f"  {f['trip_id']:6d} {f['total_nights']:6d} {f['total_cost']:12.2f}"
            f" {f['total_hotels']:6d}  {travelers}"
        )
    print()
    print(f"  Total: {payload['count']}")
    print()
    return 0


def _cmd_facts_stats(args: argparse.Namespace) -> int:
    conn = _open(args)
    try:
        stats = operations.get_facts_stats(conn, include_dirty=not args.no_dirty)
    finally:
        conn.close()

    if args.json:
        return _emit_json(stats)
    _section("Facts stats")
    for key, value in stats.items():
        print(f"  {key:18} {value}")
    print()
    return 0


def _cmd_search(args: argparse.Namespace) -> int:
    conn = _open(args)
    try:
        payload = operations.search_trips(conn, args.query, args.limit)
    except InvalidQueryError as exc:
        print(f"error: {exc}")
        return 2
    finally:
        conn.close()

    if args.json:
        return _emit_json(payload)
    _print_matches(payload)
    return 0


def _cmd_mark_dirty(args: argparse.Namespace) -> int:
    conn = _open(args)
    try:
        tables = {
            "surface": [SURFACE_DIRTY_TABLE],
            "facts": [FACTS_DIRTY_TABLE],
            "both": [SURFACE_DIRTY_TABLE, FACTS_DIRTY_TABLE],
        }[args.queue]
        for table in tables:
            DirtyQueue(conn, table).mark(args.trip_id, args.reason)
    finally:
        conn.close()
    print(f"Marked trip {args.trip_id} dirty ({args.queue}).")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tripindex",
        description="Trip search surface, fact rollups and fuzzy trip search.",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to SQLite database file (default: DATABASE_URL / DATABASE_PATH / dev.db).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create tables (idempotent).")
    init_parser.add_argument(
        "--owned-only",
        action="store_true",
        help="Only create surface/fact tables; skip the trip source tables.",
    )
    init_parser.set_defaults(func=_cmd_init_db)

    surface_parser = subparsers.add_parser(
        "refresh-surface",
        help="Refresh one trip's search surface or drain the dirty queue.",
    )
    surface_parser.add_argument("--trip-id", type=int, default=None)
    surface_parser.add_argument(
        "--drain-all",
        action="store_true",
        help="Drain the whole dirty queue instead of one batch.",
    )
    surface_parser.add_argument(
        "--refresh-all",
        action="store_true",
        help="Rebuild every trip, ignoring the dirty queue.",
    )
    surface_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Batch size for a queue drain or rebuild (default: SURFACE_REFRESH_BATCH_LIMIT).",
    )
    surface_parser.add_argument("--json", action="store_true")
    surface_parser.set_defaults(func=_cmd_refresh_surface)

    facts_parser = subparsers.add_parser("refresh-facts", help="Recompute trip fact rollups.")
    facts_parser.add_argument("trip_id", nargs="?", type=int, default=None)
    facts_parser.add_argument(
        "--dirty",
        action="store_true",
        help="Drain the facts dirty queue instead of refreshing one trip.",
    )
    facts_parser.add_argument("--limit", type=int, default=None)
    facts_parser.add_argument("--json", action="store_true")
    facts_parser.set_defaults(func=_cmd_refresh_facts)

    query_parser = subparsers.add_parser("facts-query", help="List stored trip facts by filter.")
    query_parser.add_argument(
        "--trip-id",
        dest="trip_ids",
        type=int,
        action="append",
        default=None,
        help="Restrict to a trip id (repeatable).",
    )
    query_parser.add_argument("--destination", default=None)
    query_parser.add_argument("--client-email", default=None)
    query_parser.add_argument("--status", choices=FACT_STATUSES, default=None)
    query_parser.add_argument("--start", default=None, help="Trips starting on/after YYYY-MM-DD.")
    query_parser.add_argument("--end", default=None, help="Trips ending on/before YYYY-MM-DD.")
    query_parser.add_argument("--min-cost", type=float, default=None)
    query_parser.add_argument("--max-cost", type=float, default=None)
    query_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum rows (default 20, capped at 100).",
    )
    query_parser.add_argument("--json", action="store_true")
    query_parser.set_defaults(func=_cmd_facts_query)

    stats_parser = subparsers.add_parser("facts-stats", help="Fact row counts and dirty backlog.")
    stats_parser.add_argument(
        "--no-dirty",
        action="store_true",
        help="Skip the facts dirty-queue counts.",
    )
    stats_parser.add_argument("--json", action="store_true")
    stats_parser.set_defaults(func=_cmd_facts_stats)

    search_parser = subparsers.add_parser("search", help="Fuzzy search over trips.")
    search_parser.add_argument("query")
    search_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum results (default: TRIP_SEARCH_DEFAULT_LIMIT).",
    )
    search_parser.add_argument("--json", action="store_true")
    search_parser.set_defaults(func=_cmd_search)

    mark_parser = subparsers.add_parser("mark-dirty", help="Queue a trip for refresh.")
    mark_parser.add_argument("trip_id", type=int)
    mark_parser.add_argument("--reason", default=None)
    mark_parser.add_argument(
        "--queue",
        choices=("surface", "facts", "both"),
        default="both",
    )
    mark_parser.set_defaults(func=_cmd_mark_dirty)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=load_settings().log_level,
            format="%(levelname)s %(name)s %(message)s",
        )

    func = getattr(args, "func", None)
    if func is None:
        parser.error("no command specified")
        return 1

    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
