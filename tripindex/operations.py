# tripindex/operations.py
"""
Caller-facing operations shared by the HTTP API, the CLI and rq tasks.

Every function takes an explicit sqlite3 connection, returns a plain
JSON-serializable dict (or None for an unknown trip), and leaves transport
concerns (status codes, exit codes, retries) to the caller.
"""
from __future__ import annotations

import sqlite3
from typing import Any

from tripindex.config import AppConfig, load_settings
from tripindex.facts.aggregator import FactAggregator, FactsQuery, resolve_facts_limit
from tripindex.search.ranking import resolve_limit
from tripindex.search.ranking import search_trips as _rank
from tripindex.search.surface import TripSearchSurfaceSync
from tripindex.utils import coerce_trip_id

MODE_SINGLE = "single"
MODE_DIRTY_QUEUE = "dirty_queue"
MODE_DRAIN_ALL = "drain_all"
MODE_REFRESH_ALL = "refresh_all"


def _clamp_batch(limit: int | None, default: int, maximum: int) -> int:
    if limit is None or limit <= 0:
        return default
    return min(int(limit), maximum)


def refresh_trip_search_surface(
    conn: sqlite3.Connection,
    trip_id: int | str | None = None,
    *,
    drain_all: bool = False,
    refresh_all: bool = False,
    limit: int | None = None,
    config: AppConfig | None = None,
) -> dict[str, Any]:
    """
    Refresh one trip's search surface, or drain the dirty queue.

    Modes, in order of precedence:
      single       trip_id given
      refresh_all  rebuild every trip, ignoring the queue (up to limit, if given)
      drain_all    drain the whole dirty queue
      dirty_queue  drain up to limit entries (configured batch size by default)
    """
    cfg = config or load_settings()
    sync = TripSearchSurfaceSync(conn)

    if trip_id is not None:
        tid = coerce_trip_id(trip_id)
        result = sync.refresh_trip(tid)
        if result is None:
            return {
                "mode": MODE_SINGLE,
                "trip_id": tid,
                "refreshed": 0,
                "found": False,
                "message": f"Trip {tid} not found; surface row removed if present",
            }
        return {
            "mode": MODE_SINGLE,
            "trip_id": tid,
            "refreshed": 1,
            "found": True,
            "trip_name": result.trip_name,
            "tokens": result.tokens,
            "phonetic_tokens": result.phonetic_tokens,
            "message": f"Refreshed search surface for trip {tid}",
        }

    if refresh_all:
        cap = None if limit is None or limit <= 0 else min(int(limit), cfg.refresh.surface_max_limit)
        count = sync.refresh_all(cap)
        return {
            "mode": MODE_REFRESH_ALL,
            "refreshed": count,
            "message": f"Rebuilt search surface for {count} trips",
        }

    if drain_all:
        report = sync.drain(None)
        mode = MODE_DRAIN_ALL
    else:
        batch = _clamp_batch(
            limit,
            cfg.refresh.surface_batch_limit,
            cfg.refresh.surface_max_limit,
        )
        report = sync.drain(batch)
        mode = MODE_DIRTY_QUEUE

    return {
        "mode": mode,
        "refreshed": report.refreshed,
        "missing": report.missing,
        "failed": report.failed,
        "remaining": sync.queue.count(),
        "message": f"Refreshed {report.refreshed} trips from the dirty queue",
    }


def refresh_trip_facts(conn: sqlite3.Connection, trip_id: int | str) -> dict[str, Any] | None:
    """
    Recompute facts for one trip. Returns the stored fact row as a dict, or
    None if the trip does not exist.
    """
    tid = coerce_trip_id(trip_id)
    facts = FactAggregator(conn).refresh_trip_facts(tid)
    return facts.to_dict() if facts is not None else None


def get_trip_facts(conn: sqlite3.Connection, trip_id: int | str) -> dict[str, Any] | None:
    tid = coerce_trip_id(trip_id)
    facts = FactAggregator(conn).get_trip_facts(tid)
    return facts.to_dict() if facts is not None else None


def refresh_dirty_trip_facts(
    conn: sqlite3.Connection,
    limit: int | None = None,
    *,
    config: AppConfig | None = None,
) -> dict[str, Any]:
    cfg = config or load_settings()
    batch = _clamp_batch(limit, cfg.refresh.facts_batch_limit, cfg.refresh.surface_max_limit)
    aggregator = FactAggregator(conn)
    report = aggregator.refresh_dirty(batch)
    return {
        "mode": MODE_DIRTY_QUEUE,
        "refreshed": report.refreshed,
        "missing": report.missing,
        "failed": report.failed,
        "remaining": aggregator.queue.count(),
    }


def query_trip_facts(
    conn: sqlite3.Connection,
    filters: FactsQuery | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """
    Filtered listing of stored fact rows for reporting. Raises
    InvalidFilterError for an unknown status or a malformed date.
    """
    facts = FactAggregator(conn).query_facts(filters, limit)
    return {
        "limit": resolve_facts_limit(limit),
        "count": len(facts),
        "facts": [f.to_dict() for f in facts],
    }


def get_facts_stats(conn: sqlite3.Connection, include_dirty: bool = True) -> dict[str, Any]:
    return FactAggregator(conn).facts_stats(include_dirty=include_dirty)


def search_trips(
    conn: sqlite3.Connection,
    query: str,
    limit: int | None = None,
    *,
    config: AppConfig | None = None,
) -> dict[str, Any]:
    """
    Ranked trip search. The response echoes the effective limit after
    clamping.
    """
    cfg = config or load_settings()
    matches = _rank(conn, query, limit, config=cfg.search)
    return {
        "query": query,
        "limit": resolve_limit(limit, cfg.search),
        "count": len(matches),
        "matches": [m.to_dict() for m in matches],
    }
