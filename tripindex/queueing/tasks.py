# tripindex/queueing/tasks.py
"""
rq job functions.

Each task opens its own SQLite connection (workers fork, connections do not
cross process boundaries), runs one operation, and returns its JSON-able
result so it is stored on the rq job. sqlite3 errors propagate so rq's
retry policy applies.
"""
from __future__ import annotations

import logging
from typing import Any

from tripindex import operations
from tripindex.db import get_connection

log = logging.getLogger(__name__)


def task_refresh_trip(trip_id: int, db_path: str | None = None) -> dict[str, Any]:
    conn = get_connection(db_path)
    try:
        result = operations.refresh_trip_search_surface(conn, trip_id)
    finally:
        conn.close()
    log.info("task_refresh_trip trip_id=%s refreshed=%s", trip_id, result["refreshed"])
    return result


def task_refresh_dirty(
    limit: int | None = None,
    drain_all: bool = False,
    db_path: str | None = None,
) -> dict[str, Any]:
    conn = get_connection(db_path)
    try:
        result = operations.refresh_trip_search_surface(conn, drain_all=drain_all, limit=limit)
    finally:
        conn.close()
    log.info(
        "task_refresh_dirty mode=%s refreshed=%s remaining=%s",
        result["mode"],
        result["refreshed"],
        result["remaining"],
    )
    return result


def task_refresh_trip_facts(trip_id: int, db_path: str | None = None) -> dict[str, Any] | None:
    conn = get_connection(db_path)
    try:
        facts = operations.refresh_trip_facts(conn, trip_id)
    finally:
        conn.close()
    log.info("task_refresh_trip_facts trip_id=%s found=%s", trip_id, facts is not None)
    return facts


def task_refresh_dirty_facts(limit: int | None = None, db_path: str | None = None) -> dict[str, Any]:
    conn = get_connection(db_path)
    try:
        return operations.refresh_dirty_trip_facts(conn, limit)
    finally:
        conn.close()
