# tripindex/search/dirty_queue.py
from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass

log = logging.getLogger(__name__)

SURFACE_DIRTY_TABLE = "trip_search_surface_dirty"
FACTS_DIRTY_TABLE = "facts_dirty"

_ALLOWED_TABLES = {SURFACE_DIRTY_TABLE, FACTS_DIRTY_TABLE}


@dataclass(frozen=True)
class DirtyBatch:
    """
    A snapshot of pending work.

    trip_ids are distinct, ordered by first arrival. watermark is the highest
    entry id observed when the batch was taken; acknowledging a trip deletes
    only its entries at or below the watermark, so an entry that arrives
    while the trip is being recomputed stays queued.
    """

    trip_ids: tuple[int, ...]
    watermark: int


class DirtyQueue:
    """
    Table-backed work queue of trip ids whose derived rows may be stale.

    Delivery is at-least-once: entries are removed only by ack(), which
    callers invoke after the trip was recomputed. Duplicate entries for the
    same trip are harmless because recompute is idempotent.
    """

    def __init__(self, conn: sqlite3.Connection, table: str = SURFACE_DIRTY_TABLE) -> None:
        if table not in _ALLOWED_TABLES:
            raise ValueError(f"Unknown dirty queue table: {table!r}")
        self.conn = conn
        self.table = table

    def mark(self, trip_id: int, reason: str | None = None) -> None:
        with self.conn:
            self.conn.execute(
                f"INSERT INTO {self.table} (trip_id, reason) VALUES (?, ?)",
                (trip_id, reason or "unspecified"),
            )

    def count(self) -> int:
        row = self.conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()
        return int(row[0]) if row else 0

    def distinct_count(self) -> int:
        row = self.conn.execute(f"SELECT COUNT(DISTINCT trip_id) FROM {self.table}").fetchone()
        return int(row[0]) if row else 0

    def pending(self, limit: int | None = None) -> DirtyBatch:
        """
        Take up to `limit` entries in arrival order (all if limit is None)
        and collapse them into distinct trip ids.
        """
        sql = f"SELECT id, trip_id FROM {self.table} ORDER BY id"
        params: tuple[int, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (max(0, int(limit)),)
        rows = self.conn.execute(sql, params).fetchall()

        trip_ids: list[int] = []
        seen: set[int] = set()
        watermark = 0
        for entry_id, trip_id in rows:
            watermark = max(watermark, int(entry_id))
            if trip_id in seen:
                continue
            seen.add(trip_id)
            trip_ids.append(int(trip_id))
        return DirtyBatch(trip_ids=tuple(trip_ids), watermark=watermark)

    def ack(self, trip_ids: Iterable[int], watermark: int | None = None) -> int:
        """
        Delete entries for the given trips (at or below watermark, if given).
        Returns the number of entries removed.
        """
        ids = list(trip_ids)
        if not ids:
            return 0
        removed = 0
        with self.conn:
            for trip_id in ids:
                if watermark is None:
                    cur = self.conn.execute(
                        f"DELETE FROM {self.table} WHERE trip_id = ?",
                        (trip_id,),
                    )
                else:
                    cur = self.conn.execute(
                        f"DELETE FROM {self.table} WHERE trip_id = ? AND id <= ?",
                        (trip_id, watermark),
                    )
                removed += cur.rowcount
        log.debug("Acked %d %s entries for %d trips", removed, self.table, len(ids))
        return removed
