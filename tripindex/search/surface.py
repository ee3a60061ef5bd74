# tripindex/search/surface.py
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any

from tripindex.db import dumps_list, loads_list
from tripindex.roster import load_roster, load_trip
from tripindex.search.dirty_queue import SURFACE_DIRTY_TABLE, DirtyQueue
from tripindex.search.normalize import normalize_fields
from tripindex.search.phonetic import phonetic_key_set

log = logging.getLogger(__name__)

SURFACE_COLUMNS = (
    "trip_id",
    "trip_name",
    "trip_slug",
    "status",
    "start_date",
    "end_date",
    "destinations",
    "primary_client_name",
    "primary_client_email",
    "traveler_names",
    "traveler_emails",
    "normalized_trip_name",
    "normalized_destinations",
    "normalized_travelers",
    "normalized_emails",
    "search_tokens",
    "phonetic_tokens",
    "traveler_count",
)

_UPSERT_SQL = (
    f"INSERT OR REPLACE INTO trip_search_surface ({', '.join(SURFACE_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in SURFACE_COLUMNS)})"
)


@dataclass(frozen=True)
class SurfaceRefreshResult:
    trip_id: int
    trip_name: str
    tokens: list[str]
    phonetic_tokens: list[str]


@dataclass
class DrainReport:
    """
    Outcome of one dirty-queue drain.

    refreshed counts trips whose surface row was rewritten. missing trips
    were acknowledged without a row; failed trips kept their entries.
    """

    refreshed: int = 0
    missing: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


def build_surface_row(conn: sqlite3.Connection, trip: dict[str, Any]) -> dict[str, Any]:
    """
    Assemble the complete search-surface row for a source trip record.

    Pure with respect to the source tables: the same source state always
    yields the same row (token lists are sorted, rosters keep roster order).
    """
    trip_id = int(trip["trip_id"])
    roster = load_roster(conn, trip)
    names = roster.names
    emails = roster.emails

    fields = normalize_fields(
        trip_id=trip_id,
        trip_name=trip.get("trip_name"),
        trip_slug=trip.get("trip_slug"),
        destinations=trip.get("destinations"),
        traveler_names=names,
        traveler_emails=emails,
        extra=[trip.get("status")],
    )
    tokens = sorted(fields.tokens)
    phonetic = sorted(phonetic_key_set(tokens))

    return {
        "trip_id": trip_id,
        "trip_name": trip.get("trip_name") or "",
        "trip_slug": trip.get("trip_slug"),
        "status": trip.get("status"),
        "start_date": trip.get("start_date"),
        "end_date": trip.get("end_date"),
        "destinations": trip.get("destinations"),
        "primary_client_name": trip.get("primary_client_name"),
        "primary_client_email": trip.get("primary_client_email"),
        "traveler_names": dumps_list(names),
        "traveler_emails": dumps_list(emails),
        "normalized_trip_name": fields.trip_name,
        "normalized_destinations": fields.destinations,
        "normalized_travelers": fields.travelers,
        "normalized_emails": fields.emails,
        "search_tokens": " ".join(tokens),
        "phonetic_tokens": " ".join(phonetic),
        "traveler_count": roster.count,
    }


class TripSearchSurfaceSync:
    """
    Keeps trip_search_surface in step with the trip source tables.

    Every refresh is a full recompute-and-replace of one row, written with a
    single INSERT OR REPLACE inside a transaction, so readers never observe
    a row assembled from two different refreshes.
    """

    def __init__(self, conn: sqlite3.Connection, queue: DirtyQueue | None = None) -> None:
        self.conn = conn
        self.queue = queue or DirtyQueue(conn, SURFACE_DIRTY_TABLE)

    def refresh_trip(self, trip_id: int) -> SurfaceRefreshResult | None:
        """
        Recompute and store the surface row for one trip.

        Returns None when the trip no longer exists; any stale surface row
        for that id is removed and nothing is written.
        """
        trip = load_trip(self.conn, trip_id)
        if trip is None:
            with self.conn:
                self.conn.execute("DELETE FROM trip_search_surface WHERE trip_id = ?", (trip_id,))
            log.info("Trip %s not found; surface row removed if present", trip_id)
            return None

        row = build_surface_row(self.conn, trip)
        with self.conn:
            self.conn.execute(_UPSERT_SQL, tuple(row[c] for c in SURFACE_COLUMNS))

        log.debug("Refreshed search surface for trip %s", trip_id)
        return SurfaceRefreshResult(
            trip_id=row["trip_id"],
            trip_name=row["trip_name"],
            tokens=row["search_tokens"].split(),
            phonetic_tokens=row["phonetic_tokens"].split(),
        )

    def drain(self, limit: int | None = None) -> DrainReport:
        """
        Process up to `limit` dirty entries (all when None), FIFO.

        A trip's entries are acknowledged only after its refresh returned,
        including the not-found case. A storage error on one trip is logged,
        leaves that trip's entries queued, and does not stop the drain.
        """
        batch = self.queue.pending(limit)
        report = DrainReport()
        for trip_id in batch.trip_ids:
            try:
                result = self.refresh_trip(trip_id)
            except sqlite3.Error:
                log.exception("Search surface refresh failed for trip %s; left queued", trip_id)
                report.failed.append(trip_id)
                continue
            self.queue.ack([trip_id], watermark=batch.watermark)
            if result is None:
                report.missing.append(trip_id)
            else:
                report.refreshed += 1

        if batch.trip_ids:
            log.info(
                "Surface drain: %d refreshed, %d missing, %d failed",
                report.refreshed,
                len(report.missing),
                len(report.failed),
            )
        return report

    def refresh_dirty(self, limit: int | None = None) -> int:
        return self.drain(limit).refreshed

    def refresh_all(self, limit: int | None = None) -> int:
        """
        Rebuild surface rows for every trip (lowest ids first), ignoring the
        dirty queue. Returns the number of rows written.
        """
        sql = "SELECT trip_id FROM trips ORDER BY trip_id"
        params: tuple[int, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (max(0, int(limit)),)
        trip_ids = [int(r[0]) for r in self.conn.execute(sql, params).fetchall()]

        refreshed = 0
        for trip_id in trip_ids:
            if self.refresh_trip(trip_id) is not None:
                refreshed += 1
        log.info("Surface full rebuild: %d of %d trips refreshed", refreshed, len(trip_ids))
        return refreshed

    def mark_dirty(self, trip_id: int, reason: str | None = None) -> None:
        self.queue.mark(trip_id, reason)

    def get_row(self, trip_id: int) -> dict[str, Any] | None:
        row = self.conn.execute(
            f"SELECT {', '.join(SURFACE_COLUMNS)} FROM trip_search_surface WHERE trip_id = ?",
            (trip_id,),
        ).fetchone()
        if row is None:
            return None
        data = dict(zip(SURFACE_COLUMNS, tuple(row), strict=True))
        data["traveler_names"] = loads_list(data["traveler_names"])
        data["traveler_emails"] = loads_list(data["traveler_emails"])
        return data
