# tripindex/facts/aggregator.py
from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict, dataclass, field
from typing import Any

from tripindex.db import dumps_list, loads_list, table_exists
from tripindex.exceptions import InvalidFilterError
from tripindex.roster import load_roster, load_trip
from tripindex.search.dirty_queue import FACTS_DIRTY_TABLE, DirtyQueue
from tripindex.utils import parse_iso_date, utc_now_iso

log = logging.getLogger(__name__)

HOTEL_ACTIVITY_TYPES = ("hotel", "lodging", "accommodation")

FACT_STATUSES = ("planning", "confirmed", "in_progress", "completed", "cancelled")
FACTS_QUERY_DEFAULT_LIMIT = 20
FACTS_QUERY_MAX_LIMIT = 100

FACT_COLUMNS = (
    "trip_id",
    "total_nights",
    "total_hotels",
    "total_activities",
    "total_cost",
    "transit_minutes",
    "traveler_count",
    "traveler_names",
    "traveler_emails",
    "primary_client_name",
    "primary_client_email",
    "last_computed",
    "version",
)

_UPSERT_SQL = f"""
    INSERT INTO trip_facts ({', '.join(FACT_COLUMNS)})
    VALUES ({', '.join('?' for _ in FACT_COLUMNS)})
    ON CONFLICT(trip_id) DO UPDATE SET
      total_nights = excluded.total_nights,
      total_hotels = excluded.total_hotels,
      total_activities = excluded.total_activities,
      total_cost = excluded.total_cost,
      transit_minutes = excluded.transit_minutes,
      traveler_count = excluded.traveler_count,
      traveler_names = excluded.traveler_names,
      traveler_emails = excluded.traveler_emails,
      primary_client_name = excluded.primary_client_name,
      primary_client_email = excluded.primary_client_email,
      last_computed = excluded.last_computed,
      version = trip_facts.version + 1
"""


@dataclass
class FactRow:
    trip_id: int
    total_nights: int = 0
    total_hotels: int = 0
    total_activities: int = 0
    total_cost: float = 0.0
    transit_minutes: int = 0
    traveler_count: int = 0
    traveler_names: list[str] = field(default_factory=list)
    traveler_emails: list[str] = field(default_factory=list)
    primary_client_name: str | None = None
    primary_client_email: str | None = None
    last_computed: str = ""
    version: int = 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class FactsDrainReport:
    refreshed: int = 0
    missing: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class FactsQuery:
    """
    Filters for FactAggregator.query_facts. Unset fields do not filter;
    set fields are combined with AND.

    destination:
      case-insensitive substring of the trip's destinations.
    client_email:
      the primary contact's email or any traveler email (case-insensitive).
    start_date / end_date:
      YYYY-MM-DD; the trip starts on or after / ends on or before.
    min_cost / max_cost:
      inclusive bounds on total_cost.
    """

    trip_ids: tuple[int, ...] = ()
    destination: str | None = None
    client_email: str | None = None
    status: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    min_cost: float | None = None
    max_cost: float | None = None


def resolve_facts_limit(limit: int | None) -> int:
    if limit is None or limit <= 0:
        return FACTS_QUERY_DEFAULT_LIMIT
    return min(int(limit), FACTS_QUERY_MAX_LIMIT)


def _checked_date(name: str, value: str | None) -> str | None:
    if not value:
        return None
    text = value.strip()
    if len(text) != 10 or parse_iso_date(text) is None:
        raise InvalidFilterError(f"{name} must be YYYY-MM-DD; got {value!r}")
    return text


def _facts_where(filters: FactsQuery) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []

    if filters.trip_ids:
        clauses.append(f"tf.trip_id IN ({', '.join('?' for _ in filters.trip_ids)})")
        params.extend(int(t) for t in filters.trip_ids)

    if filters.destination and filters.destination.strip():
        clauses.append("LOWER(COALESCE(t.destinations, '')) LIKE ?")
        params.append(f"%{filters.destination.strip().lower()}%")

    if filters.client_email and filters.client_email.strip():
        email = filters.client_email.strip().lower()
        clauses.append(
            "(LOWER(COALESCE(tf.primary_client_email, '')) = ?"
            " OR EXISTS (SELECT 1 FROM json_each(tf.traveler_emails) WHERE LOWER(value) = ?))"
        )
        params.extend([email, email])

    if filters.status:
        status = filters.status.strip().lower()
        if status not in FACT_STATUSES:
            raise InvalidFilterError(
                f"status must be one of {', '.join(FACT_STATUSES)}; got {filters.status!r}"
            )
        clauses.append("LOWER(t.status) = ?")
        params.append(status)

    start = _checked_date("start_date", filters.start_date)
    if start:
        clauses.append("substr(t.start_date, 1, 10) >= ?")
        params.append(start)

    end = _checked_date("end_date", filters.end_date)
    if end:
        clauses.append("substr(t.end_date, 1, 10) <= ?")
        params.append(end)

    if filters.min_cost is not None:
        clauses.append("tf.total_cost >= ?")
        params.append(float(filters.min_cost))

    if filters.max_cost is not None:
        clauses.append("tf.total_cost <= ?")
        params.append(float(filters.max_cost))

    where = " AND ".join(clauses) if clauses else "1=1"
    return where, params


def _row_to_facts(row: Any) -> FactRow:
    data = dict(zip(FACT_COLUMNS, tuple(row), strict=True))
    data["traveler_names"] = loads_list(data["traveler_names"])
    data["traveler_emails"] = loads_list(data["traveler_emails"])
    data["total_cost"] = float(data["total_cost"] or 0)
    return FactRow(**data)


def _scalar(conn: sqlite3.Connection, sql: str, params: tuple[Any, ...]) -> Any:
    row = conn.execute(sql, params).fetchone()
    return row[0] if row else None


def compute_total_nights(conn: sqlite3.Connection, trip: dict[str, Any]) -> int:
    """
    Nights between start_date and end_date. When either date is missing or
    unparseable, fall back to the span of numbered trip days.
    """
    start = parse_iso_date(trip.get("start_date"))
    end = parse_iso_date(trip.get("end_date"))
    if start is not None and end is not None:
        return max(0, (end - start).days)

    if not table_exists(conn, "trip_days"):
        return 0
    span = _scalar(
        conn,
        "SELECT MAX(day_number) - MIN(day_number) FROM trip_days WHERE trip_id = ?",
        (trip["trip_id"],),
    )
    return max(0, int(span or 0))


def compute_activity_counts(conn: sqlite3.Connection, trip_id: int) -> tuple[int, int]:
    """
    Return (total_hotels, total_activities). Hotel-type entries are counted
    in both.
    """
    if not table_exists(conn, "trip_activities"):
        return 0, 0
    placeholders = ", ".join("?" for _ in HOTEL_ACTIVITY_TYPES)
    row = conn.execute(
        f"""
        SELECT
          COALESCE(SUM(CASE WHEN LOWER(TRIM(activity_type)) IN ({placeholders})
                            THEN 1 ELSE 0 END), 0),
          COUNT(*)
        FROM trip_activities
        WHERE trip_id = ?
        """,
        (*HOTEL_ACTIVITY_TYPES, trip_id),
    ).fetchone()
    if row is None:
        return 0, 0
    return int(row[0] or 0), int(row[1] or 0)


def compute_total_cost(conn: sqlite3.Connection, trip_id: int) -> float:
    total = 0.0
    if table_exists(conn, "trip_activities"):
        total += float(
            _scalar(
                conn,
                "SELECT COALESCE(SUM(cost), 0) FROM trip_activities WHERE trip_id = ?",
                (trip_id,),
            )
            or 0
        )
    if table_exists(conn, "trip_line_items"):
        total += float(
            _scalar(
                conn,
                "SELECT COALESCE(SUM(amount), 0) FROM trip_line_items WHERE trip_id = ?",
                (trip_id,),
            )
            or 0
        )
    return round(total, 2)


def compute_transit_minutes(conn: sqlite3.Connection, trip_id: int) -> int:
    """
    Sum of (arrive - depart) across trip legs, in whole minutes. Legs with a
    missing or unparseable timestamp, or arriving before they depart,
    contribute nothing.
    """
    if not table_exists(conn, "trip_legs"):
        return 0
    minutes = _scalar(
        conn,
        """
        SELECT COALESCE(SUM(
          MAX(0, (strftime('%s', arrive_datetime) - strftime('%s', depart_datetime)) / 60)
        ), 0)
        FROM trip_legs
        WHERE trip_id = ?
          AND strftime('%s', arrive_datetime) IS NOT NULL
          AND strftime('%s', depart_datetime) IS NOT NULL
        """,
        (trip_id,),
    )
    return int(minutes or 0)


class FactAggregator:
    """
    Computes per-trip rollups into trip_facts.

    Each refresh recomputes the whole row from source tables and writes it
    with one upsert; version is bumped on every rewrite.
    """

    def __init__(self, conn: sqlite3.Connection, queue: DirtyQueue | None = None) -> None:
        self.conn = conn
        self.queue = queue or DirtyQueue(conn, FACTS_DIRTY_TABLE)

    def compute(self, trip: dict[str, Any]) -> FactRow:
        trip_id = int(trip["trip_id"])
        roster = load_roster(self.conn, trip)
        hotels, activities = compute_activity_counts(self.conn, trip_id)
        return FactRow(
            trip_id=trip_id,
            total_nights=compute_total_nights(self.conn, trip),
            total_hotels=hotels,
            total_activities=activities,
            total_cost=compute_total_cost(self.conn, trip_id),
            transit_minutes=compute_transit_minutes(self.conn, trip_id),
            traveler_count=roster.count,
            traveler_names=roster.names,
            traveler_emails=roster.emails,
            primary_client_name=trip.get("primary_client_name"),
            primary_client_email=trip.get("primary_client_email"),
            last_computed=utc_now_iso(),
        )

    def refresh_trip_facts(self, trip_id: int) -> FactRow | None:
        """
        Recompute and store facts for one trip. Returns None if the trip does
        not exist; any facts row left over from a deleted trip is removed.
        """
        trip = load_trip(self.conn, trip_id)
        if trip is None:
            with self.conn:
                self.conn.execute("DELETE FROM trip_facts WHERE trip_id = ?", (trip_id,))
            log.info("Trip %s not found; stale facts removed", trip_id)
            return None

        facts = self.compute(trip)
        with self.conn:
            self.conn.execute(
                _UPSERT_SQL,
                (
                    facts.trip_id,
                    facts.total_nights,
                    facts.total_hotels,
                    facts.total_activities,
                    facts.total_cost,
                    facts.transit_minutes,
                    facts.traveler_count,
                    dumps_list(facts.traveler_names),
                    dumps_list(facts.traveler_emails),
                    facts.primary_client_name,
                    facts.primary_client_email,
                    facts.last_computed,
                    facts.version,
                ),
            )
        stored = self.get_trip_facts(trip_id)
        log.debug("Refreshed facts for trip %s", trip_id)
        return stored or facts

    def get_trip_facts(self, trip_id: int) -> FactRow | None:
        row = self.conn.execute(
            f"SELECT {', '.join(FACT_COLUMNS)} FROM trip_facts WHERE trip_id = ?",
            (trip_id,),
        ).fetchone()
        if row is None:
            return None
        return _row_to_facts(row)

    def query_facts(self, filters: FactsQuery | None = None, limit: int | None = None) -> list[FactRow]:
        """
        Stored fact rows matching the filters, ordered by trip id.

        Trip-level filters (destination, status, dates) read the trips
        table, so a facts row whose trip is gone only matches queries that
        do not use them. limit defaults to 20 and is capped at 100.
        """
        where, params = _facts_where(filters or FactsQuery())
        cols = ", ".join(f"tf.{c}" for c in FACT_COLUMNS)
        rows = self.conn.execute(
            f"""
            SELECT {cols}
            FROM trip_facts tf
            LEFT JOIN trips t ON t.trip_id = tf.trip_id
            WHERE {where}
            ORDER BY tf.trip_id
            LIMIT ?
            """,
            (*params, resolve_facts_limit(limit)),
        ).fetchall()
        return [_row_to_facts(r) for r in rows]

    def facts_stats(self, include_dirty: bool = True) -> dict[str, Any]:
        """
        Row count and freshness of trip_facts, plus the dirty backlog.
        """
        row = self.conn.execute(
            "SELECT COUNT(*), MIN(last_computed), MAX(last_computed) FROM trip_facts"
        ).fetchone()
        stats: dict[str, Any] = {
            "total_facts": int(row[0] or 0),
            "oldest_computed": row[1],
            "newest_computed": row[2],
        }
        if include_dirty:
            stats["dirty_entries"] = self.queue.count()
            stats["dirty_trips"] = self.queue.distinct_count()
        return stats

    def refresh_dirty(self, limit: int | None = None) -> FactsDrainReport:
        """
        Drain facts_dirty with the same at-least-once contract as the search
        surface: entries are removed only after the trip's refresh returned.
        """
        batch = self.queue.pending(limit)
        report = FactsDrainReport()
        for trip_id in batch.trip_ids:
            try:
                facts = self.refresh_trip_facts(trip_id)
            except sqlite3.Error:
                log.exception("Fact refresh failed for trip %s; left queued", trip_id)
                report.failed.append(trip_id)
                continue
            self.queue.ack([trip_id], watermark=batch.watermark)
            if facts is None:
                report.missing.append(trip_id)
            else:
                report.refreshed += 1

        if batch.trip_ids:
            log.info(
                "Facts drain: %d refreshed, %d missing, %d failed",
                report.refreshed,
                len(report.missing),
                len(report.failed),
            )
        return report

    def mark_dirty(self, trip_id: int, reason: str | None = None) -> None:
        self.queue.mark(trip_id, reason)
