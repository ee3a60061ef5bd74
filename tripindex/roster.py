# tripindex/roster.py
from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any

from tripindex.db import derive_name_from_email, table_exists

TRIP_COLUMNS = (
    "trip_id",
    "trip_name",
    "trip_slug",
    "status",
    "start_date",
    "end_date",
    "destinations",
    "primary_client_name",
    "primary_client_email",
)


@dataclass(frozen=True)
class Traveler:
    name: str
    email: str | None
    role: str | None = None


@dataclass(frozen=True)
class TripRoster:
    """
    Ordered traveler roster for one trip.

    Order is primary contact first, then assignments in assignment order.
    The search surface and the fact table both serialize this order, which
    is what keeps their traveler lists identical.
    """

    travelers: tuple[Traveler, ...]

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.travelers]

    @property
    def emails(self) -> list[str]:
        return [t.email for t in self.travelers if t.email]

    @property
    def count(self) -> int:
        return len(self.travelers)


def load_trip(conn: sqlite3.Connection, trip_id: int) -> dict[str, Any] | None:
    """
    Fetch the source trip record as a dict, or None if it does not exist.
    """
    row = conn.execute(
        f"SELECT {', '.join(TRIP_COLUMNS)} FROM trips WHERE trip_id = ?",
        (trip_id,),
    ).fetchone()
    if row is None:
        return None
    return dict(zip(TRIP_COLUMNS, tuple(row), strict=True))


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def _load_assignments(conn: sqlite3.Connection, trip_id: int) -> list[tuple[Any, ...]]:
    if table_exists(conn, "clients"):
        sql = """
            SELECT a.client_email, a.client_name, a.role, c.full_name
            FROM trip_client_assignments AS a
            LEFT JOIN clients AS c
              ON LOWER(c.email) = LOWER(a.client_email)
            WHERE a.trip_id = ?
            ORDER BY a.id
        """
    else:
        sql = """
            SELECT a.client_email, a.client_name, a.role, NULL
            FROM trip_client_assignments AS a
            WHERE a.trip_id = ?
            ORDER BY a.id
        """
    return [tuple(r) for r in conn.execute(sql, (trip_id,)).fetchall()]


def _lookup_client_name(conn: sqlite3.Connection, email: str) -> str | None:
    if not table_exists(conn, "clients"):
        return None
    row = conn.execute(
        "SELECT full_name FROM clients WHERE LOWER(email) = LOWER(?) LIMIT 1",
        (email,),
    ).fetchone()
    return _clean(row[0]) if row else None


def load_roster(conn: sqlite3.Connection, trip: dict[str, Any]) -> TripRoster:
    """
    Resolve the traveler roster for a trip record returned by load_trip().

    Name resolution per traveler, first hit wins:
      primary contact: trip.primary_client_name, clients.full_name,
                       name derived from the email local part
      assignment:      clients.full_name, assignment.client_name,
                       name derived from the email local part
      otherwise:       "No Email N" where N is the 1-based roster position

    Travelers are deduplicated by case-insensitive email; assignments
    without an email are never merged.
    """
    travelers: list[Traveler] = []
    seen_emails: set[str] = set()

    primary_email = _clean(trip.get("primary_client_email"))
    primary_name = _clean(trip.get("primary_client_name"))
    if primary_email or primary_name:
        name = (
            primary_name
            or (_lookup_client_name(conn, primary_email) if primary_email else None)
            or derive_name_from_email(primary_email)
            or f"No Email {len(travelers) + 1}"
        )
        travelers.append(Traveler(name=name, email=primary_email, role="primary"))
        if primary_email:
            seen_emails.add(primary_email.lower())

    if table_exists(conn, "trip_client_assignments"):
        for email_raw, name_raw, role, full_name in _load_assignments(conn, int(trip["trip_id"])):
            email = _clean(email_raw)
            if email:
                key = email.lower()
                if key in seen_emails:
                    continue
                seen_emails.add(key)
            name = (
                _clean(full_name)
                or _clean(name_raw)
                or derive_name_from_email(email)
                or f"No Email {len(travelers) + 1}"
            )
            travelers.append(Traveler(name=name, email=email, role=_clean(role)))

    return TripRoster(travelers=tuple(travelers))
