# tests/conftest.py
from __future__ import annotations

import sqlite3
from collections.abc import Generator
from pathlib import Path
from types import SimpleNamespace

import pytest

from tripindex.config import SearchConfig
from tripindex.schema import apply_schema

# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


def _insert_trip(
    conn: sqlite3.Connection,
    trip_id: int,
    trip_name: str,
    *,
    trip_slug: str | None = None,
    status: str | None = "confirmed",
    start_date: str | None = None,
    end_date: str | None = None,
    destinations: str | None = None,
    primary_client_name: str | None = None,
    primary_client_email: str | None = None,
) -> None:
    conn.execute(
        """
        INSERT INTO trips (
          trip_id, trip_name, trip_slug, status, start_date, end_date,
          destinations, primary_client_name, primary_client_email
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            trip_id,
            trip_name,
            trip_slug,
            status,
            start_date,
            end_date,
            destinations,
            primary_client_name,
            primary_client_email,
        ),
    )
    conn.commit()


def _insert_client(conn: sqlite3.Connection, email: str, full_name: str | None) -> None:
    conn.execute("INSERT INTO clients (email, full_name) VALUES (?, ?)", (email, full_name))
    conn.commit()


def _insert_assignment(
    conn: sqlite3.Connection,
    trip_id: int,
    client_email: str | None = None,
    client_name: str | None = None,
    role: str | None = "traveler",
) -> None:
    conn.execute(
        """
        INSERT INTO trip_client_assignments (trip_id, client_email, client_name, role)
        VALUES (?, ?, ?, ?)
        """,
        (trip_id, client_email, client_name, role),
    )
    conn.commit()


def _insert_activity(
    conn: sqlite3.Connection,
    trip_id: int,
    activity_type: str | None,
    cost: float | None = None,
    title: str | None = None,
) -> None:
    conn.execute(
        "INSERT INTO trip_activities (trip_id, activity_type, title, cost) VALUES (?, ?, ?, ?)",
        (trip_id, activity_type, title, cost),
    )
    conn.commit()


def _insert_line_item(conn: sqlite3.Connection, trip_id: int, amount: float | None) -> None:
    conn.execute(
        "INSERT INTO trip_line_items (trip_id, description, amount) VALUES (?, ?, ?)",
        (trip_id, "line item", amount),
    )
    conn.commit()


def _insert_leg(conn: sqlite3.Connection, trip_id: int, depart: str | None, arrive: str | None) -> None:
    conn.execute(
        "INSERT INTO trip_legs (trip_id, depart_datetime, arrive_datetime) VALUES (?, ?, ?)",
        (trip_id, depart, arrive),
    )
    conn.commit()


def _insert_day(conn: sqlite3.Connection, trip_id: int, day_number: int) -> None:
    conn.execute(
        "INSERT INTO trip_days (trip_id, day_number) VALUES (?, ?)",
        (trip_id, day_number),
    )
    conn.commit()


def _seed_scenario(conn: sqlite3.Connection) -> None:
    """
    Three trips:

      1  European Adventure - Dublin, London & Stoneleigh
         primary Stephanie Chisholm, plus an assignment with no email/name
      2  Scotland Highland Heritage Trip (two named travelers)
      3  Amalfi Coast Escape (primary contact only, no bookings, no dates)
    """
    _insert_trip(
        conn,
        1,
        "European Adventure - Dublin, London & Stoneleigh",
        trip_slug="european-adventure-dublin-london-stoneleigh-2025",
        start_date="2025-06-01",
        end_date="2025-06-11",
        destinations="Dublin, London, Stoneleigh",
        primary_client_name="Stephanie Chisholm",
        primary_client_email="chisholm.family@email.com",
    )
    _insert_client(conn, "chisholm.family@email.com", "Chisholm Family")
    _insert_assignment(conn, 1, "chisholm.family@email.com", None, "primary")
    _insert_assignment(conn, 1, None, None, "traveler")

    _insert_trip(
        conn,
        2,
        "Scotland Highland Heritage Trip",
        trip_slug="scotland-highland-heritage-2025",
        start_date="2025-09-10",
        end_date="2025-09-17",
        destinations="Edinburgh, Inverness, Isle of Skye",
        primary_client_name="Neil Roberts",
        primary_client_email="neil.roberts@example.com",
    )
    _insert_client(conn, "fiona.roberts@example.com", "Fiona Roberts")
    _insert_assignment(conn, 2, "neil.roberts@example.com", "Neil Roberts", "primary")
    _insert_assignment(conn, 2, "fiona.roberts@example.com", None, "traveler")

    _insert_trip(
        conn,
        3,
        "Amalfi Coast Escape",
        trip_slug="amalfi-coast-escape-2026",
        status="planning",
        destinations="Positano, Ravello",
        primary_client_name="Marco Bellini",
        primary_client_email="marco.bellini@example.com",
    )


def _connect(path: str = ":memory:") -> sqlite3.Connection:
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    apply_schema(conn)
    return conn


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db() -> Generator[sqlite3.Connection, None, None]:
    """Empty in-memory database with every table created."""
    conn = _connect()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def seed() -> SimpleNamespace:
    """Seed helpers; each takes the connection as its first argument."""
    return SimpleNamespace(
        trip=_insert_trip,
        client=_insert_client,
        assignment=_insert_assignment,
        activity=_insert_activity,
        line_item=_insert_line_item,
        leg=_insert_leg,
        day=_insert_day,
        scenario=_seed_scenario,
    )


@pytest.fixture
def scenario_db(db: sqlite3.Connection) -> sqlite3.Connection:
    """In-memory database seeded with the three-trip scenario."""
    _seed_scenario(db)
    return db


@pytest.fixture
def scenario_db_path(tmp_path: Path) -> Path:
    """File-backed copy of the scenario, for CLI and task tests."""
    path = tmp_path / "trips.db"
    conn = _connect(str(path))
    try:
        _seed_scenario(conn)
    finally:
        conn.close()
    return path


@pytest.fixture
def search_config() -> SearchConfig:
    return SearchConfig(
        default_limit=5,
        max_limit=50,
        max_query_tokens=8,
        partial_ratio_threshold=85,
        min_score=1,
    )
