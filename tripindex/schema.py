# tripindex/schema.py
from __future__ import annotations

import sqlite3


def create_source_tables(conn: sqlite3.Connection) -> None:
    """
    Create the trip-management source tables read by this package.

    In production these are owned by the surrounding trip system; they are
    created here for local development databases and tests. The activity,
    line-item, day and leg tables are optional inputs to fact aggregation:
    the aggregator treats a missing table as empty.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS trips (
          trip_id INTEGER PRIMARY KEY,
          trip_name TEXT NOT NULL,
          trip_slug TEXT,
          status TEXT,
          start_date TEXT,
          end_date TEXT,
          destinations TEXT,
          primary_client_name TEXT,
          primary_client_email TEXT
        );

        CREATE TABLE IF NOT EXISTS clients (
          email TEXT PRIMARY KEY,
          full_name TEXT
        );

        CREATE TABLE IF NOT EXISTS trip_client_assignments (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          trip_id INTEGER NOT NULL,
          client_email TEXT,
          client_name TEXT,
          role TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_assignments_trip
          ON trip_client_assignments(trip_id, id);

        CREATE TABLE IF NOT EXISTS trip_days (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          trip_id INTEGER NOT NULL,
          day_number INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS trip_activities (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          trip_id INTEGER NOT NULL,
          activity_type TEXT,
          title TEXT,
          cost REAL
        );

        CREATE TABLE IF NOT EXISTS trip_line_items (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          trip_id INTEGER NOT NULL,
          description TEXT,
          amount REAL
        );

        CREATE TABLE IF NOT EXISTS trip_legs (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          trip_id INTEGER NOT NULL,
          depart_datetime TEXT,
          arrive_datetime TEXT
        );
        """
    )


def create_search_surface_tables(conn: sqlite3.Connection) -> None:
    """
    Create the denormalized search surface and its dirty queue.

    Notes:
      * traveler_names / traveler_emails are JSON arrays in roster order.
      * search_tokens / phonetic_tokens are space-joined and sorted so the
        row content is a pure function of source state.
      * Dirty queue arrival order is the AUTOINCREMENT id.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS trip_search_surface (
          trip_id INTEGER PRIMARY KEY,
          trip_name TEXT NOT NULL,
          trip_slug TEXT,
          status TEXT,
          start_date TEXT,
          end_date TEXT,
          destinations TEXT,
          primary_client_name TEXT,
          primary_client_email TEXT,
          traveler_names TEXT NOT NULL DEFAULT '[]',
          traveler_emails TEXT NOT NULL DEFAULT '[]',
          normalized_trip_name TEXT NOT NULL DEFAULT '',
          normalized_destinations TEXT NOT NULL DEFAULT '',
          normalized_travelers TEXT NOT NULL DEFAULT '',
          normalized_emails TEXT NOT NULL DEFAULT '',
          search_tokens TEXT NOT NULL DEFAULT '',
          phonetic_tokens TEXT NOT NULL DEFAULT '',
          traveler_count INTEGER NOT NULL DEFAULT 0
        );

        CREATE INDEX IF NOT EXISTS idx_trip_search_surface_slug
          ON trip_search_surface(trip_slug);

        CREATE TABLE IF NOT EXISTS trip_search_surface_dirty (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          trip_id INTEGER NOT NULL,
          reason TEXT NOT NULL DEFAULT 'unspecified',
          created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
        );

        CREATE INDEX IF NOT EXISTS idx_trip_search_surface_dirty_trip
          ON trip_search_surface_dirty(trip_id);
        """
    )


def create_fact_tables(conn: sqlite3.Connection) -> None:
    """
    Create the per-trip fact rollup table and its dirty queue.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS trip_facts (
          trip_id INTEGER PRIMARY KEY,
          total_nights INTEGER NOT NULL DEFAULT 0,
          total_hotels INTEGER NOT NULL DEFAULT 0,
          total_activities INTEGER NOT NULL DEFAULT 0,
          total_cost REAL NOT NULL DEFAULT 0,
          transit_minutes INTEGER NOT NULL DEFAULT 0,
          traveler_count INTEGER NOT NULL DEFAULT 0,
          traveler_names TEXT NOT NULL DEFAULT '[]',
          traveler_emails TEXT NOT NULL DEFAULT '[]',
          primary_client_name TEXT,
          primary_client_email TEXT,
          last_computed TEXT NOT NULL,
          version INTEGER NOT NULL DEFAULT 1
        );

        CREATE TABLE IF NOT EXISTS facts_dirty (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          trip_id INTEGER NOT NULL,
          reason TEXT NOT NULL DEFAULT 'unspecified',
          created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
        );

        CREATE INDEX IF NOT EXISTS idx_facts_dirty_trip
          ON facts_dirty(trip_id);
        """
    )


def apply_schema(conn: sqlite3.Connection, *, include_source: bool = True) -> None:
    """
    Create every table this package reads or writes. Idempotent.
    """
    if include_source:
        create_source_tables(conn)
    create_search_surface_tables(conn)
    create_fact_tables(conn)
    conn.commit()
