# tripindex/search/backend.py
from __future__ import annotations

import sqlite3
from typing import Protocol

from tripindex.config import SearchConfig

from .ranking import MatchResult, TripSearchParams, search_trips
from .surface import SurfaceRefreshResult, TripSearchSurfaceSync


class SearchBackend(Protocol):
    """
    Interface the HTTP and CLI layers use for trip search.

    Callers depend on this protocol rather than on SQLite directly, so a
    backend can be swapped per app instance (and per test).
    """

    @property
    def conn(self) -> sqlite3.Connection:
        """
        Connection the refresh operations run against.
        """
        ...

    def search(self, params: TripSearchParams) -> list[MatchResult]:
        """
        Rank trips against params.query and return at most params.limit
        results (after clamping).
        """
        ...

    def refresh_trip(self, trip_id: int) -> SurfaceRefreshResult | None:
        """
        Recompute the stored search document for one trip.
        """
        ...


class SqliteSurfaceBackend:
    """
    SearchBackend over the trip_search_surface table.

    A thin wrapper over search_trips() + TripSearchSurfaceSync bound to one
    connection.
    """

    def __init__(self, conn: sqlite3.Connection, config: SearchConfig | None = None) -> None:
        self._conn = conn
        self._config = config
        self._sync = TripSearchSurfaceSync(conn)

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    @property
    def sync(self) -> TripSearchSurfaceSync:
        return self._sync

    def search(self, params: TripSearchParams) -> list[MatchResult]:
        return search_trips(self._conn, params.query, params.limit, config=self._config)

    def refresh_trip(self, trip_id: int) -> SurfaceRefreshResult | None:
        return self._sync.refresh_trip(trip_id)
