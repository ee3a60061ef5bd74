# tripindex/api/app.py
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tripindex import operations
from tripindex.config import load_settings
from tripindex.exceptions import InvalidFilterError, InvalidQueryError, InvalidTripIdError
from tripindex.facts.aggregator import FactsQuery
from tripindex.search.backend import SearchBackend, SqliteSurfaceBackend
from tripindex.search.ranking import TripSearchParams, resolve_limit

app = FastAPI(title="Trip Index API")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RefreshSurfaceRequest(BaseModel):
    trip_id: int | None = None
    drain_all: bool = False
    refresh_all: bool = False
    limit: int | None = None


class RefreshDirtyFactsRequest(BaseModel):
    limit: int | None = None


class DateRange(BaseModel):
    start: str | None = None
    end: str | None = None


class PriceRange(BaseModel):
    min: float | None = None
    max: float | None = None


class FactsFilters(BaseModel):
    destination: str | None = None
    client_email: str | None = None
    status: str | None = None
    date_range: DateRange | None = None
    price_range: PriceRange | None = None


class QueryFactsRequest(BaseModel):
    trip_ids: list[int] = []
    filters: FactsFilters | None = None
    limit: int | None = None

    def to_query(self) -> FactsQuery:
        f = self.filters or FactsFilters()
        dates = f.date_range or DateRange()
        prices = f.price_range or PriceRange()
        return FactsQuery(
            trip_ids=tuple(self.trip_ids),
            destination=f.destination,
            client_email=f.client_email,
            status=f.status,
            start_date=dates.start,
            end_date=dates.end,
            min_cost=prices.min,
            max_cost=prices.max,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error_response(status_code: int, error: str, detail: str) -> JSONResponse:
    """
    Helper to return a JSON error payload with a consistent shape.

    Example:
        { "error": "trip_not_found", "detail": "no trip with id 42" }
    """
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": detail},
    )


def _get_search_backend(request: Request) -> SearchBackend:
    """
    Lazily construct and cache a SqliteSurfaceBackend on app.state.

    Tests inject their own backend (bound to an in-memory database) by
    assigning app.state.search_backend before issuing requests.
    """
    backend: SearchBackend | None = getattr(request.app.state, "search_backend", None)
    if backend is not None:
        return backend

    from tripindex.db import get_connection

    conn = get_connection(check_same_thread=False)
    backend = SqliteSurfaceBackend(conn, load_settings().search)
    request.app.state.search_backend = backend
    return backend


def _parse_limit(raw: str | None) -> tuple[int | None, JSONResponse | None]:
    """
    Parse the optional limit query parameter.

    Non-integers are rejected with 400; zero or negative values are allowed
    through and clamped to the default by the ranker.
    """
    if raw is None or raw.strip() == "":
        return None, None
    try:
        return int(raw), None
    except ValueError:
        return None, _error_response(400, "invalid_limit", "limit must be an integer")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    return {"ok": True}


@app.get("/trips/search")
async def trips_search(request: Request, q: str = "", limit: str | None = None):
    """
    Ranked fuzzy trip search.

    Returns {"query", "limit", "count", "matches"}; each match carries
    score, match_reasons, matched_tokens and the traveler roster. An empty
    q yields an empty match list rather than an error.
    """
    limit_val, limit_error = _parse_limit(limit)
    if limit_error is not None:
        return limit_error

    backend = _get_search_backend(request)
    try:
        matches = backend.search(TripSearchParams(query=q, limit=limit_val))
    except InvalidQueryError as exc:
        return _error_response(400, "invalid_query", str(exc))

    return {
        "query": q,
        "limit": resolve_limit(limit_val, load_settings().search),
        "count": len(matches),
        "matches": [m.to_dict() for m in matches],
    }


@app.post("/trips/search-surface/refresh")
async def refresh_search_surface(request: Request, body: RefreshSurfaceRequest | None = None):
    body = body or RefreshSurfaceRequest()
    backend = _get_search_backend(request)
    try:
        return operations.refresh_trip_search_surface(
            backend.conn,
            body.trip_id,
            drain_all=body.drain_all,
            refresh_all=body.refresh_all,
            limit=body.limit,
        )
    except InvalidTripIdError as exc:
        return _error_response(400, "invalid_trip_id", str(exc))


@app.post("/trips/facts/refresh-dirty")
async def refresh_dirty_facts(request: Request, body: RefreshDirtyFactsRequest | None = None):
    body = body or RefreshDirtyFactsRequest()
    backend = _get_search_backend(request)
    return operations.refresh_dirty_trip_facts(backend.conn, body.limit)


@app.post("/trips/facts/query")
async def query_facts(request: Request, body: QueryFactsRequest | None = None):
    """
    Filtered fact rows for reporting: {"limit", "count", "facts"}.
    limit defaults to 20 and is capped at 100.
    """
    body = body or QueryFactsRequest()
    backend = _get_search_backend(request)
    try:
        return operations.query_trip_facts(backend.conn, body.to_query(), body.limit)
    except InvalidFilterError as exc:
        return _error_response(400, "invalid_filter", str(exc))


@app.get("/trips/facts/stats")
async def facts_stats(request: Request, include_dirty: bool = True):
    backend = _get_search_backend(request)
    return operations.get_facts_stats(backend.conn, include_dirty=include_dirty)


@app.post("/trips/{trip_id}/facts/refresh")
async def refresh_facts(request: Request, trip_id: int):
    backend = _get_search_backend(request)
    try:
        facts = operations.refresh_trip_facts(backend.conn, trip_id)
    except InvalidTripIdError as exc:
        return _error_response(400, "invalid_trip_id", str(exc))
    if facts is None:
        return _error_response(404, "trip_not_found", f"no trip with id {trip_id}")
    return facts


@app.get("/trips/{trip_id}/facts")
async def get_facts(request: Request, trip_id: int):
    backend = _get_search_backend(request)
    try:
        facts = operations.get_trip_facts(backend.conn, trip_id)
    except InvalidTripIdError as exc:
        return _error_response(400, "invalid_trip_id", str(exc))
    if facts is None:
        return _error_response(404, "facts_not_found", f"no facts stored for trip {trip_id}")
    return facts
