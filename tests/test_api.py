# tests/test_api.py
from __future__ import annotations

import sqlite3
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from tripindex.api.app import app
from tripindex.search.backend import SqliteSurfaceBackend

# ---------------------------------------------------------------------------
# TestClient fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def client(scenario_db: sqlite3.Connection, search_config) -> Generator[TestClient, None, None]:
    """
    TestClient bound to the in-memory scenario database through an injected
    backend on app.state.
    """
    app.state.search_backend = SqliteSurfaceBackend(scenario_db, search_config)
    try:
        yield TestClient(app)
    finally:
        app.state.search_backend = None


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


def test_refresh_then_search_scenario(client):
    resp = client.post("/trips/search-surface/refresh", json={"refresh_all": True})
    assert resp.status_code == 200
    assert resp.json()["refreshed"] == 3

    resp = client.get("/trips/search", params={"q": "Chisolm Stonleigh", "limit": "3"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] >= 1
    top = data["matches"][0]
    assert top["trip_id"] == 1
    assert "phonetic_match" in top["match_reasons"]
    assert top["traveler_names"] == ["Stephanie Chisholm", "No Email 2"]


def test_search_blank_query_returns_empty_list(client):
    resp = client.get("/trips/search", params={"q": "   "})
    assert resp.status_code == 200
    assert resp.json()["matches"] == []


def test_search_rejects_non_integer_limit(client):
    resp = client.get("/trips/search", params={"q": "dublin", "limit": "lots"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_limit"


def test_refresh_single_and_missing_trip(client):
    ok = client.post("/trips/search-surface/refresh", json={"trip_id": 2})
    assert ok.status_code == 200
    assert ok.json()["mode"] == "single"
    assert ok.json()["refreshed"] == 1

    missing = client.post("/trips/search-surface/refresh", json={"trip_id": 999})
    assert missing.status_code == 200
    assert missing.json()["found"] is False


def test_refresh_rejects_non_positive_trip_id(client):
    resp = client.post("/trips/search-surface/refresh", json={"trip_id": 0})
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_trip_id"


def test_refresh_without_body_drains_queue(client, scenario_db):
    scenario_db.execute("INSERT INTO trip_search_surface_dirty (trip_id) VALUES (1)")
    scenario_db.commit()

    resp = client.post("/trips/search-surface/refresh")
    assert resp.status_code == 200
    assert resp.json()["mode"] == "dirty_queue"
    assert resp.json()["refreshed"] == 1


def test_facts_endpoints(client):
    assert client.get("/trips/3/facts").status_code == 404

    resp = client.post("/trips/3/facts/refresh")
    assert resp.status_code == 200
    facts = resp.json()
    assert facts["total_cost"] == 0
    assert facts["traveler_names"] == ["Marco Bellini"]

    stored = client.get("/trips/3/facts")
    assert stored.status_code == 200
    assert stored.json()["trip_id"] == 3


def test_facts_refresh_unknown_trip_is_404(client):
    resp = client.post("/trips/999/facts/refresh")
    assert resp.status_code == 404
    assert resp.json()["error"] == "trip_not_found"


def test_facts_refresh_dirty(client, scenario_db):
    scenario_db.execute("INSERT INTO facts_dirty (trip_id) VALUES (1), (2)")
    scenario_db.commit()

    resp = client.post("/trips/facts/refresh-dirty", json={"limit": 10})
    assert resp.status_code == 200
    assert resp.json()["refreshed"] == 2


def test_facts_query_and_stats(client):
    for trip_id in (1, 2, 3):
        assert client.post(f"/trips/{trip_id}/facts/refresh").status_code == 200

    resp = client.post(
        "/trips/facts/query",
        json={"filters": {"status": "confirmed", "date_range": {"start": "2025-07-01"}}},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["limit"] == 20
    assert [f["trip_id"] for f in data["facts"]] == [2]

    resp = client.post("/trips/facts/query", json={"limit": 500})
    assert resp.json()["limit"] == 100
    assert resp.json()["count"] == 3

    stats = client.get("/trips/facts/stats").json()
    assert stats["total_facts"] == 3
    assert stats["dirty_entries"] == 0

    assert "dirty_entries" not in client.get("/trips/facts/stats", params={"include_dirty": "false"}).json()


def test_facts_query_rejects_unknown_status(client):
    resp = client.post("/trips/facts/query", json={"filters": {"status": "archived"}})
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_filter"


def test_facts_endpoint_drops_deleted_trip(client, scenario_db):
    assert client.post("/trips/2/facts/refresh").status_code == 200
    scenario_db.execute("DELETE FROM trips WHERE trip_id = 2")
    scenario_db.commit()

    assert client.post("/trips/2/facts/refresh").status_code == 404
    assert client.get("/trips/2/facts").status_code == 404
