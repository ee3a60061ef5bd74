# tests/test_operations.py
from __future__ import annotations

import json

import pytest

from tripindex import operations
from tripindex.exceptions import InvalidTripIdError
from tripindex.facts.aggregator import FactsQuery
from tripindex.search.surface import TripSearchSurfaceSync


def test_refresh_single_trip(scenario_db):
    result = operations.refresh_trip_search_surface(scenario_db, 1)

    assert result["mode"] == "single"
    assert result["refreshed"] == 1
    assert result["found"] is True
    assert "chisholm" in result["tokens"]
    assert "kasam" in result["phonetic_tokens"]


def test_refresh_single_missing_trip(scenario_db):
    result = operations.refresh_trip_search_surface(scenario_db, 404)

    assert result["mode"] == "single"
    assert result["refreshed"] == 0
    assert result["found"] is False


def test_refresh_accepts_digit_string_trip_id(scenario_db):
    assert operations.refresh_trip_search_surface(scenario_db, "2")["refreshed"] == 1


@pytest.mark.parametrize("bad", ["abc", 0, -4, True])
def test_refresh_rejects_bad_trip_ids(scenario_db, bad):
    with pytest.raises(InvalidTripIdError):
        operations.refresh_trip_search_surface(scenario_db, bad)


def test_dirty_queue_and_drain_all_modes(scenario_db):
    sync = TripSearchSurfaceSync(scenario_db)
    for trip_id in (1, 2, 3):
        sync.mark_dirty(trip_id)

    batch = operations.refresh_trip_search_surface(scenario_db, limit=1)
    assert batch["mode"] == "dirty_queue"
    assert batch["refreshed"] == 1
    assert batch["remaining"] == 2

    rest = operations.refresh_trip_search_surface(scenario_db, drain_all=True)
    assert rest["mode"] == "drain_all"
    assert rest["refreshed"] == 2
    assert rest["remaining"] == 0


def test_refresh_all_mode(scenario_db):
    result = operations.refresh_trip_search_surface(scenario_db, refresh_all=True)

    assert result == {
        "mode": "refresh_all",
        "refreshed": 3,
        "message": "Rebuilt search surface for 3 trips",
    }


def test_refresh_trip_facts_returns_summary(scenario_db):
    facts = operations.refresh_trip_facts(scenario_db, 1)

    assert facts["trip_id"] == 1
    assert facts["total_nights"] == 10
    assert facts["traveler_count"] == 2
    assert facts["traveler_names"] == ["Stephanie Chisholm", "No Email 2"]
    assert operations.refresh_trip_facts(scenario_db, 404) is None
    assert operations.get_trip_facts(scenario_db, 1)["version"] == 1


def test_refresh_dirty_trip_facts(scenario_db):
    scenario_db.execute("INSERT INTO facts_dirty (trip_id, reason) VALUES (2, 'test')")
    scenario_db.commit()

    result = operations.refresh_dirty_trip_facts(scenario_db)

    assert result["refreshed"] == 1
    assert result["remaining"] == 0


def test_search_trips_payload_is_json_serializable(scenario_db):
    operations.refresh_trip_search_surface(scenario_db, refresh_all=True)

    payload = operations.search_trips(scenario_db, "Chisolm Stonleigh", limit=3)

    assert payload["limit"] == 3
    assert payload["count"] == 1
    assert payload["matches"][0]["trip_id"] == 1
    assert "phonetic_match" in payload["matches"][0]["match_reasons"]
    json.dumps(payload)


def test_search_trips_clamps_limit_in_payload(scenario_db):
    payload = operations.search_trips(scenario_db, "anything", limit=0)

    assert payload["limit"] == 5


def test_query_trip_facts_payload(scenario_db):
    for trip_id in (1, 2, 3):
        operations.refresh_trip_facts(scenario_db, trip_id)

    payload = operations.query_trip_facts(scenario_db, FactsQuery(client_email="chisholm.family@email.com"))

    assert payload["count"] == 1
    assert payload["limit"] == 20
    assert payload["facts"][0]["traveler_names"] == ["Stephanie Chisholm", "No Email 2"]
    json.dumps(payload)


def test_get_facts_stats(scenario_db):
    operations.refresh_trip_facts(scenario_db, 2)

    assert operations.get_facts_stats(scenario_db) == {
        "total_facts": 1,
        "oldest_computed": operations.get_trip_facts(scenario_db, 2)["last_computed"],
        "newest_computed": operations.get_trip_facts(scenario_db, 2)["last_computed"],
        "dirty_entries": 0,
        "dirty_trips": 0,
    }
