# tests/test_cli.py
from __future__ import annotations

import json
import sqlite3

import pytest

from tripindex.cli import main


@pytest.fixture(autouse=True)
def _no_database_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)


def _run(capsys, db_path, *argv: str) -> tuple[int, str]:
    rc = main(["--db", str(db_path), *argv])
    return rc, capsys.readouterr().out


def test_init_db_is_idempotent(tmp_path, capsys):
    path = tmp_path / "fresh.db"

    assert _run(capsys, path, "init-db")[0] == 0
    rc, out = _run(capsys, path, "init-db")

    assert rc == 0
    assert "Schema applied." in out
    conn = sqlite3.connect(path)
    try:
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    finally:
        conn.close()
    assert {"trips", "trip_search_surface", "trip_search_surface_dirty", "trip_facts"} <= tables


def test_init_db_owned_only_skips_source_tables(tmp_path, capsys):
    path = tmp_path / "owned.db"

    assert _run(capsys, path, "init-db", "--owned-only")[0] == 0

    conn = sqlite3.connect(path)
    try:
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    finally:
        conn.close()
    assert "trip_search_surface" in tables
    assert "trips" not in tables


def test_refresh_all_then_search_json(scenario_db_path, capsys):
    rc, out = _run(capsys, scenario_db_path, "refresh-surface", "--refresh-all", "--json")
    assert rc == 0
    assert json.loads(out)["refreshed"] == 3

    rc, out = _run(capsys, scenario_db_path, "search", "Chisolm Stonleigh", "--limit", "3", "--json")
    assert rc == 0
    payload = json.loads(out)
    assert payload["matches"][0]["trip_id"] == 1
    assert "phonetic_match" in payload["matches"][0]["match_reasons"]


def test_search_human_output(scenario_db_path, capsys):
    _run(capsys, scenario_db_path, "refresh-surface", "--refresh-all")

    rc, out = _run(capsys, scenario_db_path, "search", "amalfi")

    assert rc == 0
    assert "=== Matches for 'amalfi' ===" in out
    assert "Amalfi Coast Escape" in out
    assert "travelers: Marco Bellini" in out


def test_refresh_surface_missing_trip_exits_1(scenario_db_path, capsys):
    rc, out = _run(capsys, scenario_db_path, "refresh-surface", "--trip-id", "999")

    assert rc == 1
    assert "not found" in out


def test_refresh_surface_bad_trip_id_exits_2(scenario_db_path, capsys):
    rc, out = _run(capsys, scenario_db_path, "refresh-surface", "--trip-id", "0")

    assert rc == 2
    assert out.startswith("error:")


def test_refresh_facts(scenario_db_path, capsys):
    rc, out = _run(capsys, scenario_db_path, "refresh-facts", "1", "--json")
    assert rc == 0
    assert json.loads(out)["total_nights"] == 10

    rc, out = _run(capsys, scenario_db_path, "refresh-facts", "404")
    assert rc == 1
    assert "Trip 404 not found." in out

    rc, _ = _run(capsys, scenario_db_path, "refresh-facts")
    assert rc == 2


def test_mark_dirty_then_drain(scenario_db_path, capsys):
    rc, out = _run(capsys, scenario_db_path, "mark-dirty", "2", "--reason", "manual")
    assert rc == 0
    assert "Marked trip 2 dirty (both)." in out

    rc, out = _run(capsys, scenario_db_path, "refresh-surface", "--json")
    assert json.loads(out)["refreshed"] == 1

    rc, out = _run(capsys, scenario_db_path, "refresh-facts", "--dirty", "--json")
    assert rc == 0
    assert json.loads(out)["refreshed"] == 1
    assert json.loads(out)["remaining"] == 0


def test_mark_dirty_single_queue(scenario_db_path, capsys):
    _run(capsys, scenario_db_path, "mark-dirty", "3", "--queue", "facts")

    conn = sqlite3.connect(scenario_db_path)
    try:
        surface = conn.execute("SELECT COUNT(*) FROM trip_search_surface_dirty").fetchone()[0]
        facts = conn.execute("SELECT COUNT(*) FROM facts_dirty").fetchone()[0]
    finally:
        conn.close()
    assert (surface, facts) == (0, 1)


def test_facts_query_and_stats(scenario_db_path, capsys):
    for trip_id in ("1", "2", "3"):
        _run(capsys, scenario_db_path, "refresh-facts", trip_id)

    rc, out = _run(capsys, scenario_db_path, "facts-query", "--destination", "dublin", "--json")
    assert rc == 0
    assert [f["trip_id"] for f in json.loads(out)["facts"]] == [1]

    rc, out = _run(capsys, scenario_db_path, "facts-query", "--trip-id", "3", "--trip-id", "2")
    assert rc == 0
    assert "=== Trip facts ===" in out
    assert "Marco Bellini" in out
    assert "Total: 2" in out

    rc, out = _run(capsys, scenario_db_path, "facts-query", "--start", "June 1")
    assert rc == 2
    assert out.startswith("error:")

    rc, out = _run(capsys, scenario_db_path, "facts-stats", "--json")
    assert rc == 0
    assert json.loads(out)["total_facts"] == 3


def test_dirty_facts_human_output_lists_missing_trips(scenario_db_path, capsys):
    _run(capsys, scenario_db_path, "mark-dirty", "404", "--queue", "facts")

    rc, out = _run(capsys, scenario_db_path, "refresh-facts", "--dirty")

    assert rc == 0
    assert "Refreshed: 0" in out
    assert "Missing: 404" in out
