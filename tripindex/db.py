# tripindex/db.py
from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Iterable

from tripindex.config import load_settings
from tripindex.exceptions import ConfigError

_EMAIL_LOCAL_SPLIT_RE = re.compile(r"[._\-+]+")

# -------------------- basics --------------------


def _db_path() -> str:
    # Prefer DATABASE_URL if set; otherwise fall back to DATABASE_PATH; otherwise dev.db
    cfg = load_settings()
    url = cfg.database_url
    if url:
        if not url.startswith("sqlite:///"):
            raise ConfigError(f"Only sqlite is supported; got {url}")
        return url.removeprefix("sqlite:///")
    return cfg.database_path


def get_connection(
    db_path: str | None = None,
    *,
    check_same_thread: bool = True,
) -> sqlite3.Connection:
    """
    Shared SQLite connection helper for libraries, workers and scripts.

    - If db_path is None, uses _db_path() (DATABASE_URL/DATABASE_PATH/dev.db).
    - Ensures foreign key enforcement.
    - Sets row_factory to sqlite3.Row for dict-like access.

    Pass check_same_thread=False when the connection is shared with a web
    server threadpool (the API keeps one connection on app.state).
    """
    if db_path is None:
        db_path = _db_path()
    con = sqlite3.connect(db_path, check_same_thread=check_same_thread)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys=ON")
    return con


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ? LIMIT 1",
        (table,),
    ).fetchone()
    return row is not None


def dumps_list(values: Iterable[str]) -> str:
    # Compact, stable encoding so identical rosters serialize identically.
    return json.dumps(list(values), ensure_ascii=False, separators=(",", ":"))


def loads_list(raw: str | None) -> list[str]:
    """
    Decode a JSON list column. Empty, NULL or malformed values become [].
    """
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return []
    if not isinstance(data, list):
        return []
    return [str(v) for v in data if v is not None]


def derive_name_from_email(email: str | None) -> str | None:
    """
    'john.smith@example.com' -> 'John Smith'
    'no-email-2@example.com' -> 'No Email 2'

    Returns None when the local part has nothing usable.
    """
    if not email or "@" not in email:
        return None
    local = email.split("@", 1)[0]
    parts = [p for p in _EMAIL_LOCAL_SPLIT_RE.split(local) if p]
    if not parts:
        return None
    return " ".join(p[:1].upper() + p[1:].lower() for p in parts)
