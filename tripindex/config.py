# tripindex/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be an integer; got {v!r}") from err


def _getenv_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _getenv_list_int(name: str, default_csv: str) -> list[int]:
    raw = os.getenv(name, default_csv).strip()
    out: list[int] = []
    for tok in (t.strip() for t in raw.split(",")):
        if not tok:
            continue
        try:
            out.append(int(tok))
        except ValueError as err:
            raise ValueError(
                f"Environment variable {name} must be a CSV of integers; got {raw!r}"
            ) from err
    return out


# Load .env from project root if present
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)

DEFAULT_DB_PATH = "dev.db"


@dataclass(frozen=True)
class SearchConfig:
    default_limit: int
    max_limit: int
    max_query_tokens: int
    partial_ratio_threshold: int
    min_score: int


@dataclass(frozen=True)
class RefreshConfig:
    surface_batch_limit: int
    surface_max_limit: int
    facts_batch_limit: int


@dataclass(frozen=True)
class QueueConfig:
    queue_name: str
    rq_redis_url: str
    retry_schedule: list[int]
    job_timeout_seconds: int


@dataclass(frozen=True)
class AppConfig:
    database_url: str | None
    database_path: str
    log_level: str
    search: SearchConfig
    refresh: RefreshConfig
    queue: QueueConfig


def load_settings() -> AppConfig:
    """
    Build a fresh AppConfig from the current environment.

    Nothing is cached here: callers that want a stable snapshot keep the
    returned object, and tests can monkeypatch env vars and call again.
    """
    search = SearchConfig(
        default_limit=max(1, _getenv_int("TRIP_SEARCH_DEFAULT_LIMIT", 5)),
        max_limit=max(1, _getenv_int("TRIP_SEARCH_MAX_LIMIT", 50)),
        max_query_tokens=max(1, _getenv_int("TRIP_SEARCH_MAX_QUERY_TOKENS", 8)),
        partial_ratio_threshold=_getenv_int("TRIP_SEARCH_PARTIAL_RATIO", 85),
        min_score=max(1, _getenv_int("TRIP_SEARCH_MIN_SCORE", 1)),
    )
    refresh = RefreshConfig(
        surface_batch_limit=_getenv_int("SURFACE_REFRESH_BATCH_LIMIT", 100),
        surface_max_limit=_getenv_int("SURFACE_REFRESH_MAX_LIMIT", 500),
        facts_batch_limit=_getenv_int("FACTS_REFRESH_BATCH_LIMIT", 100),
    )
    queue = QueueConfig(
        queue_name=_getenv_str("QUEUE_NAME", "trip_refresh"),
        rq_redis_url=_getenv_str("RQ_REDIS_URL", "redis://127.0.0.1:6379/0"),
        retry_schedule=_getenv_list_int("RETRY_SCHEDULE", "5,30,120"),
        job_timeout_seconds=_getenv_int("JOB_TIMEOUT_SECONDS", 300),
    )
    database_url = os.getenv("DATABASE_URL") or None
    return AppConfig(
        database_url=database_url.strip() if database_url else None,
        database_path=_getenv_str("DATABASE_PATH", DEFAULT_DB_PATH) or DEFAULT_DB_PATH,
        log_level=_getenv_str("LOG_LEVEL", "INFO").upper() or "INFO",
        search=search,
        refresh=refresh,
        queue=queue,
    )
