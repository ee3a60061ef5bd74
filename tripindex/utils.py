# tripindex/utils.py
"""
Shared utility functions used across the codebase.
"""
from __future__ import annotations

from datetime import UTC, date, datetime

from tripindex.exceptions import InvalidTripIdError


def utc_now_iso() -> str:
    """
    Return the current UTC time as an ISO 8601 string with 'Z' suffix.

    Example: "2025-01-15T14:30:00Z"
    """
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_iso_date(value: str | None) -> date | None:
    """
    Parse the date part of an ISO-ish string ("2025-06-01" or
    "2025-06-01T09:00:00"). Returns None for empty or unparseable input.
    """
    if not value:
        return None
    text = str(value).strip()[:10]
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def coerce_trip_id(value: object) -> int:
    """
    Validate and coerce a caller-supplied trip id.

    Accepts ints and digit strings; rejects bools, non-numeric strings,
    and non-positive values with InvalidTripIdError.
    """
    if isinstance(value, bool):
        raise InvalidTripIdError(f"trip_id must be an integer; got {value!r}")
    if isinstance(value, int):
        trip_id = value
    elif isinstance(value, str) and value.strip().isdigit():
        trip_id = int(value.strip())
    else:
        raise InvalidTripIdError(f"trip_id must be an integer; got {value!r}")
    if trip_id <= 0:
        raise InvalidTripIdError(f"trip_id must be positive; got {trip_id}")
    return trip_id
