"""
Shared exception classes used across the codebase.

Absence of a trip is not an error here: lookups for unknown trip ids return
None. These classes cover bad caller input and bad configuration only.
"""

from __future__ import annotations


class InvalidTripIdError(ValueError):
    """
    Raised when a trip id cannot be interpreted as a positive integer.

    Examples:
        - "abc"
        - 0 or negative ids
        - booleans passed where an id is expected
    """

    pass


class InvalidQueryError(ValueError):
    """
    Raised when a search query is not a string.

    Empty or whitespace-only strings are valid and simply match nothing.
    """

    pass


class InvalidFilterError(ValueError):
    """
    Raised when a facts query filter is malformed: an unknown status or a
    date that is not YYYY-MM-DD.
    """

    pass


class ConfigError(RuntimeError):
    """
    Raised for configuration that cannot be honored, e.g. a DATABASE_URL
    with a scheme other than sqlite:///.
    """

    pass


__all__ = [
    "InvalidTripIdError",
    "InvalidQueryError",
    "InvalidFilterError",
    "ConfigError",
]
