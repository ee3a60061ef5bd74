# tripindex/search/__init__.py
"""
Trip search: normalization, phonetic keys, the denormalized search surface
and the fuzzy match ranker.

Writes flow source tables -> dirty queue -> TripSearchSurfaceSync ->
trip_search_surface. Reads flow query -> search_trips -> ranked MatchResult
list.
"""

from .backend import SearchBackend, SqliteSurfaceBackend
from .dirty_queue import DirtyQueue
from .normalize import normalize_text, tokenize
from .phonetic import phonetic_keys
from .ranking import MatchResult, TripSearchParams, search_trips
from .surface import SurfaceRefreshResult, TripSearchSurfaceSync

__all__ = [
    "DirtyQueue",
    "MatchResult",
    "SearchBackend",
    "SqliteSurfaceBackend",
    "SurfaceRefreshResult",
    "TripSearchParams",
    "TripSearchSurfaceSync",
    "normalize_text",
    "phonetic_keys",
    "search_trips",
    "tokenize",
]
