# tripindex/__init__.py
"""
Fuzzy-searchable trip index and per-trip fact rollups over SQLite.
"""

__version__ = "0.1.0"
