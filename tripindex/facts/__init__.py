# tripindex/facts/__init__.py
from .aggregator import FactAggregator, FactRow, FactsDrainReport, FactsQuery

__all__ = ["FactAggregator", "FactRow", "FactsDrainReport", "FactsQuery"]
