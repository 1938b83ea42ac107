"""
BugTrace Suggest

Query extraction and multi-source suggestion lookup for captured signals.
"""

from .aggregator import (
    SortOrder,
    SourceOutcome,
    SourceStatus,
    SuggestionAggregator,
    SuggestionBatch,
    build_sources,
)
from .query_extractor import SuggestionQuery, classify, extract_query

__all__ = [
    "SuggestionAggregator",
    "SuggestionBatch",
    "SourceOutcome",
    "SourceStatus",
    "SortOrder",
    "build_sources",
    "SuggestionQuery",
    "classify",
    "extract_query",
]
