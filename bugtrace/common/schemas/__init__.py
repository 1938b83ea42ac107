"""
BugTrace Schemas

Signal (captured observation) and Suggestion (normalized candidate fix).
"""

from .signal import (
    Signal,
    SignalKind,
    Severity,
    Location,
    NetworkDetails,
    SecurityDetails,
    PerformanceDetails,
    generate_signal_id,
)
from .suggestion import Suggestion, SuggestionSourceName, FeedbackEntry

__all__ = [
    "Signal",
    "SignalKind",
    "Severity",
    "Location",
    "NetworkDetails",
    "SecurityDetails",
    "PerformanceDetails",
    "generate_signal_id",
    "Suggestion",
    "SuggestionSourceName",
    "FeedbackEntry",
]
