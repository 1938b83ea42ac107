"""
BugTrace Collector

The single authority over captured signals: the bounded aggregator, tab
lifecycle invalidation, the feedback log, and the FastAPI server exposing
them.
"""

from .aggregator import Aggregator, BufferState, TabLifecycle
from .feedback import FeedbackLog

__all__ = [
    "Aggregator",
    "BufferState",
    "TabLifecycle",
    "FeedbackLog",
]
