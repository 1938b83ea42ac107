"""
BugTrace

Runtime telemetry for observed pages: capture failure signals, relay them to a
single bounded collector, and turn a captured signal into ranked candidate
fixes pulled from several knowledge sources.

Pipeline:
    capture (CaptureAgent) -> relay (EventRelay) -> collector (Aggregator)
        -> suggest (extract_query -> SuggestionAggregator)

Usage:
    from bugtrace.common import load_config
    from bugtrace.common.schemas import Signal, Suggestion
    from bugtrace.capture import CaptureAgent, ExecutionContext
    from bugtrace.relay import EventRelay
    from bugtrace.collector import Aggregator, TabLifecycle, FeedbackLog
    from bugtrace.suggest import SuggestionAggregator, extract_query
"""

__version__ = "0.1.0"
