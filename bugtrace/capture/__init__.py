"""
BugTrace Capture

Per-page signal capture: the execution context abstraction, the revocable
interception handle, static scanners, and the capture agent.
"""

from .agent import CaptureAgent, classify_status
from .context import (
    CallbackTransport,
    Console,
    ErrorEvent,
    EventTarget,
    ExecutionContext,
    HttpxFetch,
    PerformanceEntry,
    RejectionEvent,
)
from .interception import Interception
from .scanner import DETECTORS, Detector, Finding, scan_code

__all__ = [
    "CaptureAgent",
    "classify_status",
    "CallbackTransport",
    "Console",
    "ErrorEvent",
    "EventTarget",
    "ExecutionContext",
    "HttpxFetch",
    "PerformanceEntry",
    "RejectionEvent",
    "Interception",
    "DETECTORS",
    "Detector",
    "Finding",
    "scan_code",
]
