"""
Event Relay - Cross-Context Signal Transport

Moves signals from capture agents to the collector and redistributes
collector state to observers.

Key Components:
- EventRelay: in-process relay (authority + observers)
- HttpRelaySender: agent-side relay for a collector in another process
- messages: SIGNAL_CAPTURED, NAVIGATION_STARTED, SYNC_REQUEST/RESPONSE,
  STATE_BROADCAST
"""

from .messages import (
    SignalCaptured,
    NavigationStarted,
    SyncRequest,
    SyncResponse,
    StateBroadcast,
    RelayMessage,
    parse_message,
)
from .relay import EventRelay, RelayUnavailable
from .http_sender import HttpRelaySender

__all__ = [
    "SignalCaptured",
    "NavigationStarted",
    "SyncRequest",
    "SyncResponse",
    "StateBroadcast",
    "RelayMessage",
    "parse_message",
    "EventRelay",
    "RelayUnavailable",
    "HttpRelaySender",
]
