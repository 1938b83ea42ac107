"""
Aggregator

Single authority over the bounded signal buffer. It accepts signals from
the relay, evicts the oldest once the buffer is full, purges a tab's
signals when that tab navigates, and broadcasts the new state to observers
after every change.

Eviction is strict FIFO by arrival order; severity never buys a signal a
longer stay.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Deque, Dict, Optional, Set, Tuple

from pydantic import BaseModel

from ..common.schemas import Signal
from ..relay.messages import (
    NavigationStarted,
    SignalCaptured,
    StateBroadcast,
    SyncRequest,
    SyncResponse,
)

logger = logging.getLogger("bugtrace.collector.aggregator")

DEFAULT_CAPACITY = 200


class BufferState(str, Enum):
    EMPTY = "empty"
    POPULATED = "populated"


class TabLifecycle:
    """
    Tracks navigation per tab and invalidates the tab's signals when a new
    document starts loading.
    """

    def __init__(self, invalidate: Callable[[str], int]):
        self._invalidate = invalidate
        self._navigations: Dict[str, datetime] = {}

    def navigation_started(self, tab_scope: str, timestamp: Optional[datetime] = None) -> int:
        """Record the navigation and purge the tab. Returns the removed count."""
        self._navigations[tab_scope] = timestamp or datetime.now(timezone.utc)
        return self._invalidate(tab_scope)

    def last_navigation(self, tab_scope: str) -> Optional[datetime]:
        return self._navigations.get(tab_scope)

    @property
    def tab_count(self) -> int:
        return len(self._navigations)


class Aggregator:
    """
    Bounded, ordered signal buffer.

    Usage:
        relay = EventRelay()
        aggregator = Aggregator(capacity=200, broadcast=relay.broadcast)
        relay.attach_authority(aggregator.handle)
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        broadcast: Optional[Callable[[StateBroadcast], None]] = None,
    ):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self._capacity = capacity
        self._broadcast = broadcast
        self._signals: Deque[Signal] = deque()
        self._ids: Set[str] = set()
        self.tabs = TabLifecycle(self.invalidate)

        self._accepted = 0
        self._evicted = 0
        self._duplicates = 0
        self._purged = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def state(self) -> BufferState:
        return BufferState.POPULATED if self._signals else BufferState.EMPTY

    def __len__(self) -> int:
        return len(self._signals)

    def snapshot(self) -> Tuple[Signal, ...]:
        """Ordered, immutable view of the buffer (oldest first)"""
        return tuple(self._signals)

    def get(self, signal_id: str) -> Optional[Signal]:
        if signal_id not in self._ids:
            return None
        for signal in self._signals:
            if signal.id == signal_id:
                return signal
        return None

    def accept(self, signal: Signal) -> bool:
        """
        Append a signal, evicting the oldest on overflow, then broadcast.

        A signal whose id is already buffered is ignored (returns False).
        """
        if signal.id in self._ids:
            self._duplicates += 1
            logger.debug("Duplicate signal ignored: %s", signal.id)
            return False

        self._signals.append(signal)
        self._ids.add(signal.id)
        self._accepted += 1

        while len(self._signals) > self._capacity:
            evicted = self._signals.popleft()
            self._ids.discard(evicted.id)
            self._evicted += 1

        self._publish()
        return True

    def invalidate(self, tab_scope: str) -> int:
        """Remove every signal of ``tab_scope``; broadcast only if any went"""
        kept = [s for s in self._signals if s.tab_scope != tab_scope]
        removed = len(self._signals) - len(kept)
        if removed == 0:
            return 0

        self._signals = deque(kept)
        self._ids = {s.id for s in kept}
        self._purged += removed
        logger.debug("Purged %d signals for tab %s", removed, tab_scope)

        self._publish()
        return removed

    def clear(self) -> None:
        self._signals.clear()
        self._ids.clear()
        self._publish()

    def _publish(self) -> None:
        if self._broadcast is None:
            return
        try:
            self._broadcast(StateBroadcast(signals=list(self._signals)))
        except Exception as e:
            logger.warning("State broadcast failed: %s", e)

    def handle(self, message: BaseModel) -> Optional[BaseModel]:
        """Relay authority entry point"""
        if isinstance(message, SignalCaptured):
            self.accept(message.signal)
            return None
        if isinstance(message, NavigationStarted):
            self.tabs.navigation_started(message.tab_scope, message.timestamp)
            return None
        if isinstance(message, SyncRequest):
            return SyncResponse(signals=list(self._signals))

        logger.debug("Ignoring relay message %s", getattr(message, "type", type(message).__name__))
        return None

    def get_stats(self) -> Dict[str, int]:
        return {
            "buffered": len(self._signals),
            "capacity": self._capacity,
            "accepted": self._accepted,
            "evicted": self._evicted,
            "duplicates": self._duplicates,
            "purged": self._purged,
        }
