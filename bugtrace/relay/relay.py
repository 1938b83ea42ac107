"""
Event Relay

Best-effort message passing between observed pages, the collector, and any
observers of collector state.

Delivery rules:
- send(): agent -> collector, at-most-once, fire-and-forget. Missing or
  failing collector is swallowed and never retried.
- request(): pull-based full-state fetch (SYNC_REQUEST -> SYNC_RESPONSE).
- broadcast(): collector -> observers, fire-and-forget, each observer
  isolated from the others.

Messages reach the collector in send order; broadcasts go out in the order
the collector accepted signals.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from pydantic import BaseModel

from .messages import SyncRequest, SyncResponse

logger = logging.getLogger("bugtrace.relay")

Handler = Callable[[BaseModel], Optional[BaseModel]]
Observer = Callable[[BaseModel], None]


class RelayUnavailable(Exception):
    """No collector is reachable for a request that needs an answer."""
    pass


class EventRelay:
    """
    In-process relay with one authority (the collector) and many observers.

    Usage:
        relay = EventRelay()
        relay.attach_authority(aggregator.handle)
        unsubscribe = relay.subscribe(print)
        relay.send(SignalCaptured(signal=signal))
    """

    def __init__(self):
        self._authority: Optional[Handler] = None
        self._observers: List[Observer] = []
        self._dropped = 0

    @property
    def is_connected(self) -> bool:
        return self._authority is not None

    @property
    def dropped_count(self) -> int:
        """Messages swallowed because delivery failed or nobody listened"""
        return self._dropped

    def attach_authority(self, handler: Handler) -> None:
        self._authority = handler

    def detach_authority(self) -> None:
        self._authority = None

    def send(self, message: BaseModel) -> None:
        """
        Fire-and-forget delivery to the collector.

        With a running event loop the message is delivered on the next loop
        iteration so the caller never waits on the collector; otherwise it
        is delivered inline. Never raises.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            self._deliver(message)
        else:
            loop.call_soon(self._deliver, message)

    def _deliver(self, message: BaseModel) -> None:
        handler = self._authority
        if handler is None:
            self._dropped += 1
            logger.debug("No collector attached, dropping %s", getattr(message, "type", message))
            return

        try:
            handler(message)
        except Exception as e:
            self._dropped += 1
            logger.debug("Delivery of %s failed: %s", getattr(message, "type", message), e)

    async def request(self, message: Optional[BaseModel] = None) -> SyncResponse:
        """
        Pull the collector's full state.

        Raises:
            RelayUnavailable: nothing is attached, or the collector gave no
                SYNC_RESPONSE
        """
        handler = self._authority
        if handler is None:
            raise RelayUnavailable("No collector attached")

        # Cross-context receive is a suspension point
        await asyncio.sleep(0)
        response = handler(message or SyncRequest())
        if not isinstance(response, SyncResponse):
            raise RelayUnavailable("Collector returned no sync response")
        return response

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer; returns a callable that removes it"""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    async def follow(self, observer: Observer) -> Callable[[], None]:
        """
        Subscribe and immediately replay history.

        The observer is registered before the sync request so no broadcast
        can fall between the two; it then receives a SYNC_RESPONSE holding
        the current state. When no collector is attached the replay is
        skipped.
        """
        unsubscribe = self.subscribe(observer)
        try:
            response = await self.request()
        except RelayUnavailable as e:
            logger.debug("History replay skipped: %s", e)
            return unsubscribe

        try:
            observer(response)
        except Exception as e:
            logger.debug("Observer failed on history replay: %s", e)
        return unsubscribe

    def broadcast(self, message: BaseModel) -> None:
        """Push to every observer; one failing observer never affects others"""
        for observer in list(self._observers):
            try:
                observer(message)
            except Exception as e:
                logger.debug("Observer failed on %s: %s", getattr(message, "type", message), e)
