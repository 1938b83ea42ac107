"""
HTTP Relay Sender

Relay endpoint for a capture agent that runs outside the collector process.
Posts relay messages to the collector server's ``/relay`` endpoint with
httpx and pulls full state from ``/signals``.

Delivery is fire-and-forget exactly like the in-process relay: a collector
that is down or slow only costs the dropped message.
"""

import asyncio
import logging
from typing import List, Optional, Set

import httpx
from pydantic import BaseModel

from ..common.schemas import Signal
from .messages import SyncResponse
from .relay import RelayUnavailable

logger = logging.getLogger("bugtrace.relay.http")


class HttpRelaySender:
    """
    Usage:
        sender = HttpRelaySender("http://127.0.0.1:8765")
        agent = CaptureAgent("tab-1", sender)
        ...
        await sender.aclose()
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._owns_client = client is None
        self._pending: Set[asyncio.Task] = set()
        self._dropped = 0

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def send(self, message: BaseModel) -> None:
        """Schedule a POST and return immediately. Never raises."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._dropped += 1
            logger.debug("No running event loop, dropping %s", getattr(message, "type", message))
            return

        task = loop.create_task(self._post(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _post(self, message: BaseModel) -> None:
        try:
            response = await self._client.post(
                f"{self.base_url}/relay",
                json=message.model_dump(mode="json"),
            )
            response.raise_for_status()
        except Exception as e:
            self._dropped += 1
            logger.debug("Relay POST failed: %s", e)

    async def sync(self) -> List[Signal]:
        """
        Fetch the collector's current buffer.

        Raises:
            RelayUnavailable: the collector could not be reached
        """
        try:
            response = await self._client.get(f"{self.base_url}/signals")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RelayUnavailable(f"Collector unreachable: {e}") from e

        return SyncResponse.model_validate(response.json()).signals

    async def drain(self) -> None:
        """Wait for every scheduled POST to finish"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        if self._owns_client:
            await self._client.aclose()
