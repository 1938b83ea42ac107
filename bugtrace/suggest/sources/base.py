"""
Knowledge Source Base

Every source turns a query string into normalized Suggestions. Network
sources share an httpx.AsyncClient that callers may inject.
"""

import html
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ...common.schemas import Suggestion, SuggestionSourceName

logger = logging.getLogger("bugtrace.suggest.sources")

EXCERPT_LENGTH = 200


class SourceError(Exception):
    """A source could not produce results"""
    pass


class SourceUnauthorized(SourceError):
    """The source rejected our credentials, or has none to use"""
    pass


def make_excerpt(text: Optional[str]) -> str:
    return (text or "")[:EXCERPT_LENGTH] + "..."


def decode_entities(text: Optional[str]) -> str:
    return html.unescape(text or "")


class SuggestionSource(ABC):
    """Base class for knowledge sources"""

    name: SuggestionSourceName

    @abstractmethod
    async def search(self, query: str, max_results: int) -> List[Suggestion]:
        """
        Return up to ``max_results`` suggestions for ``query``.

        Raises:
            SourceUnauthorized: credentials missing or rejected
            SourceError: any other failure
        """

    async def aclose(self) -> None:
        return None


def _rate_limited(response: httpx.Response) -> bool:
    """A 403 caused by the rate limit, not by the credentials"""
    return response.headers.get("X-RateLimit-Remaining") == "0" or "Retry-After" in response.headers


class HttpSource(SuggestionSource):
    """Source backed by a JSON search endpoint"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._owns_client = client is None

    async def _get_json(
        self,
        url: str,
        params: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise SourceError(f"{self.name.value} request failed: {e}") from e

        if response.status_code == 401 or (response.status_code == 403 and not _rate_limited(response)):
            raise SourceUnauthorized(f"{self.name.value} rejected credentials ({response.status_code})")
        if response.status_code == 403:
            raise SourceError(f"{self.name.value} rate limit exceeded")
        if response.status_code >= 400:
            raise SourceError(f"{self.name.value} returned HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise SourceError(f"{self.name.value} returned invalid JSON") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
