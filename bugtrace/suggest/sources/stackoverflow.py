"""
StackOverflow Source

Searches questions through the Stack Exchange API.
"""

from typing import List, Optional

import httpx

from ...common.schemas import Suggestion, SuggestionSourceName
from .base import HttpSource, decode_entities, make_excerpt

STACKEXCHANGE_API = "https://api.stackexchange.com/2.3"

# Includes body_markdown in search results
SEARCH_FILTER = "!9YdnSM5sM"
MAX_PAGE_SIZE = 20


class StackOverflowSource(HttpSource):
    name = SuggestionSourceName.STACKOVERFLOW

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_key: str = "",
        timeout: float = 10.0,
    ):
        super().__init__(client=client, timeout=timeout)
        self._api_key = api_key

    async def search(self, query: str, max_results: int) -> List[Suggestion]:
        params = {
            "order": "desc",
            "sort": "relevance",
            "q": query,
            "site": "stackoverflow",
            "pagesize": min(max_results, MAX_PAGE_SIZE),
            "filter": SEARCH_FILTER,
        }
        if self._api_key:
            params["key"] = self._api_key

        data = await self._get_json(f"{STACKEXCHANGE_API}/search/advanced", params)
        return [self._to_suggestion(item) for item in data.get("items", [])[:max_results]]

    @staticmethod
    def _to_suggestion(item: dict) -> Suggestion:
        score = item.get("score", 0) or 0
        return Suggestion(
            id=f"so-{item.get('question_id')}",
            source=SuggestionSourceName.STACKOVERFLOW,
            title=decode_entities(item.get("title")),
            url=item.get("link"),
            excerpt=make_excerpt(decode_entities(item.get("body_markdown"))),
            relevance_score=float(score),
            vote_count=int(score),
            tags=list(item.get("tags", [])),
            accepted=bool(item.get("is_answered", False)),
        )
