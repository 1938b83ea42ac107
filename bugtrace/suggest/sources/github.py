"""
GitHub Source

Searches closed issues, and code snippets when a token is configured.
Code search requires authentication on the GitHub API, so without a token
only issue search runs.
"""

import logging
from typing import Dict, List, Optional

import httpx

from ...common.schemas import Suggestion, SuggestionSourceName
from .base import HttpSource, SourceError, SourceUnauthorized, make_excerpt

logger = logging.getLogger("bugtrace.suggest.sources.github")

GITHUB_API = "https://api.github.com"
MAX_PAGE_SIZE = 20
CODE_PAGE_SIZE = 10
USER_AGENT = "BugTrace"


class GitHubSource(HttpSource):
    name = SuggestionSourceName.GITHUB

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        token: str = "",
        timeout: float = 10.0,
    ):
        super().__init__(client=client, timeout=timeout)
        self._token = token

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def search(self, query: str, max_results: int) -> List[Suggestion]:
        results = await self.search_issues(query, max_results)

        if self._token and len(results) < max_results:
            try:
                results.extend(await self.search_code(query, max_results - len(results)))
            except SourceUnauthorized:
                raise
            except SourceError as e:
                logger.warning("GitHub code search failed: %s", e)

        return results[:max_results]

    async def search_issues(self, query: str, max_results: int) -> List[Suggestion]:
        params = {
            "q": f"{query} type:issue state:closed",
            "sort": "updated",
            "order": "desc",
            "per_page": min(max_results, MAX_PAGE_SIZE),
        }
        data = await self._get_json(f"{GITHUB_API}/search/issues", params, headers=self._headers())
        return [self._issue_to_suggestion(item) for item in data.get("items", [])[:max_results]]

    async def search_code(self, query: str, max_results: int) -> List[Suggestion]:
        if not self._token:
            raise SourceUnauthorized("GitHub code search needs a token")

        params = {
            "q": f"{query} extension:js OR extension:ts",
            "sort": "indexed",
            "per_page": min(max_results, CODE_PAGE_SIZE),
        }
        data = await self._get_json(f"{GITHUB_API}/search/code", params, headers=self._headers())
        return [self._code_to_suggestion(item) for item in data.get("items", [])[:max_results]]

    @staticmethod
    def _issue_to_suggestion(item: dict) -> Suggestion:
        reactions = item.get("reactions") or {}
        return Suggestion(
            id=f"gh-{item.get('id')}",
            source=SuggestionSourceName.GITHUB,
            title=item.get("title", ""),
            url=item.get("html_url"),
            excerpt=make_excerpt(item.get("body")),
            relevance_score=float(item.get("score", 0) or 0),
            vote_count=int(reactions.get("total_count", 0) or 0),
            tags=[label.get("name", "") for label in item.get("labels", []) if label.get("name")],
            accepted=item.get("state") == "closed",
        )

    @staticmethod
    def _code_to_suggestion(item: dict) -> Suggestion:
        repository = (item.get("repository") or {}).get("full_name", "")
        path = item.get("path", "")
        return Suggestion(
            id=f"gh-code-{repository}/{path}",
            source=SuggestionSourceName.GITHUB,
            title=f"{item.get('name', path)} in {repository}",
            url=item.get("html_url"),
            excerpt=path,
            relevance_score=float(item.get("score", 0) or 0),
            tags=["code"],
        )
