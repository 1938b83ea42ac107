"""
Suggestion Aggregator

Fans a query out to the selected knowledge sources concurrently, isolates
each source's failure, and merges the results into one capped list.

Merge rules:
- each source is capped to max_results before merging
- results are concatenated in selection order and de-duplicated by id
- the merged list is capped to max_results
- an optional stable sort by relevance or votes is applied last

Nothing is cached; every call re-queries every selected source.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from ..collector.feedback import FeedbackLog
from ..common.config import BugTraceConfig
from ..common.llm_client import LLMClient
from ..common.schemas import FeedbackEntry, Signal, Suggestion, SuggestionSourceName
from .query_extractor import classify
from .sources import (
    AssistantSource,
    GitHubSource,
    MdnSource,
    SourceUnauthorized,
    StackOverflowSource,
    SuggestionSource,
)

logger = logging.getLogger("bugtrace.suggest.aggregator")


class SourceStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    NOT_CONNECTED = "not_connected"


class SortOrder(str, Enum):
    RELEVANCE = "relevance"
    VOTES = "votes"


@dataclass
class SourceOutcome:
    """How one source fared in a fan-out"""
    source: str
    status: SourceStatus
    count: int = 0
    error: Optional[str] = None


@dataclass
class SuggestionBatch:
    """Merged result of one fan-out"""
    query: str
    suggestions: List[Suggestion] = field(default_factory=list)
    outcomes: List[SourceOutcome] = field(default_factory=list)

    @property
    def not_connected(self) -> List[str]:
        return [o.source for o in self.outcomes if o.status == SourceStatus.NOT_CONNECTED]

    @property
    def failed(self) -> List[str]:
        return [o.source for o in self.outcomes if o.status == SourceStatus.FAILED]


def _parse_sort(sort) -> Optional[SortOrder]:
    if sort is None or sort == "":
        return None
    return SortOrder(sort)


def _normalize_selection(sources: Sequence[str]) -> List[str]:
    selected = []
    for name in sources:
        value = SuggestionSourceName(name).value
        if value not in selected:
            selected.append(value)
    return selected


class SuggestionAggregator:
    """
    Usage:
        aggregator = SuggestionAggregator(build_sources(config), feedback=FeedbackLog())
        batch = await aggregator.fetch("TypeError Cannot read properties", ["stackoverflow", "mdn"], 5)
    """

    def __init__(
        self,
        sources: Iterable[SuggestionSource],
        feedback: Optional[FeedbackLog] = None,
        default_sources: Optional[Sequence[str]] = None,
        default_max_results: int = 10,
        default_sort=None,
    ):
        self._sources: Dict[str, SuggestionSource] = {s.name.value: s for s in sources}
        self._feedback = feedback or FeedbackLog()
        self._default_sources = list(default_sources or self._sources.keys())
        self._default_max_results = default_max_results
        self._default_sort = _parse_sort(default_sort)

    @property
    def available_sources(self) -> List[str]:
        return list(self._sources.keys())

    @property
    def feedback(self) -> FeedbackLog:
        return self._feedback

    async def fetch(
        self,
        query: str,
        sources: Optional[Sequence[str]] = None,
        max_results: Optional[int] = None,
        sort=None,
    ) -> SuggestionBatch:
        """
        Query every selected source and merge.

        Raises:
            ValueError: empty selection, unknown source name, unknown sort
                order, or max_results < 1
        """
        selected = _normalize_selection(sources if sources is not None else self._default_sources)
        if not selected:
            raise ValueError("At least one source must be selected")

        limit = self._default_max_results if max_results is None else max_results
        if limit < 1:
            raise ValueError(f"max_results must be positive, got {limit}")

        order = self._default_sort if sort is None else _parse_sort(sort)

        per_source = await asyncio.gather(
            *(self._run_source(name, query, limit) for name in selected)
        )

        merged: List[Suggestion] = []
        seen = set()
        outcomes = []
        for outcome, results in per_source:
            outcomes.append(outcome)
            for suggestion in results:
                if suggestion.id in seen:
                    continue
                seen.add(suggestion.id)
                merged.append(suggestion)

        merged = merged[:limit]
        if order == SortOrder.RELEVANCE:
            merged = sorted(merged, key=lambda s: s.relevance_score, reverse=True)
        elif order == SortOrder.VOTES:
            merged = sorted(merged, key=lambda s: s.vote_count, reverse=True)

        logger.debug(
            "Query %r: %d suggestions from %s",
            query, len(merged), ", ".join(f"{o.source}={o.status.value}" for o in outcomes),
        )
        return SuggestionBatch(query=query, suggestions=merged, outcomes=outcomes)

    async def _run_source(self, name: str, query: str, limit: int):
        source = self._sources.get(name)
        if source is None:
            return SourceOutcome(name, SourceStatus.NOT_CONNECTED, error="source not configured"), []

        try:
            results = await source.search(query, limit)
        except SourceUnauthorized as e:
            logger.warning("Source %s not connected: %s", name, e)
            return SourceOutcome(name, SourceStatus.NOT_CONNECTED, error=str(e)), []
        except Exception as e:
            logger.warning("Source %s failed: %s", name, e)
            return SourceOutcome(name, SourceStatus.FAILED, error=str(e)), []

        results = list(results)[:limit]
        return SourceOutcome(name, SourceStatus.OK, count=len(results)), results

    async def suggest(
        self,
        signal: Signal,
        sources: Optional[Sequence[str]] = None,
        max_results: Optional[int] = None,
        sort=None,
    ) -> SuggestionBatch:
        """Classify ``signal`` and fetch suggestions for its query"""
        query = classify(signal).text
        return await self.fetch(query, sources=sources, max_results=max_results, sort=sort)

    def record_feedback(self, suggestion_id: str, helpful: bool) -> FeedbackEntry:
        return self._feedback.record(suggestion_id, helpful)

    async def aclose(self) -> None:
        for source in self._sources.values():
            await source.aclose()


def build_sources(config: BugTraceConfig) -> List[SuggestionSource]:
    """Instantiate every known source from configuration"""
    timeout = config.suggestions.timeout
    return [
        StackOverflowSource(api_key=config.suggestions.stackexchange_key, timeout=timeout),
        GitHubSource(token=config.suggestions.github_token, timeout=timeout),
        MdnSource(),
        AssistantSource(LLMClient.from_config(config.llm)),
    ]
