"""
Assistant Source

Asks the configured LLM for likely causes and fixes of an error. Results
carry no URL; each one is a short, self-contained fix description.
"""

import hashlib
import logging
from typing import List

from ...common.llm_client import LLMClient
from ...common.llm_utils import parse_llm_items
from ...common.schemas import Suggestion, SuggestionSourceName
from .base import EXCERPT_LENGTH, SourceError, SourceUnauthorized, SuggestionSource

logger = logging.getLogger("bugtrace.suggest.sources.assistant")

SYSTEM_PROMPT = "You are a senior web developer who diagnoses browser runtime errors."

FIX_PROMPT = """A web page reported this error:

{query}

Suggest up to {max_results} concrete fixes, most likely first.
Respond with JSON only, in this shape:
{{"suggestions": [{{"title": "short fix title", "explanation": "what to change and why", "confidence": 0.0}}]}}"""


class AssistantSource(SuggestionSource):
    name = SuggestionSourceName.ASSISTANT

    def __init__(self, llm_client: LLMClient, timeout: float = 30.0, max_tokens: int = 800):
        self._llm = llm_client
        self._timeout = timeout
        self._max_tokens = max_tokens

    async def search(self, query: str, max_results: int) -> List[Suggestion]:
        if not self._llm.is_available:
            raise SourceUnauthorized("No LLM provider configured")

        prompt = FIX_PROMPT.format(query=query, max_results=max_results)
        try:
            raw = await self._llm.agenerate(
                prompt,
                system=SYSTEM_PROMPT,
                max_tokens=self._max_tokens,
                timeout=self._timeout,
            )
        except Exception as e:
            raise SourceError(f"LLM request failed: {e}") from e

        items = parse_llm_items(raw)
        if not items:
            logger.debug("LLM answer held no suggestions")

        results = []
        for item in items[:max_results]:
            title = str(item.get("title", "")).strip()
            if not title:
                continue
            try:
                confidence = float(item.get("confidence", 0.0))
            except (TypeError, ValueError):
                confidence = 0.0
            digest = hashlib.sha1(f"{query}\n{title}".encode("utf-8")).hexdigest()[:12]
            results.append(Suggestion(
                id=f"ai-{digest}",
                source=SuggestionSourceName.ASSISTANT,
                title=title,
                excerpt=str(item.get("explanation", ""))[:EXCERPT_LENGTH],
                relevance_score=max(0.0, min(confidence, 1.0)),
                tags=["assistant"],
            ))
        return results
