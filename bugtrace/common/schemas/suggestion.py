"""
Suggestion Schema

Common shape for results coming back from every knowledge source.
Suggestions are created fresh per query and never cached.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SuggestionSourceName(str, Enum):
    """Known knowledge sources"""
    STACKOVERFLOW = "stackoverflow"
    GITHUB = "github"
    MDN = "mdn"
    ASSISTANT = "assistant"


class Suggestion(BaseModel):
    """A normalized candidate solution"""
    id: str
    source: SuggestionSourceName
    title: str
    url: Optional[str] = None
    excerpt: str = ""
    relevance_score: float = 0.0
    vote_count: int = 0
    tags: List[str] = Field(default_factory=list)
    accepted: bool = False


class FeedbackEntry(BaseModel):
    """A helpful / not-helpful report on a suggestion"""
    suggestion_id: str
    helpful: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
