"""
Knowledge sources for the suggestion aggregator.
"""

from .assistant import AssistantSource
from .base import HttpSource, SourceError, SourceUnauthorized, SuggestionSource
from .github import GitHubSource
from .mdn import MdnSource
from .stackoverflow import StackOverflowSource

__all__ = [
    "SuggestionSource",
    "HttpSource",
    "SourceError",
    "SourceUnauthorized",
    "StackOverflowSource",
    "GitHubSource",
    "MdnSource",
    "AssistantSource",
]
