"""
BugTrace Common Module

Shared infrastructure for the capture, relay, collector and suggest packages.
"""

from .config import BugTraceConfig, load_config
from .collaborators import KeyValueStore, MemoryStore, JsonFileStore, IssuePublisher, IssueHandle
from .llm_client import LLMClient

__all__ = [
    "BugTraceConfig",
    "load_config",
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "IssuePublisher",
    "IssueHandle",
    "LLMClient",
]
