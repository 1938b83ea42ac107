"""
Query Extractor

Turns a raw signal message into a search-ready query. The cleanup is
deterministic and idempotent: running it on its own output returns the
same string.

Pipeline:
1. Strip "at <where>:<line>:<col>" stack locations
2. Strip parenthesized content
3. Strip absolute URLs
4. Strip digit runs
5. Strip quotes
6. Trim
7. Pull a leading ``<Name>Error`` token to the front
8. Truncate to 100 characters
9. Fall back to the signal kind when nothing is left
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from ..common.schemas import Signal

MAX_QUERY_LENGTH = 100

# Applied in order; ASCII classes keep digit and word matching narrow
_CLEANUP_PATTERNS = [
    re.compile(r"at .+:[0-9]+:[0-9]+"),
    re.compile(r"\(.*\)"),
    re.compile(r"https?://[^\s]+"),
    re.compile(r"[0-9]+"),
    re.compile(r"['\"]"),
]

_ERROR_TYPE_PATTERN = re.compile(r"^(\w+Error|Error)", re.ASCII)


@dataclass
class SuggestionQuery:
    """Search query derived from one signal"""
    text: str
    error_type: Optional[str] = None
    tags: List[str] = field(default_factory=list)


def _clean(text: str) -> str:
    for pattern in _CLEANUP_PATTERNS:
        text = pattern.sub("", text)
    return text.strip()


def clean_message(message: str) -> str:
    """
    Apply the cleanup patterns until nothing changes.

    A single pass can expose a new match (removing a quote can join "http"
    and "://"), so the pass repeats to a fixed point.
    """
    text = message.strip()
    while True:
        cleaned = _clean(text)
        if cleaned == text:
            return cleaned
        text = cleaned


def extract_error_type(text: str) -> Optional[str]:
    match = _ERROR_TYPE_PATTERN.match(text)
    return match.group(1) if match else None


def extract_query_text(message: str, fallback: str = "") -> str:
    query = clean_message(message)

    error_type = extract_error_type(query)
    if error_type:
        rest = query.replace(error_type, "", 1).strip()
        query = f"{error_type} {rest}"

    query = query[:MAX_QUERY_LENGTH].rstrip()
    return query or fallback


def extract_query(signal: Signal) -> str:
    """Search query for ``signal``; never empty"""
    return extract_query_text(signal.message, fallback=signal.kind.value)


def classify(signal: Signal) -> SuggestionQuery:
    """Query text plus tags (kind, severity and, when present, error type)"""
    text = extract_query(signal)
    error_type = extract_error_type(text)

    tags = [signal.kind.value, signal.severity.value]
    if error_type:
        tags.append(error_type.lower())

    return SuggestionQuery(text=text, error_type=error_type, tags=tags)
