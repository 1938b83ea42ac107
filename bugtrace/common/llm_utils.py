"""Helpers for reading structured answers out of LLM responses."""

from __future__ import annotations

import json
from typing import Any, List


def _strip_fences(raw: str) -> str:
    if not raw.lstrip().startswith("```"):
        return raw
    lines = [l for l in raw.split("\n") if not l.strip().startswith("```")]
    return "\n".join(lines)


def _slice_between(raw: str, opener: str, closer: str) -> Any:
    start = raw.find(opener)
    end = raw.rfind(closer) + 1
    if start < 0 or end <= start:
        return None
    try:
        return json.loads(raw[start:end])
    except json.JSONDecodeError:
        return None


def parse_llm_items(raw: str, key: str = "suggestions") -> List[dict]:
    """Extract a list of objects from an LLM answer.

    Accepts a bare JSON array, an object holding the array under ``key``,
    either of those wrapped in markdown fences, or embedded in preamble
    text. Anything that is not a dict inside the list is dropped. Returns an
    empty list when nothing usable is found.
    """
    if not raw:
        return []

    text = _strip_fences(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = _slice_between(text, "[", "]")
        if data is None:
            data = _slice_between(text, "{", "}")

    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]
