"""
MDN Source

Static reference lookup for the well-known built-in error types.
No network access.
"""

from typing import List

from ...common.schemas import Suggestion, SuggestionSourceName
from .base import SuggestionSource

MDN_BASE = "https://developer.mozilla.org/en-US/docs/Web/JavaScript/Reference/Global_Objects"

MDN_REFERENCES = {
    "TypeError": (
        "The TypeError object represents an error when an operation could not be "
        "performed, typically when a value is not of the expected type."
    ),
    "ReferenceError": (
        "The ReferenceError object represents an error when a non-existent variable "
        "is referenced."
    ),
    "SyntaxError": (
        "The SyntaxError object represents an error when trying to interpret "
        "syntactically invalid code."
    ),
    "RangeError": (
        "The RangeError object indicates an error when a value is not in the set or "
        "range of allowed values."
    ),
}


class MdnSource(SuggestionSource):
    name = SuggestionSourceName.MDN

    async def search(self, query: str, max_results: int) -> List[Suggestion]:
        lowered = query.lower()
        results = []
        for error_type, excerpt in MDN_REFERENCES.items():
            if len(results) >= max_results:
                break
            if error_type.lower() in lowered:
                results.append(Suggestion(
                    id=f"mdn-{error_type}",
                    source=SuggestionSourceName.MDN,
                    title=f"{error_type} - JavaScript | MDN",
                    url=f"{MDN_BASE}/{error_type}",
                    excerpt=excerpt,
                    tags=["reference", error_type.lower()],
                    accepted=True,
                ))
        return results
