"""
Feedback Log

Helpful / not-helpful reports on suggestions, capped at the most recent
entries. Entries are mirrored into a KeyValueStore when one is given.
Nothing in suggestion ranking reads this log.
"""

import logging
import uuid
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..common.collaborators import KeyValueStore
from ..common.schemas import FeedbackEntry

logger = logging.getLogger("bugtrace.collector.feedback")

DEFAULT_CAPACITY = 1000


class FeedbackLog:
    """
    Usage:
        log = FeedbackLog(store=JsonFileStore(Path(config.feedback.path)))
        log.record("so-123", helpful=True)
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, store: Optional[KeyValueStore] = None):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self._capacity = capacity
        self._store = store
        self._entries: Deque[Tuple[str, FeedbackEntry]] = deque()
        self._load()

    def _load(self) -> None:
        """Restore entries from the store, oldest first"""
        if self._store is None:
            return

        try:
            raw = self._store.get_all()
        except Exception as e:
            logger.warning("Failed to read feedback store: %s", e)
            return

        loaded = []
        for key, value in raw.items():
            try:
                loaded.append((key, FeedbackEntry.model_validate(value)))
            except ValidationError as e:
                logger.warning("Skipping malformed feedback entry %s: %s", key, e)

        loaded.sort(key=lambda item: item[1].timestamp)
        self._entries = deque(loaded)
        self._trim()

    def _trim(self) -> None:
        while len(self._entries) > self._capacity:
            key, _ = self._entries.popleft()
            if self._store is not None:
                try:
                    self._store.delete(key)
                except Exception as e:
                    logger.warning("Failed to delete feedback %s: %s", key, e)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, suggestion_id: str, helpful: bool) -> FeedbackEntry:
        """Append one entry, evicting the oldest beyond capacity"""
        if not suggestion_id:
            raise ValueError("suggestion_id is required")

        entry = FeedbackEntry(suggestion_id=suggestion_id, helpful=helpful)
        key = f"fb_{uuid.uuid4().hex}"
        self._entries.append((key, entry))

        if self._store is not None:
            try:
                self._store.put(key, entry.model_dump(mode="json"))
            except Exception as e:
                logger.warning("Failed to persist feedback for %s: %s", suggestion_id, e)

        self._trim()
        return entry

    def entries(self) -> List[FeedbackEntry]:
        return [entry for _, entry in self._entries]

    def tally(self, suggestion_id: str) -> Dict[str, int]:
        """Helpful / not-helpful counts for one suggestion"""
        helpful = not_helpful = 0
        for _, entry in self._entries:
            if entry.suggestion_id != suggestion_id:
                continue
            if entry.helpful:
                helpful += 1
            else:
                not_helpful += 1
        return {"helpful": helpful, "not_helpful": not_helpful}
