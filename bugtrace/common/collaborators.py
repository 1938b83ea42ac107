"""
Collaborator Interfaces

Narrow interfaces the core consumes but does not own:

- KeyValueStore: keyed persistence for feedback and saved fixes. The core
  only needs eventual durability, never synchronous confirmation.
- IssuePublisher: files a signal into an external tracker. Only UI flows
  invoke it; nothing in the core does.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Protocol, runtime_checkable

from .schemas import Signal

logger = logging.getLogger("bugtrace.common.collaborators")


@runtime_checkable
class KeyValueStore(Protocol):
    """Keyed store used for feedback and saved fixes"""

    def put(self, key: str, value: Any) -> None: ...

    def get_all(self) -> Dict[str, Any]: ...

    def delete(self, key: str) -> None: ...


@dataclass
class IssueHandle:
    """Reference to an issue created in an external tracker"""
    id: int
    number: int
    title: str
    url: str
    state: str = "open"


@runtime_checkable
class IssuePublisher(Protocol):
    """Creates an issue describing a signal in an external repository"""

    async def create_issue(self, repository_id: str, signal: Signal) -> IssueHandle: ...


class MemoryStore:
    """In-process KeyValueStore"""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def get_all(self) -> Dict[str, Any]:
        return dict(self._data)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """
    KeyValueStore persisted as a single JSON object on disk.

    The whole file is rewritten on every change; values must be JSON
    serializable (datetimes are written with ``str``).
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._data: Dict[str, Any] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        """Load store from disk"""
        if not self._path.exists():
            self._data = {}
            return

        try:
            with open(self._path) as f:
                data = json.load(f)
            self._data = data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load store %s: %s", self._path, e)
            self._data = {}

    def _save(self) -> None:
        """Save store to disk"""
        self._path.parent.mkdir(parents=True, exist_ok=True)

        with open(self._path, "w") as f:
            json.dump(self._data, f, indent=2, default=str)

        self._path.chmod(0o600)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._save()

    def get_all(self) -> Dict[str, Any]:
        return dict(self._data)

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._save()
