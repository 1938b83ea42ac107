"""
Interception

A revocable capability handed to whoever instruments an execution context.
Every attribute it replaces and every listener it registers is recorded so
that ``revoke()`` puts the context back exactly as it was.
"""

import logging
from typing import Any, Callable, List, Tuple

from .context import EventTarget

logger = logging.getLogger("bugtrace.capture.interception")

_MISSING = object()


class Interception:
    """Record of the hooks installed on one context"""

    def __init__(self):
        # (target, name, original, own, wrapper) - ``own`` is the value found in
        # the instance __dict__, or _MISSING when the attribute came from the class
        self._patches: List[Tuple[Any, str, Any, Any, Any]] = []
        self._listeners: List[Tuple[EventTarget, str, Callable]] = []
        self._cleanups: List[Callable[[], None]] = []
        self._revoked = False

    @property
    def active(self) -> bool:
        return not self._revoked

    @property
    def hook_count(self) -> int:
        return len(self._patches) + len(self._listeners)

    def replace(self, target: Any, name: str, factory: Callable[[Any], Any]) -> Any:
        """
        Swap ``target.name`` for ``factory(original)``.

        Returns the original so the caller can still reach the unwrapped
        behaviour.
        """
        if self._revoked:
            raise RuntimeError("Interception already revoked")

        original = getattr(target, name)
        own = vars(target).get(name, _MISSING) if hasattr(target, "__dict__") else original
        wrapper = factory(original)
        setattr(target, name, wrapper)
        self._patches.append((target, name, original, own, wrapper))
        return original

    def listen(self, events: EventTarget, event: str, listener: Callable) -> None:
        if self._revoked:
            raise RuntimeError("Interception already revoked")

        events.add_listener(event, listener)
        self._listeners.append((events, event, listener))

    def add_cleanup(self, cleanup: Callable[[], None]) -> None:
        self._cleanups.append(cleanup)

    def revoke(self) -> None:
        """
        Undo every hook in reverse order. Calling it again does nothing.

        Interceptions may be revoked in any order: an attribute that another
        interception wrapped after this one is left alone, so wrappers must
        check ``active`` and call straight through once revoked.
        """
        if self._revoked:
            return
        self._revoked = True

        for target, name, original, own, wrapper in reversed(self._patches):
            if getattr(target, name, None) is not wrapper:
                # Wrapped again by a later interception
                logger.debug("Leaving %s in place, it was wrapped again", name)
                continue
            if own is _MISSING:
                # Attribute lived on the class; drop the instance override
                try:
                    delattr(target, name)
                except AttributeError:
                    setattr(target, name, original)
            else:
                setattr(target, name, own)

        for events, event, listener in reversed(self._listeners):
            events.remove_listener(event, listener)

        for cleanup in self._cleanups:
            try:
                cleanup()
            except Exception as e:
                logger.warning("Interception cleanup failed: %s", e)

        self._patches.clear()
        self._listeners.clear()
        self._cleanups.clear()
