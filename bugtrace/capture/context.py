"""
Execution Context

The instrumentable surface of one observed page: its console, its event
target for uncaught errors / unhandled rejections / performance entries, its
two network transports, and the inline script and cookie content available
to static scanning.

The host owns the context. A capture agent only touches it through an
Interception, which the host can revoke.
"""

import asyncio
import logging
import sys
import traceback
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlparse

import httpx

from ..common.config import CaptureConfig

logger = logging.getLogger("bugtrace.capture.context")

# Events dispatched on ExecutionContext.events
ERROR_EVENT = "error"
REJECTION_EVENT = "unhandledrejection"
PERFORMANCE_EVENT = "performance"


@dataclass
class ErrorEvent:
    """An uncaught error in the page"""
    message: str
    filename: Optional[str] = None
    lineno: Optional[int] = None
    colno: Optional[int] = None
    error: Optional[BaseException] = None
    stack: Optional[str] = None

    @property
    def stack_trace(self) -> Optional[str]:
        if self.stack:
            return self.stack
        if self.error is not None and self.error.__traceback__ is not None:
            return "".join(traceback.format_exception(
                type(self.error), self.error, self.error.__traceback__
            ))
        return None


@dataclass
class RejectionEvent:
    """An async failure nobody awaited"""
    reason: Any


@dataclass
class PerformanceEntry:
    """Timing entry; durations and times are milliseconds"""
    name: str
    entry_type: str  # "measure" or "navigation"
    duration: float = 0.0
    start_time: float = 0.0
    load_event_end: float = 0.0


class Console:
    """Page console; output goes to the ``bugtrace.page.console`` logger"""

    def __init__(self, sink: Optional[logging.Logger] = None):
        self._sink = sink or logging.getLogger("bugtrace.page.console")

    def _write(self, level: int, args: tuple) -> None:
        self._sink.log(level, " ".join(str(a) for a in args))

    def log(self, *args) -> None:
        self._write(logging.INFO, args)

    def info(self, *args) -> None:
        self._write(logging.INFO, args)

    def warn(self, *args) -> None:
        self._write(logging.WARNING, args)

    def error(self, *args) -> None:
        self._write(logging.ERROR, args)


class EventTarget:
    """Minimal listener registry; one failing listener never stops the rest"""

    def __init__(self):
        self._listeners: Dict[str, List[Callable[[Any], None]]] = defaultdict(list)

    def add_listener(self, event: str, listener: Callable[[Any], None]) -> None:
        self._listeners[event].append(listener)

    def remove_listener(self, event: str, listener: Callable[[Any], None]) -> None:
        if listener in self._listeners.get(event, []):
            self._listeners[event].remove(listener)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def dispatch(self, event: str, payload: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(payload)
            except Exception as e:
                logger.warning("Listener for %s failed: %s", event, e)


class HttpxFetch:
    """Promise-style transport: ``await fetch(url, method=...)``"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._owns_client = client is None

    async def __call__(self, url: str, method: str = "GET", **kwargs) -> httpx.Response:
        return await self._client.request(method, url, **kwargs)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class CallbackTransport:
    """
    Callback-style transport.

    ``send(method, url, callback)`` returns at once; the callback later
    receives ``(response, None)`` or ``(None, error)`` when no response
    arrived at all. Requires a running event loop.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._owns_client = client is None

    def send(self, method: str, url: str, callback: Callable, **kwargs) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        return loop.create_task(self._run(method, url, callback, **kwargs))

    async def _run(self, method: str, url: str, callback: Callable, **kwargs) -> None:
        try:
            response = await self._client.request(method, url, **kwargs)
        except Exception as e:
            callback(None, e)
            return
        callback(response, None)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class ExecutionContext:
    """
    One observed page.

    Usage:
        context = ExecutionContext.from_config("tab-1", "https://app.example.com/", config.capture)
        agent = CaptureAgent("tab-1", relay, config.capture)
        interception = agent.install(context)
        ...
        interception.revoke()
        await context.aclose()
    """

    def __init__(
        self,
        tab_scope: str,
        url: str,
        *,
        console: Optional[Console] = None,
        fetch: Optional[Callable] = None,
        transport: Optional[CallbackTransport] = None,
        scripts: Iterable[str] = (),
        cookies: Iterable[str] = (),
        request_timeout: float = 10.0,
    ):
        self.tab_scope = tab_scope
        self.url = url
        self.console = console or Console()
        self.events = EventTarget()
        # Transports built here are closed by aclose(); injected ones belong to the caller
        self._owned: List[Any] = []
        if fetch is None:
            fetch = HttpxFetch(timeout=request_timeout)
            self._owned.append(fetch)
        if transport is None:
            transport = CallbackTransport(timeout=request_timeout)
            self._owned.append(transport)
        self.fetch = fetch
        self.transport = transport
        self.scripts: List[str] = list(scripts)
        self.cookies: List[str] = list(cookies)

    @classmethod
    def from_config(cls, tab_scope: str, url: str, config: CaptureConfig, **kwargs) -> "ExecutionContext":
        return cls(tab_scope, url, request_timeout=config.request_timeout, **kwargs)

    async def aclose(self) -> None:
        """Close the transports this context created"""
        owned, self._owned = self._owned, []
        for transport in owned:
            await transport.aclose()

    @property
    def is_secure(self) -> bool:
        return urlparse(self.url).scheme == "https"

    def report_error(self, error: BaseException) -> None:
        """Dispatch an uncaught exception as an ``error`` event"""
        filename = lineno = None
        tb = error.__traceback__
        if tb is not None:
            frame = traceback.extract_tb(tb)[-1]
            filename, lineno = frame.filename, frame.lineno
        self.events.dispatch(ERROR_EVENT, ErrorEvent(
            message=f"{type(error).__name__}: {error}",
            filename=filename,
            lineno=lineno,
            error=error,
        ))

    def report_rejection(self, reason: Any) -> None:
        self.events.dispatch(REJECTION_EVENT, RejectionEvent(reason=reason))

    def report_performance(self, entry: PerformanceEntry) -> None:
        self.events.dispatch(PERFORMANCE_EVENT, entry)

    def bridge_asyncio(self, loop: asyncio.AbstractEventLoop) -> Callable[[], None]:
        """
        Route the loop's unhandled-exception reports into ``unhandledrejection``.

        The previous handler (or the loop default) still runs afterwards.
        Returns a callable that restores the previous handler.
        """
        previous = loop.get_exception_handler()

        def _handler(loop, ctx):
            exc = ctx.get("exception")
            self.report_rejection(exc if exc is not None else ctx.get("message", ""))
            if previous is not None:
                previous(loop, ctx)
            else:
                loop.default_exception_handler(ctx)

        loop.set_exception_handler(_handler)

        def _restore() -> None:
            loop.set_exception_handler(previous)

        return _restore

    def bridge_excepthook(self) -> Callable[[], None]:
        """
        Route ``sys.excepthook`` into ``error`` events, then chain to the
        previous hook. Returns a callable that restores it.
        """
        previous = sys.excepthook

        def _hook(exc_type, exc, tb):
            if exc is not None and exc.__traceback__ is None:
                exc = exc.with_traceback(tb)
            self.report_error(exc)
            previous(exc_type, exc, tb)

        sys.excepthook = _hook

        def _restore() -> None:
            sys.excepthook = previous

        return _restore
