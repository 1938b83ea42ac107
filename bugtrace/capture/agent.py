"""
Capture Agent

Installs interception hooks on an ExecutionContext, turns anomalous events
into Signals, and forwards each one to the collector through the relay.

Capture never interferes with the page: wrapped calls behave exactly like
the originals, and a fault inside the agent is logged and swallowed.
"""

import asyncio
import logging
import time
import traceback
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..common.config import CaptureConfig
from ..common.schemas import (
    Location,
    NetworkDetails,
    PerformanceDetails,
    SecurityDetails,
    Severity,
    Signal,
    SignalKind,
)
from ..relay.messages import SignalCaptured
from .context import (
    ERROR_EVENT,
    PERFORMANCE_EVENT,
    REJECTION_EVENT,
    ErrorEvent,
    ExecutionContext,
    PerformanceEntry,
    RejectionEvent,
)
from .interception import Interception
from .scanner import (
    INSECURE_COOKIE_MESSAGE,
    RISK_SEVERITY,
    insecure_cookies,
    missing_security_headers,
    scan_code,
)

logger = logging.getLogger("bugtrace.capture.agent")


def classify_status(status: Optional[int]) -> Optional[Severity]:
    """
    Severity for a completed request.

    ``None`` status means the transport failed without a response.
    Returns None for statuses that are not worth a signal.
    """
    if status is None:
        return Severity.ERROR
    if status >= 500:
        return Severity.ERROR
    if status >= 400:
        return Severity.WARNING
    return None


def _status_of(response: Any) -> Optional[int]:
    status = getattr(response, "status_code", None)
    if status is None:
        status = getattr(response, "status", None)
    return status


def _status_text_of(response: Any) -> str:
    return getattr(response, "reason_phrase", None) or getattr(response, "status_text", "") or ""


def _format_stack(error: BaseException) -> Optional[str]:
    if error.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


class CaptureAgent:
    """
    Per-tab capture agent.

    Usage:
        agent = CaptureAgent("tab-1", relay)
        interception = agent.install(context)
        agent.page_loaded()
        ...
        interception.revoke()
    """

    def __init__(
        self,
        tab_scope: str,
        relay: Any,
        config: Optional[CaptureConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not tab_scope:
            raise ValueError("tab_scope is required")

        self.tab_scope = tab_scope
        self._relay = relay
        self._config = config or CaptureConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last_timestamp: Optional[datetime] = None
        self._emitted = 0

        self._context: Optional[ExecutionContext] = None
        self._original_fetch: Optional[Callable] = None
        self._page_scan_task: Optional[asyncio.Task] = None
        self._page_scanned = False

    @property
    def emitted_count(self) -> int:
        return self._emitted

    # =========================================================================
    # Installation
    # =========================================================================

    def install(self, context: ExecutionContext) -> Interception:
        """Hook every capture surface of ``context``; revoke to undo"""
        interception = Interception()
        self._context = context
        self._page_scanned = False

        interception.replace(
            context.console, "error",
            lambda original: self._wrap_console(interception, original, Severity.ERROR),
        )
        interception.replace(
            context.console, "warn",
            lambda original: self._wrap_console(interception, original, Severity.WARNING),
        )
        interception.listen(context.events, ERROR_EVENT, self._on_error)
        interception.listen(context.events, REJECTION_EVENT, self._on_rejection)
        interception.listen(context.events, PERFORMANCE_EVENT, self._on_performance)
        self._original_fetch = interception.replace(
            context, "fetch", lambda original: self._wrap_fetch(interception, original)
        )
        interception.replace(
            context.transport, "send", lambda original: self._wrap_send(interception, original)
        )
        interception.add_cleanup(self._cancel_page_scan)

        logger.debug("Capture installed on %s (%d hooks)", self.tab_scope, interception.hook_count)
        return interception

    # =========================================================================
    # Emission
    # =========================================================================

    def _now(self) -> datetime:
        ts = self._clock()
        if self._last_timestamp is not None and ts < self._last_timestamp:
            ts = self._last_timestamp
        self._last_timestamp = ts
        return ts

    def capture(self, kind: SignalKind, severity: Severity, message: str, **fields) -> Signal:
        """Build a Signal and hand it to the relay"""
        signal = Signal(
            timestamp=self._now(),
            kind=kind,
            severity=severity,
            message=message,
            tab_scope=self.tab_scope,
            page_url=self._context.url if self._context is not None else None,
            **fields,
        )
        self._relay.send(SignalCaptured(signal=signal))
        self._emitted += 1
        return signal

    def _safely(self, fn: Callable, *args) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("Instrumentation fault in %s", getattr(fn, "__name__", fn))

    # =========================================================================
    # Console
    # =========================================================================

    def _wrap_console(self, interception: Interception, original: Callable, severity: Severity) -> Callable:
        def wrapper(*args, **kwargs):
            result = original(*args, **kwargs)
            if not interception.active:
                return result
            self._safely(self._emit_console, severity, args)
            return result

        wrapper.__wrapped__ = original
        return wrapper

    def _emit_console(self, severity: Severity, args: tuple) -> None:
        self.capture(SignalKind.CONSOLE, severity, " ".join(str(a) for a in args))

    # =========================================================================
    # Runtime errors / rejections / performance
    # =========================================================================

    def _on_error(self, event: ErrorEvent) -> None:
        self._safely(self._emit_error, event)

    def _emit_error(self, event: ErrorEvent) -> None:
        location = None
        if event.filename or event.lineno is not None:
            location = Location(url=event.filename, line=event.lineno, column=event.colno)
        self.capture(
            SignalKind.RUNTIME, Severity.ERROR, event.message,
            location=location, stack_trace=event.stack_trace,
        )

    def _on_rejection(self, event: RejectionEvent) -> None:
        self._safely(self._emit_rejection, event)

    def _emit_rejection(self, event: RejectionEvent) -> None:
        reason = event.reason
        stack = None
        if isinstance(reason, BaseException):
            message = str(reason) or type(reason).__name__
            stack = _format_stack(reason)
        else:
            message = str(reason)
        self.capture(SignalKind.PROMISE, Severity.ERROR, message, stack_trace=stack)

    def _on_performance(self, entry: PerformanceEntry) -> None:
        self._safely(self._emit_performance, entry)

    def _emit_performance(self, entry: PerformanceEntry) -> None:
        if entry.entry_type == "measure" and entry.duration > self._config.slow_operation_ms:
            self.capture(
                SignalKind.PERFORMANCE, Severity.WARNING,
                f"Slow operation detected: {entry.name} took {entry.duration:.2f}ms",
                performance_details=PerformanceDetails(name=entry.name, duration_ms=entry.duration),
            )
        elif entry.entry_type == "navigation":
            load_time = entry.load_event_end - entry.start_time
            if load_time > self._config.slow_load_ms:
                self.capture(
                    SignalKind.PERFORMANCE, Severity.WARNING,
                    f"Slow page load: {load_time:.2f}ms",
                    performance_details=PerformanceDetails(name=entry.name, duration_ms=load_time),
                )

    # =========================================================================
    # Network
    # =========================================================================

    def _wrap_fetch(self, interception: Interception, original: Callable) -> Callable:
        async def fetch(url, method: str = "GET", **kwargs):
            if not interception.active:
                return await original(url, method=method, **kwargs)
            started = time.perf_counter()
            try:
                response = await original(url, method=method, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - started) * 1000
                self._safely(self._emit_network_failure, str(url), method, e, elapsed)
                raise
            elapsed = (time.perf_counter() - started) * 1000
            self._safely(self._emit_network_response, str(url), method, response, elapsed)
            return response

        fetch.__wrapped__ = original
        return fetch

    def _wrap_send(self, interception: Interception, original: Callable) -> Callable:
        def send(method, url, callback, **kwargs):
            if not interception.active:
                return original(method, url, callback, **kwargs)
            started = time.perf_counter()

            def on_complete(response, error):
                if not interception.active:
                    return callback(response, error)
                elapsed = (time.perf_counter() - started) * 1000
                if error is not None:
                    self._safely(self._emit_network_failure, str(url), method, error, elapsed)
                else:
                    self._safely(self._emit_network_response, str(url), method, response, elapsed)
                return callback(response, error)

            return original(method, url, on_complete, **kwargs)

        send.__wrapped__ = original
        return send

    def _emit_network_response(self, url: str, method: str, response: Any, elapsed_ms: float) -> None:
        status = _status_of(response)
        if status is None:
            return
        severity = classify_status(status)
        if severity is None:
            return
        status_text = _status_text_of(response)
        self.capture(
            SignalKind.NETWORK, severity, f"HTTP {status}: {status_text}",
            network_details=NetworkDetails(
                url=url, method=method.upper(), status=status,
                status_text=status_text, response_time_ms=elapsed_ms,
            ),
        )

    def _emit_network_failure(self, url: str, method: str, error: BaseException, elapsed_ms: float) -> None:
        self.capture(
            SignalKind.NETWORK, Severity.ERROR, f"Network request failed: {error}",
            network_details=NetworkDetails(
                url=url, method=method.upper(), status=None,
                status_text=type(error).__name__, response_time_ms=elapsed_ms,
            ),
        )

    # =========================================================================
    # Static and page scans
    # =========================================================================

    def scan_scripts(self, sources=None) -> int:
        """
        Run the static detectors over ``sources`` (default: the context's
        inline scripts). Returns the number of signals emitted.
        """
        if sources is None:
            sources = self._context.scripts if self._context is not None else []

        findings = scan_code(sources)
        for finding in findings:
            detector = finding.detector
            self.capture(
                SignalKind.SECURITY, RISK_SEVERITY[detector.risk],
                f"Security vulnerability detected: {detector.description}",
                security_details=SecurityDetails(
                    pattern_type=detector.pattern_type,
                    match_count=finding.match_count,
                    risk=detector.risk,
                    remediation=detector.remediation,
                ),
            )
        return len(findings)

    async def scan_headers(self) -> int:
        """Same-origin HEAD request; one signal per missing security header"""
        if self._context is None:
            return 0

        fetch = self._original_fetch or self._context.fetch
        try:
            response = await asyncio.wait_for(
                fetch(self._context.url, method="HEAD"), self._config.request_timeout
            )
        except Exception as e:
            logger.debug("Header check skipped for %s: %s", self._context.url, e)
            return 0

        missing = missing_security_headers(response.headers)
        for header, message in missing:
            self.capture(
                SignalKind.SECURITY, Severity.WARNING, message,
                security_details=SecurityDetails(
                    pattern_type="Missing Header",
                    remediation=f"Send the {header} response header",
                ),
            )
        return len(missing)

    def scan_cookies(self) -> int:
        if self._context is None:
            return 0

        flagged = insecure_cookies(self._context.cookies, self._context.is_secure)
        for _ in flagged:
            self.capture(
                SignalKind.SECURITY, Severity.WARNING, INSECURE_COOKIE_MESSAGE,
                security_details=SecurityDetails(
                    pattern_type="Insecure Cookie",
                    remediation="Set the Secure attribute on cookies served over HTTPS",
                ),
            )
        return len(flagged)

    async def scan_page(self) -> None:
        """Static, header and cookie scans; runs at most once per install"""
        if self._page_scanned:
            return
        self._page_scanned = True

        self._safely(self.scan_scripts)
        try:
            await self.scan_headers()
        except Exception:
            logger.exception("Instrumentation fault in scan_headers")
        self._safely(self.scan_cookies)

    def page_loaded(self) -> Optional[asyncio.Task]:
        """
        Schedule the one-off page scan ``scan_delay`` seconds from now.

        Must be called from a running event loop. Repeated calls return the
        already scheduled task.
        """
        if self._page_scan_task is not None or self._page_scanned:
            return self._page_scan_task

        loop = asyncio.get_running_loop()
        self._page_scan_task = loop.create_task(self._delayed_page_scan())
        return self._page_scan_task

    async def _delayed_page_scan(self) -> None:
        await asyncio.sleep(self._config.scan_delay)
        await self.scan_page()

    def _cancel_page_scan(self) -> None:
        task = self._page_scan_task
        if task is not None and not task.done():
            task.cancel()
        self._page_scan_task = None
