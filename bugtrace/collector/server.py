"""
Collector Server

FastAPI server hosting the aggregator: capture agents post relay messages
here, observers stream state over a websocket, and the presentation layer
pulls suggestions and records feedback.

Endpoints:
- GET /health: Health check
- GET /stats: Buffer, relay and feedback counters
- POST /relay: Any relay message envelope (SYNC_REQUEST is answered)
- GET /signals: Current buffer as a SYNC_RESPONSE
- GET /signals/{signal_id}: One buffered signal
- POST /tabs/{tab_scope}/navigation: Tab navigated, purge its signals
- WS /stream: Buffer on connect, then every STATE_BROADCAST
- GET /signals/{signal_id}/suggestions: Fan out to knowledge sources
- POST /feedback: Helpful / not-helpful on a suggestion
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from ..common.collaborators import JsonFileStore
from ..common.config import BugTraceConfig, ensure_directories, load_config
from ..relay import EventRelay, NavigationStarted, SyncResponse, parse_message
from ..suggest import SuggestionAggregator, build_sources
from .aggregator import Aggregator
from .feedback import FeedbackLog

load_dotenv()

logger = logging.getLogger("bugtrace.collector.server")

STREAM_QUEUE_SIZE = 100


# Global state
config: Optional[BugTraceConfig] = None
relay: Optional[EventRelay] = None
aggregator: Optional[Aggregator] = None
feedback_log: Optional[FeedbackLog] = None
suggestion_aggregator: Optional[SuggestionAggregator] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, relay, aggregator, feedback_log, suggestion_aggregator

    print("[Collector] Starting up...")

    ensure_directories()

    config = load_config()
    print(f"[Collector] Loaded config (buffer capacity: {config.collector.buffer_capacity})")

    # Relay with the aggregator as its authority
    relay = EventRelay()
    aggregator = Aggregator(
        capacity=config.collector.buffer_capacity,
        broadcast=relay.broadcast,
    )
    relay.attach_authority(aggregator.handle)

    # Feedback persisted next to the config
    feedback_log = FeedbackLog(
        capacity=config.feedback.capacity,
        store=JsonFileStore(Path(config.feedback.path).expanduser()),
    )
    print(f"[Collector] Feedback log: {len(feedback_log)} entries")

    suggestion_aggregator = SuggestionAggregator(
        build_sources(config),
        feedback=feedback_log,
        default_sources=config.suggestions.sources,
        default_max_results=config.suggestions.max_results,
        default_sort=config.suggestions.sort or None,
    )
    print(f"[Collector] Suggestion sources: {', '.join(config.suggestions.sources)}")

    print("[Collector] Ready to receive signals")

    yield

    # Cleanup
    print("[Collector] Shutting down...")
    if suggestion_aggregator is not None:
        await suggestion_aggregator.aclose()
    if relay is not None:
        relay.detach_authority()


app = FastAPI(
    title="BugTrace Collector",
    description="Runtime signal aggregation and fix suggestions",
    version="0.1.0",
    lifespan=lifespan
)


# =============================================================================
# Request/Response Models
# =============================================================================

class FeedbackSubmission(BaseModel):
    """Feedback on one suggestion"""
    suggestion_id: str
    helpful: bool


class NavigationSubmission(BaseModel):
    """Optional body for a navigation report"""
    timestamp: Optional[datetime] = None


def _require_aggregator() -> Aggregator:
    if aggregator is None:
        raise HTTPException(status_code=503, detail="Aggregator not initialized")
    return aggregator


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "collector",
        "initialized": aggregator is not None,
        "buffered": len(aggregator) if aggregator else 0,
        "sources": suggestion_aggregator.available_sources if suggestion_aggregator else [],
    }


@app.get("/stats")
async def get_stats():
    """Get collector statistics"""
    stats = {
        "service": "collector",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if aggregator:
        stats["buffer"] = aggregator.get_stats()
        stats["buffer"]["state"] = aggregator.state.value
        stats["tabs"] = aggregator.tabs.tab_count

    if relay:
        stats["relay"] = {"dropped": relay.dropped_count}

    if feedback_log:
        stats["feedback"] = {"entries": len(feedback_log), "capacity": feedback_log.capacity}

    return stats


@app.post("/relay")
async def receive_relay_message(request: Request):
    """
    Receive one relay message from a capture agent or observer.

    SIGNAL_CAPTURED and NAVIGATION_STARTED are acknowledged; SYNC_REQUEST is
    answered with the current buffer.
    """
    current = _require_aggregator()

    try:
        message = parse_message(await request.body())
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        raise HTTPException(status_code=422, detail=errors)

    response = current.handle(message)
    if response is not None:
        return response.model_dump(mode="json")
    return {"ok": True, "type": message.type}


@app.get("/signals")
async def get_signals():
    """Current buffer, oldest first"""
    current = _require_aggregator()
    return SyncResponse(signals=list(current.snapshot())).model_dump(mode="json")


@app.get("/signals/{signal_id}")
async def get_signal(signal_id: str):
    current = _require_aggregator()

    signal = current.get(signal_id)
    if signal is None:
        raise HTTPException(status_code=404, detail="Signal not found")
    return signal.model_dump(mode="json")


@app.post("/tabs/{tab_scope}/navigation")
async def tab_navigation(tab_scope: str, submission: Optional[NavigationSubmission] = None):
    """A tab started loading a new document; its signals are stale"""
    current = _require_aggregator()

    event = NavigationStarted(tab_scope=tab_scope)
    if submission is not None and submission.timestamp is not None:
        event = NavigationStarted(tab_scope=tab_scope, timestamp=submission.timestamp)

    removed = current.tabs.navigation_started(event.tab_scope, event.timestamp)
    return {"tab_scope": tab_scope, "removed": removed}


@app.websocket("/stream")
async def stream(ws: WebSocket):
    """
    Push the buffer on connect, then every state broadcast.

    A slow client loses the oldest queued broadcasts rather than holding up
    the aggregator.
    """
    if relay is None:
        await ws.close(code=1013)
        return

    await ws.accept()
    queue: asyncio.Queue = asyncio.Queue(maxsize=STREAM_QUEUE_SIZE)

    def _enqueue(message: BaseModel) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(message)

    unsubscribe = await relay.follow(_enqueue)

    async def _pump() -> None:
        while True:
            message = await queue.get()
            await ws.send_json(message.model_dump(mode="json"))

    async def _drain_client() -> None:
        while True:
            await ws.receive_text()

    pump = asyncio.create_task(_pump())
    listener = asyncio.create_task(_drain_client())
    try:
        done, _ = await asyncio.wait({pump, listener}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("Stream closed on error: %s", exc)
    finally:
        unsubscribe()
        for task in (pump, listener):
            task.cancel()


@app.get("/signals/{signal_id}/suggestions")
async def get_suggestions(
    signal_id: str,
    sources: Optional[str] = Query(None, description="Comma separated source names"),
    max_results: Optional[int] = Query(None),
    sort: Optional[str] = Query(None, description="relevance or votes"),
):
    """Classify a buffered signal and fetch suggestions for it"""
    current = _require_aggregator()
    if suggestion_aggregator is None:
        raise HTTPException(status_code=503, detail="Suggestion aggregator not initialized")

    signal = current.get(signal_id)
    if signal is None:
        raise HTTPException(status_code=404, detail="Signal not found")

    selected = None
    if sources is not None:
        selected = [s.strip() for s in sources.split(",") if s.strip()]

    try:
        batch = await suggestion_aggregator.suggest(
            signal, sources=selected, max_results=max_results, sort=sort
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "signal_id": signal_id,
        "query": batch.query,
        "suggestions": [s.model_dump(mode="json") for s in batch.suggestions],
        "outcomes": [
            {"source": o.source, "status": o.status.value, "count": o.count, "error": o.error}
            for o in batch.outcomes
        ],
    }


@app.post("/feedback")
async def submit_feedback(submission: FeedbackSubmission):
    """Record helpful / not-helpful feedback"""
    if suggestion_aggregator is None:
        raise HTTPException(status_code=503, detail="Suggestion aggregator not initialized")

    try:
        entry = suggestion_aggregator.record_feedback(submission.suggestion_id, submission.helpful)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"status": "recorded", "entry": entry.model_dump(mode="json")}


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the collector server"""
    import uvicorn

    config = load_config()

    print(f"[Collector] Starting server on {config.collector.host}:{config.collector.port}")
    uvicorn.run(
        "bugtrace.collector.server:app",
        host=config.collector.host,
        port=config.collector.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
