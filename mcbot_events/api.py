"""
REST API for the event pipeline.

Exposes the hub's query interface and the notifier's policy over HTTP so
tools outside the process can read history and tune notifications.

Run with:
    mcbot-events serve --config pipeline.yaml --port 8000
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from . import __version__
from .events.event_schema import Event, EventSeverity, PayloadSchemaError, UnknownEventKindError
from .pipeline import EventPipeline

logger = logging.getLogger(__name__)


# ============================================================================
# Pydantic Models for API
# ============================================================================

class EventOut(BaseModel):
    """One event as returned by history queries."""
    kind: str
    severity: EventSeverity
    timestamp: float
    description: str
    data: Dict[str, Any] = {}

    @classmethod
    def from_event(cls, event: Event) -> "EventOut":
        return cls(**event.to_dict())


class EventIn(BaseModel):
    """Request body for injecting an event."""
    kind: str = Field(..., min_length=1, description="Event kind, e.g. 'chat'")
    severity: EventSeverity = EventSeverity.INFO
    description: str = Field(..., description="One-line summary")
    data: Dict[str, Any] = Field(default_factory=dict, description="Kind-specific payload")


class HistorySizeRequest(BaseModel):
    size: int = Field(..., ge=0, description="New history capacity")


class EnabledRequest(BaseModel):
    enabled: bool


class NotifierStatus(BaseModel):
    enabled: bool
    important_kinds: List[str]


# ============================================================================
# App factory
# ============================================================================

def create_app(pipeline: Optional[EventPipeline] = None) -> FastAPI:
    """
    Build the FastAPI app around a pipeline.

    Args:
        pipeline: Pipeline to expose (a default one is created if omitted)
    """
    pipeline = pipeline or EventPipeline()

    app = FastAPI(
        title="mcbot-events API",
        description="History and notification policy for bot world events",
        version=__version__,
    )
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _notifier_status() -> NotifierStatus:
        return NotifierStatus(
            enabled=pipeline.notifier.enabled,
            important_kinds=sorted(pipeline.notifier.important_kinds),
        )

    @app.get("/health")
    async def health():
        """API health check."""
        return {
            "status": "ok",
            "version": __version__,
            "history_size": len(pipeline.hub),
        }

    @app.get("/events/history", response_model=List[EventOut])
    async def get_history(
        kind: Optional[str] = Query(None, description="Only events of this kind"),
        limit: Optional[int] = Query(None, ge=1, le=10_000),
    ):
        """Most recent events, oldest first."""
        limit = limit or pipeline.config.history_query_limit
        return [EventOut.from_event(e) for e in pipeline.hub.get_history(kind, limit)]

    @app.delete("/events/history")
    async def clear_history():
        pipeline.hub.clear_history()
        return {"cleared": True}

    @app.put("/events/history/size")
    async def set_history_size(request: HistorySizeRequest):
        pipeline.hub.set_max_history_size(request.size)
        return {"capacity": pipeline.hub.max_history_size, "size": len(pipeline.hub)}

    @app.post("/events", response_model=EventOut)
    async def inject_event(request: EventIn):
        """Emit an event as if a source had raised it."""
        try:
            event = await pipeline.hub.create_and_emit(
                request.kind, request.severity, request.description, request.data,
            )
        except (UnknownEventKindError, PayloadSchemaError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        return EventOut.from_event(event)

    @app.get("/events/stats")
    async def stats():
        return pipeline.stats()

    @app.get("/notifier", response_model=NotifierStatus)
    async def get_notifier():
        return _notifier_status()

    @app.put("/notifier/enabled", response_model=NotifierStatus)
    async def set_notifier_enabled(request: EnabledRequest):
        pipeline.notifier.set_enabled(request.enabled)
        logger.info(f"Notifier {'enabled' if request.enabled else 'disabled'} via API")
        return _notifier_status()

    @app.post("/notifier/important-kinds/{kind}", response_model=NotifierStatus)
    async def add_important_kind(kind: str):
        pipeline.notifier.add_important_kind(kind)
        return _notifier_status()

    @app.delete("/notifier/important-kinds/{kind}", response_model=NotifierStatus)
    async def remove_important_kind(kind: str):
        pipeline.notifier.remove_important_kind(kind)
        return _notifier_status()

    return app
