"""
Pipeline wiring.

Builds the hub and notifier from a config, attaches the notifier as a
wildcard listener and adapts bot sources on request. Everything is
constructed explicitly and passed by reference; there is no global hub.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .config import PipelineConfig
from .events.event_adapter import BotEventAdapter
from .events.hub import WILDCARD, EventHub
from .events.notifier import EventNotifier
from .metrics import MetricsCollector

logger = logging.getLogger(__name__)


class EventPipeline:
    """
    Owns one hub, one notifier and the adapters feeding them.

    Example:
        >>> pipeline = EventPipeline(load_config("pipeline.yaml"), host=server)
        >>> pipeline.attach_source(bot)
        >>> ...
        >>> pipeline.shutdown()
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        host: Any = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or PipelineConfig()
        self.config.validate()
        self.metrics = metrics or MetricsCollector()

        self.hub = EventHub(
            max_history=self.config.history_size,
            metrics=self.metrics,
        )
        self.notifier = EventNotifier(
            host=host,
            enabled=self.config.notifications_enabled,
            important_kinds=self.config.important_kinds,
            topic=self.config.notification_topic,
            prompt_name=self.config.prompt_name,
            metrics=self.metrics,
        )
        self.notifier.attach(self.hub)
        self.adapters: List[BotEventAdapter] = []
        self._closed = False

    def set_host(self, host: Any) -> None:
        """Point the notifier at a (new) outward channel."""
        self.notifier.set_host(host)

    def attach_source(
        self,
        source: Any,
        clock: Optional[Callable[[], float]] = None,
    ) -> BotEventAdapter:
        """Adapt a bot source and register its signal handlers."""
        if self._closed:
            raise RuntimeError("pipeline has been shut down")
        adapter = BotEventAdapter(
            source,
            self.hub,
            clock=clock,
            move_interval_ms=self.config.move_interval_ms,
            metrics=self.metrics,
        )
        adapter.register_all()
        self.adapters.append(adapter)
        return adapter

    async def flush(self) -> None:
        """Wait for every adapter's queued events to be emitted."""
        for adapter in list(self.adapters):
            await adapter.flush()

    def stats(self) -> Dict[str, Any]:
        return {
            "history": {
                "size": len(self.hub),
                "capacity": self.hub.max_history_size,
            },
            "listeners": {
                "total": self.hub.listener_count(),
                "wildcard": self.hub.listener_count(WILDCARD),
            },
            "notifier": {
                "enabled": self.notifier.enabled,
                "important_kinds": sorted(self.notifier.important_kinds),
            },
            "sources": len(self.adapters),
            "metrics": self.metrics.summary(),
        }

    def shutdown(self) -> None:
        """Detach every source and drop all listeners. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for adapter in self.adapters:
            adapter.detach()
        self.adapters.clear()
        self.hub.remove_all_listeners()
        logger.info("Event pipeline shut down")
