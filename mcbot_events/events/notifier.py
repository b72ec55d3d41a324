"""
Event notifier: forwards important events to the outward host channel.

An event is important when its kind is in the importance set or its
severity is error/warning. Important events are formatted into a short
human/AI-readable message and delivered through the first transport the
host supports, falling back to the local log.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Set

from ..metrics import MetricsCollector
from .event_schema import Event, EventKind, EventSeverity, Position
from .hub import WILDCARD, EventHub
from .transports import (
    DEFAULT_PROMPT_NAME,
    DEFAULT_TOPIC,
    TransportStrategy,
    default_transports,
)

logger = logging.getLogger(__name__)

DEFAULT_IMPORTANT_KINDS = frozenset({
    EventKind.CHAT.value,
    EventKind.DEATH.value,
    EventKind.RESPAWN.value,
    EventKind.KICKED.value,
    EventKind.ERROR.value,
    EventKind.ENTITY_HURT.value,
    EventKind.ENTITY_DEATH.value,
    EventKind.BLOCK_BREAK.value,
    EventKind.BLOCK_PLACE.value,
    EventKind.ITEM_COLLECT.value,
    EventKind.DAMAGE.value,
    EventKind.HEALTH_CHANGE.value,
    EventKind.GAMEMODE_CHANGE.value,
    EventKind.SPAWN.value,
    EventKind.LOGIN.value,
})

ALWAYS_IMPORTANT_SEVERITIES = frozenset({EventSeverity.ERROR, EventSeverity.WARNING})

SEVERITY_GLYPHS = {
    EventSeverity.INFO: "ℹ️",
    EventSeverity.WARNING: "⚠️",
    EventSeverity.ERROR: "❌",
    EventSeverity.SUCCESS: "✅",
}
DEFAULT_GLYPH = "📌"

LOG_CHANNEL = "log"


class EventNotifier:
    """
    Wildcard hub listener that notifies the host about important events.

    Example:
        >>> notifier = EventNotifier(host=server)
        >>> notifier.attach(hub)
        >>> notifier.add_important_kind("move")
        >>> notifier.set_enabled(False)  # drop everything until re-enabled
    """

    def __init__(
        self,
        host: Any = None,
        enabled: bool = True,
        important_kinds: Iterable[str] = DEFAULT_IMPORTANT_KINDS,
        topic: str = DEFAULT_TOPIC,
        prompt_name: str = DEFAULT_PROMPT_NAME,
        transports: Optional[List[TransportStrategy]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize notifier.

        Args:
            host: Outward channel object, probed for transport methods
            enabled: Initial on/off state
            important_kinds: Kinds always forwarded
            topic: Topic used by the notification transports
            prompt_name: Name used by the prompt transport
            transports: Strategies in fallback order (defaults to all three)
            metrics: Shared metrics collector
        """
        self.host = host
        self._enabled = bool(enabled)
        self._important: Set[str] = {_kind(k) for k in important_kinds}
        self.transports = transports if transports is not None else default_transports(
            topic, prompt_name
        )
        self.metrics = metrics or MetricsCollector()

    # ---- configuration ----

    def set_host(self, host: Any) -> None:
        self.host = host

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)

    @property
    def important_kinds(self) -> frozenset:
        return frozenset(self._important)

    def add_important_kind(self, kind: str) -> None:
        self._important.add(_kind(kind))

    def remove_important_kind(self, kind: str) -> None:
        self._important.discard(_kind(kind))

    def attach(self, hub: EventHub) -> None:
        """Subscribe as a wildcard listener."""
        hub.subscribe(WILDCARD, self.notify)

    def detach(self, hub: EventHub) -> None:
        hub.unsubscribe(WILDCARD, self.notify)

    # ---- policy ----

    def is_important(self, event: Event) -> bool:
        return (
            event.kind in self._important
            or event.severity in ALWAYS_IMPORTANT_SEVERITIES
        )

    async def notify(self, event: Event) -> Optional[str]:
        """
        Notify about one event.

        Returns:
            Name of the channel that took the message, or None when the
            notifier is disabled or the event is not important
        """
        if not self._enabled:
            return None

        try:
            if not self.is_important(event):
                return None
            message = self.format_event(event)
            return await self._deliver(message, event)
        except Exception as e:
            logger.error("Failed to send event notification: %s", e, exc_info=True)
            self.metrics.record_error("notifier", "notify")
            return None

    async def _deliver(self, message: str, event: Event) -> str:
        if self.host is not None:
            for transport in self.transports:
                try:
                    delivered = await transport.attempt(self.host, message, event)
                except Exception as e:
                    logger.warning(
                        "Could not deliver via %s, logging instead: %s",
                        transport.name, e,
                    )
                    self.metrics.record_error("notifier", transport.name)
                    break
                if delivered:
                    self.metrics.increment(transport.name, subsystem="notifier")
                    return transport.name

        self._log_sink(message, event)
        return LOG_CHANNEL

    def _log_sink(self, message: str, event: Event) -> None:
        logger.info(
            "[事件通知] %s", message,
            extra={
                "subsystem": "notifier",
                "event_kind": event.kind,
                "severity": event.severity.value,
            },
        )
        self.metrics.increment(LOG_CHANNEL, subsystem="notifier")

    # ---- formatting ----

    def format_event(self, event: Event) -> str:
        """Single message: glyph, local time, description, optional detail line."""
        glyph = SEVERITY_GLYPHS.get(event.severity, DEFAULT_GLYPH)
        clock = datetime.fromtimestamp(event.timestamp).strftime("%H:%M:%S")
        message = f"{glyph} [{clock}] {event.description}"

        details = format_event_data(event.payload)
        if details:
            message += f"\n   详情: {details}"
        return message


def format_event_data(data: Mapping[str, Any]) -> str:
    """Recognized payload fields in a fixed order; anything else is skipped."""
    parts: List[str] = []

    position = data.get("position")
    if position is not None:
        parts.append(f"位置: {Position.coerce(position)}")

    if data.get("username"):
        parts.append(f"玩家: {data['username']}")

    if data.get("health") is not None and data.get("max_health") is not None:
        parts.append(f"生命值: {data['health']}/{data['max_health']}")

    if data.get("entity_type"):
        parts.append(f"实体类型: {data['entity_type']}")

    if data.get("block_name"):
        parts.append(f"方块: {data['block_name']}")

    if data.get("reason"):
        parts.append(f"原因: {data['reason']}")

    if data.get("message"):
        parts.append(f"消息: {data['message']}")

    return ", ".join(parts)


def _kind(kind: Any) -> str:
    return kind.value if isinstance(kind, EventKind) else str(kind)
