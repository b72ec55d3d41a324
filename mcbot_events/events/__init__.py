"""
Event pipeline core.

Design:
- Event schema: immutable events with a kind-checked payload
- Event adapter: turns raw bot signals into events
- Hub: filters, fans out to per-kind and wildcard listeners, keeps history
- Notifier: forwards important events to the host, falling back to the log
"""

from .event_schema import (
    Event,
    EventKind,
    EventSeverity,
    PayloadSchemaError,
    Position,
    UnknownEventKindError,
    known_kinds,
    payload_fields,
    register_kind,
)
from .hub import WILDCARD, EventFilter, EventHub, EventListener, ListenerResult
from .event_adapter import BotEventAdapter
from .notifier import DEFAULT_IMPORTANT_KINDS, EventNotifier, format_event_data
from .transports import (
    NotificationTransport,
    PromptTransport,
    SendNotificationTransport,
    TransportStrategy,
    default_transports,
    event_envelope,
)

__all__ = [
    # Event schema
    "Event",
    "EventKind",
    "EventSeverity",
    "PayloadSchemaError",
    "Position",
    "UnknownEventKindError",
    "known_kinds",
    "payload_fields",
    "register_kind",
    # Dispatch
    "WILDCARD",
    "EventFilter",
    "EventHub",
    "EventListener",
    "ListenerResult",
    # Ingestion
    "BotEventAdapter",
    # Notification
    "DEFAULT_IMPORTANT_KINDS",
    "EventNotifier",
    "format_event_data",
    "NotificationTransport",
    "PromptTransport",
    "SendNotificationTransport",
    "TransportStrategy",
    "default_transports",
    "event_envelope",
]
