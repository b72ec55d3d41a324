"""
Outward delivery strategies for event notifications.

The host channel is an unknown object that may expose any subset of
three primitives. Each strategy names the attributes it can use and
either delivers through the first one found or reports itself
unavailable; the notifier walks them in rank order.
"""
from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .event_schema import Event

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "minecraft/event"
DEFAULT_PROMPT_NAME = "minecraft_event"


def event_envelope(message: str, event: Event) -> Dict[str, Any]:
    """Payload shared by the notification-style transports."""
    return {
        "message": message,
        "event": {
            "kind": event.kind,
            "severity": event.severity.value,
            "timestamp": event.timestamp,
            "data": event.payload_dict(),
        },
    }


class TransportStrategy:
    """
    One named outward delivery mechanism.

    Subclasses set ``name`` and ``method_names`` and build the call
    arguments. ``attempt`` returns False when the host has none of the
    named methods; errors raised by the host method propagate to the
    caller, which owns the fallback.
    """

    name: str = "transport"
    method_names: Tuple[str, ...] = ()

    def resolve(self, host: Any) -> Optional[Callable[..., Any]]:
        """First callable attribute on host matching one of method_names."""
        if host is None:
            return None
        for attr in self.method_names:
            method = getattr(host, attr, None)
            if callable(method):
                return method
        return None

    def available(self, host: Any) -> bool:
        return self.resolve(host) is not None

    def build_args(self, message: str, event: Event) -> Sequence[Any]:
        raise NotImplementedError

    async def attempt(self, host: Any, message: str, event: Event) -> bool:
        method = self.resolve(host)
        if method is None:
            return False
        result = method(*self.build_args(message, event))
        if inspect.isawaitable(result):
            await result
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class NotificationTransport(TransportStrategy):
    """Generic ``notification(topic, payload)`` primitive."""

    name = "notification"
    method_names = ("notification", "notify")

    def __init__(self, topic: str = DEFAULT_TOPIC):
        self.topic = topic

    def build_args(self, message: str, event: Event) -> Sequence[Any]:
        return (self.topic, event_envelope(message, event))


class SendNotificationTransport(TransportStrategy):
    """``send_notification(topic, payload)`` primitive."""

    name = "send_notification"
    method_names = ("send_notification", "sendNotification")

    def __init__(self, topic: str = DEFAULT_TOPIC):
        self.topic = topic

    def build_args(self, message: str, event: Event) -> Sequence[Any]:
        return (self.topic, event_envelope(message, event))


class PromptTransport(TransportStrategy):
    """Deliver the message as a system prompt: ``prompt(name, envelope)``."""

    name = "prompt"
    method_names = ("prompt",)

    def __init__(self, prompt_name: str = DEFAULT_PROMPT_NAME):
        self.prompt_name = prompt_name

    def build_args(self, message: str, event: Event) -> Sequence[Any]:
        envelope = {
            "messages": [
                {
                    "role": "system",
                    "content": {"type": "text", "text": message},
                }
            ]
        }
        return (self.prompt_name, envelope)


def default_transports(
    topic: str = DEFAULT_TOPIC,
    prompt_name: str = DEFAULT_PROMPT_NAME,
) -> List[TransportStrategy]:
    """Strategies in fallback order."""
    return [
        NotificationTransport(topic),
        SendNotificationTransport(topic),
        PromptTransport(prompt_name),
    ]
