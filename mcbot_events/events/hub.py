"""
Event hub: the single routing authority for bot events.

Holds per-kind and wildcard listener sets, an ordered filter chain and a
bounded history. ``emit`` runs the filters, records the event, then
awaits every matching listener in turn. A failing listener is logged and
counted; it never stops the others or reaches the emitter.
"""
from __future__ import annotations

import inspect
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional, Union

from ..metrics import MetricsCollector
from .event_schema import Event, EventKind, EventSeverity

logger = logging.getLogger(__name__)

WILDCARD = "*"

EventListener = Callable[[Event], Union[None, Awaitable[None]]]
EventFilter = Callable[[Event], bool]


@dataclass
class ListenerResult:
    """Outcome of one listener invocation."""
    listener: EventListener
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _listener_name(listener: Any) -> str:
    return getattr(listener, "__qualname__", None) or repr(listener)


class EventHub:
    """
    Central pub/sub registry for normalized events.

    Listener sets keep insertion order, so fan-out order is deterministic.
    Every set is snapshotted before iteration: a listener that subscribes
    or unsubscribes while running affects the next emission only.

    Example:
        >>> hub = EventHub(max_history=500)
        >>> hub.subscribe("chat", on_chat)
        >>> hub.subscribe(WILDCARD, notifier.notify)
        >>> await hub.create_and_emit("chat", EventSeverity.INFO, "alice: hi",
        ...                           {"username": "alice", "message": "hi"})
    """

    def __init__(
        self,
        max_history: int = 1000,
        metrics: Optional[MetricsCollector] = None,
    ):
        if max_history < 0:
            raise ValueError("max_history must be >= 0")
        self.metrics = metrics or MetricsCollector()
        self._listeners: Dict[str, Dict[EventListener, None]] = {}
        self._wildcard: Dict[EventListener, None] = {}
        self._filters: List[EventFilter] = []
        self._history: Deque[Event] = deque(maxlen=max_history)

    # ---- registration ----

    def subscribe(self, kind: Union[str, EventKind], listener: EventListener) -> None:
        """
        Register a listener for one kind, or for every kind with ``"*"``.

        Subscribing the same listener to the same key twice is a no-op.
        """
        if not callable(listener):
            raise ValueError("listener must be callable")
        key = _key(kind)
        if key == WILDCARD:
            self._wildcard[listener] = None
        else:
            self._listeners.setdefault(key, {})[listener] = None

    def unsubscribe(self, kind: Union[str, EventKind], listener: EventListener) -> None:
        """Remove a registration. Unknown registrations are ignored."""
        key = _key(kind)
        if key == WILDCARD:
            self._wildcard.pop(listener, None)
            return
        listeners = self._listeners.get(key)
        if listeners is None:
            return
        listeners.pop(listener, None)
        if not listeners:
            del self._listeners[key]

    def add_filter(self, predicate: EventFilter) -> None:
        """Append an admission filter. Filters run in registration order."""
        if not callable(predicate):
            raise ValueError("filter must be callable")
        if predicate not in self._filters:
            self._filters.append(predicate)

    def remove_filter(self, predicate: EventFilter) -> None:
        try:
            self._filters.remove(predicate)
        except ValueError:
            pass

    def remove_all_listeners(self) -> None:
        """Drop every kind-specific and wildcard listener."""
        self._listeners.clear()
        self._wildcard.clear()

    def listener_count(self, kind: Optional[Union[str, EventKind]] = None) -> int:
        """Number of listeners for a kind (``"*"`` for wildcard), or in total."""
        if kind is None:
            return len(self._wildcard) + sum(len(s) for s in self._listeners.values())
        key = _key(kind)
        if key == WILDCARD:
            return len(self._wildcard)
        return len(self._listeners.get(key, ()))

    # ---- dispatch ----

    async def emit(self, event: Event) -> None:
        """
        Route an event.

        Rejected events leave no trace. Accepted events are appended to
        history, then passed to kind listeners, then wildcard listeners.
        """
        if not self._admit(event):
            self.metrics.record_drop("filter")
            self.metrics.increment("filtered", subsystem="hub")
            return

        self._history.append(event)
        self.metrics.increment("emitted", subsystem="hub")

        kind_listeners = list(self._listeners.get(event.kind, ()))
        wildcard_listeners = list(self._wildcard)

        with self.metrics.time_operation("hub.emit"):
            results = [await self._invoke(fn, event) for fn in kind_listeners]
            results += [await self._invoke(fn, event) for fn in wildcard_listeners]

        failures = [r for r in results if not r.ok]
        if failures:
            logger.warning(
                "%d of %d listeners failed for event '%s'",
                len(failures), len(results), event.kind,
            )

    async def create_and_emit(
        self,
        kind: Union[str, EventKind],
        severity: Union[str, EventSeverity],
        description: str,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> Event:
        """Stamp the current time, build the event and emit it."""
        event = Event(
            kind=_key(kind),
            severity=EventSeverity(severity),
            description=description,
            timestamp=time.time(),
            payload=payload or {},
        )
        await self.emit(event)
        return event

    def _admit(self, event: Event) -> bool:
        for predicate in list(self._filters):
            try:
                if not predicate(event):
                    return False
            except Exception:
                logger.exception("Event filter %s raised; rejecting '%s'",
                                 _listener_name(predicate), event.kind)
                self.metrics.record_error("hub", "filter")
                return False
        return True

    async def _invoke(self, listener: EventListener, event: Event) -> ListenerResult:
        try:
            result = listener(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Error in event listener %s for '%s': %s",
                _listener_name(listener), event.kind, e,
                exc_info=True,
            )
            self.metrics.record_error("hub", "listener")
            return ListenerResult(listener, e)
        return ListenerResult(listener)

    # ---- history ----

    def get_history(
        self,
        kind: Optional[Union[str, EventKind]] = None,
        limit: int = 100,
    ) -> List[Event]:
        """
        Most recent ``limit`` events, optionally of one kind, oldest first.
        """
        if limit <= 0:
            return []
        if kind is None:
            events = list(self._history)
        else:
            key = _key(kind)
            events = [e for e in self._history if e.kind == key]
        return events[-limit:]

    def clear_history(self) -> None:
        self._history.clear()

    @property
    def max_history_size(self) -> int:
        return self._history.maxlen or 0

    def set_max_history_size(self, size: int) -> None:
        """Change history capacity; shrinking keeps the newest entries."""
        if size < 0:
            raise ValueError("history size must be >= 0")
        self._history = deque(self._history, maxlen=size)

    def __len__(self) -> int:
        return len(self._history)


def _key(kind: Union[str, EventKind]) -> str:
    return kind.value if isinstance(kind, EventKind) else str(kind)
