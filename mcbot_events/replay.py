"""
Recorded signal replay.

Provides:
- SignalEmitter: minimal on/once/remove_listener/emit signal source
- RecordedSource: a bot stand-in whose state and signals come from a recording
- load_recording: JSONL reader for signal recordings

Recording format, one JSON object per line::

    {"t": 0.0, "signal": "login"}
    {"t": 0.4, "signal": "move", "state": {"position": {"x": 1.5, "y": 64, "z": -3.2}}}
    {"t": 1.0, "signal": "chat", "args": ["alice", "hello"]}
    {"t": 2.0, "signal": "updateSlot", "target": "inventory",
     "args": [36, null, {"name": "dirt", "count": 1}]}
    {"t": 3.0, "signal": "error", "args": [{"$error": {"message": "boom", "code": "ECONNRESET"}}]}

Mapping arguments become attribute handles, so an entity is written as
``{"id": 7, "type": "mob", "name": "zombie", "position": {...}}``.
"""
from __future__ import annotations

import json
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

ERROR_MARKER = "$error"


class RecordedError(Exception):
    """Error object replayed from a recording."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


def to_handle(value: Any) -> Any:
    """Turn recorded JSON values into objects the adapter can read attributes from."""
    if isinstance(value, dict):
        if ERROR_MARKER in value:
            spec = value[ERROR_MARKER] or {}
            return RecordedError(str(spec.get("message", "")), spec.get("code"))
        return SimpleNamespace(**{k: to_handle(v) for k, v in value.items()})
    if isinstance(value, list):
        return [to_handle(v) for v in value]
    return value


class SignalEmitter:
    """Synchronous named-signal emitter."""

    def __init__(self, supported: Optional[Iterable[str]] = None):
        self.supported = frozenset(supported) if supported is not None else None
        self._handlers: Dict[str, List[Callable[..., Any]]] = defaultdict(list)
        self._once: Dict[str, List[Callable[..., Any]]] = defaultdict(list)

    def supports_signal(self, signal: str) -> bool:
        return self.supported is None or signal in self.supported

    def on(self, signal: str, handler: Callable[..., Any]) -> None:
        if not self.supports_signal(signal):
            raise ValueError(f"Unsupported signal: {signal}")
        self._handlers[signal].append(handler)

    def once(self, signal: str, handler: Callable[..., Any]) -> None:
        if not self.supports_signal(signal):
            raise ValueError(f"Unsupported signal: {signal}")
        self._once[signal].append(handler)

    def remove_listener(self, signal: str, handler: Callable[..., Any]) -> None:
        for table in (self._handlers, self._once):
            if handler in table.get(signal, ()):
                table[signal].remove(handler)

    def listener_count(self, signal: str) -> int:
        return len(self._handlers.get(signal, ())) + len(self._once.get(signal, ()))

    def emit(self, signal: str, *args: Any) -> int:
        """Call every handler for signal; returns how many ran."""
        handlers = list(self._handlers.get(signal, ()))
        once = self._once.pop(signal, [])
        for handler in handlers + once:
            handler(*args)
        return len(handlers) + len(once)


@dataclass
class SignalRecord:
    """One recorded signal."""
    t: float
    signal: str
    args: List[Any] = field(default_factory=list)
    state: Dict[str, Any] = field(default_factory=dict)
    target: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignalRecord":
        if not data.get("signal"):
            raise ValueError("record has no signal")
        return cls(
            t=float(data.get("t", 0.0)),
            signal=str(data["signal"]),
            args=list(data.get("args") or []),
            state=dict(data.get("state") or {}),
            target=data.get("target"),
        )


def load_recording(path: Union[str, Path]) -> List[SignalRecord]:
    """
    Read a JSONL recording.

    Blank lines and lines starting with ``#`` are ignored.

    Raises:
        ValueError: On an unparseable line (message carries the line number)
    """
    records = []
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                records.append(SignalRecord.from_dict(json.loads(line)))
            except (json.JSONDecodeError, ValueError, TypeError) as e:
                raise ValueError(f"{path}:{lineno}: {e}") from e
    return records


class RecordedSource(SignalEmitter):
    """
    Bot stand-in driven by a recording.

    ``clock`` returns the recording time of the signal being played, so
    throttling behaves exactly as it did when the recording was made.

    Example:
        >>> source = RecordedSource(username="bot")
        >>> pipeline.attach_source(source, clock=source.clock)
        >>> source.play(load_recording("session.jsonl"))
    """

    def __init__(
        self,
        username: str = "bot",
        supported: Optional[Iterable[str]] = None,
    ):
        super().__init__(supported)
        self.username = username
        self.entity = SimpleNamespace(position=None, on_ground=True)
        self.health: Optional[float] = 20
        self.max_health: Optional[float] = 20
        self.inventory = SignalEmitter()
        self.game = SimpleNamespace(game_mode=None)
        self.is_raining = False
        self.now = 0.0

    def clock(self) -> float:
        return self.now

    def apply_state(self, state: Dict[str, Any]) -> None:
        """Update bot attributes from a record's ``state`` block."""
        for key, value in state.items():
            if key == "position":
                self.entity.position = to_handle(value)
            elif key == "on_ground":
                self.entity.on_ground = bool(value)
            elif key == "game_mode":
                self.game.game_mode = value
            elif key in ("username", "health", "max_health", "is_raining"):
                setattr(self, key, value)
            else:
                logger.debug("Ignoring unknown state key %s", key)

    def play_record(self, record: SignalRecord) -> int:
        """Apply one record and fire its signal."""
        self.now = record.t
        self.apply_state(record.state)
        emitter = self.inventory if record.target == "inventory" else self
        return emitter.emit(record.signal, *[to_handle(a) for a in record.args])

    def play(self, records: Iterable[SignalRecord], realtime: bool = False) -> int:
        """
        Play records in order.

        Args:
            records: Recorded signals
            realtime: Sleep between records to match recorded spacing

        Returns:
            Number of records played
        """
        played = 0
        previous: Optional[float] = None
        for record in records:
            if realtime and previous is not None and record.t > previous:
                time.sleep(record.t - previous)
            previous = record.t
            self.play_record(record)
            played += 1
        return played
