"""
Common event schema for bot world events.

Every raw signal from the connected world is normalized into one
``Event``: a kind tag, a severity, a timestamp, a one-line description
and a payload whose allowed fields are fixed by the kind's family.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Union


class EventSeverity(str, Enum):
    """Severity of an event, independent of its kind."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class EventKind(str, Enum):
    """Built-in event kinds."""

    # Connection lifecycle
    CONNECTION = "connection"
    DISCONNECTION = "disconnection"
    LOGIN = "login"
    SPAWN = "spawn"
    KICKED = "kicked"
    END = "end"

    # Chat
    CHAT = "chat"

    # Entities
    ENTITY_HURT = "entity_hurt"
    ENTITY_DEATH = "entity_death"
    ENTITY_SPAWN = "entity_spawn"
    ENTITY_GONE = "entity_gone"
    ENTITY_MOVED = "entity_moved"

    # Blocks
    BLOCK_UPDATE = "block_update"
    BLOCK_BREAK = "block_break"
    BLOCK_PLACE = "block_place"

    # Items
    ITEM_PICKUP = "item_pickup"
    ITEM_DROP = "item_drop"
    ITEM_COLLECT = "item_collect"
    INVENTORY_UPDATE = "inventory_update"

    # Damage / health
    DAMAGE = "damage"
    HEALTH_CHANGE = "health_change"

    # Death
    DEATH = "death"
    RESPAWN = "respawn"

    # Movement
    MOVE = "move"
    JUMP = "jump"
    FALL = "fall"

    # Game state
    GAMEMODE_CHANGE = "gamemode_change"
    TIME_UPDATE = "time_update"
    WEATHER_CHANGE = "weather_change"

    ERROR = "error"


class UnknownEventKindError(ValueError):
    """Raised when an event is built for a kind with no registered payload family."""


class PayloadSchemaError(ValueError):
    """Raised when a payload carries fields its kind does not declare."""


CONNECTION_FIELDS = frozenset({"reason", "host", "port", "username", "position"})
CHAT_FIELDS = frozenset({"username", "message", "is_bot", "is_whisper"})
ENTITY_FIELDS = frozenset(
    {"entity_id", "entity_type", "entity_name", "position", "health", "damage"}
)
BLOCK_FIELDS = frozenset(
    {"position", "block_type", "block_name", "old_block_type", "old_block_name"}
)
ITEM_FIELDS = frozenset(
    {"item_name", "item_type", "count", "slot", "position", "is_bot", "old_item", "new_item"}
)
DAMAGE_FIELDS = frozenset({"damage", "health", "max_health", "attacker", "cause"})
DEATH_FIELDS = frozenset({"reason", "position"})
MOVEMENT_FIELDS = frozenset({"position", "velocity", "on_ground"})
GAME_STATE_FIELDS = frozenset({"gamemode", "previous_gamemode", "time", "weather"})
ERROR_FIELDS = frozenset({"error", "code", "stack"})

_FAMILIES: Dict[FrozenSet[str], Iterable[EventKind]] = {
    CONNECTION_FIELDS: (
        EventKind.CONNECTION, EventKind.DISCONNECTION, EventKind.LOGIN,
        EventKind.SPAWN, EventKind.KICKED, EventKind.END,
    ),
    CHAT_FIELDS: (EventKind.CHAT,),
    ENTITY_FIELDS: (
        EventKind.ENTITY_HURT, EventKind.ENTITY_DEATH, EventKind.ENTITY_SPAWN,
        EventKind.ENTITY_GONE, EventKind.ENTITY_MOVED,
    ),
    BLOCK_FIELDS: (EventKind.BLOCK_UPDATE, EventKind.BLOCK_BREAK, EventKind.BLOCK_PLACE),
    ITEM_FIELDS: (
        EventKind.ITEM_PICKUP, EventKind.ITEM_DROP, EventKind.ITEM_COLLECT,
        EventKind.INVENTORY_UPDATE,
    ),
    DAMAGE_FIELDS: (EventKind.DAMAGE, EventKind.HEALTH_CHANGE),
    DEATH_FIELDS: (EventKind.DEATH, EventKind.RESPAWN),
    MOVEMENT_FIELDS: (EventKind.MOVE, EventKind.JUMP, EventKind.FALL),
    GAME_STATE_FIELDS: (
        EventKind.GAMEMODE_CHANGE, EventKind.TIME_UPDATE, EventKind.WEATHER_CHANGE,
    ),
    ERROR_FIELDS: (EventKind.ERROR,),
}

# kind -> allowed payload fields
_KIND_FIELDS: Dict[str, FrozenSet[str]] = {
    kind.value: fields for fields, kinds in _FAMILIES.items() for kind in kinds
}

# Fields holding coordinate triples
_VECTOR_FIELDS = ("position", "velocity")


def register_kind(kind: str, fields: Iterable[str]) -> None:
    """
    Register a new event kind and the payload fields it may carry.

    Re-registering an existing kind replaces its field set.
    """
    kind = str(kind or "").strip()
    if not kind:
        raise ValueError("kind must be a non-empty string")
    _KIND_FIELDS[kind] = frozenset(fields)


def known_kinds() -> FrozenSet[str]:
    """All kinds an Event may currently be built for."""
    return frozenset(_KIND_FIELDS)


def payload_fields(kind: str) -> FrozenSet[str]:
    """Allowed payload fields for a kind."""
    try:
        return _KIND_FIELDS[_kind_value(kind)]
    except KeyError:
        raise UnknownEventKindError(f"Unknown event kind: {kind}") from None


@dataclass(frozen=True)
class Position:
    """Integer block coordinates."""
    x: int
    y: int
    z: int

    @classmethod
    def coerce(cls, value: Any, field_name: str = "position") -> "Position":
        """
        Build a Position from a Position, a mapping with x/y/z keys,
        or any object exposing x/y/z attributes. Coordinates are floored.

        Raises:
            PayloadSchemaError: When an axis is missing or not a finite number
        """
        if isinstance(value, Position):
            return value
        try:
            if isinstance(value, Mapping):
                x, y, z = value["x"], value["y"], value["z"]
            else:
                x, y, z = value.x, value.y, value.z
            return cls(math.floor(x), math.floor(y), math.floor(z))
        except (KeyError, AttributeError, TypeError, ValueError, OverflowError) as e:
            raise PayloadSchemaError(
                f"Field '{field_name}' needs numeric x, y and z: {value!r}"
            ) from e

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "z": self.z}

    def __str__(self) -> str:
        return f"({self.x}, {self.y}, {self.z})"


def _kind_value(kind: Union[str, EventKind]) -> str:
    return kind.value if isinstance(kind, EventKind) else str(kind)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Position):
        return value.to_dict()
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class Event:
    """
    Immutable record of one occurrence in the monitored world.

    Attributes:
        kind: Discriminant selecting the payload family
        severity: info / warning / error / success
        description: Human-readable one-line summary
        timestamp: Seconds since the epoch
        payload: Read-only mapping of the kind's fields
    """
    kind: str
    severity: EventSeverity
    description: str
    timestamp: float = field(default_factory=time.time)
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        kind = _kind_value(self.kind).strip()
        if not kind:
            raise UnknownEventKindError("event kind is required")
        allowed = payload_fields(kind)

        raw = dict(self.payload or {})
        unknown = sorted(k for k in raw if k not in allowed)
        if unknown:
            raise PayloadSchemaError(
                f"Fields {unknown} are not valid for event kind '{kind}'"
            )

        payload: Dict[str, Any] = {}
        for name, value in raw.items():
            if value is None:
                continue
            if name in _VECTOR_FIELDS:
                value = Position.coerce(value, name)
            payload[name] = _freeze(value)

        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "severity", EventSeverity(self.severity))
        object.__setattr__(self, "description", str(self.description))
        object.__setattr__(self, "timestamp", float(self.timestamp))
        object.__setattr__(self, "payload", MappingProxyType(payload))

    def get(self, name: str, default: Optional[Any] = None) -> Any:
        """Shortcut for ``event.payload.get(name)``."""
        return self.payload.get(name, default)

    def payload_dict(self) -> Dict[str, Any]:
        """Plain, JSON-ready copy of the payload."""
        return _thaw(self.payload)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "kind": self.kind,
            "severity": self.severity.value,
            "timestamp": self.timestamp,
            "description": self.description,
            "data": self.payload_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        """Create from dictionary (e.g., from JSON)."""
        return cls(
            kind=data["kind"],
            severity=EventSeverity(data.get("severity", EventSeverity.INFO.value)),
            description=data.get("description", ""),
            timestamp=data.get("timestamp", time.time()),
            payload=data.get("data") or {},
        )
