"""
Tests for the event schema.

Validates that:
- Events are immutable once built
- Payload fields are checked against the kind's family
- Coordinates are normalized to integer positions
- New kinds can be registered
"""
import dataclasses

import pytest

from mcbot_events.events import (
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


class TestPosition:
    """Tests for Position."""

    def test_coerce_floors_mapping(self):
        pos = Position.coerce({"x": 1.7, "y": 64.2, "z": -3.5})
        assert pos == Position(1, 64, -4)

    def test_coerce_from_attributes(self):
        class Vec:
            x, y, z = 10.9, 5.0, 0.1

        assert Position.coerce(Vec()) == Position(10, 5, 0)

    def test_str_is_coordinate_triple(self):
        assert str(Position(1, 2, 3)) == "(1, 2, 3)"


class TestEvent:
    """Tests for Event construction and validation."""

    def test_builds_valid_event(self):
        event = Event(
            kind="chat",
            severity=EventSeverity.INFO,
            description="alice: hi",
            payload={"username": "alice", "message": "hi"},
        )

        assert event.kind == "chat"
        assert event.severity is EventSeverity.INFO
        assert event.payload["username"] == "alice"
        assert event.timestamp > 0

    def test_accepts_enum_kind_and_string_severity(self):
        event = Event(kind=EventKind.DEATH, severity="error", description="bot died")

        assert event.kind == "death"
        assert event.severity is EventSeverity.ERROR

    def test_rejects_unknown_kind(self):
        with pytest.raises(UnknownEventKindError):
            Event(kind="teleport", severity="info", description="?")

    def test_rejects_empty_kind(self):
        with pytest.raises(UnknownEventKindError):
            Event(kind="  ", severity="info", description="?")

    def test_rejects_fields_outside_family(self):
        with pytest.raises(PayloadSchemaError):
            Event(kind="chat", severity="info", description="x", payload={"block_name": "dirt"})

    def test_rejects_unknown_severity(self):
        with pytest.raises(ValueError):
            Event(kind="chat", severity="fatal", description="x")

    def test_none_values_are_absent(self):
        event = Event(kind="death", severity="error", description="x", payload={"position": None})
        assert "position" not in event.payload

    def test_position_fields_are_coerced(self):
        event = Event(
            kind="move",
            severity="info",
            description="moved",
            payload={"position": {"x": 1.9, "y": 2.1, "z": 3.0}},
        )
        assert event.payload["position"] == Position(1, 2, 3)

    @pytest.mark.parametrize("vector", [
        {"x": 1},
        {"x": "a", "y": 2, "z": 3},
        {"x": float("nan"), "y": 0, "z": 0},
        "1,2,3",
    ])
    def test_malformed_vector_rejected(self, vector):
        with pytest.raises(PayloadSchemaError, match="velocity"):
            Event(kind="move", severity="info", description="moved",
                  payload={"velocity": vector})

    def test_event_is_immutable(self):
        event = Event(kind="chat", severity="info", description="x", payload={"username": "a"})

        with pytest.raises(dataclasses.FrozenInstanceError):
            event.kind = "death"
        with pytest.raises(TypeError):
            event.payload["username"] = "b"

    def test_nested_payload_is_frozen(self):
        event = Event(
            kind="inventory_update",
            severity="info",
            description="slot",
            payload={"slot": 3, "new_item": {"name": "dirt", "count": 1}},
        )
        with pytest.raises(TypeError):
            event.payload["new_item"]["count"] = 64

    def test_source_dict_changes_do_not_leak(self):
        data = {"username": "alice", "message": "hi"}
        event = Event(kind="chat", severity="info", description="x", payload=data)

        data["message"] = "changed"
        assert event.payload["message"] == "hi"

    def test_to_dict_is_plain(self):
        event = Event(
            kind="death",
            severity="error",
            description="bot died",
            timestamp=100.0,
            payload={"position": {"x": 1, "y": 2, "z": 3}},
        )

        assert event.to_dict() == {
            "kind": "death",
            "severity": "error",
            "timestamp": 100.0,
            "description": "bot died",
            "data": {"position": {"x": 1, "y": 2, "z": 3}},
        }

    def test_from_dict(self):
        event = Event.from_dict({
            "kind": "chat",
            "severity": "info",
            "description": "a: b",
            "timestamp": 5.0,
            "data": {"username": "a", "message": "b"},
        })
        assert event.timestamp == 5.0
        assert event.get("message") == "b"


class TestKindRegistry:
    """Tests for kind registration."""

    def test_builtin_kinds_known(self):
        kinds = known_kinds()
        for kind in EventKind:
            assert kind.value in kinds

    def test_payload_fields_for_kind(self):
        assert "max_health" in payload_fields("health_change")
        assert "stack" in payload_fields(EventKind.ERROR)

    def test_register_new_kind(self):
        register_kind("portal_enter", {"position", "dimension"})

        event = Event(
            kind="portal_enter",
            severity="info",
            description="entered portal",
            payload={"dimension": "nether", "position": {"x": 0, "y": 70, "z": 0}},
        )
        assert event.payload["dimension"] == "nether"

    def test_register_rejects_empty_kind(self):
        with pytest.raises(ValueError):
            register_kind("", {"x"})
