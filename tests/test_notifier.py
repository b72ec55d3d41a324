"""
Tests for the event notifier and its transports.

Validates that:
- Only important events are forwarded, and nothing while disabled
- Messages carry glyph, local time, description and ordered details
- Transports are tried in rank order, with the log as last resort
- A failing host never propagates out of notify()
"""
import asyncio
import logging
from datetime import datetime
from types import SimpleNamespace

import pytest

from mcbot_events.events import (
    DEFAULT_IMPORTANT_KINDS,
    Event,
    EventHub,
    EventNotifier,
    EventSeverity,
    PromptTransport,
    event_envelope,
    format_event_data,
)
from mcbot_events.metrics import MetricsCollector
from mcbot_events.pipeline import EventPipeline
from mcbot_events.replay import SignalEmitter


def make_event(kind="death", severity=EventSeverity.ERROR, description="机器人死亡",
               payload=None, timestamp=1_700_000_000.0):
    return Event(kind=kind, severity=severity, description=description,
                 timestamp=timestamp, payload=payload or {})


def notify(notifier, event):
    return asyncio.run(notifier.notify(event))


class RecordingHost:
    """Host exposing only the methods given."""

    def __init__(self, *methods):
        self.calls = []
        for name in methods:
            setattr(self, name, self._recorder(name))

    def _recorder(self, name):
        def record(*args):
            self.calls.append((name, args))
        return record


class TestImportance:
    """Tests for the importance gate."""

    def test_default_kinds(self):
        assert len(DEFAULT_IMPORTANT_KINDS) == 15
        assert "move" not in DEFAULT_IMPORTANT_KINDS
        assert "chat" in DEFAULT_IMPORTANT_KINDS

    def test_unimportant_info_is_skipped(self):
        host = RecordingHost("notification")
        notifier = EventNotifier(host=host)

        result = notify(notifier, make_event("move", EventSeverity.INFO, "机器人移动"))

        assert result is None
        assert host.calls == []

    def test_warning_is_always_important(self):
        notifier = EventNotifier(important_kinds=())

        assert notifier.is_important(make_event("end", EventSeverity.WARNING, "断开"))
        assert notifier.is_important(make_event("error", EventSeverity.ERROR, "错误"))
        assert not notifier.is_important(make_event("spawn", EventSeverity.SUCCESS, "生成"))

    def test_add_and_remove_important_kind(self):
        notifier = EventNotifier()
        move = make_event("move", EventSeverity.INFO, "机器人移动")

        notifier.add_important_kind("move")
        assert notifier.is_important(move)

        notifier.remove_important_kind("move")
        notifier.remove_important_kind("move")  # absent kind is ignored
        assert not notifier.is_important(move)

    def test_important_kinds_is_a_copy(self):
        notifier = EventNotifier()
        kinds = notifier.important_kinds

        assert isinstance(kinds, frozenset)
        assert kinds == DEFAULT_IMPORTANT_KINDS

    def test_chat_follows_importance_set(self):
        host = RecordingHost("notification")
        notifier = EventNotifier(host=host)
        chat = make_event("chat", EventSeverity.INFO, "alice: hi",
                          {"username": "alice", "message": "hi"})

        notifier.remove_important_kind("chat")
        assert notify(notifier, chat) is None
        assert host.calls == []

        notifier.add_important_kind("chat")
        assert notify(notifier, chat) == "notification"
        assert len(host.calls) == 1

    def test_disabled_drops_everything(self):
        host = RecordingHost("notification")
        notifier = EventNotifier(host=host, enabled=False)

        assert notify(notifier, make_event()) is None
        assert host.calls == []

        notifier.set_enabled(True)
        assert notify(notifier, make_event()) == "notification"


class TestFormatting:
    """Tests for message formatting."""

    def test_message_layout(self):
        event = make_event(payload={"position": {"x": 1, "y": 2, "z": 3}})
        clock = datetime.fromtimestamp(event.timestamp).strftime("%H:%M:%S")

        message = EventNotifier().format_event(event)

        assert message == f"❌ [{clock}] 机器人死亡\n   详情: 位置: (1, 2, 3)"

    @pytest.mark.parametrize("severity,glyph", [
        (EventSeverity.INFO, "ℹ️"),
        (EventSeverity.WARNING, "⚠️"),
        (EventSeverity.ERROR, "❌"),
        (EventSeverity.SUCCESS, "✅"),
    ])
    def test_glyph_per_severity(self, severity, glyph):
        message = EventNotifier().format_event(make_event("chat", severity, "x"))
        assert message.startswith(glyph + " [")

    def test_no_detail_line_without_fields(self):
        message = EventNotifier().format_event(make_event())
        assert "\n" not in message

    def test_details_in_fixed_order(self):
        data = {
            "message": "hi",
            "reason": "r",
            "block_name": "stone",
            "entity_type": "mob",
            "max_health": 20,
            "health": 5,
            "username": "alice",
            "position": {"x": 0, "y": 64, "z": 0},
        }

        assert format_event_data(data) == (
            "位置: (0, 64, 0), 玩家: alice, 生命值: 5/20, 实体类型: mob, "
            "方块: stone, 原因: r, 消息: hi"
        )

    def test_health_needs_both_values(self):
        assert format_event_data({"health": 5}) == ""

    def test_unrecognized_fields_are_skipped(self):
        assert format_event_data({"weather": "rain", "slot": 3}) == ""


class TestDelivery:
    """Tests for transport selection and fallback."""

    def test_notification_is_preferred(self):
        host = RecordingHost("notification", "send_notification", "prompt")
        notifier = EventNotifier(host=host, topic="bot/events")
        event = make_event()

        assert notify(notifier, event) == "notification"
        assert len(host.calls) == 1
        name, (topic, payload) = host.calls[0]
        assert name == "notification"
        assert topic == "bot/events"
        assert payload == event_envelope(notifier.format_event(event), event)
        assert payload["event"]["severity"] == "error"

    def test_send_notification_when_no_generic_method(self):
        host = RecordingHost("sendNotification", "prompt")
        notifier = EventNotifier(host=host)

        assert notify(notifier, make_event()) == "send_notification"
        assert host.calls[0][0] == "sendNotification"

    def test_prompt_envelope(self):
        host = RecordingHost("prompt")
        notifier = EventNotifier(host=host, prompt_name="bot_event")
        event = make_event()

        assert notify(notifier, event) == "prompt"
        name, (prompt_name, envelope) = host.calls[0]
        assert prompt_name == "bot_event"
        assert envelope["messages"][0]["role"] == "system"
        assert envelope["messages"][0]["content"] == {
            "type": "text", "text": notifier.format_event(event),
        }

    def test_async_host_method_is_awaited(self):
        seen = []

        async def send_notification(topic, payload):
            await asyncio.sleep(0)
            seen.append(payload["message"])

        host = SimpleNamespace(send_notification=send_notification)
        notifier = EventNotifier(host=host)

        assert notify(notifier, make_event()) == "send_notification"
        assert len(seen) == 1

    def test_no_host_falls_back_to_log(self, caplog):
        caplog.set_level(logging.INFO, logger="mcbot_events.events.notifier")
        metrics = MetricsCollector()
        notifier = EventNotifier(metrics=metrics)

        assert notify(notifier, make_event()) == "log"
        assert any("[事件通知]" in r.getMessage() for r in caplog.records)
        assert metrics.get_counter("notifier.log") == 1

    def test_host_without_methods_falls_back_to_log(self):
        notifier = EventNotifier(host=object())
        assert notify(notifier, make_event()) == "log"

    def test_failing_transport_falls_back_to_log(self):
        calls = []

        def notification(topic, payload):
            raise ConnectionError("host gone")

        def prompt(name, envelope):
            calls.append(name)

        metrics = MetricsCollector()
        host = SimpleNamespace(notification=notification, prompt=prompt)
        notifier = EventNotifier(host=host, metrics=metrics)

        assert notify(notifier, make_event()) == "log"
        assert calls == []
        assert metrics.get_errors("notifier.notification") == 1

    def test_custom_transport_list(self):
        host = RecordingHost("notification", "prompt")
        notifier = EventNotifier(host=host, transports=[PromptTransport()])

        assert notify(notifier, make_event()) == "prompt"

    def test_failure_inside_notify_is_contained(self):
        metrics = MetricsCollector()
        notifier = EventNotifier(metrics=metrics)

        def broken(message, event):
            raise RuntimeError("sink broke")

        notifier._log_sink = broken

        assert notify(notifier, make_event()) is None
        assert metrics.get_errors("notifier.notify") == 1


class TestHubIntegration:
    """Tests for the notifier as a wildcard listener."""

    def test_attach_and_detach(self):
        host = RecordingHost("notification")
        hub = EventHub()
        notifier = EventNotifier(host=host)
        notifier.attach(hub)

        asyncio.run(hub.emit(make_event()))
        assert len(host.calls) == 1

        notifier.detach(hub)
        asyncio.run(hub.emit(make_event()))
        assert len(host.calls) == 1

    def test_bot_death_reaches_host(self):
        host = RecordingHost("notification")
        pipeline = EventPipeline(host=host)
        bot = SignalEmitter()
        bot.username = "bot"
        bot.entity = SimpleNamespace(position=SimpleNamespace(x=1.2, y=2.7, z=3.9))
        pipeline.attach_source(bot)

        bot.emit("death")

        assert len(host.calls) == 1
        message = host.calls[0][1][1]["message"]
        assert message.startswith("❌ [")
        assert "机器人死亡" in message
        assert message.endswith("详情: 位置: (1, 2, 3)")
        pipeline.shutdown()
