"""
Bot event adapter.

Subscribes to the raw signals of a connected bot and turns each one into
a normalized ``Event`` for the hub.

The source is duck-typed after a mineflayer-style bot:

- ``on(signal, callback)``; optionally ``once``, ``remove_listener``/``off``
  and ``supports_signal(signal)`` for capability probing
- ``username``, ``entity`` (``position``, ``on_ground``), ``health``,
  ``max_health``
- optionally ``inventory`` (its own ``on``), ``game.game_mode`` and
  ``is_raining``

Callbacks are synchronous. Built events are queued and drained by a
single coroutine so they reach the hub in signal order.
"""
from __future__ import annotations

import asyncio
import json
import logging
import math
import time
import traceback
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from ..metrics import MetricsCollector
from ..rate_limit import IntervalLimiter
from .event_schema import Event, EventKind, EventSeverity, Position
from .hub import EventHub

logger = logging.getLogger(__name__)

# Final stage of blockBreakProgressObserved; the block is gone.
BREAK_COMPLETE_STAGE = 9

DEFAULT_MAX_HEALTH = 20
UNKNOWN_ERROR_CODE = "Unknown error"
MOVE_INTERVAL_MS = 500

SignalHandler = Callable[..., Optional[Event]]


def floor_position(value: Any) -> Optional[Dict[str, int]]:
    """Integer x/y/z of a vector-like value, or None when absent."""
    if value is None:
        return None
    return Position.coerce(value).to_dict()


def format_reason(reason: Any) -> str:
    """Readable text for a kick/disconnect reason of any shape."""
    if isinstance(reason, BaseException):
        return str(reason)
    if isinstance(reason, str):
        return reason
    try:
        return json.dumps(reason, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(reason)


def _entity_label(entity: Any) -> str:
    return getattr(entity, "name", None) or getattr(entity, "type", None) or "unknown"


def _item_summary(item: Any) -> Optional[Dict[str, Any]]:
    if item is None:
        return None
    return {"name": getattr(item, "name", None), "count": getattr(item, "count", None)}


def _floor_number(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return math.floor(value)
    return value


class BotEventAdapter:
    """
    Adapts raw bot signals to normalized events.

    One adapter serves one source; its movement throttle and game-state
    memory are per source.

    Example:
        >>> adapter = BotEventAdapter(bot, hub)
        >>> adapter.register_all()
        >>> ...
        >>> adapter.detach()
    """

    def __init__(
        self,
        source: Any,
        hub: EventHub,
        clock: Optional[Callable[[], float]] = None,
        move_interval_ms: float = MOVE_INTERVAL_MS,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize adapter.

        Args:
            source: Live bot handle raising the raw signals
            hub: Hub receiving the normalized events
            clock: Monotonic seconds used for throttling (defaults to time.monotonic)
            move_interval_ms: Coalescing window for movement signals
            metrics: Shared metrics collector
        """
        self.source = source
        self.hub = hub
        self.metrics = metrics or hub.metrics
        self.move_limiter = IntervalLimiter(move_interval_ms, clock=clock)

        self._registered: List[Tuple[Any, str, Callable[..., None]]] = []
        self._skipped: List[str] = []
        self._backlog: Deque[Event] = deque()
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None
        self._last_gamemode: Optional[str] = None

    # ---- registration ----

    def register_all(self) -> None:
        """
        Register one handler per supported signal.

        Never raises: unsupported or failing registrations are skipped.
        """
        try:
            self._register_connection_events()
            self._register_chat_events()
            self._register_entity_events()
            self._register_block_events()
            self._register_item_events()
            self._register_damage_events()
            self._register_death_events()
            self._register_movement_events()
            self._register_game_state_events()
            self._register_error_events()
        except Exception:
            logger.exception("Bot event registration aborted")
        logger.info(
            "Registered %d bot signals (%d skipped)",
            len(self._registered), len(self._skipped),
        )

    @property
    def registered_signals(self) -> List[str]:
        return [signal for _, signal, _ in self._registered]

    @property
    def skipped_signals(self) -> List[str]:
        return list(self._skipped)

    def detach(self) -> None:
        """Remove registered handlers where the source allows it."""
        for target, signal, callback in self._registered:
            remover = getattr(target, "remove_listener", None) or getattr(target, "off", None)
            if not callable(remover):
                continue
            try:
                remover(signal, callback)
            except Exception as e:
                logger.debug("Could not remove handler for %s: %s", signal, e)
        self._registered.clear()

    def _supports(self, target: Any, signal: str) -> bool:
        probe = getattr(target, "supports_signal", None)
        if callable(probe):
            try:
                return bool(probe(signal))
            except Exception:
                return False
        return callable(getattr(target, "on", None))

    def _register(
        self,
        signal: str,
        builder: SignalHandler,
        once: bool = False,
        target: Any = None,
    ) -> None:
        target = self.source if target is None else target
        if target is None or not self._supports(target, signal):
            self._skipped.append(signal)
            logger.debug("Signal %s not supported by source, skipping", signal)
            return

        callback = self._guard(signal, builder)
        subscribe = getattr(target, "once", None) if once else None
        if not callable(subscribe):
            subscribe = target.on
        try:
            subscribe(signal, callback)
        except Exception as e:
            self._skipped.append(signal)
            logger.debug("Could not register %s: %s", signal, e)
            return
        self._registered.append((target, signal, callback))

    def _guard(self, signal: str, builder: SignalHandler) -> Callable[..., None]:
        def handler(*args: Any) -> None:
            try:
                event = builder(*args)
            except Exception as e:
                logger.warning("Dropped malformed %s signal: %s", signal, e, exc_info=True)
                self.metrics.record_error("adapter", signal)
                return
            if event is not None:
                self._dispatch(event)

        handler.__qualname__ = f"{type(self).__name__}.on_{signal}"
        return handler

    # ---- dispatch ----

    def _dispatch(self, event: Event) -> None:
        self._backlog.append(event)
        if self._draining:
            return
        self._draining = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is None:
            asyncio.run(self._drain())
        else:
            self._drain_task = loop.create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._backlog:
                await self.hub.emit(self._backlog.popleft())
        finally:
            self._draining = False

    async def flush(self) -> None:
        """Wait until every queued event has been emitted."""
        task = self._drain_task
        if task is not None and not task.done():
            await task

    def _event(
        self,
        kind: EventKind,
        severity: EventSeverity,
        description: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Event:
        return Event(
            kind=kind.value,
            severity=severity,
            description=description,
            timestamp=time.time(),
            payload=payload or {},
        )

    # ---- bot state helpers ----

    def _bot_position(self) -> Optional[Dict[str, int]]:
        entity = getattr(self.source, "entity", None)
        return floor_position(getattr(entity, "position", None))

    def _health_pair(self) -> Tuple[Any, Any]:
        health = _floor_number(getattr(self.source, "health", None))
        max_health = getattr(self.source, "max_health", None) or DEFAULT_MAX_HEALTH
        return health, _floor_number(max_health)

    def _is_self(self, username: Any) -> bool:
        own = getattr(self.source, "username", None)
        return own is not None and username == own

    # ---- connection ----

    def _register_connection_events(self) -> None:
        self._register("spawn", self._on_spawn, once=True)
        self._register("login", self._on_login)
        self._register("kicked", self._on_kicked)
        self._register("end", self._on_end)

    def _on_spawn(self, *args: Any) -> Event:
        return self._event(
            EventKind.SPAWN, EventSeverity.SUCCESS, "机器人已生成在世界中",
            {"position": self._bot_position(), "username": getattr(self.source, "username", None)},
        )

    def _on_login(self, *args: Any) -> Event:
        return self._event(
            EventKind.LOGIN, EventSeverity.INFO, "机器人已登录服务器",
            {"username": getattr(self.source, "username", None)},
        )

    def _on_kicked(self, reason: Any = None, *args: Any) -> Event:
        text = format_reason(reason)
        return self._event(
            EventKind.KICKED, EventSeverity.ERROR, f"机器人被服务器踢出: {text}",
            {"reason": text, "username": getattr(self.source, "username", None)},
        )

    def _on_end(self, reason: Any = None, *args: Any) -> Event:
        text = format_reason(reason)
        return self._event(
            EventKind.END, EventSeverity.WARNING, f"机器人连接已断开: {text}",
            {"reason": text},
        )

    # ---- chat ----

    def _register_chat_events(self) -> None:
        self._register("chat", self._on_chat)
        self._register("whisper", self._on_whisper)

    def _on_chat(self, username: str, message: str, *args: Any) -> Optional[Event]:
        if self._is_self(username):
            return None
        return self._event(
            EventKind.CHAT, EventSeverity.INFO, f"{username}: {message}",
            {"username": username, "message": message, "is_bot": False},
        )

    def _on_whisper(self, username: str, message: str, *args: Any) -> Optional[Event]:
        if self._is_self(username):
            return None
        return self._event(
            EventKind.CHAT, EventSeverity.INFO, f"[私聊] {username}: {message}",
            {"username": username, "message": message, "is_bot": False, "is_whisper": True},
        )

    # ---- entities ----

    def _register_entity_events(self) -> None:
        self._register("entityHurt", self._on_entity_hurt)
        self._register("entityDead", self._on_entity_dead)
        self._register("entitySpawn", self._on_entity_spawn)
        self._register("entityGone", self._on_entity_gone)

    def _entity_payload(self, entity: Any, with_position: bool = True) -> Dict[str, Any]:
        payload = {
            "entity_id": getattr(entity, "id", None),
            "entity_type": getattr(entity, "type", None),
            "entity_name": getattr(entity, "name", None),
        }
        if with_position:
            payload["position"] = floor_position(getattr(entity, "position", None))
        return payload

    def _on_entity_hurt(self, entity: Any, *args: Any) -> Event:
        payload = self._entity_payload(entity)
        payload["health"] = _floor_number(getattr(entity, "health", None))
        return self._event(
            EventKind.ENTITY_HURT, EventSeverity.INFO,
            f"实体 {_entity_label(entity)} 受到伤害", payload,
        )

    def _on_entity_dead(self, entity: Any, *args: Any) -> Event:
        return self._event(
            EventKind.ENTITY_DEATH, EventSeverity.INFO,
            f"实体 {_entity_label(entity)} 死亡", self._entity_payload(entity),
        )

    def _on_entity_spawn(self, entity: Any, *args: Any) -> Event:
        return self._event(
            EventKind.ENTITY_SPAWN, EventSeverity.INFO,
            f"实体 {_entity_label(entity)} 生成", self._entity_payload(entity),
        )

    def _on_entity_gone(self, entity: Any, *args: Any) -> Event:
        return self._event(
            EventKind.ENTITY_GONE, EventSeverity.INFO,
            f"实体 {_entity_label(entity)} 消失",
            self._entity_payload(entity, with_position=False),
        )

    # ---- blocks ----

    def _register_block_events(self) -> None:
        self._register("blockUpdate", self._on_block_update)
        self._register("blockBreakProgressObserved", self._on_block_break_progress)

    def _on_block_update(self, old_block: Any, new_block: Any, *args: Any) -> Optional[Event]:
        if old_block is None or new_block is None or old_block.type == new_block.type:
            return None
        return self._event(
            EventKind.BLOCK_UPDATE, EventSeverity.INFO,
            f"方块更新: {old_block.name} -> {new_block.name}",
            {
                "position": floor_position(new_block.position),
                "block_type": new_block.type,
                "block_name": new_block.name,
                "old_block_type": old_block.type,
                "old_block_name": getattr(old_block, "name", None),
            },
        )

    def _on_block_break_progress(self, block: Any, destroy_stage: int, *args: Any) -> Optional[Event]:
        if destroy_stage != BREAK_COMPLETE_STAGE:
            return None
        return self._event(
            EventKind.BLOCK_BREAK, EventSeverity.INFO, f"方块被破坏: {block.name}",
            {
                "position": floor_position(block.position),
                "block_type": block.type,
                "block_name": block.name,
            },
        )

    # ---- items ----

    def _register_item_events(self) -> None:
        self._register("itemDrop", self._on_item_drop)
        self._register("itemCollect", self._on_item_collect)
        inventory = getattr(self.source, "inventory", None)
        if inventory is None:
            self._skipped.append("updateSlot")
        else:
            self._register("updateSlot", self._on_update_slot, target=inventory)

    def _on_item_drop(self, entity: Any, *args: Any) -> Event:
        name = getattr(entity, "name", None)
        return self._event(
            EventKind.ITEM_DROP, EventSeverity.INFO, f"物品掉落: {name}",
            {"item_name": name, "position": floor_position(getattr(entity, "position", None))},
        )

    def _on_item_collect(self, collector: Any, item: Any, *args: Any) -> Event:
        bot_entity = getattr(self.source, "entity", None)
        is_bot = bot_entity is not None and collector is bot_entity
        name = getattr(item, "name", None)
        who = "机器人" if is_bot else "实体"
        return self._event(
            EventKind.ITEM_COLLECT, EventSeverity.INFO, f"{who} 收集物品: {name}",
            {"item_name": name, "item_type": getattr(item, "type", None), "is_bot": is_bot},
        )

    def _on_update_slot(self, slot: int, old_item: Any, new_item: Any, *args: Any) -> Optional[Event]:
        old_summary, new_summary = _item_summary(old_item), _item_summary(new_item)
        old_key = (old_summary or {}).get("name"), (old_summary or {}).get("count")
        new_key = (new_summary or {}).get("name"), (new_summary or {}).get("count")
        if old_key == new_key:
            return None
        return self._event(
            EventKind.INVENTORY_UPDATE, EventSeverity.INFO, f"物品栏更新: 槽位 {slot}",
            {"slot": slot, "old_item": old_summary, "new_item": new_summary},
        )

    # ---- damage ----

    def _register_damage_events(self) -> None:
        self._register("health", self._on_health)
        self._register("hurt", self._on_hurt)

    def _on_health(self, *args: Any) -> Event:
        health, max_health = self._health_pair()
        return self._event(
            EventKind.HEALTH_CHANGE, EventSeverity.INFO,
            f"生命值变化: {health}/{max_health}",
            {"health": health, "max_health": max_health},
        )

    def _on_hurt(self, *args: Any) -> Event:
        health, max_health = self._health_pair()
        return self._event(
            EventKind.DAMAGE, EventSeverity.WARNING,
            f"机器人受到伤害: {health}/{max_health}",
            {"health": health, "max_health": max_health},
        )

    # ---- death ----

    def _register_death_events(self) -> None:
        self._register("death", self._on_death)
        self._register("respawn", self._on_respawn)

    def _on_death(self, *args: Any) -> Event:
        return self._event(
            EventKind.DEATH, EventSeverity.ERROR, "机器人死亡",
            {"position": self._bot_position()},
        )

    def _on_respawn(self, *args: Any) -> Event:
        return self._event(
            EventKind.RESPAWN, EventSeverity.SUCCESS, "机器人重生",
            {"position": self._bot_position()},
        )

    # ---- movement ----

    def _register_movement_events(self) -> None:
        self._register("move", self._on_move)
        self._register("jump", self._on_jump)

    def _on_move(self, *args: Any) -> Optional[Event]:
        key = EventKind.MOVE.value
        if not self.move_limiter.ready(key):
            self.metrics.record_drop("move_throttle")
            return None

        entity = getattr(self.source, "entity", None)
        position = floor_position(getattr(entity, "position", None))
        if position is None:
            return None

        event = self._event(
            EventKind.MOVE, EventSeverity.INFO, "机器人移动",
            {"position": position, "on_ground": getattr(entity, "on_ground", None)},
        )
        self.move_limiter.mark(key)
        return event

    def _on_jump(self, *args: Any) -> Event:
        return self._event(
            EventKind.JUMP, EventSeverity.INFO, "机器人跳跃",
            {"position": self._bot_position()},
        )

    # ---- game state ----

    def _register_game_state_events(self) -> None:
        self._register("game", self._on_game)
        self._register("rain", self._on_rain)

    def _on_game(self, *args: Any) -> Optional[Event]:
        game = getattr(self.source, "game", None)
        mode = getattr(game, "game_mode", None)
        previous, self._last_gamemode = self._last_gamemode, mode
        if mode is None or previous is None or mode == previous:
            return None
        return self._event(
            EventKind.GAMEMODE_CHANGE, EventSeverity.INFO,
            f"游戏模式变化: {previous} -> {mode}",
            {"gamemode": mode, "previous_gamemode": previous},
        )

    def _on_rain(self, *args: Any) -> Event:
        weather = "rain" if getattr(self.source, "is_raining", False) else "clear"
        text = "下雨" if weather == "rain" else "晴朗"
        return self._event(
            EventKind.WEATHER_CHANGE, EventSeverity.INFO, f"天气变化: {text}",
            {"weather": weather},
        )

    # ---- errors ----

    def _register_error_events(self) -> None:
        self._register("error", self._on_error)

    def _on_error(self, err: Any, *args: Any) -> Event:
        code = getattr(err, "code", None) or UNKNOWN_ERROR_CODE
        message = str(err)
        stack = None
        if isinstance(err, BaseException) and err.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(err), err, err.__traceback__))
        return self._event(
            EventKind.ERROR, EventSeverity.ERROR, f"机器人错误 [{code}]: {message}",
            {"error": message, "code": str(code), "stack": stack},
        )
