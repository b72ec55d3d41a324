"""
Configuration for the event pipeline.

Load settings from JSON or YAML files so history size, throttling and
notification policy can be tuned without modifying code.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .events.notifier import DEFAULT_IMPORTANT_KINDS
from .events.transports import DEFAULT_PROMPT_NAME, DEFAULT_TOPIC

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Raised when a configuration file is unreadable or invalid."""


@dataclass
class PipelineConfig:
    """
    Settings for one event pipeline.

    Attributes:
        history_size: Capacity of the hub's rolling history
        history_query_limit: Default number of events returned by history queries
        move_interval_ms: Coalescing window for movement signals
        notifications_enabled: Initial notifier state
        important_kinds: Kinds the notifier always forwards
        notification_topic: Topic for notification-style transports
        prompt_name: Name for the prompt transport
        log_level: Root log level
        log_dir: Directory for rotating log files (None = console only)
    """
    history_size: int = 1000
    history_query_limit: int = 100
    move_interval_ms: int = 500
    notifications_enabled: bool = True
    important_kinds: List[str] = field(
        default_factory=lambda: sorted(DEFAULT_IMPORTANT_KINDS)
    )
    notification_topic: str = DEFAULT_TOPIC
    prompt_name: str = DEFAULT_PROMPT_NAME
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    def validate(self) -> None:
        """Raise ConfigError on out-of-range values."""
        if self.history_size < 0:
            raise ConfigError("history_size must be >= 0")
        if self.history_query_limit < 1:
            raise ConfigError("history_query_limit must be >= 1")
        if self.move_interval_ms < 0:
            raise ConfigError("move_interval_ms must be >= 0")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        if not self.notification_topic:
            raise ConfigError("notification_topic is required")
        if not isinstance(self.important_kinds, (list, tuple)) or not all(
            isinstance(kind, str) and kind.strip() for kind in self.important_kinds
        ):
            raise ConfigError("important_kinds must be a list of non-empty kind names")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Create from dictionary; unknown keys are ignored."""
        unknown = sorted(k for k in data if k not in cls.__dataclass_fields__)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {unknown}")
        config = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        config.validate()
        config.important_kinds = list(config.important_kinds)
        return config

    def save(self, path: str) -> None:
        """Save config to JSON or YAML, chosen by extension."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            if path.endswith((".yaml", ".yml")):
                yaml.safe_dump(self.to_dict(), f, sort_keys=False, allow_unicode=True)
            else:
                json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> "PipelineConfig":
        """Load config from a JSON or YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except OSError as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e

        try:
            if path.endswith((".yaml", ".yml")):
                data = yaml.safe_load(content)
            else:
                data = json.loads(content)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot parse config {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must contain a mapping")
        try:
            return cls.from_dict(data)
        except TypeError as e:
            raise ConfigError(f"Invalid config {path}: {e}") from e


def load_config(path: Optional[str] = None) -> PipelineConfig:
    """Config from path, or defaults when no path is given."""
    if not path:
        return PipelineConfig()
    config = PipelineConfig.load(path)
    logger.info(f"Loaded pipeline config from {path}")
    return config
