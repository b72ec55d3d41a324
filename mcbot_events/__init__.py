"""
mcbot_events - normalized world events for a connected game bot.

Raw bot signals are adapted into immutable events, routed through a hub
with filters and a rolling history, and important ones are forwarded to
an outward host channel with graceful fallback to the log.
"""

__version__ = "0.3.0"

from .config import ConfigError, PipelineConfig, load_config
from .metrics import MetricsCollector
from .pipeline import EventPipeline

__all__ = [
    "__version__",
    "ConfigError",
    "PipelineConfig",
    "load_config",
    "MetricsCollector",
    "EventPipeline",
]
