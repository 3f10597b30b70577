"""
In-process event bus + JSONL lifecycle event logger.
"""

from sessionkeeper.core.events.log import EventLogger, redact
from sessionkeeper.core.events.models import BaseEvent, EventSeverity, SourceSubsystem
from sessionkeeper.core.events.bus import EventBus, EventBusConfig

__all__ = [
    "EventLogger",
    "redact",
    "BaseEvent",
    "EventSeverity",
    "SourceSubsystem",
    "EventBus",
    "EventBusConfig",
]
