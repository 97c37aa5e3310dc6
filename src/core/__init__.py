"""Party Quest Core"""
__version__ = "0.1.0"

from src.core.errors import PartialFailure, QuestCoordinationError
from src.core.event_bus import EventBus, GameEvent
from src.core.event_types import EventTypes

__all__ = [
    "EventBus",
    "EventTypes",
    "GameEvent",
    "PartialFailure",
    "QuestCoordinationError",
]
