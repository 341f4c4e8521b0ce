"""Game-facing layer around the narrative session."""

from .config import load_config
from .events import BeatChanged, ContentUnlocked, EventChannel, QueueDrained
from .session import NarrativeSession, NarrativeUpdate

__all__ = [
    "BeatChanged",
    "ContentUnlocked",
    "EventChannel",
    "NarrativeSession",
    "NarrativeUpdate",
    "QueueDrained",
    "load_config",
]
