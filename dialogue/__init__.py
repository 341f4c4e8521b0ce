"""Dialogue presentation: the animated panel queue and story event playback."""

from .banter import BanterLine, BanterPicker, Character, load_characters
from .chunking import chunk_text
from .models import ACTIVE, ENTERING, EXITING, SHIFTING, AnimationTimings, DialogueEntry
from .player import StoryEvent, StoryEventError, StoryEventPlayer, load_story_events
from .queue import DialogueQueue
from .scheduler import LoopScheduler, VirtualClock

__all__ = [
    "ACTIVE",
    "ENTERING",
    "EXITING",
    "SHIFTING",
    "AnimationTimings",
    "BanterLine",
    "BanterPicker",
    "Character",
    "DialogueEntry",
    "DialogueQueue",
    "LoopScheduler",
    "StoryEvent",
    "StoryEventError",
    "StoryEventPlayer",
    "VirtualClock",
    "chunk_text",
    "load_characters",
    "load_story_events",
]
