"""Story event playback.

A story event is a scripted, multi-speaker exchange. The player emits one
DialogueEntry per line, in order, and only moves on when asked to.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .chunking import DEFAULT_MAX_CHARS, chunk_text
from .models import DialogueEntry

logger = logging.getLogger(__name__)


class StoryEventError(Exception):
    """Raised when a story event cannot be loaded or played."""


@dataclass(frozen=True)
class DialogueLine:
    speaker: str
    text: str
    emotion: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DialogueLine:
        emotion = data.get("emotion", "")
        # Some authoring tools write a list of emotions; the first one is used.
        if isinstance(emotion, (list, tuple)):
            emotion = emotion[0] if emotion else ""
        return cls(
            speaker=str(data.get("speaker", "")).strip(),
            text=str(data.get("text", "")),
            emotion=str(emotion or ""),
        )


@dataclass(frozen=True)
class StoryEvent:
    id: str
    title: str = ""
    story_beat: str = ""
    lines: tuple[DialogueLine, ...] = ()
    characters: Mapping[str, str] = field(default_factory=dict)

    def display_name(self, speaker: str) -> str:
        return self.characters.get(speaker, speaker)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StoryEvent:
        header = data.get("story_event") or data.get("storyEvent") or data
        event_id = str(header.get("id", "")).strip()
        if not event_id:
            raise StoryEventError("Story event without an id")

        characters: dict[str, str] = {}
        for raw in data.get("characters") or []:
            if isinstance(raw, Mapping) and raw.get("id"):
                characters[str(raw["id"])] = str(raw.get("name") or raw["id"])

        lines = []
        for raw in data.get("dialogue") or []:
            if not isinstance(raw, Mapping):
                logger.warning("Story event %s: skipping malformed line %r", event_id, raw)
                continue
            lines.append(DialogueLine.from_dict(raw))

        return cls(
            id=event_id,
            title=str(header.get("title", "")),
            story_beat=str(header.get("story_beat") or header.get("storyBeat") or ""),
            lines=tuple(lines),
            characters=characters,
        )


def load_story_events(path: str | Path) -> dict[str, StoryEvent]:
    """Read ``{story_events: [...]}`` from YAML or JSON. Missing or bad files give {}."""
    path = Path(path)
    if not path.exists():
        logger.warning("Story events file not found: %s", path)
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to read story events %s: %s", path, exc)
        return {}

    raw_events = doc.get("story_events") if isinstance(doc, dict) else None
    if not isinstance(raw_events, list):
        logger.error("Story events file %s has no story_events list", path)
        return {}

    events: dict[str, StoryEvent] = {}
    for raw in raw_events:
        if not isinstance(raw, Mapping):
            continue
        try:
            event = StoryEvent.from_dict(raw)
        except StoryEventError as exc:
            logger.warning("Skipping story event: %s", exc)
            continue
        if event.id in events:
            logger.warning("Duplicate story event id %s ignored", event.id)
            continue
        events[event.id] = event
    logger.info("Loaded %d story events from %s", len(events), path)
    return events


class StoryEventPlayer:
    """Feeds one story event, line by line, to a dialogue consumer."""

    def __init__(
        self,
        events: Mapping[str, StoryEvent] | None = None,
        *,
        max_chars: int = DEFAULT_MAX_CHARS,
        on_dialogue: Callable[[DialogueEntry], Any] | None = None,
        on_complete: Callable[[], Any] | None = None,
    ):
        self._events = dict(events or {})
        self._max_chars = max_chars
        self._on_dialogue = on_dialogue
        self._on_complete = on_complete
        self._event: StoryEvent | None = None
        self._sequence = 0
        self._paused = False

    @property
    def event(self) -> StoryEvent | None:
        return self._event

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_complete(self) -> bool:
        return self._event is None or self._sequence >= len(self._event.lines)

    def has_event(self, event_id: str) -> bool:
        return event_id in self._events

    def load(self, event_id: str) -> StoryEvent:
        event = self._events.get(event_id)
        if event is None:
            raise StoryEventError(f"Story event not found: {event_id}")
        if event.id != event_id:
            raise StoryEventError(f"Event id mismatch: requested {event_id!r} but loaded {event.id!r}")
        return self.play(event)

    def play(self, event: StoryEvent) -> StoryEvent:
        """Make ``event`` current and rewind to its first line."""
        self._event = event
        self._sequence = 0
        self._paused = False
        return event

    def start(self) -> None:
        if self._event is None:
            raise StoryEventError("No story event loaded")
        self._emit_next()

    def advance(self) -> None:
        self._emit_next()

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False
        self._emit_next()

    def reset(self) -> None:
        self._sequence = 0
        self._paused = False

    def next_entry(self) -> DialogueEntry | None:
        """Build the entry for the next line and move past it; None at the end."""
        event = self._event
        while event is not None and self._sequence < len(event.lines):
            index = self._sequence
            line = event.lines[index]
            self._sequence += 1
            if not line.speaker or not line.text.strip():
                logger.error("Story event %s line %d has no speaker or text, skipped", event.id, index)
                continue
            if event.characters and line.speaker not in event.characters:
                logger.error("Story event %s: unknown speaker %s, line skipped", event.id, line.speaker)
                continue
            return DialogueEntry(
                id=f"{event.id}-{index}",
                speaker=event.display_name(line.speaker),
                chunks=tuple(chunk_text(line.text, self._max_chars)),
                emotion=line.emotion,
            )
        return None

    def _emit_next(self) -> None:
        if self._paused:
            return
        entry = self.next_entry()
        if entry is not None:
            if self._on_dialogue is not None:
                self._on_dialogue(entry)
            return
        logger.debug("Story event %s complete", self._event.id if self._event else "?")
        if self._on_complete is not None:
            self._on_complete()
