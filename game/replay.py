"""Headless replay of scripted game events through a narrative session.

A replay script is YAML::

    steps:
      - snapshot: {discovered_books: [b1], completed_puzzles: 1}
        continue: 2
      - complete_part: {book_id: b1, part: 0}
      - set_beat: midpoint
      - banter: true
      - end_dialogue: true

After every step the virtual clock runs until all animations have settled;
``continue`` then presses the continue button that many times.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from dialogue import DialogueQueue, VirtualClock
from narrative import GameSnapshot

from .events import BeatChanged, ContentUnlocked, QueueDrained
from .session import NarrativeSession

logger = logging.getLogger(__name__)


class ReplayError(Exception):
    """Raised for unreadable or malformed replay scripts."""


@dataclass(frozen=True)
class ShownLine:
    entry_id: str
    speaker: str
    text: str


def load_script(path: str | Path) -> list[dict[str, Any]]:
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ReplayError(f"Cannot read replay script {path}: {exc}") from exc
    steps = doc.get("steps") if isinstance(doc, dict) else None
    if not isinstance(steps, list):
        raise ReplayError(f"Replay script {path} needs a 'steps' list")
    return [s for s in steps if isinstance(s, dict)]


class Transcript:
    """Collects everything a replay surfaced, in order."""

    def __init__(self) -> None:
        self.lines: list[ShownLine] = []
        self.notifications: list[Any] = []
        self._last_seen: dict[str, str] = {}

    def on_queue_change(self, queue: DialogueQueue) -> None:
        for entry in queue.visible:
            if self._last_seen.get(entry.id) == entry.text:
                continue
            self._last_seen[entry.id] = entry.text
            self.lines.append(ShownLine(entry.id, entry.speaker, entry.text))

    def record(self, event: Any) -> None:
        self.notifications.append(event)


def attach(session: NarrativeSession, transcript: Transcript) -> None:
    for event_type in (BeatChanged, ContentUnlocked, QueueDrained):
        session.events.subscribe(event_type, transcript.record)


def run_steps(
    session: NarrativeSession,
    clock: VirtualClock,
    steps: list[Mapping[str, Any]],
) -> None:
    session.start()
    clock.run_until_idle()
    for index, step in enumerate(steps):
        logger.debug("Replay step %d: %s", index, sorted(step))
        if "snapshot" in step:
            session.on_game_event(GameSnapshot.from_dict(step["snapshot"] or {}))
        if "complete_part" in step:
            part = step["complete_part"] or {}
            session.complete_part(str(part.get("book_id", "")), int(part.get("part", 0)))
        if "set_beat" in step:
            session.set_story_beat(str(step["set_beat"]))
        if step.get("banter"):
            session.banter()
        clock.run_until_idle()

        for _ in range(int(step.get("continue", 0))):
            session.continue_dialogue()
            clock.run_until_idle()

        if step.get("end_dialogue"):
            session.end_dialogue()
            clock.run_until_idle()
