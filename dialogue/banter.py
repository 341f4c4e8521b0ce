"""Character banter: short idle lines picked at random for the current beat.

Each character carries a pool of lines, each available from one story beat
and optionally until a later one. Characters spoken recently are still
eligible but three times less likely to be picked.
"""

from __future__ import annotations

import logging
import random
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from progress.beats import DEFAULT_BEAT, beat_index, is_beat

from .chunking import DEFAULT_MAX_CHARS, chunk_text
from .models import DialogueEntry

logger = logging.getLogger(__name__)

DEFAULT_RECENT_WINDOW = 3
RECENT_WEIGHT = 1
FRESH_WEIGHT = 3


@dataclass(frozen=True)
class BanterLine:
    id: str
    text: str
    emotion: str = ""
    category: str = ""
    available_from: str = DEFAULT_BEAT
    available_until: str = ""

    def available_at(self, beat: str) -> bool:
        current = beat_index(beat)
        if current < beat_index(self.available_from):
            return False
        return not self.available_until or current <= beat_index(self.available_until)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BanterLine:
        emotion = data.get("emotion", "")
        if isinstance(emotion, (list, tuple)):
            emotion = emotion[0] if emotion else ""
        available_from = str(data.get("available_from") or DEFAULT_BEAT)
        if not is_beat(available_from):
            raise ValueError(f"unknown beat {available_from!r}")
        available_until = str(data.get("available_until") or "")
        if available_until and not is_beat(available_until):
            # An unknown end beat leaves the line open-ended.
            logger.warning("Banter line %s: unknown available_until %r ignored", data.get("id"), available_until)
            available_until = ""
        return cls(
            id=str(data.get("id", "")).strip(),
            text=str(data.get("text", "")),
            emotion=str(emotion or ""),
            category=str(data.get("category") or ""),
            available_from=available_from,
            available_until=available_until,
        )


@dataclass(frozen=True)
class Character:
    id: str
    name: str
    lines: tuple[BanterLine, ...] = ()

    def lines_at(self, beat: str) -> list[BanterLine]:
        return [line for line in self.lines if line.available_at(beat)]


def parse_characters(doc: Any) -> dict[str, Character]:
    """Build characters from ``{characters: [{id, name, banter: [...]}]}``."""
    raw_characters = doc.get("characters") if isinstance(doc, Mapping) else None
    if not isinstance(raw_characters, list):
        return {}

    characters: dict[str, Character] = {}
    for raw in raw_characters:
        if not isinstance(raw, Mapping) or not raw.get("id"):
            logger.warning("Skipping character without an id: %r", raw)
            continue
        char_id = str(raw["id"])
        lines = []
        for raw_line in raw.get("banter") or []:
            if not isinstance(raw_line, Mapping):
                continue
            try:
                line = BanterLine.from_dict(raw_line)
            except ValueError as exc:
                logger.warning("Character %s: skipping banter line: %s", char_id, exc)
                continue
            if not line.id or not line.text.strip():
                logger.warning("Character %s: banter line without id or text skipped", char_id)
                continue
            lines.append(line)
        if char_id in characters:
            logger.warning("Duplicate character %s ignored", char_id)
            continue
        characters[char_id] = Character(char_id, str(raw.get("name") or char_id), tuple(lines))
    return characters


def load_characters(path: str | Path) -> dict[str, Character]:
    """Read the banter file. Missing or unreadable files give {}."""
    path = Path(path)
    if not path.exists():
        logger.warning("Banter file not found: %s", path)
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to read banter %s: %s", path, exc)
        return {}
    characters = parse_characters(doc)
    logger.info("Loaded %d banter characters from %s", len(characters), path)
    return characters


class BanterPicker:
    """Random banter for a story beat, steering away from recent speakers."""

    def __init__(
        self,
        characters: Mapping[str, Character] | None = None,
        *,
        recent_window: int = DEFAULT_RECENT_WINDOW,
        max_chars: int = DEFAULT_MAX_CHARS,
        rng: random.Random | None = None,
    ):
        self._characters = dict(characters or {})
        self._recent: deque[str] = deque(maxlen=max(1, recent_window))
        self._max_chars = max_chars
        self._rng = rng or random.Random()
        self._serial = 0

    @property
    def recent(self) -> list[str]:
        """Recently picked character ids, oldest first."""
        return list(self._recent)

    def __bool__(self) -> bool:
        return bool(self._characters)

    def pick(self, beat: str) -> DialogueEntry | None:
        """One banter entry for ``beat``, or None when nobody has a line there."""
        if not is_beat(beat):
            logger.warning("Banter requested for unknown beat %r", beat)
            return None

        available = [(c, c.lines_at(beat)) for c in self._characters.values()]
        available = [(c, lines) for c, lines in available if lines]
        if not available:
            logger.debug("No banter available at %s", beat)
            return None

        weights = [RECENT_WEIGHT if c.id in self._recent else FRESH_WEIGHT for c, _ in available]
        character, lines = self._rng.choices(available, weights=weights, k=1)[0]
        line = self._rng.choice(lines)
        self._remember(character.id)

        self._serial += 1
        return DialogueEntry(
            id=f"banter-{character.id}-{line.id}-{self._serial}",
            speaker=character.name,
            chunks=tuple(chunk_text(line.text, self._max_chars)),
            emotion=line.emotion,
        )

    def _remember(self, character_id: str) -> None:
        if character_id in self._recent:
            self._recent.remove(character_id)
        self._recent.append(character_id)
