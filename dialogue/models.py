"""Dialogue entries and panel animation states."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

# Animation states of a visible panel. "active" is the only stable one.
ENTERING = "entering"
ACTIVE = "active"
SHIFTING = "shifting"
EXITING = "exiting"

ANIMATION_STATES = (ENTERING, ACTIVE, SHIFTING, EXITING)


@dataclass(frozen=True)
class DialogueEntry:
    """One speaker's turn, revealed chunk by chunk."""

    id: str
    speaker: str
    chunks: tuple[str, ...]
    current_chunk_index: int = 0
    emotion: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "chunks", tuple(self.chunks))

    @property
    def text(self) -> str:
        """The chunk currently on screen."""
        if not self.chunks:
            return ""
        index = min(max(self.current_chunk_index, 0), len(self.chunks) - 1)
        return self.chunks[index]

    @property
    def has_more_chunks(self) -> bool:
        return self.current_chunk_index < len(self.chunks) - 1

    def with_next_chunk(self) -> DialogueEntry:
        return replace(self, current_chunk_index=self.current_chunk_index + 1)


def is_well_formed(entry: object) -> bool:
    """An entry needs an id, a speaker and at least one non-empty chunk."""
    if not isinstance(entry, DialogueEntry):
        return False
    if not entry.id or not entry.speaker:
        return False
    if not entry.chunks or not all(isinstance(c, str) and c.strip() for c in entry.chunks):
        return False
    return 0 <= entry.current_chunk_index < len(entry.chunks)


@dataclass(frozen=True)
class AnimationTimings:
    """Transition durations in milliseconds."""

    enter: float = 500
    shift: float = 500
    exit: float = 500
    stagger: float = 100

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any] | None) -> AnimationTimings:
        cfg = cfg or {}
        defaults = cls()
        return cls(
            enter=float(cfg.get("enter_ms", defaults.enter)),
            shift=float(cfg.get("shift_ms", defaults.shift)),
            exit=float(cfg.get("exit_ms", defaults.exit)),
            stagger=float(cfg.get("stagger_ms", defaults.stagger)),
        )
