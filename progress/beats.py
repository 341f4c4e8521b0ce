"""Story beats: the fixed, totally ordered phases of the narrative."""

from __future__ import annotations

BEAT_ORDER = (
    "hook",
    "first_plot_point",
    "first_pinch_point",
    "midpoint",
    "second_pinch_point",
    "second_plot_point",
    "climax",
    "resolution",
)

DEFAULT_BEAT = BEAT_ORDER[0]

_INDEX = {beat: i for i, beat in enumerate(BEAT_ORDER)}


def is_beat(value: object) -> bool:
    return isinstance(value, str) and value in _INDEX


def beat_index(beat: str) -> int:
    """Position of ``beat`` in the story; raises ValueError for unknown beats."""
    try:
        return _INDEX[beat]
    except KeyError:
        raise ValueError(f"Unknown story beat: {beat!r}") from None


def beat_reached(current: str, required: str) -> bool:
    """True when ``current`` is at or past ``required``."""
    return beat_index(current) >= beat_index(required)
