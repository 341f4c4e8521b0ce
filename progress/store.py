"""Session progress store and its JSON persistence.

The store is an immutable snapshot: every change returns a new instance so
callers can always compare the state before and after an evaluation.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any

from . import bitmap
from .beats import DEFAULT_BEAT, is_beat
from .books import BookRegistry

logger = logging.getLogger(__name__)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class SessionProgressStore:
    """Persisted narrative progress for one save."""

    current_story_beat: str = DEFAULT_BEAT
    unlocked_content_ids: tuple[str, ...] = ()  # unlock order
    fired_triggers: frozenset[str] = frozenset()
    current_content_id: str = ""
    last_updated: str = ""
    per_book_bitmaps: Mapping[str, int] = field(default_factory=dict)
    last_metrics: Mapping[str, Any] = field(default_factory=dict)  # metrics at the last evaluation

    def __post_init__(self) -> None:
        object.__setattr__(self, "unlocked_content_ids", tuple(self.unlocked_content_ids))
        object.__setattr__(self, "fired_triggers", frozenset(self.fired_triggers))
        object.__setattr__(self, "per_book_bitmaps", MappingProxyType(dict(self.per_book_bitmaps)))
        object.__setattr__(self, "last_metrics", MappingProxyType(dict(self.last_metrics)))

    # ── Queries ─────────────────────────────────────────────────

    def has_unlocked(self, content_id: str) -> bool:
        return content_id in self.unlocked_content_ids

    def has_fired(self, trigger: str) -> bool:
        return trigger in self.fired_triggers

    def bitmap_for(self, book_id: str) -> int:
        return self.per_book_bitmaps.get(book_id, 0)

    # ── Snapshot updates ────────────────────────────────────────

    def touched(self, **changes: Any) -> SessionProgressStore:
        """Copy with ``changes`` applied and ``last_updated`` refreshed."""
        return replace(self, last_updated=now_iso(), **changes)

    def with_bitmap(self, book_id: str, value: int) -> SessionProgressStore:
        bitmaps = dict(self.per_book_bitmaps)
        bitmaps[book_id] = value
        return self.touched(per_book_bitmaps=bitmaps)

    def with_part_completed(self, book_id: str, part_index: int) -> SessionProgressStore:
        current = self.bitmap_for(book_id)
        updated = bitmap.set_part(current, part_index)
        if updated == current and book_id in self.per_book_bitmaps:
            return self
        return self.with_bitmap(book_id, updated)

    def with_merged_bitmaps(self, other: Mapping[str, int]) -> SessionProgressStore:
        """Union this store's book progress with ``other`` (e.g. a second device's save)."""
        bitmaps = dict(self.per_book_bitmaps)
        for book_id, value in other.items():
            bitmaps[book_id] = bitmap.merge(bitmaps.get(book_id, 0), value)
        return self.touched(per_book_bitmaps=bitmaps)

    def with_last_metrics(self, record: Mapping[str, Any]) -> SessionProgressStore:
        if dict(self.last_metrics) == dict(record):
            return self
        return replace(self, last_metrics=record)

    def sanitized(self, books: BookRegistry) -> SessionProgressStore:
        """Drop bits beyond each known book's current part count."""
        cleaned: dict[str, int] = {}
        changed = False
        for book_id, value in self.per_book_bitmaps.items():
            parts = books.parts_for(book_id)
            if parts is None:
                cleaned[book_id] = value
                continue
            fixed = bitmap.sanitize(value, parts)
            if fixed != value:
                logger.debug("Sanitized bitmap for %s: %d -> %d (%d parts)", book_id, value, fixed, parts)
                changed = True
            cleaned[book_id] = fixed
        if not changed:
            return self
        return replace(self, per_book_bitmaps=cleaned)

    # ── Wire format ─────────────────────────────────────────────

    def to_payload(self) -> dict[str, Any]:
        return {
            "currentStoryBeat": self.current_story_beat,
            "unlockedContentIds": list(self.unlocked_content_ids),
            "firedTriggers": sorted(self.fired_triggers),
            "currentContentId": self.current_content_id,
            "lastUpdated": self.last_updated,
            "perBookBitmaps": dict(self.per_book_bitmaps),
            "lastMetrics": dict(self.last_metrics),
        }

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> SessionProgressStore:
        """Build a store from saved data, tolerating missing or bad fields."""
        beat = raw.get("currentStoryBeat", DEFAULT_BEAT)
        if not is_beat(beat):
            logger.warning("Unknown story beat %r in save; resetting to %s", beat, DEFAULT_BEAT)
            beat = DEFAULT_BEAT

        unlocked: list[str] = []
        for content_id in raw.get("unlockedContentIds") or []:
            content_id = str(content_id)
            if content_id not in unlocked:
                unlocked.append(content_id)

        bitmaps: dict[str, int] = {}
        raw_bitmaps = raw.get("perBookBitmaps") or {}
        if isinstance(raw_bitmaps, Mapping):
            for book_id, value in raw_bitmaps.items():
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    logger.warning("Dropping invalid bitmap for %s: %r", book_id, value)
                    continue
                bitmaps[str(book_id)] = value

        last_metrics = raw.get("lastMetrics") or {}
        if not isinstance(last_metrics, Mapping):
            logger.warning("Dropping invalid lastMetrics: %r", last_metrics)
            last_metrics = {}

        return cls(
            current_story_beat=beat,
            unlocked_content_ids=tuple(unlocked),
            fired_triggers=frozenset(str(t) for t in raw.get("firedTriggers") or []),
            current_content_id=str(raw.get("currentContentId") or ""),
            last_updated=str(raw.get("lastUpdated") or ""),
            per_book_bitmaps=bitmaps,
            last_metrics={str(k): v for k, v in last_metrics.items()},
        )


def new_game_progress(default_beat: str = DEFAULT_BEAT) -> SessionProgressStore:
    if not is_beat(default_beat):
        default_beat = DEFAULT_BEAT
    return SessionProgressStore(current_story_beat=default_beat, last_updated=now_iso())


class StoreManager:
    """Load / save SessionProgressStore to a JSON file."""

    def __init__(self, path: str | Path, books: BookRegistry | None = None):
        self._path = Path(path)
        self._books = books or BookRegistry()

    @property
    def path(self) -> Path:
        return self._path

    def load(self, default_beat: str = DEFAULT_BEAT) -> SessionProgressStore:
        if self._path.exists():
            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                # Leave the unreadable file in place; the next save replaces it.
                logger.error("Could not read progress from %s: %s", self._path, exc)
                return new_game_progress(default_beat)
            if not isinstance(raw, dict):
                logger.error("Progress file %s does not hold an object", self._path)
                return new_game_progress(default_beat)
            store = SessionProgressStore.from_payload(raw).sanitized(self._books)
            logger.debug(
                "Loaded progress: beat=%s unlocked=%d",
                store.current_story_beat,
                len(store.unlocked_content_ids),
            )
            return store

        store = new_game_progress(default_beat)
        self.save(store)
        logger.info("Created initial progress file at %s", self._path)
        return store

    def save(self, store: SessionProgressStore) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(store.to_payload(), indent=2), encoding="utf-8")
        logger.debug("Saved progress to %s", self._path)

    def reset(self, default_beat: str = DEFAULT_BEAT) -> SessionProgressStore:
        store = new_game_progress(default_beat)
        self.save(store)
        logger.info("Reset progress at %s", self._path)
        return store
