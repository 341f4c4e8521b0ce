"""One-shot narrative triggers and content unlocking.

Triggers are evaluated in a fixed order of classes:

1. ``game_start``: only while nothing has ever been unlocked;
2. crossing edges: ``first_book_discovered``, ``first_puzzle_complete``,
   ``first_book_complete``;
3. milestones: ``books_discovered_N``, ``puzzles_complete_N``,
   ``books_complete_N`` for the catalog's thresholds;
4. flags: the reveal trigger when the reveal flag turns on, then the
   category-entry triggers when the current category changes to theirs.

A count trigger fires only on the evaluation where the count moves from below
its threshold to at-or-above it. Only the first matching trigger is returned
per call; anything else crossed on the same update is not retried.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from progress.beats import beat_reached
from progress.store import SessionProgressStore

from .catalog import ContentCatalog, NarrativeContent
from .metrics import Metrics

logger = logging.getLogger(__name__)

GAME_START = "game_start"

# (trigger, metric attribute); fires when the metric first reaches 1
_FIRST_TIME_TRIGGERS = (
    ("first_book_discovered", "books_discovered"),
    ("first_puzzle_complete", "puzzles_completed"),
    ("first_book_complete", "books_completed"),
)

# milestone family -> metric attribute
_MILESTONE_METRICS = (
    ("books_discovered", "books_discovered"),
    ("puzzles_complete", "puzzles_completed"),
    ("books_complete", "books_completed"),
)


@dataclass(frozen=True)
class TriggerMatch:
    trigger: str
    content: NarrativeContent


def beat_trigger(beat: str) -> str:
    return f"story_beat_{beat}"


def _crossed(previous: int, current: int, threshold: int) -> bool:
    return previous < threshold <= current


def candidate_triggers(
    progress: SessionProgressStore,
    metrics: Metrics,
    previous: Metrics,
    catalog: ContentCatalog,
) -> Iterator[str]:
    """Yield every trigger whose condition holds for this update, in priority order."""
    if not progress.unlocked_content_ids:
        yield GAME_START

    for trigger, attr in _FIRST_TIME_TRIGGERS:
        if _crossed(getattr(previous, attr), getattr(metrics, attr), 1):
            yield trigger

    milestones = catalog.settings.milestones
    for family, attr in _MILESTONE_METRICS:
        for threshold in milestones.get(family, ()):
            if _crossed(getattr(previous, attr), getattr(metrics, attr), threshold):
                yield f"{family}_{threshold}"

    if metrics.category_revealed and not previous.category_revealed:
        yield catalog.settings.reveal_trigger

    for category, trigger in catalog.settings.category_triggers.items():
        if metrics.current_category == category and previous.current_category != category:
            yield trigger


def content_for_trigger(
    progress: SessionProgressStore,
    trigger: str,
    catalog: ContentCatalog,
) -> NarrativeContent | None:
    """First eligible, not yet unlocked content for ``trigger`` (lowest order first)."""
    already_fired = progress.has_fired(trigger)
    for content in catalog.for_trigger(trigger):
        if not beat_reached(progress.current_story_beat, content.story_beat):
            continue
        if progress.has_unlocked(content.id):
            continue
        if already_fired and not (catalog.settings.allow_repeats or content.repeatable):
            continue
        return content
    return None


def check_trigger(
    progress: SessionProgressStore,
    metrics: Metrics,
    previous_metrics: Metrics | None,
    catalog: ContentCatalog,
) -> TriggerMatch | None:
    previous = previous_metrics or Metrics()
    for trigger in candidate_triggers(progress, metrics, previous, catalog):
        content = content_for_trigger(progress, trigger, catalog)
        if content is not None:
            logger.debug("Trigger %s matched content %s", trigger, content.id)
            return TriggerMatch(trigger, content)
    return None


def check_beat_trigger(
    progress: SessionProgressStore,
    beat: str,
    catalog: ContentCatalog,
) -> TriggerMatch | None:
    """Content announcing arrival at ``beat`` (trigger ``story_beat_<beat>``)."""
    trigger = beat_trigger(beat)
    content = content_for_trigger(progress, trigger, catalog)
    if content is None:
        return None
    return TriggerMatch(trigger, content)


def unlock(
    progress: SessionProgressStore,
    trigger: str,
    content: NarrativeContent,
) -> SessionProgressStore:
    """Record ``content`` as unlocked by ``trigger``; unlocking twice keeps one id."""
    unlocked = progress.unlocked_content_ids
    if content.id not in unlocked:
        unlocked = unlocked + (content.id,)
    logger.info("Unlocked %s (%s) via %s", content.id, content.title or "untitled", trigger)
    return progress.touched(
        unlocked_content_ids=unlocked,
        fired_triggers=progress.fired_triggers | {trigger},
        current_content_id=content.id,
    )


def current_content(progress: SessionProgressStore, catalog: ContentCatalog) -> NarrativeContent | None:
    if not progress.current_content_id:
        return None
    return catalog.get(progress.current_content_id)


def story_history(progress: SessionProgressStore, catalog: ContentCatalog) -> list[NarrativeContent]:
    """Unlocked content in unlock order; ids missing from the catalog are skipped."""
    history = []
    for content_id in progress.unlocked_content_ids:
        content = catalog.get(content_id)
        if content is not None:
            history.append(content)
    return history
