"""Narrative session: the loop between game events and the dialogue queue.

Each game event: recompute metrics -> check progression rules -> check
triggers -> unlock -> present dialogue -> persist.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace

from dialogue import (
    AnimationTimings,
    BanterPicker,
    DialogueEntry,
    DialogueQueue,
    StoryEvent,
    StoryEventError,
    StoryEventPlayer,
    chunk_text,
    load_characters,
    load_story_events,
)
from dialogue.banter import DEFAULT_RECENT_WINDOW
from dialogue.chunking import DEFAULT_MAX_CHARS
from dialogue.scheduler import Scheduler, VirtualClock
from narrative import (
    ContentCatalog,
    GameSnapshot,
    Metrics,
    NarrativeContent,
    ProgressionRule,
    RuleBook,
    TriggerMatch,
    advance_story_beat,
    check_beat_advancement,
    check_beat_trigger,
    check_trigger,
    compute_metrics,
    current_content,
    load_content_catalog,
    load_rule_book,
    story_history,
    unlock,
)
from progress import bitmap
from progress.beats import is_beat
from progress.books import BookRegistry, load_book_registry
from progress.store import SessionProgressStore, StoreManager

from .config import DEFAULT_STATE_FILE, load_config, resolve_path, storage_path
from .events import BeatChanged, ContentUnlocked, EventChannel, QueueDrained

logger = logging.getLogger(__name__)

DEFAULT_SPEAKER = "narrator"


@dataclass(frozen=True)
class NarrativeUpdate:
    """What one evaluation changed."""

    progress: SessionProgressStore
    advanced_by: ProgressionRule | None = None
    unlocked: tuple[TriggerMatch, ...] = field(default_factory=tuple)

    @property
    def changed(self) -> bool:
        return self.advanced_by is not None or bool(self.unlocked)


class NarrativeSession:
    """One player's narrative state plus its on-screen dialogue."""

    def __init__(
        self,
        config: dict | None = None,
        *,
        scheduler: Scheduler | None = None,
        store: StoreManager | None = None,
        rules: RuleBook | None = None,
        catalog: ContentCatalog | None = None,
        books: BookRegistry | None = None,
        story_events: Mapping[str, StoryEvent] | None = None,
        banter: BanterPicker | None = None,
        on_change: Callable[[DialogueQueue], None] | None = None,
    ):
        self._cfg = config if config is not None else load_config()
        narrative_cfg = self._cfg.get("narrative", {})
        dialogue_cfg = self._cfg.get("dialogue", {})

        self._books = books if books is not None else load_book_registry(
            resolve_path(self._cfg, narrative_cfg.get("books_file"), data_file=True)
        )
        self._rules = rules if rules is not None else load_rule_book(
            resolve_path(self._cfg, narrative_cfg.get("rules_file"), data_file=True)
        )
        if "enable_auto_progression" in narrative_cfg:
            self._rules = replace(
                self._rules, enable_auto_progression=bool(narrative_cfg["enable_auto_progression"])
            )
        self._catalog = catalog if catalog is not None else load_content_catalog(
            resolve_path(self._cfg, narrative_cfg.get("catalog_file"), data_file=True)
        )
        if story_events is None:
            events_path = resolve_path(self._cfg, narrative_cfg.get("events_file"), data_file=True)
            story_events = load_story_events(events_path) if events_path else {}

        self._store = store or StoreManager(
            storage_path(self._cfg, "state_file", DEFAULT_STATE_FILE), self._books
        )

        self.events = EventChannel()
        self._scheduler = scheduler or VirtualClock()
        self._max_chars = int(dialogue_cfg.get("max_chars_per_screen", DEFAULT_MAX_CHARS))
        self.queue = DialogueQueue(
            self._scheduler,
            timings=AnimationTimings.from_config(dialogue_cfg.get("animation")),
            on_continue=self._on_entry_finished,
            on_drained=self._on_drained,
            on_change=on_change,
        )
        self.player = StoryEventPlayer(
            story_events,
            max_chars=self._max_chars,
            on_dialogue=self.queue.enqueue,
            on_complete=self._on_event_complete,
        )
        if banter is None:
            banter_path = resolve_path(self._cfg, narrative_cfg.get("banter_file"), data_file=True)
            banter = BanterPicker(
                load_characters(banter_path) if banter_path else {},
                recent_window=int(dialogue_cfg.get("banter_recent_window", DEFAULT_RECENT_WINDOW)),
                max_chars=self._max_chars,
            )
        self._banter = banter

        self._playing = False
        self._presenting = False
        self._waiting: deque[NarrativeContent] = deque()

        self._progress: SessionProgressStore | None = None
        self._snapshot = GameSnapshot()
        self._metrics: Metrics | None = None

    # ── Status ──────────────────────────────────────────────────

    @property
    def progress(self) -> SessionProgressStore:
        if self._progress is None:
            self._progress = self._store.load(self._catalog.settings.default_story_beat)
        return self._progress

    @property
    def story_beat(self) -> str:
        return self.progress.current_story_beat

    @property
    def metrics(self) -> Metrics | None:
        return self._metrics

    @property
    def rules(self) -> RuleBook:
        return self._rules

    @property
    def catalog(self) -> ContentCatalog:
        return self._catalog

    @property
    def books(self) -> BookRegistry:
        return self._books

    @property
    def is_playing_event(self) -> bool:
        return self._playing

    @property
    def is_presenting(self) -> bool:
        """Something is on screen and the player has not dismissed it yet."""
        return self._presenting

    @property
    def waiting(self) -> list[NarrativeContent]:
        """Unlocked content queued behind what is on screen, oldest first."""
        return list(self._waiting)

    def current_content(self) -> NarrativeContent | None:
        return current_content(self.progress, self._catalog)

    def history(self) -> list[NarrativeContent]:
        return story_history(self.progress, self._catalog)

    def book_percent(self, book_id: str) -> int:
        parts = self._books.parts_for(book_id)
        if parts is None:
            return 0
        return bitmap.percent(self.progress.bitmap_for(book_id), parts)

    # ── Game-facing operations ──────────────────────────────────

    def start(self, snapshot: GameSnapshot | None = None) -> NarrativeUpdate:
        """Load progress and surface the opening content of a new game.

        ``snapshot`` is the game state being resumed; :meth:`complete_part`
        builds on it. It is not evaluated for triggers.
        """
        progress = self.progress
        if snapshot is not None:
            self._snapshot = snapshot
        logger.info(
            "=== Session start === beat=%s unlocked=%d",
            progress.current_story_beat,
            len(progress.unlocked_content_ids),
        )
        match = check_trigger(progress, Metrics(), None, self._catalog)
        if match is None:
            return NarrativeUpdate(progress)
        progress = self._unlock(progress, match)
        self._commit(progress)
        self._present(match.content)
        return NarrativeUpdate(progress, unlocked=(match,))

    def on_game_event(self, snapshot: GameSnapshot) -> NarrativeUpdate:
        """Evaluate one change of game state (a puzzle solved, a book found...)."""
        before = self.progress
        metrics = compute_metrics(snapshot, self._books)
        # Saved with the progress so a reloaded session sees the same edges.
        previous_metrics = Metrics.from_record(before.last_metrics)
        self._snapshot = snapshot
        self._metrics = metrics

        progress = before
        merged = {
            book_id: bitmap.merge(progress.bitmap_for(book_id), value)
            for book_id, value in snapshot.book_progress.items()
        }
        if any(progress.per_book_bitmaps.get(k) != v for k, v in merged.items()):
            progress = progress.with_merged_bitmaps(snapshot.book_progress).sanitized(self._books)

        matches: list[TriggerMatch] = []
        rule = check_beat_advancement(progress, metrics, self._rules)
        if rule is not None:
            progress = self._change_beat(progress, rule.to_beat, rule.id)
            beat_match = check_beat_trigger(progress, rule.to_beat, self._catalog)
            if beat_match is not None:
                progress = self._unlock(progress, beat_match)
                matches.append(beat_match)

        match = check_trigger(progress, metrics, previous_metrics, self._catalog)
        if match is not None:
            progress = self._unlock(progress, match)
            matches.append(match)

        progress = progress.with_last_metrics(metrics.as_record())
        if progress is not before:
            self._commit(progress)
        for m in matches:
            self._present(m.content)
        return NarrativeUpdate(progress, advanced_by=rule, unlocked=tuple(matches))

    def complete_part(self, book_id: str, part_index: int) -> NarrativeUpdate:
        """Mark one part of a book complete and evaluate the resulting state."""
        parts = self._books.parts_for(book_id)
        if parts is not None and not 0 <= part_index < parts:
            logger.warning("Part %d out of range for %s (%d parts)", part_index, book_id, parts)
            return NarrativeUpdate(self.progress)

        updated = bitmap.set_part(self.progress.bitmap_for(book_id), part_index)
        book_progress = dict(self._snapshot.book_progress)
        book_progress[book_id] = bitmap.merge(book_progress.get(book_id, 0), updated)
        snapshot = replace(
            self._snapshot,
            discovered_books=self._snapshot.discovered_books | {book_id},
            book_progress=book_progress,
        )
        return self.on_game_event(snapshot)

    def set_story_beat(self, beat: str) -> bool:
        """Jump to ``beat`` directly. Only allowed when the rules enable manual override."""
        if not self._rules.allow_manual_override:
            logger.warning("Manual story beat override is disabled; ignoring %s", beat)
            return False
        if not is_beat(beat):
            logger.warning("Unknown story beat %r", beat)
            return False
        progress = self.progress
        if beat == progress.current_story_beat:
            return False
        progress = self._change_beat(progress, beat, "manual", manual=True)
        match = check_beat_trigger(progress, beat, self._catalog)
        if match is not None:
            progress = self._unlock(progress, match)
        self._commit(progress)
        if match is not None:
            self._present(match.content)
        return True

    def continue_dialogue(self) -> bool:
        """Player pressed continue. True when another chunk was revealed."""
        return self.queue.advance()

    def banter(self) -> bool:
        """Show a random character line for the current beat when the screen is idle."""
        if self._presenting or self._waiting:
            return False
        entry = self._banter.pick(self.story_beat)
        if entry is None:
            return False
        self._presenting = True
        if not self.queue.enqueue(entry):
            self._presenting = False
            return False
        return True

    def end_dialogue(self) -> None:
        """Close the dialogue, dropping anything still waiting to be shown."""
        if self._waiting:
            logger.info("Dropping %d waiting narrative item(s)", len(self._waiting))
        self._waiting.clear()
        self._presenting = False
        self._playing = False
        self.player.reset()
        self.queue.clear()

    # ── Internals ───────────────────────────────────────────────

    def _change_beat(
        self, progress: SessionProgressStore, beat: str, rule_id: str, *, manual: bool = False
    ) -> SessionProgressStore:
        previous = progress.current_story_beat
        if manual:
            updated = progress.touched(current_story_beat=beat)
        else:
            updated = advance_story_beat(progress, beat)
        if updated.current_story_beat != previous:
            logger.info("Story beat %s -> %s (%s)", previous, beat, rule_id)
            self.events.publish(BeatChanged(previous, beat, rule_id))
        return updated

    def _unlock(self, progress: SessionProgressStore, match: TriggerMatch) -> SessionProgressStore:
        updated = unlock(progress, match.trigger, match.content)
        self.events.publish(ContentUnlocked(match.content.id, match.trigger))
        return updated

    def _commit(self, progress: SessionProgressStore) -> None:
        self._progress = progress
        self._store.save(progress)

    def _present(self, content: NarrativeContent) -> None:
        """Show ``content`` now, or after whatever is on screen has been dismissed."""
        self._waiting.append(content)
        if self._presenting:
            logger.debug("Holding %s until the current dialogue ends", content.id)
            return
        self._present_next()

    def _present_next(self) -> bool:
        while self._waiting:
            if self._show(self._waiting.popleft()):
                return True
        return False

    def _show(self, content: NarrativeContent) -> bool:
        payload = content.payload
        event_id = payload.get("story_event")
        if event_id and self.player.has_event(str(event_id)):
            try:
                self.player.load(str(event_id))
            except StoryEventError as exc:
                logger.error("Cannot play %s for %s: %s", event_id, content.id, exc)
            else:
                return self._start_event()

        lines = payload.get("dialogue")
        if isinstance(lines, list) and lines:
            try:
                event = StoryEvent.from_dict({"id": content.id, "title": content.title, "dialogue": lines})
            except StoryEventError as exc:
                logger.error("Bad inline dialogue in %s: %s", content.id, exc)
            else:
                self.player.play(event)
                return self._start_event()

        if not content.text.strip():
            logger.debug("Content %s has no text to show", content.id)
            return False
        entry = DialogueEntry(
            id=content.id,
            speaker=str(payload.get("speaker") or DEFAULT_SPEAKER),
            chunks=tuple(chunk_text(content.text, self._max_chars)),
            emotion=str(payload.get("emotion") or ""),
        )
        self._presenting = True
        if not self.queue.enqueue(entry):
            self._presenting = False
            return False
        return True

    def _start_event(self) -> bool:
        # Flags go up first: an event with no playable lines completes inside start().
        self._presenting = True
        self._playing = True
        self.player.start()
        return True

    def _finish_presentation(self) -> None:
        self._presenting = False
        self._playing = False
        if not self._present_next():
            self.end_dialogue()

    def _on_entry_finished(self, entry: DialogueEntry) -> None:
        event = self.player.event
        if self._playing and event is not None and entry.id.startswith(f"{event.id}-"):
            self.player.advance()
            return
        self._finish_presentation()

    def _on_event_complete(self) -> None:
        self._finish_presentation()

    def _on_drained(self) -> None:
        logger.debug("Dialogue finished")
        self.events.publish(QueueDrained())
