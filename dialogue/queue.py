"""Dialogue queue: ordered, animated presentation of at most two panels.

Panels occupy a "top" and a "bottom" slot. A new arrival enters at the bottom
while the existing panel shifts up; when both slots are full the top panel
exits. Each arrival starts a transition that holds a cooperative lock until
its animation callback runs. Entries submitted while the lock is held are not
queued: only the most recent one is kept and shown once the lock releases.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .models import ACTIVE, ENTERING, EXITING, SHIFTING, AnimationTimings, DialogueEntry, is_well_formed
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

CAPACITY = 2
SLOTS = ("top", "bottom")


class DialogueQueue:
    """Cooperative state machine for on-screen narrative panels."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        timings: AnimationTimings | None = None,
        on_continue: Callable[[DialogueEntry], None] | None = None,
        on_drained: Callable[[], None] | None = None,
        on_change: Callable[[DialogueQueue], None] | None = None,
    ):
        self._scheduler = scheduler
        self._timings = timings or AnimationTimings()
        self._on_continue = on_continue
        self._on_drained = on_drained
        self._on_change = on_change

        self._visible: list[DialogueEntry] = []
        self._states: dict[str, str] = {}
        self._exiting: DialogueEntry | None = None
        self._locked = False
        self._pending: DialogueEntry | None = None
        self._generation = 0
        self._had_entries = False

    # ── Read access ─────────────────────────────────────────────

    @property
    def visible(self) -> list[DialogueEntry]:
        return list(self._visible)

    @property
    def is_locked(self) -> bool:
        return self._locked

    @property
    def pending(self) -> DialogueEntry | None:
        return self._pending

    @property
    def exiting(self) -> DialogueEntry | None:
        return self._exiting

    def __len__(self) -> int:
        return len(self._visible)

    def animation_state(self, entry_id: str) -> str | None:
        return self._states.get(entry_id)

    def current_text(self, entry_id: str) -> str | None:
        for entry in self._visible:
            if entry.id == entry_id:
                return entry.text
        return None

    def slot_of(self, entry_id: str) -> str | None:
        for index, entry in enumerate(self._visible):
            if entry.id == entry_id:
                return SLOTS[index]
        return None

    # ── Operations ──────────────────────────────────────────────

    def enqueue(self, entry: DialogueEntry) -> bool:
        """Show ``entry``, or hold it as the pending entry while a transition runs.

        Returns False when the entry is rejected (malformed or already visible).
        """
        if not is_well_formed(entry):
            logger.warning("Rejected malformed dialogue entry: %r", entry)
            return False
        if any(e.id == entry.id for e in self._visible):
            logger.warning("Duplicate dialogue entry ignored: %s", entry.id)
            return False

        if self._locked:
            if self._pending is not None and self._pending.id != entry.id:
                logger.debug("Pending entry %s superseded by %s", self._pending.id, entry.id)
            self._pending = entry
            return True

        self._locked = True
        self._generation += 1
        generation = self._generation
        try:
            self._begin_transition(entry, generation)
        except Exception:
            logger.exception("Dialogue transition failed for %s", entry.id)
            self._reset_transition()
            return False
        return True

    def advance(self) -> bool:
        """Reveal the next chunk of the bottom panel, or ask the caller to move on.

        Returns True when a chunk was revealed. Does nothing mid-transition or
        when the queue is empty.
        """
        if self._locked or not self._visible:
            return False

        bottom = self._visible[-1]
        if bottom.has_more_chunks:
            self._visible[-1] = bottom.with_next_chunk()
            self._changed()
            return True

        if self._on_continue is not None:
            try:
                self._on_continue(bottom)
            except Exception:
                logger.exception("on_continue handler failed for %s", bottom.id)
        return False

    def clear(self) -> None:
        """Drop everything immediately, in-flight transitions included."""
        self._generation += 1
        self._visible = []
        self._states = {}
        self._exiting = None
        self._locked = False
        self._pending = None
        self._changed()
        self._check_drained()

    # ── Transitions ─────────────────────────────────────────────

    def _begin_transition(self, entry: DialogueEntry, generation: int) -> None:
        t = self._timings
        if not self._visible:
            self._visible = [entry]
            self._states[entry.id] = ENTERING
            duration = t.enter
        elif len(self._visible) < CAPACITY:
            existing = self._visible[0]
            self._visible = [existing, entry]
            self._states[existing.id] = SHIFTING
            self._states[entry.id] = ENTERING
            duration = t.stagger + max(t.enter, t.shift)
        else:
            top, remaining = self._visible
            self._exiting = top
            self._visible = [remaining, entry]
            self._states[top.id] = EXITING
            self._states[remaining.id] = SHIFTING
            self._states[entry.id] = ENTERING
            duration = t.stagger + max(t.enter, t.shift, t.exit)

        self._had_entries = True
        self._changed()
        self._scheduler.call_later(duration, lambda: self._finish_transition(generation))

    def _finish_transition(self, generation: int) -> None:
        if generation != self._generation:
            logger.debug("Ignoring stale transition callback (%d != %d)", generation, self._generation)
            return
        try:
            if self._exiting is not None:
                self._states.pop(self._exiting.id, None)
                self._exiting = None
            for entry in self._visible:
                self._states[entry.id] = ACTIVE
            self._locked = False
            self._changed()
        except Exception:
            logger.exception("Dialogue transition cleanup failed")
            self._reset_transition()
            return

        if self._pending is not None:
            pending, self._pending = self._pending, None
            self.enqueue(pending)
        else:
            self._check_drained()

    def _reset_transition(self) -> None:
        self._generation += 1
        self._locked = False
        self._pending = None
        if self._exiting is not None:
            self._states.pop(self._exiting.id, None)
            self._exiting = None
        for entry in self._visible:
            self._states[entry.id] = ACTIVE

    # ── Notifications ───────────────────────────────────────────

    def _changed(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self)
        except Exception:
            logger.exception("on_change handler failed")

    def _check_drained(self) -> None:
        if not self._had_entries or self._visible or self._locked or self._pending is not None:
            return
        self._had_entries = False
        logger.debug("Dialogue queue drained")
        if self._on_drained is not None:
            try:
                self._on_drained()
            except Exception:
                logger.exception("on_drained handler failed")
