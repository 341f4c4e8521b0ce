"""Tests for the dialogue queue state machine."""

from __future__ import annotations

from dialogue.models import ACTIVE, ENTERING, EXITING, SHIFTING, AnimationTimings, DialogueEntry
from dialogue.queue import DialogueQueue
from dialogue.scheduler import VirtualClock


def _entry(entry_id: str, *chunks: str) -> DialogueEntry:
    return DialogueEntry(id=entry_id, speaker="Archivist", chunks=chunks or (f"{entry_id} text",))


class _Recorder:
    def __init__(self) -> None:
        self.continued: list[str] = []
        self.drained = 0
        self.max_visible = 0

    def on_continue(self, entry: DialogueEntry) -> None:
        self.continued.append(entry.id)

    def on_drained(self) -> None:
        self.drained += 1

    def on_change(self, queue: DialogueQueue) -> None:
        self.max_visible = max(self.max_visible, len(queue.visible))


def _queue(**kwargs) -> tuple[DialogueQueue, VirtualClock, _Recorder]:
    clock = VirtualClock()
    rec = _Recorder()
    queue = DialogueQueue(
        clock,
        on_continue=kwargs.pop("on_continue", rec.on_continue),
        on_drained=rec.on_drained,
        on_change=rec.on_change,
        **kwargs,
    )
    return queue, clock, rec


def _ids(queue: DialogueQueue) -> list[str]:
    return [e.id for e in queue.visible]


class TestEnqueue:
    def test_first_entry_enters_alone(self):
        queue, clock, _ = _queue()
        assert queue.enqueue(_entry("a"))
        assert _ids(queue) == ["a"]
        assert queue.animation_state("a") == ENTERING
        assert queue.is_locked
        clock.run_until_idle()
        assert queue.animation_state("a") == ACTIVE
        assert not queue.is_locked

    def test_second_entry_shifts_first(self):
        queue, clock, _ = _queue()
        queue.enqueue(_entry("a"))
        clock.run_until_idle()
        queue.enqueue(_entry("b"))
        assert _ids(queue) == ["a", "b"]
        assert queue.animation_state("a") == SHIFTING
        assert queue.animation_state("b") == ENTERING
        assert queue.slot_of("a") == "top"
        assert queue.slot_of("b") == "bottom"
        clock.run_until_idle()
        assert queue.animation_state("a") == ACTIVE
        assert queue.animation_state("b") == ACTIVE

    def test_third_entry_pushes_oldest_out(self):
        queue, clock, rec = _queue()
        for entry_id in ("a", "b"):
            queue.enqueue(_entry(entry_id))
            clock.run_until_idle()
        queue.enqueue(_entry("c"))
        assert _ids(queue) == ["b", "c"]
        assert queue.exiting.id == "a"
        assert queue.animation_state("a") == EXITING
        assert queue.animation_state("b") == SHIFTING
        clock.run_until_idle()
        assert queue.exiting is None
        assert queue.animation_state("a") is None
        assert queue.slot_of("a") is None
        assert rec.max_visible == 2

    def test_entry_buffered_during_transition_then_later_entry(self):
        queue, clock, _ = _queue()
        queue.enqueue(_entry("a"))
        queue.enqueue(_entry("b"))  # during a's transition
        assert queue.pending.id == "b"
        assert _ids(queue) == ["a"]
        clock.run_until_idle()
        assert _ids(queue) == ["a", "b"]
        queue.enqueue(_entry("c"))
        clock.run_until_idle()
        assert _ids(queue) == ["b", "c"]

    def test_pending_keeps_only_latest(self):
        queue, clock, _ = _queue()
        queue.enqueue(_entry("a"))
        queue.enqueue(_entry("b"))
        queue.enqueue(_entry("c"))
        assert queue.pending.id == "c"
        clock.run_until_idle()
        assert _ids(queue) == ["a", "c"]
        assert queue.pending is None

    def test_rejects_malformed_entries(self):
        queue, _, _ = _queue()
        assert not queue.enqueue(DialogueEntry(id="", speaker="x", chunks=("hi",)))
        assert not queue.enqueue(DialogueEntry(id="a", speaker="", chunks=("hi",)))
        assert not queue.enqueue(DialogueEntry(id="a", speaker="x", chunks=()))
        assert not queue.enqueue(DialogueEntry(id="a", speaker="x", chunks=("  ",)))
        assert not queue.enqueue(DialogueEntry(id="a", speaker="x", chunks=("hi",), current_chunk_index=3))
        assert queue.visible == []
        assert not queue.is_locked

    def test_rejects_duplicate_visible_id(self):
        queue, clock, _ = _queue()
        queue.enqueue(_entry("a"))
        clock.run_until_idle()
        assert not queue.enqueue(_entry("a"))
        assert _ids(queue) == ["a"]
        assert not queue.is_locked

    def test_transition_durations(self):
        queue, clock, _ = _queue(timings=AnimationTimings(enter=500, shift=500, exit=500, stagger=100))
        queue.enqueue(_entry("a"))
        clock.advance(499)
        assert queue.is_locked
        clock.advance(1)
        assert not queue.is_locked

        queue.enqueue(_entry("b"))
        clock.advance(599)
        assert queue.is_locked
        clock.advance(1)
        assert not queue.is_locked


class TestAdvance:
    def test_reveals_chunks_then_continues_once(self):
        queue, clock, rec = _queue()
        queue.enqueue(_entry("a", "x", "y"))
        clock.run_until_idle()

        assert queue.advance()
        assert queue.visible[0].current_chunk_index == 1
        assert queue.current_text("a") == "y"
        assert rec.continued == []

        assert not queue.advance()
        assert rec.continued == ["a"]
        assert _ids(queue) == ["a"]  # caller decides what happens next

    def test_noop_while_locked_or_empty(self):
        queue, clock, rec = _queue()
        assert not queue.advance()
        queue.enqueue(_entry("a", "x", "y"))
        assert not queue.advance()
        assert queue.visible[0].current_chunk_index == 0
        assert rec.continued == []

    def test_advances_bottom_entry(self):
        queue, clock, rec = _queue()
        queue.enqueue(_entry("a", "a1", "a2"))
        clock.run_until_idle()
        queue.enqueue(_entry("b", "b1", "b2"))
        clock.run_until_idle()
        queue.advance()
        assert queue.current_text("a") == "a1"
        assert queue.current_text("b") == "b2"

    def test_continue_handler_errors_are_contained(self):
        def boom(entry):
            raise RuntimeError("handler failed")

        queue, clock, _ = _queue(on_continue=boom)
        queue.enqueue(_entry("a"))
        clock.run_until_idle()
        assert not queue.advance()
        assert _ids(queue) == ["a"]


class TestDrained:
    def test_drained_once_after_use(self):
        queue, clock, rec = _queue()
        queue.enqueue(_entry("a"))
        clock.run_until_idle()
        queue.clear()
        clock.run_until_idle()
        assert rec.drained == 1
        queue.clear()
        assert rec.drained == 1

    def test_drained_via_continue(self):
        clock = VirtualClock()
        drained: list[int] = []

        def finished(entry):
            queue.clear()

        queue = DialogueQueue(clock, on_continue=finished, on_drained=lambda: drained.append(1))
        queue.enqueue(_entry("a"))
        clock.run_until_idle()
        queue.advance()
        assert drained == [1]
        assert queue.visible == []

    def test_never_drained_when_unused(self):
        queue, clock, rec = _queue()
        queue.clear()
        clock.run_until_idle()
        assert not queue.advance()
        assert rec.drained == 0

    def test_drained_again_after_refill(self):
        queue, clock, rec = _queue()
        for entry_id in ("a", "b"):
            queue.enqueue(_entry(entry_id))
            clock.run_until_idle()
            queue.clear()
        assert rec.drained == 2


class TestClearAndFaults:
    def test_clear_mid_transition_makes_callbacks_stale(self):
        queue, clock, _ = _queue()
        queue.enqueue(_entry("a"))
        queue.enqueue(_entry("b"))
        queue.clear()
        assert queue.visible == []
        assert queue.pending is None
        assert not queue.is_locked

        queue.enqueue(_entry("c"))
        clock.advance(500)  # a's stale callback and c's both fall due here
        assert _ids(queue) == ["c"]
        assert queue.animation_state("c") == ACTIVE
        assert queue.animation_state("a") is None

    def test_scheduler_failure_resets_lock(self):
        class FlakyScheduler(VirtualClock):
            def __init__(self):
                super().__init__()
                self.fail = True

            def call_later(self, delay_ms, callback):
                if self.fail:
                    self.fail = False
                    raise RuntimeError("no timer")
                super().call_later(delay_ms, callback)

        clock = FlakyScheduler()
        queue = DialogueQueue(clock)
        assert not queue.enqueue(_entry("a"))
        assert not queue.is_locked
        assert queue.pending is None

        assert queue.enqueue(_entry("b"))
        clock.run_until_idle()
        assert not queue.is_locked
        assert "b" in _ids(queue)

    def test_change_handler_errors_are_contained(self):
        def boom(queue):
            raise RuntimeError("render failed")

        clock = VirtualClock()
        queue = DialogueQueue(clock, on_change=boom)
        assert queue.enqueue(_entry("a"))
        clock.run_until_idle()
        assert queue.animation_state("a") == ACTIVE
