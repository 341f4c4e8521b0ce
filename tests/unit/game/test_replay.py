"""Tests for headless replays."""

from __future__ import annotations

from pathlib import Path

import pytest

from dialogue.scheduler import VirtualClock
from game.events import ContentUnlocked, QueueDrained
from game.replay import ReplayError, Transcript, attach, load_script, run_steps
from game.session import NarrativeSession
from narrative.catalog import parse_content_catalog, parse_rule_book
from progress.books import Book, BookRegistry
from progress.store import StoreManager


def _session(tmp_path: Path, transcript: Transcript) -> tuple[NarrativeSession, VirtualClock]:
    books = BookRegistry(books={"b1": Book("b1", parts=2)})
    clock = VirtualClock()
    session = NarrativeSession(
        {"dialogue": {"max_chars_per_screen": 300}},
        scheduler=clock,
        store=StoreManager(tmp_path / "state.json", books),
        rules=parse_rule_book({}),
        catalog=parse_content_catalog({
            "blurbs": [
                {"id": "intro", "trigger": "game_start", "text": "Welcome."},
                {"id": "found", "trigger": "first_book_discovered", "text": "A book."},
                {"id": "done", "trigger": "first_book_complete", "text": "Whole again."},
            ]
        }),
        books=books,
        story_events={},
        on_change=transcript.on_queue_change,
    )
    attach(session, transcript)
    return session, clock


def test_run_steps(tmp_path: Path):
    transcript = Transcript()
    session, clock = _session(tmp_path, transcript)
    run_steps(session, clock, [
        {"snapshot": {"discovered_books": ["b1"]}, "continue": 1},
        {"complete_part": {"book_id": "b1", "part": 0}},
        {"complete_part": {"book_id": "b1", "part": 1}, "continue": 1, "end_dialogue": True},
    ])
    assert [line.entry_id for line in transcript.lines] == ["intro", "found", "done"]
    unlocked = [e.content_id for e in transcript.notifications if isinstance(e, ContentUnlocked)]
    assert unlocked == ["intro", "found", "done"]
    assert any(isinstance(e, QueueDrained) for e in transcript.notifications)
    assert session.progress.bitmap_for("b1") == 0b11


def test_load_script(tmp_path: Path):
    path = tmp_path / "script.yaml"
    path.write_text("steps:\n  - snapshot: {completed_puzzles: 1}\n  - nonsense\n", encoding="utf-8")
    assert load_script(path) == [{"snapshot": {"completed_puzzles": 1}}]


def test_bad_scripts(tmp_path: Path):
    with pytest.raises(ReplayError):
        load_script(tmp_path / "missing.yaml")
    path = tmp_path / "script.yaml"
    path.write_text("steps: 3\n", encoding="utf-8")
    with pytest.raises(ReplayError):
        load_script(path)
