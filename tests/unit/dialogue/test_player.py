"""Tests for story event playback."""

from __future__ import annotations

from pathlib import Path

import pytest

from dialogue.models import DialogueEntry
from dialogue.player import StoryEvent, StoryEventError, StoryEventPlayer, load_story_events


def _event(**overrides) -> StoryEvent:
    data = {
        "story_event": {"id": "reunion", "title": "Reunion", "story_beat": "midpoint"},
        "characters": [{"id": "arch", "name": "Archivist"}, {"id": "reader", "name": "Reader"}],
        "dialogue": [
            {"speaker": "arch", "text": "You came back.", "emotion": ["warm", "tired"]},
            {"speaker": "reader", "text": "I never left."},
            {"speaker": "arch", "text": "Then we begin again."},
        ],
    }
    data.update(overrides)
    return StoryEvent.from_dict(data)


class _Sink:
    def __init__(self) -> None:
        self.entries: list[DialogueEntry] = []
        self.completed = 0

    def on_dialogue(self, entry: DialogueEntry) -> None:
        self.entries.append(entry)

    def on_complete(self) -> None:
        self.completed += 1


def _player(event: StoryEvent | None = None, **kwargs) -> tuple[StoryEventPlayer, _Sink]:
    event = event or _event()
    sink = _Sink()
    player = StoryEventPlayer(
        {event.id: event},
        on_dialogue=sink.on_dialogue,
        on_complete=sink.on_complete,
        **kwargs,
    )
    return player, sink


def test_event_from_dict():
    event = _event()
    assert event.id == "reunion"
    assert event.story_beat == "midpoint"
    assert len(event.lines) == 3
    assert event.lines[0].emotion == "warm"
    assert event.display_name("arch") == "Archivist"
    assert event.display_name("stranger") == "stranger"


def test_event_without_id_is_rejected():
    with pytest.raises(StoryEventError):
        StoryEvent.from_dict({"dialogue": []})


def test_plays_lines_in_order_then_completes():
    player, sink = _player()
    player.load("reunion")
    player.start()
    assert [e.id for e in sink.entries] == ["reunion-0"]
    assert sink.entries[0].speaker == "Archivist"
    assert sink.entries[0].emotion == "warm"

    player.advance()
    player.advance()
    assert [e.id for e in sink.entries] == ["reunion-0", "reunion-1", "reunion-2"]
    assert player.is_complete
    assert sink.completed == 0

    player.advance()
    assert sink.completed == 1


def test_pause_and_resume():
    player, sink = _player()
    player.load("reunion")
    player.start()
    player.pause()
    player.advance()
    assert len(sink.entries) == 1
    player.resume()
    assert [e.id for e in sink.entries] == ["reunion-0", "reunion-1"]


def test_reset_rewinds():
    player, sink = _player()
    player.load("reunion")
    player.start()
    player.advance()
    player.reset()
    assert player.sequence == 0
    player.start()
    assert sink.entries[-1].id == "reunion-0"


def test_unknown_speaker_is_skipped():
    event = _event(dialogue=[
        {"speaker": "ghost", "text": "Boo."},
        {"speaker": "reader", "text": "Who said that?"},
    ])
    player, sink = _player(event)
    player.load("reunion")
    player.start()
    assert [e.id for e in sink.entries] == ["reunion-1"]


def test_long_lines_are_chunked():
    event = _event(dialogue=[{"speaker": "arch", "text": "First sentence here. Second sentence here."}])
    player, sink = _player(event, max_chars=25)
    player.load("reunion")
    player.start()
    assert sink.entries[0].chunks == ("First sentence here.", "Second sentence here.")


def test_load_errors():
    player, _ = _player()
    with pytest.raises(StoryEventError):
        player.load("missing")
    with pytest.raises(StoryEventError):
        StoryEventPlayer().start()

    mismatched = StoryEventPlayer({"alias": _event()})
    with pytest.raises(StoryEventError):
        mismatched.load("alias")


def test_empty_player_is_complete():
    assert StoryEventPlayer().is_complete


def test_load_story_events(tmp_path: Path):
    path = tmp_path / "events.yaml"
    path.write_text("""
story_events:
  - story_event: {id: one, title: One}
    dialogue:
      - {speaker: a, text: Hi.}
  - story_event: {id: one, title: Duplicate}
  - story_event: {title: No id}
  - storyEvent: {id: two, storyBeat: climax}
""", encoding="utf-8")
    events = load_story_events(path)
    assert sorted(events) == ["one", "two"]
    assert events["one"].title == "One"
    assert events["two"].story_beat == "climax"


def test_load_story_events_missing_or_bad(tmp_path: Path):
    assert load_story_events(tmp_path / "missing.yaml") == {}
    path = tmp_path / "bad.yaml"
    path.write_text("story_events: {not: a list}", encoding="utf-8")
    assert load_story_events(path) == {}
