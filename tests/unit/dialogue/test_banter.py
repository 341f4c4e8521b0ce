"""Tests for character banter selection."""

from __future__ import annotations

import random
from pathlib import Path

import pytest

from dialogue.banter import BanterLine, BanterPicker, Character, load_characters, parse_characters

DOC = {
    "characters": [
        {
            "id": "arch",
            "name": "Archivist",
            "banter": [
                {"id": "dust", "text": "Mind the dust.", "emotion": ["amused"]},
                {"id": "late", "text": "The wing is open now.", "available_from": "midpoint"},
            ],
        },
        {
            "id": "guest",
            "name": "Guest",
            "banter": [
                {"id": "hello", "text": "Lovely shelves.", "available_until": "first_plot_point"},
            ],
        },
    ]
}


class TestBanterLine:
    def test_availability_window(self):
        line = BanterLine("x", "Hi.", available_from="first_plot_point", available_until="midpoint")
        assert not line.available_at("hook")
        assert line.available_at("first_plot_point")
        assert line.available_at("midpoint")
        assert not line.available_at("climax")

    def test_open_ended_by_default(self):
        assert BanterLine("x", "Hi.").available_at("resolution")

    def test_unknown_start_beat_is_rejected(self):
        with pytest.raises(ValueError):
            BanterLine.from_dict({"id": "x", "text": "Hi.", "available_from": "prologue"})

    def test_unknown_end_beat_is_ignored(self):
        line = BanterLine.from_dict({"id": "x", "text": "Hi.", "available_until": "epilogue"})
        assert line.available_until == ""


class TestParsing:
    def test_parse_characters(self):
        characters = parse_characters(DOC)
        assert sorted(characters) == ["arch", "guest"]
        assert characters["arch"].name == "Archivist"
        assert characters["arch"].lines[0].emotion == "amused"
        assert [line.id for line in characters["arch"].lines_at("hook")] == ["dust"]

    def test_bad_entries_are_skipped(self):
        characters = parse_characters({
            "characters": [
                {"name": "No id"},
                {"id": "a", "banter": [{"id": "", "text": "x"}, {"id": "b", "text": " "}, "junk",
                                       {"id": "c", "text": "Ok.", "available_from": "nowhere"}]},
                {"id": "a", "name": "Duplicate"},
            ]
        })
        assert list(characters) == ["a"]
        assert characters["a"].name == "a"
        assert characters["a"].lines == ()

    def test_not_a_mapping(self):
        assert parse_characters(["a"]) == {}

    def test_load_characters(self, tmp_path: Path):
        path = tmp_path / "characters.yaml"
        path.write_text(
            "characters:\n  - id: arch\n    name: Archivist\n    banter:\n      - {id: dust, text: Mind the dust.}\n",
            encoding="utf-8",
        )
        assert load_characters(path)["arch"].lines[0].text == "Mind the dust."

    def test_missing_or_broken_file(self, tmp_path: Path):
        assert load_characters(tmp_path / "missing.yaml") == {}
        path = tmp_path / "broken.yaml"
        path.write_text("characters: [unclosed", encoding="utf-8")
        assert load_characters(path) == {}


class TestPicker:
    def test_pick_respects_beat(self):
        picker = BanterPicker(parse_characters(DOC), rng=random.Random(7))
        for _ in range(20):
            entry = picker.pick("climax")
            assert entry.speaker == "Archivist"
            assert entry.chunks in (("Mind the dust.",), ("The wing is open now.",))

    def test_entries_have_unique_ids(self):
        picker = BanterPicker(parse_characters(DOC), rng=random.Random(3))
        ids = {picker.pick("hook").id for _ in range(10)}
        assert len(ids) == 10
        assert all(i.startswith("banter-") for i in ids)

    def test_nothing_available(self):
        picker = BanterPicker(parse_characters(DOC))
        assert BanterPicker().pick("hook") is None
        assert not BanterPicker()
        assert picker.pick("epilogue") is None

    def test_recent_window_is_bounded(self):
        characters = {
            c: Character(c, c.upper(), (BanterLine("l", f"{c} speaks."),)) for c in ("a", "b", "c", "d")
        }
        picker = BanterPicker(characters, recent_window=2, rng=random.Random(0))
        for _ in range(10):
            picker.pick("hook")
            assert len(picker.recent) <= 2

    def test_recent_speakers_are_less_likely(self):
        characters = {
            "a": Character("a", "A", (BanterLine("l", "A speaks."),)),
            "b": Character("b", "B", (BanterLine("l", "B speaks."),)),
        }
        picker = BanterPicker(characters, recent_window=1, rng=random.Random(11))
        repeats = 0
        last = None
        for _ in range(400):
            speaker = picker.pick("hook").speaker
            repeats += speaker == last
            last = speaker
        # a repeat has weight 1 against 3, so about a quarter of picks
        assert repeats < 160

    def test_long_lines_are_chunked(self):
        characters = {"a": Character("a", "A", (BanterLine("l", "One thing. Another thing."),))}
        picker = BanterPicker(characters, max_chars=12)
        assert picker.pick("hook").chunks == ("One thing.", "Another", "thing.")
