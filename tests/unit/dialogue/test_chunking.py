"""Tests for splitting dialogue text into chunks."""

import pytest

from dialogue.chunking import chunk_text


def test_short_text_is_one_chunk():
    assert chunk_text("Hello there.", 300) == ["Hello there."]


def test_splits_on_sentences():
    assert chunk_text("Hello there. How are you? Fine!", 15) == ["Hello there.", "How are you?", "Fine!"]


def test_packs_sentences_up_to_limit():
    assert chunk_text("One. Two. Three. Four.", 10) == ["One. Two.", "Three.", "Four."]


def test_long_sentence_falls_back_to_words():
    assert chunk_text("one two three four five", 9) == ["one two", "three", "four five"]


def test_trailing_text_without_punctuation_is_kept():
    assert chunk_text("First one. tail words", 12) == ["First one.", "tail words"]


def test_oversized_word_stands_alone():
    assert chunk_text("abcdefghijkl", 5) == ["abcdefghijkl"]


def test_always_at_least_one_chunk():
    assert chunk_text("", 10) == [""]
    assert chunk_text("   ", 10) == ["   "]
    assert chunk_text("Some text.", 0) == ["Some text."]


def test_chunks_respect_limit():
    text = (
        "The archive was silent for a long time. Then a page turned, somewhere deep in the stacks. "
        "Nobody had touched it. The lanterns flickered once, twice, and steadied! Was anyone there?"
    )
    chunks = chunk_text(text, 40)
    assert len(chunks) > 1
    assert all(len(c) <= 40 for c in chunks)
    assert " ".join(chunks).split() == text.split()


@pytest.mark.parametrize(
    "text",
    [
        "... " + "word " * 80,
        "?! Really? " + "Yes. " * 30,
        "He paused —? " + "and then went on " * 10,
        "Ends with a trail of marks" + " more" * 20 + "...",
        "!!!" * 30,
    ],
)
def test_no_characters_are_lost(text):
    chunks = chunk_text(text, 50)
    assert "".join("".join(chunks).split()) == "".join(text.split())


def test_leading_ellipsis_is_kept():
    chunks = chunk_text("... " + "word " * 80, 50)
    assert chunks[0].startswith("...")
