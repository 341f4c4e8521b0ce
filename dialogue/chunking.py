"""Split dialogue text into screen-sized chunks.

Sentence boundaries are preferred; a sentence longer than the limit is broken
on word boundaries. A single word longer than the limit becomes its own chunk.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 300

# Trailing text without terminal punctuation still counts as a sentence, and a
# leading run of punctuation ("...", "?!") stays with the text that follows it.
_SENTENCE_RE = re.compile(r"[.!?]*[^.!?]+(?:[.!?]+|$)|[.!?]+$")


def _split_words(sentence: str, max_chars: int) -> tuple[list[str], str]:
    """Break an oversized sentence. Returns (full chunks, leftover tail)."""
    chunks: list[str] = []
    current = ""
    for word in sentence.split():
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_chars:
            current = candidate
        elif current:
            chunks.append(current)
            current = word
        else:
            chunks.append(word)
    return chunks, current


def chunk_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> list[str]:
    """Return ``text`` as one or more chunks of at most ``max_chars`` characters."""
    if not text or not text.strip():
        return [text or ""]
    if max_chars <= 0:
        logger.warning("Invalid max_chars %r, not chunking", max_chars)
        return [text]
    if len(text) <= max_chars:
        return [text]

    sentences = [s for s in _SENTENCE_RE.findall(text) if s.strip()] or [text]
    chunks: list[str] = []
    current = ""
    for sentence in sentences:
        if len(current) + len(sentence) <= max_chars:
            current += sentence
            continue
        if current.strip():
            chunks.append(current.strip())
            current = sentence
            if len(current.strip()) <= max_chars:
                continue
            sentence, current = current, ""
        words, tail = _split_words(sentence, max_chars)
        chunks.extend(words)
        current = tail

    if current.strip():
        chunks.append(current.strip())
    return chunks or [text]
