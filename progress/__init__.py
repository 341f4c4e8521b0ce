"""Persisted progress: story beats, part-completion bitmaps and the session store."""

from .beats import BEAT_ORDER, DEFAULT_BEAT, beat_index, beat_reached, is_beat
from .books import Book, BookRegistry, load_book_registry
from .store import SessionProgressStore, StoreManager, new_game_progress

__all__ = [
    "BEAT_ORDER",
    "Book",
    "BookRegistry",
    "DEFAULT_BEAT",
    "SessionProgressStore",
    "StoreManager",
    "beat_index",
    "beat_reached",
    "is_beat",
    "load_book_registry",
    "new_game_progress",
]
