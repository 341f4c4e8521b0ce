"""Game metrics derived from a snapshot of game state."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from progress import bitmap
from progress.books import BookRegistry


@dataclass(frozen=True)
class GameSnapshot:
    """The slice of game state the narrative core is allowed to see."""

    discovered_books: frozenset[str] = frozenset()
    completed_puzzles: int = 0
    book_progress: Mapping[str, int] = field(default_factory=dict)  # book id -> bitmap
    category_revealed: bool = False
    current_category: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "discovered_books", frozenset(self.discovered_books))
        object.__setattr__(self, "book_progress", MappingProxyType(dict(self.book_progress)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GameSnapshot:
        return cls(
            discovered_books=frozenset(str(b) for b in data.get("discovered_books") or []),
            completed_puzzles=int(data.get("completed_puzzles", 0)),
            book_progress={str(k): int(v) for k, v in (data.get("book_progress") or {}).items()},
            category_revealed=bool(data.get("category_revealed", False)),
            current_category=str(data.get("current_category") or ""),
        )


@dataclass(frozen=True)
class Metrics:
    books_discovered: int = 0
    puzzles_completed: int = 0
    books_completed: int = 0
    category_revealed: bool = False
    current_category: str = ""

    def as_dict(self) -> dict[str, float]:
        """Numeric view used by progression rule conditions."""
        return {
            "books_discovered": self.books_discovered,
            "puzzles_completed": self.puzzles_completed,
            "books_completed": self.books_completed,
            "category_revealed": int(self.category_revealed),
        }

    def as_record(self) -> dict[str, Any]:
        """Every field, in the form persisted with the progress store."""
        return {
            "books_discovered": self.books_discovered,
            "puzzles_completed": self.puzzles_completed,
            "books_completed": self.books_completed,
            "category_revealed": self.category_revealed,
            "current_category": self.current_category,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Metrics:
        """Inverse of :meth:`as_record`; missing or malformed fields read as zero."""

        def count(key: str) -> int:
            value = record.get(key, 0)
            if isinstance(value, bool) or not isinstance(value, int):
                return 0
            return max(0, value)

        return cls(
            books_discovered=count("books_discovered"),
            puzzles_completed=count("puzzles_completed"),
            books_completed=count("books_completed"),
            category_revealed=bool(record.get("category_revealed", False)),
            current_category=str(record.get("current_category") or ""),
        )


def count_completed_books(state: GameSnapshot, books: BookRegistry) -> int:
    """Discovered books whose every part is done; books of unknown size never count."""
    completed = 0
    for book_id in state.discovered_books:
        parts = books.parts_for(book_id)
        if parts is None:
            continue
        if bitmap.is_complete(state.book_progress.get(book_id, 0), parts):
            completed += 1
    return completed


def compute_metrics(state: GameSnapshot, books: BookRegistry | None = None) -> Metrics:
    return Metrics(
        books_discovered=len(state.discovered_books),
        puzzles_completed=max(0, state.completed_puzzles),
        books_completed=count_completed_books(state, books or BookRegistry()),
        category_revealed=state.category_revealed,
        current_category=state.current_category,
    )
