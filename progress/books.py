"""Book registry: compact book ids mapped to title, category and part count."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from . import bitmap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Book:
    book_id: str
    title: str = ""
    category: str = ""
    parts: int = 1
    order: int = 0

    @classmethod
    def from_dict(cls, book_id: str, data: dict[str, Any]) -> Book:
        return cls(
            book_id=book_id,
            title=str(data.get("title", "")),
            category=str(data.get("category", data.get("genre", ""))),
            parts=int(data.get("parts", 1)),
            order=int(data.get("order", 0)),
        )


@dataclass
class BookRegistry:
    books: dict[str, Book] = field(default_factory=dict)

    def get(self, book_id: str) -> Book | None:
        return self.books.get(book_id)

    def parts_for(self, book_id: str) -> int | None:
        book = self.books.get(book_id)
        return book.parts if book else None

    def id_for_title(self, title: str) -> str | None:
        for book in self.books.values():
            if book.title == title:
                return book.book_id
        return None

    def in_category(self, category: str) -> list[Book]:
        found = [b for b in self.books.values() if b.category == category]
        return sorted(found, key=lambda b: b.order)

    def __len__(self) -> int:
        return len(self.books)

    def __contains__(self, book_id: object) -> bool:
        return book_id in self.books


def load_book_registry(path: str | Path | None) -> BookRegistry:
    """Load the registry; a missing or malformed file yields an empty one."""
    if path is None:
        return BookRegistry()
    path = Path(path)
    if not path.exists():
        logger.warning("Book registry not found at %s; continuing without books", path)
        return BookRegistry()

    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to read book registry %s: %s", path, exc)
        return BookRegistry()

    entries = raw.get("books", {}) if isinstance(raw, dict) else {}
    if not isinstance(entries, dict):
        logger.error("Book registry %s: 'books' must be a mapping", path)
        return BookRegistry()

    books: dict[str, Book] = {}
    for book_id, data in entries.items():
        if not isinstance(data, dict):
            logger.warning("Skipping malformed book entry %r", book_id)
            continue
        try:
            book = Book.from_dict(str(book_id), data)
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping book %r: %s", book_id, exc)
            continue
        if not bitmap.is_valid_part_count(book.parts):
            logger.warning(
                "Skipping book %r: %d parts is outside 1..%d",
                book_id,
                book.parts,
                bitmap.MAX_PARTS,
            )
            continue
        books[book.book_id] = book

    logger.info("Loaded %d books from %s", len(books), path)
    return BookRegistry(books=books)
