"""Bit-packed per-book part completion.

Each book's progress is one integer: bit ``i`` set means part ``i`` is
complete. A 5-part book with parts 0, 2 and 4 done is ``0b10101 == 21``.
Books may have at most ``MAX_PARTS`` parts so a bitmap always fits in a
single 32-bit word.

Every function here is total: out-of-range indices and part counts are
clamped or ignored, never raised on.
"""

from __future__ import annotations

from collections.abc import Iterable

MAX_PARTS = 32
_WORD_MASK = (1 << MAX_PARTS) - 1


def _clamp_parts(total_parts: int) -> int:
    return max(0, min(int(total_parts), MAX_PARTS))


def _in_range(index: int) -> bool:
    return 0 <= index < MAX_PARTS


def _low_mask(total_parts: int) -> int:
    return (1 << _clamp_parts(total_parts)) - 1


def is_valid_part_count(total_parts: int) -> bool:
    return 0 < total_parts <= MAX_PARTS


# ── Encoding ────────────────────────────────────────────────────


def encode(flags: Iterable[bool]) -> int:
    """Pack completion flags into a bitmap; flags past bit 31 are dropped."""
    bitmap = 0
    for index, done in enumerate(flags):
        if index >= MAX_PARTS:
            break
        if done:
            bitmap |= 1 << index
    return bitmap


def decode(bitmap: int, total_parts: int) -> list[bool]:
    """Unpack the low ``total_parts`` bits into a list of flags."""
    return [bool(bitmap >> index & 1) for index in range(_clamp_parts(total_parts))]


# ── Part manipulation ───────────────────────────────────────────


def set_part(bitmap: int, index: int) -> int:
    if not _in_range(index):
        return bitmap
    return (bitmap | 1 << index) & _WORD_MASK


def clear_part(bitmap: int, index: int) -> int:
    if not _in_range(index):
        return bitmap
    return bitmap & ~(1 << index) & _WORD_MASK


def toggle_part(bitmap: int, index: int) -> int:
    if not _in_range(index):
        return bitmap
    return (bitmap ^ 1 << index) & _WORD_MASK


# ── Queries ─────────────────────────────────────────────────────


def is_part_completed(bitmap: int, index: int) -> bool:
    if not _in_range(index):
        return False
    return bool(bitmap >> index & 1)


def count(bitmap: int) -> int:
    """Population count of the 32-bit word."""
    return bin(bitmap & _WORD_MASK).count("1")


def is_complete(bitmap: int, total_parts: int) -> bool:
    """True iff every one of the low ``total_parts`` bits is set."""
    if _clamp_parts(total_parts) == 0:
        return False
    mask = _low_mask(total_parts)
    return (bitmap & mask) == mask


def percent(bitmap: int, total_parts: int) -> int:
    """Completion percentage of the low ``total_parts`` bits, rounded half up."""
    parts = _clamp_parts(total_parts)
    if parts == 0:
        return 0
    done = count(bitmap & _low_mask(parts))
    return int(done * 100 / parts + 0.5)


def first_incomplete(bitmap: int, total_parts: int) -> int:
    """Lowest clear bit below ``total_parts``, or -1 when all are set."""
    for index in range(_clamp_parts(total_parts)):
        if not bitmap >> index & 1:
            return index
    return -1


def completed_indices(bitmap: int, total_parts: int) -> list[int]:
    return [i for i in range(_clamp_parts(total_parts)) if bitmap >> i & 1]


def incomplete_indices(bitmap: int, total_parts: int) -> list[int]:
    return [i for i in range(_clamp_parts(total_parts)) if not bitmap >> i & 1]


# ── Bulk operations ─────────────────────────────────────────────


def create_completed(total_parts: int) -> int:
    return _low_mask(total_parts)


def create_empty() -> int:
    return 0


def merge(a: int, b: int) -> int:
    """Union of two bitmaps; never clears a bit either side had set."""
    return (a | b) & _WORD_MASK


# ── Validation ──────────────────────────────────────────────────


def sanitize(bitmap: int, total_parts: int) -> int:
    """Clear every bit at or above ``total_parts``.

    Books can lose parts when content is edited; a saved bitmap from before
    the edit would otherwise report parts that no longer exist.
    """
    if bitmap < 0:
        return 0
    return bitmap & _low_mask(total_parts)


def validate(bitmap: int, total_parts: int) -> bool:
    """True iff ``bitmap`` is non-negative with no bit at/above ``total_parts``."""
    if bitmap < 0:
        return False
    return (bitmap >> _clamp_parts(total_parts)) == 0
