"""Schedulers for time-bounded animation callbacks.

Delays are in milliseconds. There is no cancel API: callers tag callbacks with
a generation number and ignore them when they fire stale.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class Scheduler(Protocol):
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> None: ...


class LoopScheduler:
    """Runs callbacks on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> None:
        loop = self._loop or asyncio.get_running_loop()
        loop.call_later(max(0.0, delay_ms) / 1000.0, callback)


class VirtualClock:
    """Deterministic scheduler driven by explicit time advancement.

    Used for headless replays and tests: nothing runs until ``advance`` or
    ``run_until_idle`` is called.
    """

    def __init__(self) -> None:
        self._now = 0.0
        self._queue: list[tuple[float, int, Callable[[], None]]] = []
        self._seq = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return len(self._queue)

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> None:
        due = self._now + max(0.0, delay_ms)
        heapq.heappush(self._queue, (due, next(self._seq), callback))

    def advance(self, ms: float) -> int:
        """Move time forward by ``ms``, running everything that falls due. Returns calls run."""
        target = self._now + max(0.0, ms)
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, callback = heapq.heappop(self._queue)
            self._now = due
            callback()
            ran += 1
        self._now = target
        return ran

    def run_until_idle(self, limit: int = 10_000) -> int:
        """Run callbacks (including ones they schedule) until none remain."""
        ran = 0
        while self._queue:
            if ran >= limit:
                logger.warning("VirtualClock stopped after %d callbacks; %d still queued", ran, len(self._queue))
                break
            due, _, callback = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            callback()
            ran += 1
        return ran
