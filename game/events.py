"""One-way notifications emitted by a narrative session.

Nothing in the core depends on a subscriber being present; handler failures
are logged and never reach the publisher.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeatChanged:
    previous: str
    new: str
    rule_id: str = ""


@dataclass(frozen=True)
class ContentUnlocked:
    content_id: str
    trigger: str


@dataclass(frozen=True)
class QueueDrained:
    pass


Handler = Callable[[Any], None]


class EventChannel:
    """Synchronous publish/subscribe keyed by event class."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = {}

    def subscribe(self, event_type: type, handler: Handler) -> Callable[[], None]:
        """Register ``handler``; the returned callable unsubscribes it."""
        handlers = self._handlers.setdefault(event_type, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: Any) -> int:
        """Deliver ``event`` to its subscribers. Returns how many handled it cleanly."""
        delivered = 0
        for handler in list(self._handlers.get(type(event), ())):
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception("Subscriber failed on %s", type(event).__name__)
        return delivered
