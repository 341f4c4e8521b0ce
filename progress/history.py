"""Append-only journal of narrative events (SQLite).

The progress store holds where the player is; the journal holds how they got
there: every beat change and content unlock with its timestamp.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any

import aiosqlite

from .store import now_iso

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS narrative_events (
    id TEXT PRIMARY KEY,
    event_type TEXT,          -- "beat_changed" | "content_unlocked" | "queue_drained" | "session_reset"
    description TEXT,
    created_at TEXT,
    metadata TEXT             -- JSON blob
);

CREATE INDEX IF NOT EXISTS idx_narrative_events_type
    ON narrative_events (event_type, created_at);
"""


class NarrativeJournal:
    """Async history of narrative milestones."""

    def __init__(self, db_path: str | Path):
        self._path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._path))
        await self._db.executescript(_SCHEMA)
        await self._db.commit()
        logger.debug("Narrative journal ready at %s", self._path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> NarrativeJournal:
        await self.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ── Logging ─────────────────────────────────────────────────

    async def log_event(
        self,
        event_type: str,
        description: str = "",
        metadata: dict | None = None,
    ) -> str:
        row_id = str(uuid.uuid4())
        await self._db.execute(
            "INSERT INTO narrative_events (id, event_type, description, created_at, metadata) "
            "VALUES (?, ?, ?, ?, ?)",
            (row_id, event_type, description, now_iso(), json.dumps(metadata or {})),
        )
        await self._db.commit()
        return row_id

    async def log_beat_change(self, previous: str, new: str, rule_id: str = "") -> str:
        return await self.log_event(
            "beat_changed",
            f"{previous} -> {new}",
            metadata={"previous": previous, "new": new, "rule": rule_id},
        )

    async def log_unlock(self, content_id: str, trigger: str) -> str:
        return await self.log_event(
            "content_unlocked",
            content_id,
            metadata={"content_id": content_id, "trigger": trigger},
        )

    # ── Queries ─────────────────────────────────────────────────

    async def get_recent_events(self, limit: int = 20, event_type: str = "") -> list[dict]:
        query = "SELECT * FROM narrative_events"
        params: list[Any] = []
        if event_type:
            query += " WHERE event_type = ?"
            params.append(event_type)
        # rowid breaks ties between events logged within the same timestamp
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        cursor = await self._db.execute(query, tuple(params))
        cols = [d[0] for d in cursor.description]
        rows = await cursor.fetchall()
        events = [dict(zip(cols, row)) for row in rows]
        for event in events:
            event["metadata"] = json.loads(event.get("metadata") or "{}")
        return events

    async def get_event_count(self, event_type: str = "") -> int:
        if event_type:
            cursor = await self._db.execute(
                "SELECT COUNT(*) FROM narrative_events WHERE event_type = ?",
                (event_type,),
            )
        else:
            cursor = await self._db.execute("SELECT COUNT(*) FROM narrative_events")
        row = await cursor.fetchone()
        return row[0] if row else 0
