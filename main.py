"""Entry point for the narrative core.

Usage:
    python main.py --inspect                  # Show saved story progress
    python main.py --replay script.yaml       # Feed scripted game events through a session
    python main.py --reset                    # Start the story over
    python main.py --replay s.yaml --verbose  # Verbose logging
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from dialogue import VirtualClock
from game.config import DEFAULT_HISTORY_DB, DEFAULT_STATE_FILE, load_config, storage_path
from game.events import BeatChanged, ContentUnlocked, QueueDrained
from game.replay import ReplayError, Transcript, attach, load_script, run_steps
from game.session import NarrativeSession
from progress.history import NarrativeJournal
from progress.store import StoreManager


def _setup_logging(verbose: bool = False, log_file: str | Path | None = None) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s — %(name)s — %(levelname)s — %(message)s"

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=fmt, handlers=handlers)

    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


async def _write_journal(db_path: Path, notifications: list) -> int:
    written = 0
    async with NarrativeJournal(db_path) as journal:
        for event in notifications:
            if isinstance(event, BeatChanged):
                await journal.log_beat_change(event.previous, event.new, event.rule_id)
            elif isinstance(event, ContentUnlocked):
                await journal.log_unlock(event.content_id, event.trigger)
            elif isinstance(event, QueueDrained):
                await journal.log_event("queue_drained", "Dialogue finished")
            else:
                continue
            written += 1
    return written


async def _journal_reset(db_path: Path, state_path: Path) -> None:
    async with NarrativeJournal(db_path) as journal:
        await journal.log_event("session_reset", "Progress reset", metadata={"state_file": str(state_path)})


async def _recent_journal(db_path: Path, limit: int = 10) -> list[dict]:
    async with NarrativeJournal(db_path) as journal:
        return await journal.get_recent_events(limit=limit)


def _inspect(cfg: dict) -> None:
    state_path = storage_path(cfg, "state_file", DEFAULT_STATE_FILE)
    if not state_path.exists():
        click.echo(f"No saved progress at {state_path}")
        return
    session = NarrativeSession(config=cfg)
    progress = session.progress
    click.echo(f"\n  Story beat:   {progress.current_story_beat}")
    click.echo(f"  Unlocked:     {len(progress.unlocked_content_ids)}")
    current = session.current_content()
    if current is not None:
        click.echo(f"  Current:      {current.id} — {current.title or '(untitled)'}")
    click.echo(f"  Last updated: {progress.last_updated or '-'}")
    for book_id in sorted(progress.per_book_bitmaps):
        click.echo(f"    {book_id}: {session.book_percent(book_id)}%")

    db_path = storage_path(cfg, "history_db", DEFAULT_HISTORY_DB)
    if db_path.exists():
        rows = asyncio.run(_recent_journal(db_path))
        if rows:
            click.echo("\n  Recent events:")
            for row in rows:
                click.echo(f"    {row['created_at']}  {row['event_type']}: {row['description']}")
    click.echo("")


def _replay(cfg: dict, script: str) -> None:
    try:
        steps = load_script(script)
    except ReplayError as exc:
        raise click.ClickException(str(exc)) from exc

    clock = VirtualClock()
    transcript = Transcript()
    session = NarrativeSession(config=cfg, scheduler=clock, on_change=transcript.on_queue_change)
    attach(session, transcript)
    run_steps(session, clock, steps)

    click.echo("")
    for line in transcript.lines:
        click.echo(f"  [{line.speaker}] {line.text}")
    click.echo(f"\n  Story beat: {session.story_beat} | unlocked: {len(session.progress.unlocked_content_ids)}\n")

    db_path = storage_path(cfg, "history_db", DEFAULT_HISTORY_DB)
    written = asyncio.run(_write_journal(db_path, transcript.notifications))
    logging.getLogger(__name__).info("Journaled %d narrative events to %s", written, db_path)


@click.command()
@click.option("--inspect", is_flag=True, help="Show saved story progress and exit")
@click.option("--replay", "replay_file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Replay a YAML script of game events")
@click.option("--reset", is_flag=True, help="Discard saved progress and start a new game")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.option("--config-dir", type=click.Path(), default=None, help="Config directory")
def main(inspect: bool, replay_file: str | None, reset: bool, verbose: bool, config_dir: str | None) -> None:
    """Narrative progression core for the word-puzzle game."""

    if not (inspect or replay_file or reset):
        click.echo("Specify --inspect, --replay FILE or --reset. Use --help for details.")
        sys.exit(1)

    cfg = load_config(config_dir)

    log_file = cfg.get("storage", {}).get("log_file")
    _setup_logging(verbose=verbose, log_file=storage_path(cfg, "log_file", log_file) if log_file else None)

    if reset:
        store = StoreManager(storage_path(cfg, "state_file", DEFAULT_STATE_FILE))
        store.reset()
        asyncio.run(_journal_reset(storage_path(cfg, "history_db", DEFAULT_HISTORY_DB), store.path))
        click.echo(f"Progress reset at {store.path}")

    if replay_file:
        _replay(cfg, replay_file)

    if inspect:
        _inspect(cfg)


if __name__ == "__main__":
    main()
