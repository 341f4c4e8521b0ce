"""Declarative narrative documents: progression rules and the content catalog.

Both documents are YAML (JSON is accepted, being a subset). They are loaded
once per session. A missing or malformed document is never fatal: it loads as
an empty rule book / catalog, so the game stays playable with no further
narrative advancement.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from progress.beats import DEFAULT_BEAT, beat_index, is_beat

logger = logging.getLogger(__name__)

DEFAULT_MILESTONES = {
    "books_discovered": (5, 10, 25, 50, 100),
    "puzzles_complete": (10, 25, 50, 100),
    "books_complete": (5, 10, 25),
}
DEFAULT_REVEAL_TRIGGER = "category_revealed"


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key wins; documents may use snake_case or camelCase."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _read_document(path: str | Path | None, label: str) -> dict[str, Any] | None:
    if path is None:
        return None
    path = Path(path)
    if not path.exists():
        logger.warning("%s not found at %s; treating as empty", label, path)
        return None
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to load %s from %s: %s", label, path, exc)
        return None
    if not isinstance(raw, dict):
        logger.error("%s at %s is not a mapping; treating as empty", label, path)
        return None
    return raw


# ── Progression rules ───────────────────────────────────────────


@dataclass(frozen=True)
class Condition:
    """Inclusive bounds on one metric; ``None`` means unbounded."""

    min: float | None = None
    max: float | None = None

    def admits(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


@dataclass(frozen=True)
class ProgressionRule:
    id: str
    from_beat: str
    to_beat: str
    conditions: Mapping[str, Condition] = field(default_factory=dict)
    priority: int = 0
    description: str = ""
    position: int = 0  # declaration order, breaks priority ties

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], position: int = 0) -> ProgressionRule:
        from_beat = _pick(data, "from_beat", "fromBeat", default="")
        to_beat = _pick(data, "to_beat", "toBeat", default="")
        for beat in (from_beat, to_beat):
            if not is_beat(beat):
                raise ValueError(f"unknown story beat {beat!r}")
        if beat_index(to_beat) <= beat_index(from_beat):
            raise ValueError(f"rule moves backward or nowhere: {from_beat} -> {to_beat}")

        raw_conditions = data.get("conditions") or {}
        if not isinstance(raw_conditions, Mapping):
            raise ValueError("conditions must be a mapping")
        conditions: dict[str, Condition] = {}
        for metric, bounds in raw_conditions.items():
            if bounds is None:
                continue
            if not isinstance(bounds, Mapping):
                raise ValueError(f"condition for {metric!r} must be a mapping")
            low, high = bounds.get("min"), bounds.get("max")
            conditions[str(metric)] = Condition(
                min=float(low) if low is not None else None,
                max=float(high) if high is not None else None,
            )

        return cls(
            id=str(data.get("id") or f"{from_beat}->{to_beat}#{position}"),
            from_beat=from_beat,
            to_beat=to_beat,
            conditions=MappingProxyType(conditions),
            priority=int(data.get("priority", 0)),
            description=str(data.get("description", "")),
            position=position,
        )


@dataclass
class RuleBook:
    rules: tuple[ProgressionRule, ...] = ()
    enable_auto_progression: bool = True
    allow_manual_override: bool = False

    def rules_from(self, beat: str) -> list[ProgressionRule]:
        """Rules leaving ``beat``, in evaluation order."""
        found = [r for r in self.rules if r.from_beat == beat]
        return sorted(found, key=lambda r: (r.priority, r.position))

    def __len__(self) -> int:
        return len(self.rules)


def parse_rule_book(raw: Mapping[str, Any] | None) -> RuleBook:
    if not raw:
        return RuleBook()
    settings = raw.get("settings") or {}
    if not isinstance(settings, Mapping):
        settings = {}
    entries = _pick(raw, "progression_rules", "progressionRules", default=[])
    if not isinstance(entries, list):
        logger.error("progression_rules must be a list; ignoring rules")
        entries = []

    rules: list[ProgressionRule] = []
    for position, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            logger.warning("Skipping malformed progression rule #%d", position)
            continue
        try:
            rules.append(ProgressionRule.from_dict(entry, position=position))
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping progression rule #%d: %s", position, exc)

    return RuleBook(
        rules=tuple(rules),
        enable_auto_progression=bool(
            _pick(settings, "enable_auto_progression", "enableAutoProgression", default=True)
        ),
        allow_manual_override=bool(
            _pick(settings, "allow_manual_override", "allowManualOverride", default=False)
        ),
    )


def load_rule_book(path: str | Path | None) -> RuleBook:
    book = parse_rule_book(_read_document(path, "Progression rules"))
    logger.info("Loaded %d progression rules", len(book))
    return book


# ── Content catalog ─────────────────────────────────────────────


@dataclass(frozen=True)
class NarrativeContent:
    """One unlockable story blurb."""

    id: str
    trigger: str
    story_beat: str = DEFAULT_BEAT  # earliest beat at which it may unlock
    order: int = 0
    payload: Mapping[str, Any] = field(default_factory=dict)
    repeatable: bool = False

    @property
    def title(self) -> str:
        return str(self.payload.get("title", ""))

    @property
    def text(self) -> str:
        return str(self.payload.get("text", ""))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NarrativeContent:
        content_id = str(data.get("id") or "").strip()
        trigger = str(data.get("trigger") or "").strip()
        if not content_id or not trigger:
            raise ValueError("content needs both an id and a trigger")
        beat = _pick(data, "story_beat", "storyBeat", default=DEFAULT_BEAT)
        if not is_beat(beat):
            raise ValueError(f"unknown story beat {beat!r}")
        reserved = {"id", "trigger", "story_beat", "storyBeat", "order", "repeatable"}
        payload = {k: v for k, v in data.items() if k not in reserved}
        return cls(
            id=content_id,
            trigger=trigger,
            story_beat=beat,
            order=int(data.get("order", 0)),
            payload=MappingProxyType(payload),
            repeatable=bool(data.get("repeatable", False)),
        )


@dataclass(frozen=True)
class TriggerSettings:
    allow_repeats: bool = False
    default_story_beat: str = DEFAULT_BEAT
    milestones: Mapping[str, tuple[int, ...]] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_MILESTONES))
    )
    reveal_trigger: str = DEFAULT_REVEAL_TRIGGER
    category_triggers: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> TriggerSettings:
        data = data or {}
        milestones = dict(DEFAULT_MILESTONES)
        raw_milestones = data.get("milestones") or {}
        aliases = {
            "booksDiscovered": "books_discovered",
            "puzzlesComplete": "puzzles_complete",
            "booksComplete": "books_complete",
        }
        if isinstance(raw_milestones, Mapping):
            for key, values in raw_milestones.items():
                name = aliases.get(key, key)
                if name not in milestones or not isinstance(values, list):
                    logger.warning("Ignoring milestone list %r", key)
                    continue
                milestones[name] = tuple(sorted({int(v) for v in values if int(v) > 0}))

        default_beat = _pick(data, "default_story_beat", "defaultStoryBeat", default=DEFAULT_BEAT)
        if not is_beat(default_beat):
            logger.warning("Unknown default story beat %r; using %s", default_beat, DEFAULT_BEAT)
            default_beat = DEFAULT_BEAT

        category_triggers = _pick(data, "category_triggers", "categoryTriggers", default={})
        if not isinstance(category_triggers, Mapping):
            category_triggers = {}

        return cls(
            allow_repeats=bool(
                _pick(data, "allow_repeats", "allowMultiplePerTrigger", default=False)
            ),
            default_story_beat=default_beat,
            milestones=MappingProxyType(milestones),
            reveal_trigger=str(_pick(data, "reveal_trigger", "revealTrigger", default=DEFAULT_REVEAL_TRIGGER)),
            category_triggers=MappingProxyType({str(k): str(v) for k, v in category_triggers.items()}),
        )


class ContentCatalog:
    """Immutable, indexed collection of narrative content."""

    def __init__(self, contents: list[NarrativeContent] | None = None, settings: TriggerSettings | None = None):
        self._settings = settings or TriggerSettings()
        self._by_id: dict[str, NarrativeContent] = {}
        self._by_trigger: dict[str, list[NarrativeContent]] = {}
        for content in contents or []:
            if content.id in self._by_id:
                logger.warning("Duplicate content id %s; keeping the first", content.id)
                continue
            self._by_id[content.id] = content
            self._by_trigger.setdefault(content.trigger, []).append(content)
        for group in self._by_trigger.values():
            # stable: equal order keeps declaration order
            group.sort(key=lambda c: c.order)

    @property
    def settings(self) -> TriggerSettings:
        return self._settings

    def get(self, content_id: str) -> NarrativeContent | None:
        return self._by_id.get(content_id)

    def for_trigger(self, trigger: str) -> list[NarrativeContent]:
        return list(self._by_trigger.get(trigger, []))

    def triggers(self) -> list[str]:
        return list(self._by_trigger)

    def all(self) -> list[NarrativeContent]:
        return list(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, content_id: object) -> bool:
        return content_id in self._by_id


def parse_content_catalog(raw: Mapping[str, Any] | None) -> ContentCatalog:
    if not raw:
        return ContentCatalog()
    try:
        settings = TriggerSettings.from_dict(_pick(raw, "trigger_config", "triggerConfig"))
    except (TypeError, ValueError) as exc:
        logger.error("Bad trigger_config (%s); using defaults", exc)
        settings = TriggerSettings()

    entries = _pick(raw, "blurbs", "contents", default=[])
    if not isinstance(entries, list):
        logger.error("blurbs must be a list; ignoring catalog entries")
        entries = []

    contents: list[NarrativeContent] = []
    for position, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            logger.warning("Skipping malformed content entry #%d", position)
            continue
        try:
            contents.append(NarrativeContent.from_dict(entry))
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping content entry #%d: %s", position, exc)
    return ContentCatalog(contents, settings)


def load_content_catalog(path: str | Path | None) -> ContentCatalog:
    catalog = parse_content_catalog(_read_document(path, "Content catalog"))
    logger.info("Loaded %d narrative content entries", len(catalog))
    return catalog
