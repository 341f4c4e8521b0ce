"""Narrative system — progression rules, triggers, content catalog."""

from .catalog import (
    ContentCatalog,
    NarrativeContent,
    ProgressionRule,
    RuleBook,
    load_content_catalog,
    load_rule_book,
)
from .metrics import GameSnapshot, Metrics, compute_metrics
from .progression import advance_story_beat, check_beat_advancement
from .triggers import (
    TriggerMatch,
    check_beat_trigger,
    check_trigger,
    current_content,
    story_history,
    unlock,
)

__all__ = [
    "ContentCatalog",
    "GameSnapshot",
    "Metrics",
    "NarrativeContent",
    "ProgressionRule",
    "RuleBook",
    "TriggerMatch",
    "advance_story_beat",
    "check_beat_advancement",
    "check_beat_trigger",
    "check_trigger",
    "compute_metrics",
    "current_content",
    "load_content_catalog",
    "load_rule_book",
    "story_history",
    "unlock",
]
