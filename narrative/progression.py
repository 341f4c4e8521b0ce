"""Story beat progression driven by declarative rules."""

from __future__ import annotations

import logging

from progress.beats import beat_index, is_beat
from progress.store import SessionProgressStore

from .catalog import ProgressionRule, RuleBook
from .metrics import Metrics

logger = logging.getLogger(__name__)


def rule_matches(rule: ProgressionRule, metrics: Metrics) -> bool:
    """Every declared condition holds; metrics the rule names but we lack are ignored."""
    values = metrics.as_dict()
    for metric, condition in rule.conditions.items():
        value = values.get(metric)
        if value is None:
            logger.debug("Rule %s names unknown metric %r; ignoring condition", rule.id, metric)
            continue
        if not condition.admits(value):
            return False
    return True


def check_beat_advancement(
    progress: SessionProgressStore,
    metrics: Metrics,
    rules: RuleBook,
) -> ProgressionRule | None:
    """Return the first rule out of the current beat whose conditions all hold."""
    if not rules.enable_auto_progression:
        return None
    for rule in rules.rules_from(progress.current_story_beat):
        if rule_matches(rule, metrics):
            logger.debug("Rule %s matched: %s", rule.id, rule.description)
            return rule
    return None


def advance_story_beat(progress: SessionProgressStore, new_beat: str) -> SessionProgressStore:
    """Move to ``new_beat``; unknown beats and backward moves leave progress unchanged."""
    if not is_beat(new_beat):
        logger.warning("Refusing to advance to unknown story beat %r", new_beat)
        return progress
    current = progress.current_story_beat
    if beat_index(new_beat) < beat_index(current):
        logger.warning("Refusing to move story backward: %s -> %s", current, new_beat)
        return progress
    if new_beat == current:
        return progress
    return progress.touched(current_story_beat=new_beat)
