"""Configuration loading from settings.yaml and .env."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_STATE_FILE = "data/story-state.json"
DEFAULT_HISTORY_DB = "data/narrative.db"


def load_config(
    config_dir: str | Path | None = None,
) -> dict:
    """Load settings.yaml and .env, return merged config dict."""
    if config_dir is None:
        config_dir = PROJECT_ROOT / "config"
    config_dir = Path(config_dir)

    # Load .env (silently skip if missing)
    load_dotenv(config_dir / ".env")

    settings_path = config_dir / "settings.yaml"
    if not settings_path.exists():
        raise FileNotFoundError(f"Config not found: {settings_path}")

    with open(settings_path, encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    # Environment overrides for file locations; empty means "use settings.yaml"
    cfg["_env"] = {
        "state_file": os.getenv("NARRATIVE_STATE_FILE", ""),
        "history_db": os.getenv("NARRATIVE_HISTORY_DB", ""),
        "data_dir": os.getenv("NARRATIVE_DATA_DIR", ""),
    }
    cfg["_root"] = str(config_dir.resolve().parent)

    return cfg


def resolve_path(cfg: dict, value: str | Path | None, *, data_file: bool = False) -> Path | None:
    """Resolve a configured path against the project root.

    Catalog files (``data_file=True``) are looked up in ``NARRATIVE_DATA_DIR``
    by file name when that override is set.
    """
    if not value:
        return None
    path = Path(value)
    data_dir = cfg.get("_env", {}).get("data_dir")
    if data_file and data_dir:
        return Path(data_dir) / path.name
    if path.is_absolute():
        return path
    return Path(cfg.get("_root") or PROJECT_ROOT) / path


def storage_path(cfg: dict, key: str, default: str) -> Path:
    """Location of a storage file (``state_file``, ``history_db``, ``log_file``)."""
    override = cfg.get("_env", {}).get(key)
    if override:
        return Path(override)
    return resolve_path(cfg, cfg.get("storage", {}).get(key) or default)
