"""
questline.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for deployment-level settings: which organizations
to seed leaderboards for, per-quest reward ceilings, and how long ranking
history is kept.  Secrets (``DATABASE_URL``) come from the environment.

Usage::

    from questline.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.app_name)          # "Questline Dev"
    print(cfg.max_xp_per_quest)  # 5000
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from questline.engine.rewards import DEFAULT_MAX_COMMISSION, DEFAULT_MAX_XP


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class QuestlineConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    app_name: str

    # Organizations whose default leaderboards are seeded on startup
    organizations: tuple[str, ...] = field(default_factory=tuple)

    # Per-quest reward ceilings (guards against multiplier-stacking bugs)
    max_xp_per_quest: int = DEFAULT_MAX_XP
    max_commission_per_quest: float = DEFAULT_MAX_COMMISSION

    # Ranking history older than this is pruned
    history_retention_days: int = 90


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> QuestlineConfig:
    """Read *path* and return a :class:`QuestlineConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    rewards = raw.get("rewards") or {}
    ranking = raw.get("ranking") or {}

    return QuestlineConfig(
        app_name=raw["app_name"],
        organizations=tuple(str(org) for org in raw.get("organizations") or ()),
        max_xp_per_quest=int(rewards.get("max_xp_per_quest", DEFAULT_MAX_XP)),
        max_commission_per_quest=float(
            rewards.get("max_commission_per_quest", DEFAULT_MAX_COMMISSION)
        ),
        history_retention_days=int(ranking.get("history_retention_days", 90)),
    )
