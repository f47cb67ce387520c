"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import pytest

from questline.config import QuestlineConfig, load_config
from questline.engine.rewards import DEFAULT_MAX_COMMISSION, DEFAULT_MAX_XP


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_full_config(tmp_path):
    path = _write(tmp_path, """
app_name: "Questline Test"
organizations:
  - acme-referrals
  - beta_org
rewards:
  max_xp_per_quest: 2500
  max_commission_per_quest: 125.5
ranking:
  history_retention_days: 30
""")
    cfg = load_config(path)

    assert cfg == QuestlineConfig(
        app_name="Questline Test",
        organizations=("acme-referrals", "beta_org"),
        max_xp_per_quest=2500,
        max_commission_per_quest=125.5,
        history_retention_days=30,
    )


def test_defaults_for_optional_sections(tmp_path):
    cfg = load_config(_write(tmp_path, "app_name: Minimal\n"))

    assert cfg.organizations == ()
    assert cfg.max_xp_per_quest == DEFAULT_MAX_XP
    assert cfg.max_commission_per_quest == DEFAULT_MAX_COMMISSION
    assert cfg.history_retention_days == 90


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="config.yaml.example"):
        load_config(tmp_path / "nope.yaml")


def test_missing_app_name(tmp_path):
    with pytest.raises(KeyError):
        load_config(_write(tmp_path, "organizations: [acme]\n"))


def test_empty_file_is_missing_app_name(tmp_path):
    with pytest.raises(KeyError):
        load_config(_write(tmp_path, ""))


def test_config_is_frozen(tmp_path):
    cfg = load_config(_write(tmp_path, "app_name: Frozen\n"))
    with pytest.raises(AttributeError):
        cfg.app_name = "Thawed"  # type: ignore[misc]
