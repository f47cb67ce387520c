"""
tests/test_bootstrap.py — Startup Seeding & Service Wiring
===========================================================

Tests default-leaderboard seeding (idempotency, admin edits preserved,
organization validation) and the service bundle built on an existing
engine.

All tests use an in-memory SQLite database.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from questline.bootstrap import build_services_for_engine
from questline.config import QuestlineConfig
from questline.database.engine import init_db
from questline.database.models import LeaderboardDefinition
from questline.database.seed import seed_default_leaderboards
from questline.exceptions import ValidationError
from questline.services.ranking_service import RankingService
from questline.services.reward_service import RewardService

ORG = "acme-referrals"


def _definition_count(engine, organization_id: str = ORG) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count())
            .select_from(LeaderboardDefinition)
            .where(LeaderboardDefinition.organization_id == organization_id)
        )


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------
class TestSeedDefaultLeaderboards:
    def test_first_run_inserts_five(self, db_engine):
        assert seed_default_leaderboards(db_engine, ORG) == 5
        assert _definition_count(db_engine) == 5

    def test_idempotent(self, db_engine):
        seed_default_leaderboards(db_engine, ORG)
        assert seed_default_leaderboards(db_engine, ORG) == 0
        assert _definition_count(db_engine) == 5

    def test_admin_edits_preserved(self, db_engine):
        seed_default_leaderboards(db_engine, ORG)
        with Session(db_engine) as session:
            row = session.get(LeaderboardDefinition, f"{ORG}_overall_daily")
            row.name = "Today's Heroes"
            row.enabled = False
            session.commit()

        seed_default_leaderboards(db_engine, ORG)

        with Session(db_engine) as session:
            row = session.get(LeaderboardDefinition, f"{ORG}_overall_daily")
            assert row.name == "Today's Heroes"
            assert row.enabled is False

    def test_missing_rows_backfilled(self, db_engine):
        seed_default_leaderboards(db_engine, ORG)
        with Session(db_engine) as session:
            session.delete(session.get(LeaderboardDefinition, f"{ORG}_engagement_weekly"))
            session.commit()

        assert seed_default_leaderboards(db_engine, ORG) == 1

    def test_invalid_organization(self, db_engine):
        with pytest.raises(ValidationError):
            seed_default_leaderboards(db_engine, "a b")
        assert _definition_count(db_engine, "a b") == 0

    def test_init_db_seeds_each_organization(self, db_engine):
        init_db(db_engine, (ORG, "beta_org"))
        assert _definition_count(db_engine) == 5
        assert _definition_count(db_engine, "beta_org") == 5


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------
class TestBuildServices:
    def test_services_share_engine(self, db_engine):
        cfg = QuestlineConfig(app_name="Test", organizations=(ORG,))
        services = build_services_for_engine(cfg, db_engine)

        assert services.engine is db_engine
        assert isinstance(services.rewards, RewardService)
        assert isinstance(services.rankings, RankingService)
        assert _definition_count(db_engine) == 5

    def test_stored_definitions_visible_to_rankings(self, db_engine):
        cfg = QuestlineConfig(app_name="Test", organizations=(ORG,))
        services = build_services_for_engine(cfg, db_engine)

        with Session(db_engine) as session:
            session.get(LeaderboardDefinition, f"{ORG}_overall_daily").name = "Renamed"
            session.commit()

        config = services.rankings.get_leaderboard_config(f"{ORG}_overall_daily")
        assert config.name == "Renamed"

    def test_reward_ceilings_from_config(self, db_engine):
        cfg = QuestlineConfig(app_name="Test", max_xp_per_quest=100, max_commission_per_quest=5.0)
        services = build_services_for_engine(cfg, db_engine)
        assert services.rewards.max_xp_per_quest == 100
        assert services.rewards.max_commission_per_quest == 5.0
