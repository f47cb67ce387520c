"""
questline.database.seed — Default Leaderboard Seeder
=====================================================

Baseline leaderboards seeded for each configured organization on startup
so rankings are immediately available (daily and weekly overall, monthly
referrals, all-time commission, weekly engagement).

Idempotent — only inserts definitions whose id doesn't already exist.
Definitions edited by an admin later are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from questline.database.models import LeaderboardDefinition
from questline.engine.ranking import LeaderboardConfig, default_leaderboard_configs
from questline.engine.validation import validate_organization_id

logger = logging.getLogger(__name__)


def definition_from_config(config: LeaderboardConfig) -> LeaderboardDefinition:
    """Build an ORM row for *config*."""
    filters = config.filters.to_dict()
    return LeaderboardDefinition(
        id=config.id,
        organization_id=config.organization_id,
        name=config.name,
        description=config.description,
        category=config.category,
        timeframe=config.timeframe,
        scoring_method=config.scoring_method,
        weights=dict(config.weights) if config.weights else None,
        filters=filters or None,
        max_entries=config.max_entries,
        reset_schedule=config.reset_schedule,
        enabled=config.enabled,
    )


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_leaderboards(engine: Engine, organization_id: str) -> int:
    """Insert the default leaderboards for *organization_id* that don't yet exist.

    Returns the number of definitions inserted.

    Raises
    ------
    ValidationError
        If *organization_id* is malformed.
    """
    validate_organization_id(organization_id)

    session = Session(engine)
    inserted = 0
    try:
        for config in default_leaderboard_configs(organization_id):
            if session.get(LeaderboardDefinition, config.id) is None:
                session.add(definition_from_config(config))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info(
            "Seeded %d default leaderboards for %s.", inserted, organization_id
        )
    return inserted
