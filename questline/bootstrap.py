"""
questline.bootstrap — Service Wiring
=====================================

Builds the explicitly-constructed service objects a host application
passes to its request handlers.  Nothing here is a module-level instance.

Wiring:
1. Load .env (secrets, ``DATABASE_URL``).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Seed default leaderboards for every configured organization.
5. Construct :class:`RewardService` and :class:`RankingService`.

Usage::

    from questline.bootstrap import build_services, configure_logging

    configure_logging()
    services = build_services("config.yaml")
    services.rewards.claim_reward(user_quest_id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import Engine

from questline.config import QuestlineConfig, load_config
from questline.database.engine import create_db_engine, init_db
from questline.services.ranking_service import RankingService
from questline.services.reward_service import RewardService

logger = logging.getLogger("questline")

LOG_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    """Install the Questline log format on the root logger."""
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")


@dataclass(frozen=True, slots=True)
class Services:
    """Everything a host application needs, built once per process."""

    config: QuestlineConfig
    engine: Engine
    rewards: RewardService
    rankings: RankingService


def build_services_for_engine(cfg: QuestlineConfig, engine: Engine) -> Services:
    """Initialise the schema on *engine* and construct the services."""
    init_db(engine, cfg.organizations)
    return Services(
        config=cfg,
        engine=engine,
        rewards=RewardService(
            engine,
            max_xp_per_quest=cfg.max_xp_per_quest,
            max_commission_per_quest=cfg.max_commission_per_quest,
        ),
        rankings=RankingService(engine),
    )


def build_services(config_path: str | Path = "config.yaml") -> Services:
    """Load environment and configuration, then wire the services."""
    load_dotenv()

    cfg = load_config(config_path)
    logger.info("Config loaded — App: %s", cfg.app_name)

    engine = create_db_engine()
    services = build_services_for_engine(cfg, engine)
    logger.info(
        "Questline ready — %d organization(s) seeded", len(cfg.organizations)
    )
    return services
