"""
Questline — Reward & Ranking Core for Gamified Referral Programs
=================================================================
Turns completed quests into XP/commission payouts and member performance
snapshots into ranked, change-annotated leaderboards.  The surrounding
web application owns auth, routing and UI; Questline owns the numbers.

Package layout::

    questline/
    ├── config.py          # YAML → typed Python config
    ├── exceptions.py      # Typed error taxonomy
    ├── bootstrap.py       # Wires config + engine + services together
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default leaderboard definitions
    ├── engine/
    │   ├── records.py     # Store-boundary DTOs (quest, user quest, member)
    │   ├── rewards.py     # Quest reward multiplier pipeline
    │   └── ranking.py     # Leaderboard scoring, ranking, statistics
    └── services/
        ├── reward_service.py   # Reward distribution + reward history
        └── ranking_service.py  # Leaderboard reads, history, refresh
"""

__version__ = "0.1.0"
