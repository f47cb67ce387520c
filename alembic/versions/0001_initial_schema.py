"""Initial Questline schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:12:41.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create the ledger, quest, leaderboard and ranking history tables."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column("character_class", sa.String(20), nullable=True),
        sa.Column("level", sa.Integer, server_default="1"),
        sa.Column("experience_points", sa.Integer, server_default="0"),
        sa.Column("total_commission", sa.Numeric(12, 2), server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_users_xp_desc", "users", ["experience_points"])

    # --- quests ---
    op.create_table(
        "quests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(50), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("quest_type", sa.String(20), nullable=False, server_default="daily"),
        sa.Column("difficulty", sa.String(20), nullable=False, server_default="easy"),
        sa.Column("target_type", sa.String(30), nullable=False),
        sa.Column("target_value", sa.Integer, nullable=False),
        sa.Column("reward_xp", sa.Integer, server_default="0"),
        sa.Column("reward_commission", sa.Numeric(12, 2), server_default="0"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_quests_org_active", "quests", ["organization_id", "is_active"])

    # --- user_quests ---
    op.create_table(
        "user_quests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "quest_id", sa.String(36),
            sa.ForeignKey("quests.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("progress_value", sa.Integer, server_default="0"),
        sa.Column("is_completed", sa.Boolean, server_default=sa.false()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reward_claimed", sa.Boolean, server_default=sa.false()),
        sa.Column("reward_claimed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "quest_id", name="uq_user_quests_user_quest"),
    )
    op.create_index(
        "ix_user_quests_user_claim", "user_quests",
        ["user_id", "is_completed", "reward_claimed"],
    )

    # --- reward_transactions ---
    op.create_table(
        "reward_transactions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "quest_id", sa.String(36),
            sa.ForeignKey("quests.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_quest_id", sa.String(36),
            sa.ForeignKey("user_quests.id", ondelete="CASCADE"),
            nullable=False, unique=True,
        ),
        sa.Column("xp", sa.Integer, nullable=False),
        sa.Column("commission", sa.Numeric(12, 2), nullable=False),
        sa.Column("base_xp", sa.Integer, nullable=False),
        sa.Column("base_commission", sa.Numeric(12, 2), nullable=False),
        sa.Column("quest_type", sa.String(20), nullable=False),
        sa.Column("character_class", sa.String(20), nullable=True),
        sa.Column("details", postgresql.JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_reward_tx_user_time", "reward_transactions", ["user_id", "created_at"])

    # --- member_performance_stats ---
    op.create_table(
        "member_performance_stats",
        sa.Column("organization_id", sa.String(50), primary_key=True),
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column("character_class", sa.String(20), nullable=True),
        sa.Column("level", sa.Integer, server_default="1"),
        sa.Column("total_referrals", sa.Integer, server_default="0"),
        sa.Column("total_commission", sa.Numeric(12, 2), server_default="0"),
        sa.Column("conversion_rate", sa.Float, server_default="0"),
        sa.Column("engagement_score", sa.Float, server_default="0"),
        sa.Column("quest_completion_rate", sa.Float, server_default="0"),
        sa.Column("retention_rate", sa.Float, server_default="0"),
        sa.Column("join_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_active", sa.DateTime(timezone=True), nullable=True),
    )

    # --- leaderboard_configs ---
    op.create_table(
        "leaderboard_configs",
        sa.Column("id", sa.String(120), primary_key=True),
        sa.Column("organization_id", sa.String(50), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("timeframe", sa.String(20), nullable=False),
        sa.Column("scoring_method", sa.String(20), server_default="weighted"),
        sa.Column("weights", postgresql.JSONB, nullable=True),
        sa.Column("filters", postgresql.JSONB, nullable=True),
        sa.Column("max_entries", sa.Integer, nullable=True),
        sa.Column("reset_schedule", sa.String(50), nullable=True),
        sa.Column("enabled", sa.Boolean, server_default=sa.true()),
    )
    op.create_index("ix_leaderboard_configs_org", "leaderboard_configs", ["organization_id"])

    # --- ranking_history ---
    op.create_table(
        "ranking_history",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("leaderboard_id", sa.String(120), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("rank", sa.Integer, nullable=False),
        sa.Column("score", sa.Float, nullable=False),
        sa.Column("snapshot_date", sa.Date, nullable=False),
        sa.Column(
            "recorded_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("metrics", postgresql.JSONB, nullable=True),
    )
    op.create_index(
        "ix_ranking_history_board_user_date", "ranking_history",
        ["leaderboard_id", "user_id", "snapshot_date"],
    )
    op.create_index("ix_ranking_history_date", "ranking_history", ["snapshot_date"])


def downgrade() -> None:
    """Drop every Questline table."""
    op.drop_table("ranking_history")
    op.drop_table("leaderboard_configs")
    op.drop_table("member_performance_stats")
    op.drop_table("reward_transactions")
    op.drop_table("user_quests")
    op.drop_table("quests")
    op.drop_table("users")
