"""
questline.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- users                    — Member ledger (XP, commission, class, level)
- quests                   — Quest definitions per organization
- user_quests              — A member's attempt at a quest (one-way claim flag)
- reward_transactions      — One row per successful reward distribution
- member_performance_stats — Denormalized per-org performance snapshot
- leaderboard_configs      — Stored leaderboard definitions
- ranking_history          — Append-only daily rank snapshots
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Currency amounts: two decimal places, surfaced to Python as float
Money = Numeric(12, 2, asdecimal=False)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Questline ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class QuestType(enum.StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    SPECIAL = "special"


class QuestDifficulty(enum.StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EPIC = "epic"


class CharacterClass(enum.StrEnum):
    """Player archetypes carrying fixed reward and ranking multipliers."""
    SCOUT = "scout"
    SAGE = "sage"
    CHAMPION = "champion"
    MERCHANT = "merchant"


class LeaderboardCategory(enum.StrEnum):
    """The metric dimension a leaderboard ranks over."""
    OVERALL = "overall"
    REFERRALS = "referrals"
    COMMISSION = "commission"
    ENGAGEMENT = "engagement"
    QUESTS = "quests"
    RETENTION = "retention"


class Timeframe(enum.StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL_TIME = "all_time"


class RankChange(enum.StrEnum):
    """Day-over-day movement of a ranked entry."""
    UP = "up"
    DOWN = "down"
    NEW = "new"
    SAME = "same"


class NotificationType(enum.StrEnum):
    QUEST_COMPLETED = "quest_completed"
    ACHIEVEMENT = "achievement"
    MILESTONE = "milestone"


class DistributionOutcome(enum.StrEnum):
    """How a reward distribution attempt ended."""
    CLAIMED = "claimed"
    NOT_COMPLETED = "not_completed"
    ALREADY_CLAIMED = "already_claimed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Users — the XP / commission ledger
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)  # UUID
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    character_class: Mapped[str | None] = mapped_column(String(20), default=None)
    level: Mapped[int] = mapped_column(Integer, default=1)
    experience_points: Mapped[int] = mapped_column(Integer, default=0)
    total_commission: Mapped[float] = mapped_column(Money, default=0.0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user_quests: Mapped[list[UserQuest]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_xp_desc", "experience_points"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r} lvl={self.level}>"


# ---------------------------------------------------------------------------
# Quests — challenge definitions
# ---------------------------------------------------------------------------
class Quest(Base):
    __tablename__ = "quests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    quest_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QuestType.DAILY.value
    )
    difficulty: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QuestDifficulty.EASY.value
    )
    target_type: Mapped[str] = mapped_column(String(30), nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_xp: Mapped[int] = mapped_column(Integer, default=0)
    reward_commission: Mapped[float] = mapped_column(Money, default=0.0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_quests_org_active", "organization_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Quest id={self.id} title={self.title!r} type={self.quest_type}>"


# ---------------------------------------------------------------------------
# UserQuest — a member's attempt at a quest
# ---------------------------------------------------------------------------
class UserQuest(Base):
    """Progress on a single quest.

    ``reward_claimed`` is a one-way transition: it is only ever flipped by
    the conditional update in the reward service.
    """
    __tablename__ = "user_quests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    quest_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quests.id", ondelete="CASCADE"), nullable=False
    )
    progress_value: Mapped[int] = mapped_column(Integer, default=0)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reward_claimed: Mapped[bool] = mapped_column(Boolean, default=False)
    reward_claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship(back_populates="user_quests")
    quest: Mapped[Quest] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "quest_id", name="uq_user_quests_user_quest"),
        Index("ix_user_quests_user_claim", "user_id", "is_completed", "reward_claimed"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserQuest id={self.id} user={self.user_id} "
            f"done={self.is_completed} claimed={self.reward_claimed}>"
        )


# ---------------------------------------------------------------------------
# RewardTransaction — audit row for every payout
# ---------------------------------------------------------------------------
class RewardTransaction(Base):
    __tablename__ = "reward_transactions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    quest_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quests.id", ondelete="CASCADE"), nullable=False
    )
    # At most one payout per attempt, enforced by the database
    user_quest_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_quests.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    xp: Mapped[int] = mapped_column(Integer, nullable=False)
    commission: Mapped[float] = mapped_column(Money, nullable=False)
    base_xp: Mapped[int] = mapped_column(Integer, nullable=False)
    base_commission: Mapped[float] = mapped_column(Money, nullable=False)
    quest_type: Mapped[str] = mapped_column(String(20), nullable=False)
    character_class: Mapped[str | None] = mapped_column(String(20), default=None)
    details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_reward_tx_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<RewardTransaction id={self.id} user={self.user_id} xp={self.xp}>"


# ---------------------------------------------------------------------------
# MemberPerformance — denormalized snapshot read by the ranking engine
# ---------------------------------------------------------------------------
class MemberPerformance(Base):
    """Per-user, per-organization performance counters.

    Refreshed by the surrounding application as members act; the ranking
    engine only ever reads it.
    """
    __tablename__ = "member_performance_stats"

    organization_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    character_class: Mapped[str | None] = mapped_column(String(20), default=None)
    level: Mapped[int] = mapped_column(Integer, default=1)
    total_referrals: Mapped[int] = mapped_column(Integer, default=0)
    total_commission: Mapped[float] = mapped_column(Money, default=0.0)
    conversion_rate: Mapped[float] = mapped_column(Float, default=0.0)
    engagement_score: Mapped[float] = mapped_column(Float, default=0.0)
    quest_completion_rate: Mapped[float] = mapped_column(Float, default=0.0)
    retention_rate: Mapped[float] = mapped_column(Float, default=0.0)
    join_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_active: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<MemberPerformance org={self.organization_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# LeaderboardDefinition — stored leaderboard configuration
# ---------------------------------------------------------------------------
class LeaderboardDefinition(Base):
    __tablename__ = "leaderboard_configs"

    id: Mapped[str] = mapped_column(String(120), primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    timeframe: Mapped[str] = mapped_column(String(20), nullable=False)
    scoring_method: Mapped[str] = mapped_column(String(20), default="weighted")
    weights: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    filters: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    max_entries: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reset_schedule: Mapped[str | None] = mapped_column(String(50), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("ix_leaderboard_configs_org", "organization_id"),
    )

    def __repr__(self) -> str:
        return f"<LeaderboardDefinition id={self.id!r} category={self.category}>"


# ---------------------------------------------------------------------------
# RankingHistory — append-only daily rank snapshots
# ---------------------------------------------------------------------------
class RankingHistory(Base):
    """One row per (leaderboard, user) each time a leaderboard is refreshed.

    Rows are never updated.  Change detection reads the most recent row
    from the previous calendar day.
    """
    __tablename__ = "ranking_history"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    leaderboard_id: Mapped[str] = mapped_column(String(120), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    metrics: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (
        Index("ix_ranking_history_board_user_date", "leaderboard_id", "user_id", "snapshot_date"),
        Index("ix_ranking_history_date", "snapshot_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<RankingHistory board={self.leaderboard_id!r} user={self.user_id} "
            f"rank={self.rank} date={self.snapshot_date}>"
        )
