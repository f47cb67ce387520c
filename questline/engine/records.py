"""
questline.engine.records — Store-Boundary Records
==================================================

Typed, immutable copies of the rows the engines consume.  ORM instances
are converted with ``from_row`` at the service layer so the pure engines
never see a session-bound object or an untyped dict.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from questline.database.models import MemberPerformance, Quest, UserQuest

__all__ = ["MemberSnapshot", "QuestRecord", "UserQuestRecord"]


@dataclass(frozen=True, slots=True)
class QuestRecord:
    """A quest definition, as read from ``quests``."""

    id: str
    organization_id: str
    title: str
    quest_type: str
    difficulty: str
    reward_xp: int = 0
    reward_commission: float = 0.0
    target_type: str = "referrals"
    target_value: int = 1
    description: str | None = None
    is_active: bool = True
    start_date: datetime | None = None
    end_date: datetime | None = None

    @classmethod
    def from_row(cls, row: Quest) -> QuestRecord:
        return cls(
            id=row.id,
            organization_id=row.organization_id,
            title=row.title,
            quest_type=row.quest_type,
            difficulty=row.difficulty,
            reward_xp=int(row.reward_xp or 0),
            reward_commission=float(row.reward_commission or 0.0),
            target_type=row.target_type,
            target_value=row.target_value,
            description=row.description,
            is_active=bool(row.is_active),
            start_date=row.start_date,
            end_date=row.end_date,
        )


@dataclass(frozen=True, slots=True)
class UserQuestRecord:
    """A member's attempt at a quest, as read from ``user_quests``."""

    id: str
    user_id: str
    quest_id: str
    progress_value: int = 0
    is_completed: bool = False
    reward_claimed: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None
    reward_claimed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: UserQuest) -> UserQuestRecord:
        return cls(
            id=row.id,
            user_id=row.user_id,
            quest_id=row.quest_id,
            progress_value=row.progress_value or 0,
            is_completed=bool(row.is_completed),
            reward_claimed=bool(row.reward_claimed),
            started_at=row.started_at,
            completed_at=row.completed_at,
            reward_claimed_at=row.reward_claimed_at,
        )


@dataclass(frozen=True, slots=True)
class MemberSnapshot:
    """One member's performance counters within an organization.

    Missing counters read as zero, a missing level as 1.
    """

    user_id: str
    username: str = ""
    character_class: str | None = None
    level: int = 1
    total_referrals: int = 0
    total_commission: float = 0.0
    conversion_rate: float = 0.0
    engagement_score: float = 0.0
    quest_completion_rate: float = 0.0
    retention_rate: float = 0.0
    avatar_url: str | None = None
    join_date: datetime | None = None
    last_active: datetime | None = None

    @classmethod
    def from_row(cls, row: MemberPerformance) -> MemberSnapshot:
        return cls(
            user_id=row.user_id,
            username=row.username,
            character_class=row.character_class,
            level=row.level or 1,
            total_referrals=row.total_referrals or 0,
            total_commission=float(row.total_commission or 0.0),
            conversion_rate=row.conversion_rate or 0.0,
            engagement_score=row.engagement_score or 0.0,
            quest_completion_rate=row.quest_completion_rate or 0.0,
            retention_rate=row.retention_rate or 0.0,
            avatar_url=row.avatar_url,
            join_date=row.join_date,
            last_active=row.last_active,
        )

    def metrics(self) -> dict[str, float]:
        """The metric block copied onto every ranking entry."""
        return {
            "total_referrals": self.total_referrals,
            "total_commission": self.total_commission,
            "conversion_rate": self.conversion_rate,
            "engagement_score": self.engagement_score,
            "quest_completion_rate": self.quest_completion_rate,
            "retention_rate": self.retention_rate,
        }

