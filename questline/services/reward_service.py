"""
questline.services.reward_service — Reward Distribution & Ledger
=================================================================

The only mutating step in the reward lifecycle.  Computes a completed
quest's reward through :mod:`questline.engine.rewards`, then in one
transaction flips the claim flag, credits the user's XP / commission ledger
and writes a ``reward_transactions`` audit row.

Double payouts are prevented by the database, not by reading first:

* the claim is a conditional ``UPDATE user_quests … WHERE reward_claimed
  IS false`` and zero affected rows means someone else already claimed;
* ``reward_transactions.user_quest_id`` is unique.

Business-rule rejections come back as :class:`RewardDistribution` values.
Persistence failures are rolled back and reported in ``reason``; nothing
here retries.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from questline.database.models import (
    DistributionOutcome,
    Quest,
    RewardTransaction,
    User,
    UserQuest,
)
from questline.engine.records import QuestRecord, UserQuestRecord
from questline.engine.rewards import (
    DEFAULT_MAX_COMMISSION,
    DEFAULT_MAX_XP,
    CompletionContext,
    QuestReward,
    RewardNotification,
    calculate_final_reward,
    calculate_reward_streak,
    generate_reward_notification,
)
from questline.engine.validation import validate_user_id
from questline.exceptions import QuestlineError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

QUEST_NOT_COMPLETED = "Quest not completed"
REWARDS_ALREADY_CLAIMED = "Rewards already claimed"


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Result value
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardDistribution:
    """Outcome of one distribution attempt.

    ``success`` is true only for :attr:`DistributionOutcome.CLAIMED`.
    """

    success: bool
    outcome: DistributionOutcome
    rewards: QuestReward | None = None
    reason: str | None = None
    notification: RewardNotification | None = None

    @classmethod
    def rejected(cls, outcome: DistributionOutcome, reason: str) -> RewardDistribution:
        return cls(success=False, outcome=outcome, reason=reason)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class RewardService:
    """Distributes quest rewards and reports on a user's reward ledger.

    Parameters
    ----------
    engine : SQLAlchemy engine; every call opens and closes its own session
    max_xp_per_quest, max_commission_per_quest : per-quest ceilings
    clock : returns "now"; injectable for tests
    """

    def __init__(
        self,
        engine: Engine,
        *,
        max_xp_per_quest: int = DEFAULT_MAX_XP,
        max_commission_per_quest: float = DEFAULT_MAX_COMMISSION,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._engine = engine
        self.max_xp_per_quest = max_xp_per_quest
        self.max_commission_per_quest = max_commission_per_quest
        self._clock = clock

    # -- Distribution --------------------------------------------------------

    def distribute_quest_rewards(
        self,
        user_quest: UserQuestRecord,
        quest: QuestRecord,
        context: CompletionContext | None = None,
    ) -> RewardDistribution:
        """Claim *user_quest* and credit its reward.

        Preconditions are checked in order: user id format and a quest
        that matches the attempt (both raise
        :class:`~questline.exceptions.ValidationError`), completion, claim
        state.  The in-memory record may be stale; the conditional update
        is what decides whether this call wins the claim.

        When *context* is omitted it is derived from the store: the user's
        character class, their current claim streak, the attempt's start and
        completion timestamps, and whether this is their first ever claim.
        """
        validate_user_id(user_quest.user_id)
        if quest.id != user_quest.quest_id:
            raise ValidationError(
                f"Quest {quest.id} does not match attempt {user_quest.id}",
                field="quest_id",
            )

        if not user_quest.is_completed:
            logger.info("Reward rejected for %s: quest not completed", user_quest.id)
            return RewardDistribution.rejected(
                DistributionOutcome.NOT_COMPLETED, QUEST_NOT_COMPLETED
            )
        if user_quest.reward_claimed:
            logger.info("Reward rejected for %s: already claimed", user_quest.id)
            return RewardDistribution.rejected(
                DistributionOutcome.ALREADY_CLAIMED, REWARDS_ALREADY_CLAIMED
            )

        try:
            if context is None:
                context = self._derive_context(user_quest)
            rewards = calculate_final_reward(
                quest,
                context,
                max_xp=self.max_xp_per_quest,
                max_commission=self.max_commission_per_quest,
            )
        except QuestlineError as exc:
            logger.warning("Reward calculation failed for %s: %s", user_quest.id, exc)
            return RewardDistribution.rejected(DistributionOutcome.FAILED, str(exc))
        except SQLAlchemyError as exc:
            logger.exception("Reward context lookup failed for %s", user_quest.id)
            return RewardDistribution.rejected(DistributionOutcome.FAILED, str(exc))

        now = self._clock()
        session = Session(self._engine)
        try:
            claimed = session.execute(
                update(UserQuest)
                .where(
                    UserQuest.id == user_quest.id,
                    UserQuest.user_id == user_quest.user_id,
                    UserQuest.quest_id == quest.id,
                    UserQuest.is_completed.is_(True),
                    UserQuest.reward_claimed.is_(False),
                )
                .values(reward_claimed=True, reward_claimed_at=now, updated_at=now)
            ).rowcount
            if claimed == 0:
                session.rollback()
                logger.info("Reward for %s lost the claim race", user_quest.id)
                return RewardDistribution.rejected(
                    DistributionOutcome.ALREADY_CLAIMED, REWARDS_ALREADY_CLAIMED
                )

            credited = session.execute(
                update(User)
                .where(User.id == user_quest.user_id)
                .values(
                    experience_points=User.experience_points + rewards.xp,
                    total_commission=User.total_commission + rewards.commission,
                    updated_at=now,
                )
            ).rowcount
            if credited == 0:
                session.rollback()
                logger.warning("Reward for %s: user %s not found",
                               user_quest.id, user_quest.user_id)
                return RewardDistribution.rejected(
                    DistributionOutcome.FAILED, f"User not found: {user_quest.user_id}"
                )

            session.add(RewardTransaction(
                user_id=user_quest.user_id,
                quest_id=quest.id,
                user_quest_id=user_quest.id,
                xp=rewards.xp,
                commission=rewards.commission,
                base_xp=quest.reward_xp,
                base_commission=quest.reward_commission,
                quest_type=quest.quest_type,
                character_class=context.character_class,
                details=context.to_details(),
                created_at=now,
            ))
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Reward distribution failed for %s", user_quest.id)
            return RewardDistribution.rejected(DistributionOutcome.FAILED, str(exc))
        finally:
            session.close()

        logger.info(
            "Reward distributed: user=%s quest=%s xp=%d commission=%.2f",
            user_quest.user_id, quest.id, rewards.xp, rewards.commission,
        )
        return RewardDistribution(
            success=True,
            outcome=DistributionOutcome.CLAIMED,
            rewards=rewards,
            notification=generate_reward_notification(
                user_quest.user_id, quest.id, quest.title, rewards
            ),
        )

    def claim_reward(
        self, user_quest_id: str, context: CompletionContext | None = None
    ) -> RewardDistribution:
        """Load the attempt and its quest by id, then distribute."""
        with Session(self._engine) as session:
            row = session.get(UserQuest, user_quest_id)
            if row is None:
                return RewardDistribution.rejected(
                    DistributionOutcome.FAILED, f"User quest not found: {user_quest_id}"
                )
            user_quest = UserQuestRecord.from_row(row)
            quest = QuestRecord.from_row(row.quest)
        return self.distribute_quest_rewards(user_quest, quest, context)

    def bulk_distribute_rewards(self, user_id: str) -> dict[str, Any]:
        """Claim every completed, unclaimed quest for *user_id*.

        Returns ``{"success", "processed_quests", "total_xp",
        "total_commission", "failed"}``; ``success`` is false if any claim
        failed.
        """
        validate_user_id(user_id)
        with Session(self._engine) as session:
            rows = session.execute(
                select(UserQuest, Quest)
                .join(Quest, UserQuest.quest_id == Quest.id)
                .where(
                    UserQuest.user_id == user_id,
                    UserQuest.is_completed.is_(True),
                    UserQuest.reward_claimed.is_(False),
                )
                .order_by(UserQuest.completed_at, UserQuest.id)
            ).all()
            pending = [
                (UserQuestRecord.from_row(uq), QuestRecord.from_row(q)) for uq, q in rows
            ]

        processed = 0
        total_xp = 0
        total_commission = 0.0
        failed: list[dict[str, str | None]] = []
        for user_quest, quest in pending:
            result = self.distribute_quest_rewards(user_quest, quest)
            if result.success and result.rewards is not None:
                processed += 1
                total_xp += result.rewards.xp
                total_commission += result.rewards.commission
            else:
                failed.append({"user_quest_id": user_quest.id, "reason": result.reason})

        logger.info(
            "Bulk distribution for %s: %d claimed, %d failed",
            user_id, processed, len(failed),
        )
        return {
            "success": not failed,
            "processed_quests": processed,
            "total_xp": total_xp,
            "total_commission": round(total_commission, 2),
            "failed": failed,
        }

    # -- Read side -----------------------------------------------------------

    def preview_quest_rewards(self, user_id: str, quest_id: str) -> QuestReward | None:
        """Reward *user_id* would get for *quest_id* with no completion bonuses.

        Returns ``None`` when the user or quest does not exist.  Cap and
        validation errors propagate.
        """
        validate_user_id(user_id)
        with Session(self._engine) as session:
            user = session.get(User, user_id)
            quest_row = session.get(Quest, quest_id)
            if user is None or quest_row is None:
                return None
            quest = QuestRecord.from_row(quest_row)
            character_class = user.character_class

        return calculate_final_reward(
            quest,
            CompletionContext(character_class=character_class),
            max_xp=self.max_xp_per_quest,
            max_commission=self.max_commission_per_quest,
        )

    def get_pending_rewards(self, user_id: str) -> list[dict[str, Any]]:
        validate_user_id(user_id)
        with Session(self._engine) as session:
            rows = session.execute(
                select(UserQuest, Quest)
                .join(Quest, UserQuest.quest_id == Quest.id)
                .where(
                    UserQuest.user_id == user_id,
                    UserQuest.is_completed.is_(True),
                    UserQuest.reward_claimed.is_(False),
                )
                .order_by(UserQuest.completed_at, UserQuest.id)
            ).all()
            return [
                {
                    "user_quest_id": uq.id,
                    "quest_title": q.title,
                    "xp_reward": q.reward_xp,
                    "commission_reward": q.reward_commission,
                    "completed_at": uq.completed_at,
                }
                for uq, q in rows
            ]

    def get_reward_history(self, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent payouts first."""
        validate_user_id(user_id)
        with Session(self._engine) as session:
            rows = session.execute(
                select(RewardTransaction, Quest.title)
                .join(Quest, RewardTransaction.quest_id == Quest.id)
                .where(RewardTransaction.user_id == user_id)
                .order_by(RewardTransaction.created_at.desc(), RewardTransaction.id.desc())
                .limit(limit)
            ).all()
            return [
                {
                    "id": tx.id,
                    "user_quest_id": tx.user_quest_id,
                    "quest_id": tx.quest_id,
                    "quest_title": title,
                    "quest_type": tx.quest_type,
                    "xp_earned": tx.xp,
                    "commission_earned": tx.commission,
                    "claimed_at": tx.created_at,
                    "character_class": tx.character_class or "unknown",
                }
                for tx, title in rows
            ]

    def get_reward_stats(self, user_id: str) -> dict[str, Any]:
        """Lifetime totals, averages, best quest type and current claim streak."""
        validate_user_id(user_id)
        with Session(self._engine) as session:
            txs = session.scalars(
                select(RewardTransaction).where(RewardTransaction.user_id == user_id)
            ).all()
            rows = [(tx.xp, tx.commission, tx.quest_type, tx.created_at) for tx in txs]

        total = len(rows)
        if total == 0:
            return {
                "total_xp_earned": 0,
                "total_commission_earned": 0.0,
                "total_quests_completed": 0,
                "average_xp_per_quest": 0.0,
                "average_commission_per_quest": 0.0,
                "most_profitable_quest_type": "none",
                "reward_streak": 0,
            }

        total_xp = sum(r[0] for r in rows)
        total_commission = sum(r[1] for r in rows)
        by_type: dict[str, float] = defaultdict(float)
        for _, commission, quest_type, _ in rows:
            by_type[quest_type] += commission
        best_type = max(by_type.items(), key=lambda item: item[1])[0]

        return {
            "total_xp_earned": total_xp,
            "total_commission_earned": round(total_commission, 2),
            "total_quests_completed": total,
            "average_xp_per_quest": total_xp / total,
            "average_commission_per_quest": round(total_commission / total, 2),
            "most_profitable_quest_type": best_type,
            "reward_streak": calculate_reward_streak(
                (r[3] for r in rows), self._clock().date()
            ),
        }

    # -- Internal ------------------------------------------------------------

    def _derive_context(self, user_quest: UserQuestRecord) -> CompletionContext:
        with Session(self._engine) as session:
            character_class = session.scalar(
                select(User.character_class).where(User.id == user_quest.user_id)
            )
            claimed_at = session.scalars(
                select(RewardTransaction.created_at)
                .where(RewardTransaction.user_id == user_quest.user_id)
            ).all()

        return CompletionContext(
            character_class=character_class,
            streak_days=calculate_reward_streak(claimed_at, self._clock().date()),
            started_at=user_quest.started_at,
            completed_at=user_quest.completed_at,
            is_first_completion=not claimed_at,
        )
