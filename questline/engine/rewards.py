"""
questline.engine.rewards — Quest Reward Pipeline
=================================================

Pure calculation pipeline.  No DB I/O inside the engine.

Pipeline stages:
  QuestRecord → Base → Difficulty → Quest Type → Class → Streak → Speed
              → First Completion → Perfect → Round → Validate → Cap → QuestReward

Every stage multiplies in :class:`~decimal.Decimal` and re-normalises its
output (XP half-up to an integer, commission half-up to cents), so a reward
leaving any stage is already well-formed and stages can be tested alone.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from questline.database.models import (
    CharacterClass,
    NotificationType,
    QuestDifficulty,
    QuestType,
)
from questline.exceptions import (
    InvalidRewardConfigurationError,
    InvalidRewardError,
    RewardLimitExceededError,
    ValidationError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_MAX_COMMISSION",
    "DEFAULT_MAX_XP",
    "CompletionContext",
    "QuestReward",
    "RewardNotification",
    "apply_character_class_multiplier",
    "apply_difficulty_multiplier",
    "apply_first_completion_bonus",
    "apply_perfect_completion_bonus",
    "apply_quest_type_multiplier",
    "apply_speed_bonus",
    "apply_streak_bonus",
    "calculate_final_reward",
    "calculate_quest_rewards",
    "calculate_reward_streak",
    "generate_reward_notification",
    "get_reward_configuration",
    "round_monetary_rewards",
    "validate_reward_configuration",
    "validate_reward_limits",
    "validate_rewards",
]


# ---------------------------------------------------------------------------
# Tuning tables
# ---------------------------------------------------------------------------
DEFAULT_MAX_XP = 5000
DEFAULT_MAX_COMMISSION = 500.0

BASE_MULTIPLIERS: dict[str, float] = {"xp": 1.0, "commission": 1.0}

DIFFICULTY_MULTIPLIERS: dict[str, float] = {
    QuestDifficulty.EASY: 1.0,
    QuestDifficulty.MEDIUM: 1.5,
    QuestDifficulty.HARD: 2.0,
    QuestDifficulty.EPIC: 3.0,
}

QUEST_TYPE_MULTIPLIERS: dict[str, float] = {
    QuestType.DAILY: 1.0,
    QuestType.WEEKLY: 2.0,
    QuestType.MONTHLY: 5.0,
    QuestType.SPECIAL: 1.0,
}

CHARACTER_CLASS_MULTIPLIERS: dict[str, dict[str, float]] = {
    CharacterClass.SCOUT: {"xp": 1.1, "commission": 1.0},
    CharacterClass.SAGE: {"xp": 1.0, "commission": 1.2},
    CharacterClass.CHAMPION: {"xp": 1.15, "commission": 1.1},
}

# (minimum streak days, multiplier), highest tier first
STREAK_TIERS: tuple[tuple[int, float], ...] = ((30, 1.5), (7, 1.25), (3, 1.1))

# (elapsed strictly below, xp multiplier), fastest tier first
SPEED_TIERS: tuple[tuple[timedelta, float], ...] = (
    (timedelta(hours=1), 1.5),
    (timedelta(hours=6), 1.25),
    (timedelta(hours=24), 1.1),
)

FIRST_COMPLETION_MULTIPLIER = 1.5
PERFECT_COMPLETION_MULTIPLIER = 1.2

_ONE = Decimal(1)
_CENTS = Decimal("0.01")


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class QuestReward:
    """An ``{xp, commission}`` pair.  XP is whole, commission is in cents."""

    xp: int
    commission: float

    def to_dict(self) -> dict[str, float]:
        return {"xp": self.xp, "commission": self.commission}


@dataclass(frozen=True, slots=True)
class CompletionContext:
    """Everything about *how* a quest was completed that affects its reward."""

    character_class: str | None = None
    streak_days: int = 0
    started_at: datetime | float | None = None
    completed_at: datetime | float | None = None
    is_first_completion: bool = False
    is_perfect: bool = False

    def to_details(self) -> dict[str, Any]:
        """JSON-safe summary stored alongside a reward transaction."""

        def _ts(value: datetime | float | None) -> str | float | None:
            return value.isoformat() if isinstance(value, datetime) else value

        return {
            "character_class": self.character_class,
            "streak_days": self.streak_days,
            "started_at": _ts(self.started_at),
            "completed_at": _ts(self.completed_at),
            "is_first_completion": self.is_first_completion,
            "is_perfect": self.is_perfect,
        }


@dataclass(frozen=True, slots=True)
class RewardNotification:
    user_id: str
    quest_id: str
    title: str
    message: str
    rewards: QuestReward
    notification_type: str = NotificationType.QUEST_COMPLETED.value
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class _HasBaseReward(Protocol):
    reward_xp: int
    reward_commission: float


class _RewardableQuest(_HasBaseReward, Protocol):
    id: str
    difficulty: str
    quest_type: str


# ---------------------------------------------------------------------------
# Arithmetic helpers
# ---------------------------------------------------------------------------
def _dec(value: float | int) -> Decimal:
    return Decimal(str(value))


def _normalise(xp: Decimal, commission: Decimal) -> QuestReward:
    return QuestReward(
        xp=int(xp.quantize(_ONE, rounding=ROUND_HALF_UP)),
        commission=float(commission.quantize(_CENTS, rounding=ROUND_HALF_UP)),
    )


def _scale(reward: QuestReward, xp_mult: float, commission_mult: float) -> QuestReward:
    return _normalise(
        _dec(reward.xp) * _dec(xp_mult),
        _dec(reward.commission) * _dec(commission_mult),
    )


def _to_millis(value: datetime | float) -> float:
    if isinstance(value, datetime):
        return value.timestamp() * 1000
    return float(value)


# ---------------------------------------------------------------------------
# Stage 1: Base reward
# ---------------------------------------------------------------------------
def calculate_quest_rewards(quest: _HasBaseReward) -> QuestReward:
    """Return the quest's base reward before any bonuses."""
    return QuestReward(
        xp=int(quest.reward_xp or 0),
        commission=float(quest.reward_commission or 0.0),
    )


# ---------------------------------------------------------------------------
# Stage 2: Multipliers
# ---------------------------------------------------------------------------
def apply_difficulty_multiplier(reward: QuestReward, difficulty: str) -> QuestReward:
    mult = DIFFICULTY_MULTIPLIERS.get(difficulty, 1.0)
    return _scale(reward, mult, mult)


def apply_quest_type_multiplier(reward: QuestReward, quest_type: str) -> QuestReward:
    mult = QUEST_TYPE_MULTIPLIERS.get(quest_type, 1.0)
    return _scale(reward, mult, mult)


def apply_character_class_multiplier(
    reward: QuestReward, character_class: str | None
) -> QuestReward:
    """Scale XP and commission by the class's own factors.

    Unknown or missing classes get the identity multiplier.
    """
    mults = CHARACTER_CLASS_MULTIPLIERS.get(character_class or "", BASE_MULTIPLIERS)
    return _scale(reward, mults["xp"], mults["commission"])


# ---------------------------------------------------------------------------
# Stage 3: Bonuses
# ---------------------------------------------------------------------------
def streak_multiplier(streak_days: int) -> float:
    """Step multiplier for a streak of *streak_days* consecutive days."""
    if streak_days < 0:
        raise ValidationError("Streak length must not be negative", field="streak_days")
    for threshold, mult in STREAK_TIERS:
        if streak_days >= threshold:
            return mult
    return 1.0


def apply_streak_bonus(reward: QuestReward, streak_days: int) -> QuestReward:
    mult = streak_multiplier(streak_days)
    return _scale(reward, mult, mult)


def speed_multiplier(
    started_at: datetime | float, completed_at: datetime | float
) -> float:
    """XP multiplier for finishing ``completed_at - started_at`` after start.

    Timestamps are datetimes or epoch milliseconds.
    """
    elapsed_ms = _to_millis(completed_at) - _to_millis(started_at)
    if elapsed_ms < 0:
        raise ValidationError(
            "Quest completion precedes its start", field="completed_at"
        )
    elapsed = timedelta(milliseconds=elapsed_ms)
    for limit, mult in SPEED_TIERS:
        if elapsed < limit:
            return mult
    return 1.0


def apply_speed_bonus(
    reward: QuestReward,
    started_at: datetime | float,
    completed_at: datetime | float,
) -> QuestReward:
    return _scale(reward, speed_multiplier(started_at, completed_at), 1.0)


def apply_first_completion_bonus(reward: QuestReward, is_first: bool) -> QuestReward:
    if not is_first:
        return reward
    return _scale(reward, FIRST_COMPLETION_MULTIPLIER, FIRST_COMPLETION_MULTIPLIER)


def apply_perfect_completion_bonus(reward: QuestReward, is_perfect: bool) -> QuestReward:
    if not is_perfect:
        return reward
    return _scale(reward, PERFECT_COMPLETION_MULTIPLIER, 1.0)


# ---------------------------------------------------------------------------
# Stage 4: Rounding & validation
# ---------------------------------------------------------------------------
def round_monetary_rewards(reward: QuestReward) -> QuestReward:
    """Round commission half-up to two decimal places.  XP is left as is."""
    commission = _dec(reward.commission).quantize(_CENTS, rounding=ROUND_HALF_UP)
    return QuestReward(xp=reward.xp, commission=float(commission))


def validate_rewards(reward: QuestReward) -> None:
    """Raise :class:`InvalidRewardError` if either amount is negative."""
    if reward.xp < 0:
        raise InvalidRewardError("xp", reward.xp)
    if reward.commission < 0:
        raise InvalidRewardError("commission", reward.commission)


def validate_reward_limits(
    reward: QuestReward,
    max_xp: int = DEFAULT_MAX_XP,
    max_commission: float = DEFAULT_MAX_COMMISSION,
) -> None:
    """Raise :class:`RewardLimitExceededError` if a per-quest cap is exceeded."""
    if reward.xp > max_xp:
        raise RewardLimitExceededError("xp", reward.xp, max_xp)
    if reward.commission > max_commission:
        raise RewardLimitExceededError("commission", reward.commission, max_commission)


# ---------------------------------------------------------------------------
# Full calculation pipeline
# ---------------------------------------------------------------------------
def calculate_final_reward(
    quest: _RewardableQuest,
    context: CompletionContext | None = None,
    *,
    max_xp: int = DEFAULT_MAX_XP,
    max_commission: float = DEFAULT_MAX_COMMISSION,
) -> QuestReward:
    """Run the full reward pipeline for one completed quest.

    This is a PURE function — no DB I/O.

    Parameters
    ----------
    quest : QuestRecord (or anything with ``id``, ``reward_xp``,
        ``reward_commission``, ``difficulty`` and ``quest_type``)
    context : how the quest was completed; defaults to no bonuses
    max_xp, max_commission : per-quest ceilings

    Raises
    ------
    InvalidRewardError
        If the quest's base reward is negative.
    RewardLimitExceededError
        If the stacked reward is above a ceiling.
    ValidationError
        If the context holds a negative streak or inverted timestamps.
    """
    ctx = context or CompletionContext()

    reward = calculate_quest_rewards(quest)
    reward = apply_difficulty_multiplier(reward, quest.difficulty)
    reward = apply_quest_type_multiplier(reward, quest.quest_type)
    reward = apply_character_class_multiplier(reward, ctx.character_class)
    reward = apply_streak_bonus(reward, ctx.streak_days)
    if ctx.started_at is not None and ctx.completed_at is not None:
        reward = apply_speed_bonus(reward, ctx.started_at, ctx.completed_at)
    reward = apply_first_completion_bonus(reward, ctx.is_first_completion)
    reward = apply_perfect_completion_bonus(reward, ctx.is_perfect)
    reward = round_monetary_rewards(reward)

    validate_rewards(reward)
    validate_reward_limits(reward, max_xp, max_commission)

    logger.debug(
        "Reward for quest %s: %d XP, %.2f commission",
        quest.id, reward.xp, reward.commission,
    )
    return reward


def calculate_reward_streak(claimed_at: Iterable[datetime], today: date) -> int:
    """Number of consecutive days, ending today or yesterday, with a claim."""
    days = sorted({ts.date() for ts in claimed_at}, reverse=True)
    streak = 0
    cursor = today
    for day in days:
        if (cursor - day).days not in (0, 1):
            break
        streak += 1
        cursor = day
    return streak


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
_NOTIFICATION_TEMPLATES: dict[str, str] = {
    NotificationType.QUEST_COMPLETED: "Quest complete: {title}! You earned {rewards}.",
    NotificationType.ACHIEVEMENT: "Achievement unlocked: {title}! You earned {rewards}.",
    NotificationType.MILESTONE: "Milestone reached: {title}! You earned {rewards}.",
}


def format_rewards(rewards: QuestReward) -> str:
    """``"150 XP and $12.50 commission"``, or just the XP when commission is zero."""
    text = f"{rewards.xp} XP"
    if rewards.commission > 0:
        text += f" and ${rewards.commission:.2f} commission"
    return text


def generate_reward_notification(
    user_id: str,
    quest_id: str,
    quest_title: str,
    rewards: QuestReward,
    notification_type: str = NotificationType.QUEST_COMPLETED.value,
) -> RewardNotification:
    try:
        kind = NotificationType(notification_type)
    except ValueError:
        raise ValidationError(
            f"Unknown notification type: {notification_type!r}",
            field="notification_type",
        ) from None

    message = _NOTIFICATION_TEMPLATES[kind].format(
        title=quest_title, rewards=format_rewards(rewards)
    )
    return RewardNotification(
        user_id=user_id,
        quest_id=quest_id,
        title=quest_title,
        message=message,
        rewards=rewards,
        notification_type=kind.value,
    )


# ---------------------------------------------------------------------------
# Configuration introspection
# ---------------------------------------------------------------------------
_MULTIPLIER_SECTIONS = (
    "base_multipliers",
    "difficulty_multipliers",
    "quest_type_multipliers",
    "character_class_multipliers",
    "bonus_multipliers",
)
_NON_NEGATIVE_SECTIONS = ("bonus_thresholds", "max_rewards", "max_daily_rewards")


def get_reward_configuration() -> dict[str, Any]:
    """Return a copy of every tuning table, safe for the caller to mutate."""
    config = {
        "base_multipliers": dict(BASE_MULTIPLIERS),
        "difficulty_multipliers": {str(k): v for k, v in DIFFICULTY_MULTIPLIERS.items()},
        "quest_type_multipliers": {str(k): v for k, v in QUEST_TYPE_MULTIPLIERS.items()},
        "character_class_multipliers": {
            str(k): dict(v) for k, v in CHARACTER_CLASS_MULTIPLIERS.items()
        },
        "bonus_thresholds": {
            "streak_days": [days for days, _ in reversed(STREAK_TIERS)],
            "speed_hours": [limit.total_seconds() / 3600 for limit, _ in SPEED_TIERS],
        },
        "bonus_multipliers": {
            "streak": [mult for _, mult in reversed(STREAK_TIERS)],
            "speed": [mult for _, mult in SPEED_TIERS],
            "first_completion": FIRST_COMPLETION_MULTIPLIER,
            "perfect_completion": PERFECT_COMPLETION_MULTIPLIER,
        },
        "max_rewards": {"xp": DEFAULT_MAX_XP, "commission": DEFAULT_MAX_COMMISSION},
    }
    return copy.deepcopy(config)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_values(value: object, path: str, *, positive: bool) -> None:
    if isinstance(value, Mapping):
        for key, inner in value.items():
            _check_values(inner, f"{path}.{key}", positive=positive)
        return
    if isinstance(value, (list, tuple)):
        for idx, inner in enumerate(value):
            _check_values(inner, f"{path}[{idx}]", positive=positive)
        return
    if not _is_number(value):
        raise InvalidRewardConfigurationError(
            f"{path} must be a number (got {value!r})", field=path
        )
    if positive and value <= 0:
        raise InvalidRewardConfigurationError(
            f"{path} must be positive (got {value})", field=path
        )
    if not positive and value < 0:
        raise InvalidRewardConfigurationError(
            f"{path} must not be negative (got {value})", field=path
        )


def validate_reward_configuration(config: Mapping[str, Any]) -> None:
    """Check a (possibly partial) reward configuration.

    Multiplier tables must hold positive numbers; thresholds and caps must
    be non-negative.  Sections not present are not checked.

    Raises
    ------
    InvalidRewardConfigurationError
        On the first offending value, with ``field`` set to its dotted path.
    """
    if not isinstance(config, Mapping):
        raise InvalidRewardConfigurationError("Reward configuration must be a mapping")

    for section in _MULTIPLIER_SECTIONS:
        if section in config:
            _check_values(config[section], section, positive=True)
    for section in _NON_NEGATIVE_SECTIONS:
        if section in config:
            _check_values(config[section], section, positive=False)
