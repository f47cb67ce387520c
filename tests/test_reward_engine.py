"""
tests/test_reward_engine.py — Unit Tests for the Quest Reward Pipeline
=======================================================================

Tests the pure calculation pipeline (no I/O, no database).
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, timedelta

import pytest

from questline.engine.records import QuestRecord
from questline.engine.rewards import (
    CompletionContext,
    QuestReward,
    apply_character_class_multiplier,
    apply_difficulty_multiplier,
    apply_first_completion_bonus,
    apply_perfect_completion_bonus,
    apply_quest_type_multiplier,
    apply_speed_bonus,
    apply_streak_bonus,
    calculate_final_reward,
    calculate_quest_rewards,
    calculate_reward_streak,
    generate_reward_notification,
    get_reward_configuration,
    round_monetary_rewards,
    validate_reward_configuration,
    validate_reward_limits,
    validate_rewards,
)
from questline.exceptions import (
    InvalidRewardConfigurationError,
    InvalidRewardError,
    RewardLimitExceededError,
    ValidationError,
)

USER_ID = "11111111-1111-4111-8111-111111111111"
HOUR_MS = 60 * 60 * 1000


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def base_reward():
    return QuestReward(xp=100, commission=10.0)


def _quest(**overrides) -> QuestRecord:
    fields = {
        "id": "quest-1",
        "organization_id": "acme-referrals",
        "title": "Refer three friends",
        "quest_type": "daily",
        "difficulty": "easy",
        "reward_xp": 100,
        "reward_commission": 10.0,
    }
    fields.update(overrides)
    return QuestRecord(**fields)


# ---------------------------------------------------------------------------
# Base reward
# ---------------------------------------------------------------------------
class TestCalculateQuestRewards:
    def test_returns_base_values_unmodified(self):
        reward = calculate_quest_rewards(_quest(reward_xp=75, reward_commission=7.25))
        assert reward == QuestReward(xp=75, commission=7.25)

    def test_missing_values_read_as_zero(self):
        reward = calculate_quest_rewards(_quest(reward_xp=0, reward_commission=0.0))
        assert reward == QuestReward(xp=0, commission=0.0)


# ---------------------------------------------------------------------------
# Multipliers
# ---------------------------------------------------------------------------
class TestCharacterClassMultiplier:
    @pytest.mark.parametrize(
        ("character_class", "expected"),
        [
            ("scout", QuestReward(xp=110, commission=10.0)),
            ("sage", QuestReward(xp=100, commission=12.0)),
            ("champion", QuestReward(xp=115, commission=11.0)),
        ],
    )
    def test_documented_class_tuples(self, base_reward, character_class, expected):
        assert apply_character_class_multiplier(base_reward, character_class) == expected

    @pytest.mark.parametrize("character_class", ["merchant", "wizard", "", None])
    def test_unknown_class_is_identity(self, base_reward, character_class):
        assert apply_character_class_multiplier(base_reward, character_class) == base_reward


class TestDifficultyMultiplier:
    @pytest.mark.parametrize(
        ("difficulty", "xp", "commission"),
        [("easy", 100, 10.0), ("medium", 150, 15.0), ("hard", 200, 20.0), ("epic", 300, 30.0)],
    )
    def test_applies_to_both_fields(self, base_reward, difficulty, xp, commission):
        assert apply_difficulty_multiplier(base_reward, difficulty) == QuestReward(xp, commission)


class TestQuestTypeMultiplier:
    @pytest.mark.parametrize(
        ("quest_type", "xp"),
        [("daily", 100), ("weekly", 200), ("monthly", 500), ("special", 100)],
    )
    def test_xp_by_type(self, base_reward, quest_type, xp):
        assert apply_quest_type_multiplier(base_reward, quest_type).xp == xp

    def test_unknown_type_is_identity(self, base_reward):
        assert apply_quest_type_multiplier(base_reward, "seasonal") == base_reward


# ---------------------------------------------------------------------------
# Bonuses
# ---------------------------------------------------------------------------
class TestStreakBonus:
    @pytest.mark.parametrize(
        ("days", "xp"),
        [(0, 100), (1, 100), (2, 100), (3, 110), (6, 110), (7, 125), (29, 125), (30, 150), (400, 150)],
    )
    def test_step_tiers(self, base_reward, days, xp):
        assert apply_streak_bonus(base_reward, days).xp == xp

    def test_commission_follows_same_tier(self, base_reward):
        assert apply_streak_bonus(base_reward, 7).commission == 12.5

    def test_negative_streak_rejected(self, base_reward):
        with pytest.raises(ValidationError) as exc_info:
            apply_streak_bonus(base_reward, -1)
        assert exc_info.value.field == "streak_days"


class TestSpeedBonus:
    def test_fast_beats_slow(self, base_reward):
        fast = apply_speed_bonus(base_reward, 0, HOUR_MS // 2)
        slow = apply_speed_bonus(base_reward, 0, 25 * HOUR_MS)
        assert fast.xp > slow.xp
        assert slow.xp == 100

    def test_bonus_never_grows_with_elapsed_time(self, base_reward):
        elapsed_hours = [0.1, 0.9, 2, 5.9, 8, 23.9, 24, 48, 200]
        xps = [apply_speed_bonus(base_reward, 0, h * HOUR_MS).xp for h in elapsed_hours]
        assert xps == sorted(xps, reverse=True)

    def test_accepts_datetimes(self, base_reward):
        start = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
        reward = apply_speed_bonus(base_reward, start, start + timedelta(hours=2))
        assert reward.xp == 125

    def test_commission_untouched(self, base_reward):
        assert apply_speed_bonus(base_reward, 0, 1000).commission == 10.0

    def test_completion_before_start_rejected(self, base_reward):
        with pytest.raises(ValidationError):
            apply_speed_bonus(base_reward, 10 * HOUR_MS, HOUR_MS)


class TestFirstCompletionBonus:
    def test_first_completion_strictly_greater(self, base_reward):
        first = apply_first_completion_bonus(base_reward, True)
        repeat = apply_first_completion_bonus(base_reward, False)
        assert first.xp > repeat.xp
        assert first.commission > repeat.commission

    def test_repeat_is_identity(self, base_reward):
        assert apply_first_completion_bonus(base_reward, False) == base_reward


class TestPerfectCompletionBonus:
    def test_perfect_boosts_xp_only(self, base_reward):
        reward = apply_perfect_completion_bonus(base_reward, True)
        assert reward == QuestReward(xp=120, commission=10.0)

    def test_imperfect_is_identity(self, base_reward):
        assert apply_perfect_completion_bonus(base_reward, False) == base_reward


# ---------------------------------------------------------------------------
# Rounding & validation
# ---------------------------------------------------------------------------
class TestRoundMonetaryRewards:
    def test_rounds_commission_to_cents(self):
        reward = round_monetary_rewards(QuestReward(xp=100, commission=10.5678))
        assert reward == QuestReward(xp=100, commission=10.57)

    def test_half_cent_rounds_up(self):
        assert round_monetary_rewards(QuestReward(xp=1, commission=10.565)).commission == 10.57

    def test_xp_left_alone(self):
        assert round_monetary_rewards(QuestReward(xp=7, commission=0.004)).xp == 7


class TestValidateRewards:
    def test_zero_is_valid(self):
        validate_rewards(QuestReward(xp=0, commission=0.0))

    def test_negative_xp_rejected(self):
        with pytest.raises(InvalidRewardError) as exc_info:
            validate_rewards(QuestReward(xp=-1, commission=0.0))
        assert exc_info.value.field == "xp"

    def test_negative_commission_rejected(self):
        with pytest.raises(InvalidRewardError):
            validate_rewards(QuestReward(xp=0, commission=-0.01))


class TestValidateRewardLimits:
    def test_at_cap_is_allowed(self):
        validate_reward_limits(QuestReward(xp=5000, commission=500.0))

    def test_xp_over_cap(self):
        with pytest.raises(RewardLimitExceededError) as exc_info:
            validate_reward_limits(QuestReward(xp=5001, commission=0.0))
        assert exc_info.value.field == "xp"
        assert exc_info.value.limit == 5000

    def test_custom_commission_cap(self):
        with pytest.raises(RewardLimitExceededError):
            validate_reward_limits(QuestReward(xp=1, commission=50.01), max_commission=50.0)


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------
class TestCalculateFinalReward:
    def test_no_context_applies_difficulty_and_type_only(self):
        reward = calculate_final_reward(_quest(difficulty="medium", quest_type="weekly"))
        assert reward == QuestReward(xp=300, commission=30.0)

    def test_stacked_bonuses(self):
        context = CompletionContext(
            character_class="champion", streak_days=7, is_first_completion=True
        )
        reward = calculate_final_reward(
            _quest(difficulty="hard", quest_type="weekly"), context
        )
        # 100 ×2 ×2 ×1.15 ×1.25 ×1.5 = 862.5 → 863
        assert reward == QuestReward(xp=863, commission=82.5)

    def test_speed_applied_only_with_both_timestamps(self):
        start = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
        timed = CompletionContext(started_at=start, completed_at=start + timedelta(minutes=10))
        untimed = CompletionContext(started_at=start)
        assert calculate_final_reward(_quest(), timed).xp == 150
        assert calculate_final_reward(_quest(), untimed).xp == 100

    def test_multiplier_stacking_hits_cap(self):
        quest = _quest(reward_xp=1000, difficulty="epic", quest_type="monthly")
        with pytest.raises(RewardLimitExceededError):
            calculate_final_reward(quest)

    def test_caps_are_configurable(self):
        quest = _quest(reward_xp=1000, difficulty="epic", quest_type="monthly")
        reward = calculate_final_reward(quest, max_xp=20000, max_commission=1000.0)
        assert reward.xp == 15000

    def test_negative_base_rejected(self):
        with pytest.raises(InvalidRewardError):
            calculate_final_reward(_quest(reward_xp=-10))

    def test_logs_quest_id(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="questline.engine.rewards"):
            calculate_final_reward(_quest(id="quest-42"))
        assert "Reward for quest quest-42: 100 XP" in caplog.text


# ---------------------------------------------------------------------------
# Claim streak
# ---------------------------------------------------------------------------
class TestRewardStreak:
    TODAY = date(2026, 3, 15)

    def _at(self, day: int) -> datetime:
        return datetime(2026, 3, day, 18, 30)

    def test_consecutive_days_ending_today(self):
        assert calculate_reward_streak([self._at(15), self._at(14), self._at(13)], self.TODAY) == 3

    def test_streak_may_end_yesterday(self):
        assert calculate_reward_streak([self._at(14), self._at(13)], self.TODAY) == 2

    def test_gap_breaks_streak(self):
        assert calculate_reward_streak([self._at(15), self._at(12)], self.TODAY) == 1
        assert calculate_reward_streak([self._at(13)], self.TODAY) == 0

    def test_several_claims_one_day_count_once(self):
        claims = [self._at(15), datetime(2026, 3, 15, 8, 0), self._at(14)]
        assert calculate_reward_streak(claims, self.TODAY) == 2

    def test_no_claims(self):
        assert calculate_reward_streak([], self.TODAY) == 0


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
class TestRewardNotification:
    def test_default_notification(self, base_reward):
        note = generate_reward_notification(USER_ID, "quest-1", "Test Quest", base_reward)
        assert note.user_id == USER_ID
        assert note.quest_id == "quest-1"
        assert "100 XP" in note.message
        assert "Test Quest" in note.message
        assert note.rewards == base_reward
        assert note.notification_type == "quest_completed"
        assert isinstance(note.timestamp, datetime)

    @pytest.mark.parametrize("kind", ["achievement", "milestone"])
    def test_notification_types(self, base_reward, kind):
        note = generate_reward_notification(USER_ID, "quest-1", "Test Quest", base_reward, kind)
        assert note.notification_type == kind

    def test_zero_commission_omitted(self):
        note = generate_reward_notification(
            USER_ID, "quest-1", "Test Quest", QuestReward(xp=40, commission=0.0)
        )
        assert "commission" not in note.message

    def test_unknown_type_rejected(self, base_reward):
        with pytest.raises(ValidationError):
            generate_reward_notification(USER_ID, "quest-1", "Test Quest", base_reward, "bogus")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
class TestRewardConfiguration:
    def test_exposes_all_tables(self):
        config = get_reward_configuration()
        for key in (
            "base_multipliers",
            "difficulty_multipliers",
            "quest_type_multipliers",
            "character_class_multipliers",
            "bonus_thresholds",
            "bonus_multipliers",
            "max_rewards",
        ):
            assert isinstance(config[key], dict)
        assert config["difficulty_multipliers"]["epic"] == 3.0
        assert config["character_class_multipliers"]["sage"] == {"xp": 1.0, "commission": 1.2}

    def test_returned_copy_is_detached(self):
        config = get_reward_configuration()
        config["difficulty_multipliers"]["easy"] = 99.0
        config["character_class_multipliers"]["scout"]["xp"] = 99.0
        fresh = get_reward_configuration()
        assert fresh["difficulty_multipliers"]["easy"] == 1.0
        assert fresh["character_class_multipliers"]["scout"]["xp"] == 1.1

    def test_shipped_configuration_is_valid(self):
        validate_reward_configuration(get_reward_configuration())

    def test_partial_valid_configuration(self):
        validate_reward_configuration({
            "base_multipliers": {"xp": 1.0, "commission": 1.0},
            "difficulty_multipliers": {"easy": 1.0, "medium": 1.5},
            "max_daily_rewards": {"xp": 1000, "commission": 100.00},
        })

    def test_negative_multiplier_rejected(self):
        with pytest.raises(InvalidRewardConfigurationError) as exc_info:
            validate_reward_configuration({
                "base_multipliers": {"xp": -1.0, "commission": 1.0},
                "difficulty_multipliers": {"easy": 0, "medium": 1.5},
                "max_daily_rewards": {"xp": -1000, "commission": 100.00},
            })
        assert exc_info.value.field == "base_multipliers.xp"

    def test_zero_multiplier_rejected(self):
        with pytest.raises(InvalidRewardConfigurationError) as exc_info:
            validate_reward_configuration({"difficulty_multipliers": {"easy": 0}})
        assert exc_info.value.field == "difficulty_multipliers.easy"

    def test_negative_cap_rejected(self):
        with pytest.raises(InvalidRewardConfigurationError) as exc_info:
            validate_reward_configuration({"max_rewards": {"xp": -5}})
        assert exc_info.value.field == "max_rewards.xp"

    def test_zero_cap_allowed(self):
        validate_reward_configuration({"max_rewards": {"xp": 0, "commission": 0}})

    def test_non_numeric_rejected(self):
        with pytest.raises(InvalidRewardConfigurationError):
            validate_reward_configuration({"quest_type_multipliers": {"daily": "1.0"}})

    def test_non_mapping_rejected(self):
        with pytest.raises(InvalidRewardConfigurationError):
            validate_reward_configuration(["base_multipliers"])
