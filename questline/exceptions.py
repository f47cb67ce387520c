"""
questline.exceptions — Error Taxonomy
======================================

Malformed input raises :class:`ValidationError` (or a subclass) and is never
retried.  Business-rule rejections such as "already claimed" are *not*
exceptions; they come back as structured results from the services.
"""

from __future__ import annotations


class QuestlineError(Exception):
    """Base exception carrying a message safe to show to end users."""

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class ValidationError(QuestlineError):
    """Malformed or out-of-range input to a public operation."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class InvalidRewardError(ValidationError):
    """A reward carries a negative XP or commission amount."""

    def __init__(self, field: str, value: float) -> None:
        super().__init__(f"Reward {field} must not be negative (got {value})", field)
        self.value = value


class InvalidRewardConfigurationError(ValidationError):
    """A reward multiplier table or cap is out of range."""


class RewardLimitExceededError(QuestlineError):
    """A computed reward is above the per-quest ceiling."""

    def __init__(self, field: str, value: float, limit: float) -> None:
        super().__init__(
            f"Reward {field} {value} exceeds per-quest limit {limit}",
            "❌ This reward is larger than allowed. An admin has been notified.",
        )
        self.field = field
        self.value = value
        self.limit = limit


class LeaderboardNotFoundError(QuestlineError):
    """No stored or default leaderboard definition matches the id."""

    def __init__(self, leaderboard_id: str) -> None:
        super().__init__(
            f"Leaderboard config not found: {leaderboard_id!r}",
            "❌ That leaderboard does not exist.",
        )
        self.leaderboard_id = leaderboard_id
