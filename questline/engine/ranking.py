"""
questline.engine.ranking — Leaderboard Scoring & Ranking
=========================================================

Pure scoring over :class:`~questline.engine.records.MemberSnapshot` rows.
No DB I/O: the ranking service reads the cohort and yesterday's ranks and
hands them in.

Pipeline:
  cohort → Filter → Category Score → × Class → × Timeframe → Stable Sort
         → Dense Ranks → Change vs. Yesterday → (Truncate)
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from questline.database.models import (
    CharacterClass,
    LeaderboardCategory,
    RankChange,
    Timeframe,
)
from questline.engine.validation import validate_organization_id
from questline.exceptions import ValidationError

if TYPE_CHECKING:
    from questline.database.models import LeaderboardDefinition
    from questline.engine.records import MemberSnapshot

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tuning tables
# ---------------------------------------------------------------------------
CHARACTER_CLASS_SCORE_MULTIPLIERS: dict[str, float] = {
    CharacterClass.SCOUT: 1.2,
    CharacterClass.SAGE: 1.5,
    CharacterClass.CHAMPION: 1.3,
    CharacterClass.MERCHANT: 1.1,
}

# Blend used by the ``overall`` category; keys double as weight names
OVERALL_WEIGHTS: dict[str, float] = {
    "referrals": 0.3,
    "commission": 0.4,
    "engagement": 0.2,
    "quests": 0.1,
    "retention": 0.1,
}

# weight key → snapshot attribute
_METRIC_FIELDS: dict[str, str] = {
    "referrals": "total_referrals",
    "commission": "total_commission",
    "engagement": "engagement_score",
    "quests": "quest_completion_rate",
    "retention": "retention_rate",
}

STATISTICS_TOP_N = 10


# ---------------------------------------------------------------------------
# Configuration value objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LeaderboardFilters:
    """Membership constraints.  ``None`` means "no constraint"."""

    min_level: int | None = None
    character_classes: tuple[str, ...] | None = None
    min_activity: float | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> LeaderboardFilters:
        raw = raw or {}
        classes = raw.get("character_classes")
        return cls(
            min_level=raw.get("min_level"),
            character_classes=tuple(classes) if classes is not None else None,
            min_activity=raw.get("min_activity"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.min_level is not None:
            out["min_level"] = self.min_level
        if self.character_classes is not None:
            out["character_classes"] = list(self.character_classes)
        if self.min_activity is not None:
            out["min_activity"] = self.min_activity
        return out


@dataclass(frozen=True, slots=True)
class LeaderboardConfig:
    id: str
    organization_id: str
    name: str = ""
    description: str | None = None
    category: str = LeaderboardCategory.OVERALL.value
    timeframe: str = Timeframe.WEEKLY.value
    scoring_method: str = "weighted"
    weights: Mapping[str, float] | None = None
    filters: LeaderboardFilters = field(default_factory=LeaderboardFilters)
    max_entries: int | None = None
    reset_schedule: str | None = None
    enabled: bool = True

    @classmethod
    def from_row(cls, row: LeaderboardDefinition) -> LeaderboardConfig:
        return cls(
            id=row.id,
            organization_id=row.organization_id,
            name=row.name,
            description=row.description,
            category=row.category,
            timeframe=row.timeframe,
            scoring_method=row.scoring_method or "weighted",
            weights=dict(row.weights) if row.weights else None,
            filters=LeaderboardFilters.from_dict(row.filters),
            max_entries=row.max_entries,
            reset_schedule=row.reset_schedule,
            enabled=bool(row.enabled),
        )


def default_leaderboard_configs(organization_id: str) -> list[LeaderboardConfig]:
    """The five leaderboards every organization starts with."""
    specs = (
        (LeaderboardCategory.OVERALL, Timeframe.DAILY, "Daily Overall",
         "Top performers across all metrics today", "weighted", 100),
        (LeaderboardCategory.OVERALL, Timeframe.WEEKLY, "Weekly Overall",
         "Top performers across all metrics this week", "weighted", 100),
        (LeaderboardCategory.REFERRALS, Timeframe.MONTHLY, "Monthly Referrals",
         "Top referrers this month", "simple", 50),
        (LeaderboardCategory.COMMISSION, Timeframe.ALL_TIME, "All-Time Commission",
         "Highest commission earners of all time", "simple", 100),
        (LeaderboardCategory.ENGAGEMENT, Timeframe.WEEKLY, "Weekly Engagement",
         "Most engaged members this week", "simple", 50),
    )
    return [
        LeaderboardConfig(
            id=f"{organization_id}_{category}_{timeframe}",
            organization_id=organization_id,
            name=name,
            description=description,
            category=category.value,
            timeframe=timeframe.value,
            scoring_method=method,
            max_entries=max_entries,
        )
        for category, timeframe, name, description, method, max_entries in specs
    ]


def validate_leaderboard_config(config: LeaderboardConfig) -> None:
    """Raise :class:`ValidationError` on the first malformed field.

    Checked in order: category, timeframe, organization id.
    """
    if config.category not in set(LeaderboardCategory):
        raise ValidationError(f"Invalid category: {config.category}", field="category")
    if config.timeframe not in set(Timeframe):
        raise ValidationError(f"Invalid timeframe: {config.timeframe}", field="timeframe")
    validate_organization_id(config.organization_id)


# ---------------------------------------------------------------------------
# Ranking entry
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RankingEntry:
    user_id: str
    username: str
    rank: int
    score: float
    change: str
    previous_rank: int | None = None
    character_class: str | None = None
    level: int = 1
    avatar_url: str | None = None
    metrics: dict[str, float] = field(default_factory=dict)
    join_date: datetime | None = None
    last_active: datetime | None = None


# ---------------------------------------------------------------------------
# Stage 1: Filters
# ---------------------------------------------------------------------------
def passes_filters(member: MemberSnapshot, filters: LeaderboardFilters) -> bool:
    """True when *member* satisfies every configured filter."""
    if filters.min_level is not None and (member.level or 0) < filters.min_level:
        return False
    if (
        filters.character_classes is not None
        and member.character_class not in filters.character_classes
    ):
        return False
    if (
        filters.min_activity is not None
        and (member.engagement_score or 0) < filters.min_activity
    ):
        return False
    return True


# ---------------------------------------------------------------------------
# Stage 2: Scoring
# ---------------------------------------------------------------------------
def calculate_category_score(
    member: MemberSnapshot,
    category: str,
    weights: Mapping[str, float] | None = None,
) -> float:
    """Raw score for *category* before class and timeframe multipliers.

    Single-metric categories default to weight 1.  ``overall`` blends all
    five metrics; *weights* overrides any subset of the default blend.
    """
    weights = weights or {}
    if category == LeaderboardCategory.OVERALL:
        return sum(
            getattr(member, attr) * weights.get(key, OVERALL_WEIGHTS[key])
            for key, attr in _METRIC_FIELDS.items()
        )
    attr = _METRIC_FIELDS.get(category)
    if attr is None:
        raise ValidationError(f"Invalid category: {category}", field="category")
    return getattr(member, attr) * weights.get(category, 1.0)


def class_score_multiplier(character_class: str | None) -> float:
    return CHARACTER_CLASS_SCORE_MULTIPLIERS.get(character_class or "", 1.0)


def timeframe_weight(member: MemberSnapshot, timeframe: str) -> float:
    """Recency weighting for *timeframe*.  Currently neutral for every window."""
    # TODO: blend recent/medium/old activity once snapshots carry per-window counters
    return 1.0


def score_member(member: MemberSnapshot, config: LeaderboardConfig) -> float:
    return (
        calculate_category_score(member, config.category, config.weights)
        * class_score_multiplier(member.character_class)
        * timeframe_weight(member, config.timeframe)
    )


# ---------------------------------------------------------------------------
# Stage 3: Ranking & change detection
# ---------------------------------------------------------------------------
def classify_change(previous_rank: int | None, current_rank: int) -> RankChange:
    """Lower rank numbers are better, so a shrinking number is ``up``."""
    if previous_rank is None:
        return RankChange.NEW
    if previous_rank > current_rank:
        return RankChange.UP
    if previous_rank < current_rank:
        return RankChange.DOWN
    return RankChange.SAME


def rank_members(
    members: Iterable[MemberSnapshot],
    config: LeaderboardConfig,
    previous_ranks: Mapping[str, int] | None = None,
) -> list[RankingEntry]:
    """Filter, score and rank *members*.

    Ties keep their input order.  Ranks are ``1..N`` over the whole filtered
    cohort; :func:`truncate` is applied separately.
    """
    previous_ranks = previous_ranks or {}
    scored = [
        (member, score_member(member, config))
        for member in members
        if passes_filters(member, config.filters)
    ]
    scored.sort(key=lambda pair: pair[1], reverse=True)

    entries: list[RankingEntry] = []
    for idx, (member, score) in enumerate(scored):
        rank = idx + 1
        previous = previous_ranks.get(member.user_id)
        entries.append(RankingEntry(
            user_id=member.user_id,
            username=member.username,
            rank=rank,
            score=score,
            change=classify_change(previous, rank).value,
            previous_rank=previous,
            character_class=member.character_class,
            level=member.level or 1,
            avatar_url=member.avatar_url,
            metrics=member.metrics(),
            join_date=member.join_date,
            last_active=member.last_active,
        ))
    return entries


def truncate(entries: Sequence[RankingEntry], max_entries: int | None) -> list[RankingEntry]:
    if max_entries is None or max_entries <= 0:
        return list(entries)
    return list(entries[:max_entries])


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------
def _percentage(count: int, total: int) -> float:
    return count / total * 100 if total else 0.0


def summarize_leaderboard(entries: Sequence[RankingEntry]) -> dict[str, Any]:
    """Aggregate view of a computed leaderboard.

    Returns
    -------
    dict with ``total_entries``, ``average_score``, ``top_score``,
    ``score_distribution`` (four buckets relative to the mean),
    ``class_distribution`` and ``recent_activity`` (top-10 movement).
    """
    total = len(entries)
    if total == 0:
        return {
            "total_entries": 0,
            "average_score": 0.0,
            "top_score": 0.0,
            "score_distribution": [],
            "class_distribution": [],
            "recent_activity": [],
        }

    scores = [e.score for e in entries]
    mean = sum(scores) / total
    buckets = (
        ("Low", 0.0, mean * 0.5),
        ("Medium", mean * 0.5, mean),
        ("High", mean, mean * 1.5),
        ("Top", mean * 1.5, float("inf")),
    )
    score_distribution = []
    for label, low, high in buckets:
        if mean == 0:
            # All-zero cohort: every member sits at the mean
            count = total if label == "Medium" else 0
        else:
            count = sum(1 for s in scores if low <= s < high)
        score_distribution.append({
            "range": label,
            "count": count,
            "percentage": _percentage(count, total),
        })

    class_counts = Counter(e.character_class for e in entries)
    class_distribution = [
        {"class": cls, "count": count, "percentage": _percentage(count, total)}
        for cls, count in class_counts.items()
    ]

    recent_activity = [
        {
            "user_id": e.user_id,
            "username": e.username,
            "action": "rank_change",
            "value": e.change,
            "timestamp": e.last_active,
        }
        for e in entries[:STATISTICS_TOP_N]
    ]

    return {
        "total_entries": total,
        "average_score": round(mean, 2),
        "top_score": round(max(scores), 2),
        "score_distribution": score_distribution,
        "class_distribution": class_distribution,
        "recent_activity": recent_activity,
    }
