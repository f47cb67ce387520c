"""
questline.services.ranking_service — Leaderboards & Ranking History
====================================================================

Reads member performance cohorts and yesterday's ranks from the database,
hands them to :mod:`questline.engine.ranking`, and records the results in
the append-only ``ranking_history`` table.

Rankings are a best-effort view as of the cohort read: counters refreshed
between the read and the rank assignment are not serialized against it.
Read failures propagate.  History writes never fail a ranking call.

History is pruned in batches of ``BATCH_SIZE`` rows to avoid long-held
row locks on a busy table.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from questline.database.engine import get_session
from questline.database.models import (
    LeaderboardCategory,
    LeaderboardDefinition,
    MemberPerformance,
    RankingHistory,
    Timeframe,
)
from questline.engine.ranking import (
    LeaderboardConfig,
    RankingEntry,
    default_leaderboard_configs,
    rank_members,
    summarize_leaderboard,
    truncate,
    validate_leaderboard_config,
)
from questline.engine.records import MemberSnapshot
from questline.engine.validation import (
    ORGANIZATION_ID_PATTERN,
    validate_organization_id,
    validate_user_id,
)
from questline.exceptions import LeaderboardNotFoundError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# How many history rows to delete in each batch
BATCH_SIZE = 5_000


def _utcnow() -> datetime:
    return datetime.now(UTC)


def organization_from_leaderboard_id(leaderboard_id: str) -> str | None:
    """``"acme_sales_overall_weekly"`` → ``"acme_sales"``.

    Strips the trailing ``_{category}_{timeframe}`` of a default leaderboard
    id.  Returns ``None`` when the id has no such suffix.
    """
    for category in LeaderboardCategory:
        for timeframe in Timeframe:
            suffix = f"_{category}_{timeframe}"
            if leaderboard_id.endswith(suffix) and len(leaderboard_id) > len(suffix):
                return leaderboard_id[: -len(suffix)]
    return None


class RankingService:
    """Computes leaderboards for an organization's member cohort.

    Parameters
    ----------
    engine : SQLAlchemy engine; every call opens and closes its own session
    clock : returns "now"; the date part decides today's and yesterday's
        history snapshots
    """

    def __init__(self, engine: Engine, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._engine = engine
        self._clock = clock

    def _today(self) -> date:
        return self._clock().date()

    # -- Leaderboards --------------------------------------------------------

    def calculate_leaderboard(self, config: LeaderboardConfig) -> list[RankingEntry]:
        """Rank the organization's cohort under *config*.

        Ranks number the whole filtered cohort; the returned list is then cut
        to ``config.max_entries``.  An empty cohort yields ``[]``.

        Raises
        ------
        ValidationError
            If the category, timeframe or organization id is malformed.
        SQLAlchemyError
            If the cohort or history read fails.
        """
        return truncate(self._rank_cohort(config), config.max_entries)

    def _rank_cohort(self, config: LeaderboardConfig) -> list[RankingEntry]:
        validate_leaderboard_config(config)

        with Session(self._engine) as session:
            rows = session.scalars(
                select(MemberPerformance)
                .where(MemberPerformance.organization_id == config.organization_id)
                .order_by(MemberPerformance.user_id)
            ).all()
            members = [MemberSnapshot.from_row(row) for row in rows]
            if not members:
                return []
            previous = self._previous_ranks(
                session, config.id, [m.user_id for m in members]
            )

        entries = rank_members(members, config, previous)
        logger.debug(
            "Leaderboard %s: %d of %d members ranked",
            config.id, len(entries), len(members),
        )
        return entries

    def _previous_ranks(
        self, session: Session, leaderboard_id: str, user_ids: Sequence[str]
    ) -> dict[str, int]:
        """Yesterday's rank per user; the latest snapshot of the day wins."""
        yesterday = self._today() - timedelta(days=1)
        rows = session.execute(
            select(RankingHistory.user_id, RankingHistory.rank)
            .where(
                RankingHistory.leaderboard_id == leaderboard_id,
                RankingHistory.snapshot_date == yesterday,
                RankingHistory.user_id.in_(user_ids),
            )
            .order_by(RankingHistory.recorded_at, RankingHistory.id)
        ).all()
        return {row.user_id: row.rank for row in rows}

    def get_leaderboard_configs(self, organization_id: str) -> list[LeaderboardConfig]:
        """Stored definitions for *organization_id*, or the defaults if none are stored."""
        validate_organization_id(organization_id)
        with Session(self._engine) as session:
            rows = session.scalars(
                select(LeaderboardDefinition)
                .where(LeaderboardDefinition.organization_id == organization_id)
                .order_by(LeaderboardDefinition.id)
            ).all()
            stored = [LeaderboardConfig.from_row(row) for row in rows]
        return stored or default_leaderboard_configs(organization_id)

    def get_leaderboard_config(self, leaderboard_id: str) -> LeaderboardConfig | None:
        """Stored definition by id, falling back to the organization's defaults."""
        with Session(self._engine) as session:
            row = session.get(LeaderboardDefinition, leaderboard_id)
            if row is not None:
                return LeaderboardConfig.from_row(row)

        organization_id = organization_from_leaderboard_id(leaderboard_id)
        if organization_id is None or not ORGANIZATION_ID_PATTERN.fullmatch(organization_id):
            return None
        for config in default_leaderboard_configs(organization_id):
            if config.id == leaderboard_id:
                return config
        return None

    def get_user_rankings(
        self, user_id: str, organization_ids: Sequence[str]
    ) -> dict[str, dict[str, Any]]:
        """Where *user_id* stands on every enabled leaderboard.

        Leaderboards the user is filtered out of are omitted.  Totals and
        percentiles are taken over the full ranked cohort.
        """
        validate_user_id(user_id)
        rankings: dict[str, dict[str, Any]] = {}
        for organization_id in organization_ids:
            for config in self.get_leaderboard_configs(organization_id):
                if not config.enabled:
                    continue
                entries = self._rank_cohort(config)
                entry = next((e for e in entries if e.user_id == user_id), None)
                if entry is None:
                    continue
                total = len(entries)
                rankings[config.id] = {
                    "rank": entry.rank,
                    "score": entry.score,
                    "change": entry.change,
                    "total_participants": total,
                    "percentile": (total - entry.rank) / total * 100,
                }
        return rankings

    def get_leaderboard_statistics(
        self,
        leaderboard_id: str,
        *,
        category: str | None = None,
        timeframe: str | None = None,
    ) -> dict[str, Any]:
        """Summary statistics over a fresh computation of *leaderboard_id*.

        Scores use *category* / *timeframe* when given, else ``overall`` /
        ``weekly``.  See :func:`~questline.engine.ranking.summarize_leaderboard`.

        Raises
        ------
        LeaderboardNotFoundError
            If no stored or default definition has this id.
        """
        known = self.get_leaderboard_config(leaderboard_id)
        if known is None:
            raise LeaderboardNotFoundError(leaderboard_id)
        config = LeaderboardConfig(
            id=leaderboard_id,
            organization_id=known.organization_id,
            category=category or LeaderboardCategory.OVERALL.value,
            timeframe=timeframe or Timeframe.WEEKLY.value,
        )
        return summarize_leaderboard(self._rank_cohort(config))

    def refresh_leaderboard(self, leaderboard_id: str) -> list[RankingEntry]:
        """Recompute *leaderboard_id* and record today's history snapshot.

        The whole ranked cohort is recorded so tomorrow's change detection
        sees members beyond ``max_entries`` too.

        Raises
        ------
        LeaderboardNotFoundError
            If no stored or default definition has this id.
        """
        config = self.get_leaderboard_config(leaderboard_id)
        if config is None:
            raise LeaderboardNotFoundError(leaderboard_id)

        entries = self._rank_cohort(config)
        self.save_ranking_history(config.id, entries)
        return truncate(entries, config.max_entries)

    # -- History -------------------------------------------------------------

    def save_ranking_history(
        self, leaderboard_id: str, entries: Sequence[RankingEntry]
    ) -> int:
        """Append one history row per entry, dated today.

        Best effort: failures are logged and ``0`` is returned.
        """
        if not entries:
            return 0
        now = self._clock()
        try:
            with get_session(self._engine) as session:
                session.add_all([
                    RankingHistory(
                        leaderboard_id=leaderboard_id,
                        user_id=entry.user_id,
                        rank=entry.rank,
                        score=entry.score,
                        snapshot_date=now.date(),
                        recorded_at=now,
                        metrics=dict(entry.metrics),
                    )
                    for entry in entries
                ])
        except Exception:
            logger.exception("Error saving ranking history for %s", leaderboard_id)
            return 0

        logger.info("Saved %d ranking history rows for %s", len(entries), leaderboard_id)
        return len(entries)

    def get_ranking_history(
        self, user_id: str, leaderboard_id: str, days: int = 30
    ) -> list[dict[str, Any]]:
        """A user's snapshots on one leaderboard over the last *days*, oldest first."""
        validate_user_id(user_id)
        since = self._today() - timedelta(days=days)
        with Session(self._engine) as session:
            rows = session.scalars(
                select(RankingHistory)
                .where(
                    RankingHistory.user_id == user_id,
                    RankingHistory.leaderboard_id == leaderboard_id,
                    RankingHistory.snapshot_date >= since,
                )
                .order_by(RankingHistory.snapshot_date, RankingHistory.recorded_at)
            ).all()
            return [
                {
                    "leaderboard_id": row.leaderboard_id,
                    "user_id": row.user_id,
                    "rank": row.rank,
                    "score": row.score,
                    "date": row.snapshot_date,
                    "metrics": row.metrics or {},
                }
                for row in rows
            ]

    def prune_ranking_history(
        self, retention_days: int = 90, *, batch_size: int = BATCH_SIZE
    ) -> int:
        """Delete history snapshots older than *retention_days*.

        Returns the number of rows removed.
        """
        cutoff = self._today() - timedelta(days=retention_days)
        deleted = 0
        while True:
            with get_session(self._engine) as session:
                ids = session.scalars(
                    select(RankingHistory.id)
                    .where(RankingHistory.snapshot_date < cutoff)
                    .limit(batch_size)
                ).all()
                if not ids:
                    break
                result = session.execute(
                    delete(RankingHistory).where(RankingHistory.id.in_(ids))
                )
                deleted += result.rowcount  # type: ignore[operator]

        logger.info(
            "Ranking history pruned: %d rows removed (retention_days=%d, cutoff=%s)",
            deleted, retention_days, cutoff.isoformat(),
        )
        return deleted
