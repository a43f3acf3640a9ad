"""
Prediction / UserStats store boundary.

``PredictionRepository`` is what the processor and leaderboard depend on;
``SQLPredictionRepository`` backs it with PostgreSQL through ``DatabaseManager``.
"""
from __future__ import annotations

import abc
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import select, update

from shared.models.domain import (
    Achievement,
    Prediction,
    PredictionCounts,
    PredictionResult,
    TeamInfo,
    UserStats,
)
from shared.models.enums import PredictionOutcome
from shared.models.orm import PredictionORM, UserStatsORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RankInput:
    user_id: str
    total_points: int
    weekly_points: int


class PredictionRepository(abc.ABC):
    @abc.abstractmethod
    async def list_pending(self, kickoff_before: datetime, limit: int) -> list[Prediction]:
        """Pending predictions whose kickoff is at or before ``kickoff_before``, oldest first."""

    @abc.abstractmethod
    async def list_pending_for_match(self, match_id: str) -> list[Prediction]:
        ...

    @abc.abstractmethod
    async def save_resolution(
        self,
        prediction: Prediction,
        update_stats: Callable[[UserStats], Any],
    ) -> bool:
        """
        Persist a resolved prediction and apply ``update_stats`` to its owner's
        stats in the same transaction.

        The stats handed to ``update_stats`` are read under a row lock (a zeroed
        record when none exists yet), so concurrent resolutions for one user
        each build on the other's result. Returns False (and writes nothing)
        when the stored prediction was no longer pending.
        """

    @abc.abstractmethod
    async def update_all_stats(self, mutate: Callable[[UserStats], bool]) -> int:
        """
        Apply ``mutate`` to every user's locked stats in one transaction and
        write back the records it reports as changed. Returns how many.
        """

    @abc.abstractmethod
    async def list_rank_inputs(self) -> list[RankInput]:
        ...

    @abc.abstractmethod
    async def write_ranks(
        self,
        global_ranks: dict[str, Optional[int]],
        weekly_ranks: dict[str, Optional[int]],
    ) -> None:
        ...


# ── Row mapping ─────────────────────────────────────────────────────────
def _team(raw: Optional[dict[str, Any]]) -> TeamInfo:
    data = dict(raw or {})
    data.setdefault("name", "")
    return TeamInfo.model_validate(data)


def prediction_from_row(row: PredictionORM) -> Prediction:
    return Prediction(
        id=str(row.id),
        user_id=row.user_id,
        match_id=row.match_id,
        home_team=_team(row.home_team),
        away_team=_team(row.away_team),
        competition=row.competition,
        kickoff=row.kickoff,
        predicted_home_score=row.predicted_home_score,
        predicted_away_score=row.predicted_away_score,
        result=PredictionResult(
            actual_home_score=row.actual_home_score,
            actual_away_score=row.actual_away_score,
            points=row.points or 0,
            outcome=PredictionOutcome(row.status),
            processed_at=row.processed_at,
        ),
    )


def stats_from_row(row: UserStatsORM) -> UserStats:
    return UserStats(
        user_id=row.user_id,
        predictions=PredictionCounts(
            total=row.total_predictions,
            exact=row.exact_count,
            partial=row.partial_count,
            result=row.result_count,
            miss=row.miss_count,
            pending=row.pending_count,
        ),
        total_points=row.total_points,
        weekly_points=row.weekly_points,
        monthly_points=row.monthly_points,
        current_streak=row.current_streak,
        best_streak=row.best_streak,
        global_rank=row.global_rank,
        weekly_rank=row.weekly_rank,
        achievements=[Achievement.model_validate(a) for a in row.achievements or []],
        last_points_update=row.last_points_update,
        week_start=row.week_start,
        month_start=row.month_start,
    )


def _copy_stats_to_row(stats: UserStats, row: UserStatsORM) -> None:
    counts = stats.predictions
    row.total_predictions = counts.total
    row.exact_count = counts.exact
    row.partial_count = counts.partial
    row.result_count = counts.result
    row.miss_count = counts.miss
    row.pending_count = counts.pending
    row.total_points = stats.total_points
    row.weekly_points = stats.weekly_points
    row.monthly_points = stats.monthly_points
    row.current_streak = stats.current_streak
    row.best_streak = stats.best_streak
    row.achievements = [a.model_dump(mode="json") for a in stats.achievements]
    row.last_points_update = stats.last_points_update
    row.week_start = stats.week_start
    row.month_start = stats.month_start
    row.updated_at = datetime.now(timezone.utc)


class SQLPredictionRepository(PredictionRepository):
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def list_pending(self, kickoff_before: datetime, limit: int) -> list[Prediction]:
        stmt = (
            select(PredictionORM)
            .where(
                PredictionORM.status == PredictionOutcome.PENDING.value,
                PredictionORM.kickoff <= kickoff_before,
            )
            .order_by(PredictionORM.kickoff.asc())
            .limit(limit)
        )
        async with self._db.read_session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [prediction_from_row(r) for r in rows]

    async def list_pending_for_match(self, match_id: str) -> list[Prediction]:
        stmt = select(PredictionORM).where(
            PredictionORM.status == PredictionOutcome.PENDING.value,
            PredictionORM.match_id == match_id,
        )
        async with self._db.read_session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [prediction_from_row(r) for r in rows]

    async def save_resolution(
        self,
        prediction: Prediction,
        update_stats: Callable[[UserStats], Any],
    ) -> bool:
        result = prediction.result
        async with self._db.write_session() as session:
            # Guarded on status so a concurrent resolution cannot double count
            updated = await session.execute(
                update(PredictionORM)
                .where(
                    PredictionORM.id == uuid.UUID(prediction.id),
                    PredictionORM.status == PredictionOutcome.PENDING.value,
                )
                .values(
                    status=result.outcome.value,
                    actual_home_score=result.actual_home_score,
                    actual_away_score=result.actual_away_score,
                    points=result.points,
                    processed_at=result.processed_at,
                    updated_at=datetime.now(timezone.utc),
                )
            )
            if updated.rowcount == 0:
                return False

            row = (await session.execute(
                select(UserStatsORM)
                .where(UserStatsORM.user_id == prediction.user_id)
                .with_for_update()
            )).scalar_one_or_none()
            if row is None:
                stats = UserStats(user_id=prediction.user_id)
                row = UserStatsORM(user_id=prediction.user_id)
                session.add(row)
            else:
                stats = stats_from_row(row)
            update_stats(stats)
            _copy_stats_to_row(stats, row)
        return True

    async def update_all_stats(self, mutate: Callable[[UserStats], bool]) -> int:
        changed = 0
        async with self._db.write_session() as session:
            rows = (await session.execute(select(UserStatsORM).with_for_update())).scalars().all()
            for row in rows:
                stats = stats_from_row(row)
                if mutate(stats):
                    _copy_stats_to_row(stats, row)
                    changed += 1
        return changed

    async def list_rank_inputs(self) -> list[RankInput]:
        stmt = select(UserStatsORM.user_id, UserStatsORM.total_points, UserStatsORM.weekly_points)
        async with self._db.read_session() as session:
            rows = (await session.execute(stmt)).all()
        return [RankInput(user_id=r[0], total_points=r[1] or 0, weekly_points=r[2] or 0) for r in rows]

    async def write_ranks(
        self,
        global_ranks: dict[str, Optional[int]],
        weekly_ranks: dict[str, Optional[int]],
    ) -> None:
        user_ids = set(global_ranks) | set(weekly_ranks)
        async with self._db.write_session() as session:
            for user_id in user_ids:
                await session.execute(
                    update(UserStatsORM)
                    .where(UserStatsORM.user_id == user_id)
                    .values(
                        global_rank=global_ranks.get(user_id),
                        weekly_rank=weekly_ranks.get(user_id),
                    )
                )
        logger.debug("ranks_written", users=len(user_ids))
