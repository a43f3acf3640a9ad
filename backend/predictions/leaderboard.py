"""
Leaderboard Aggregator.

Bulk, idempotent rank recompute for total and weekly points. Only rank fields
are written; point sums are read, never changed. Weekly/monthly period
roll-over runs as a separate step on the same timer.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

from shared.utils.logging import get_logger
from shared.utils.metrics import LEADERBOARD_RANKED

from predictions.repository import PredictionRepository
from predictions.scoring import roll_periods

logger = get_logger(__name__)


def compute_ranks(values: Mapping[str, int]) -> dict[str, Optional[int]]:
    """
    1-based positions by value, highest first, among users with a positive
    value. Ties keep a stable order by user id. Everyone else maps to None.
    """
    ranked = sorted(
        (uid for uid, v in values.items() if v > 0),
        key=lambda uid: (-values[uid], uid),
    )
    ranks: dict[str, Optional[int]] = {uid: None for uid in values}
    for position, uid in enumerate(ranked, start=1):
        ranks[uid] = position
    return ranks


@dataclass(frozen=True)
class LeaderboardSummary:
    users: int
    ranked_global: int
    ranked_weekly: int


class LeaderboardAggregator:
    def __init__(
        self,
        repository: PredictionRepository,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repo = repository
        self._clock = clock

    async def roll_periods(self, now: Optional[datetime] = None) -> int:
        """Reset weekly/monthly sums whose period has ended; returns users touched."""
        now = now or self._clock()
        changed = await self._repo.update_all_stats(lambda stats: roll_periods(stats, now))
        if changed:
            logger.info("points_periods_rolled", users=changed)
        return changed

    async def recompute(self) -> LeaderboardSummary:
        inputs = await self._repo.list_rank_inputs()
        global_ranks = compute_ranks({i.user_id: i.total_points for i in inputs})
        weekly_ranks = compute_ranks({i.user_id: i.weekly_points for i in inputs})
        await self._repo.write_ranks(global_ranks, weekly_ranks)

        summary = LeaderboardSummary(
            users=len(inputs),
            ranked_global=sum(1 for r in global_ranks.values() if r is not None),
            ranked_weekly=sum(1 for r in weekly_ranks.values() if r is not None),
        )
        LEADERBOARD_RANKED.labels(board="global").set(summary.ranked_global)
        LEADERBOARD_RANKED.labels(board="weekly").set(summary.ranked_weekly)
        logger.info(
            "leaderboard_recomputed",
            users=summary.users,
            ranked_global=summary.ranked_global,
            ranked_weekly=summary.ranked_weekly,
        )
        return summary
