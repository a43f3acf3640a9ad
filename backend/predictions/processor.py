"""
Pending-prediction sweep.

Resolves predictions whose match should be over: correlate, score, persist the
prediction together with the owner's stats, then tell the owner. Every
failure leaves the prediction pending for the next sweep.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, Optional

from shared.config import Settings, get_settings
from shared.models.domain import Achievement, MatchSnapshot, Prediction, PredictionResult, UserStats
from shared.utils.logging import get_logger
from shared.utils.metrics import PREDICTIONS_RESOLVED, PREDICTIONS_UNRESOLVED

from notifications import messages
from notifications.dispatcher import NotificationDispatcher
from predictions.correlator import MatchCorrelator
from predictions.repository import PredictionRepository
from predictions.scoring import (
    ScoringRules,
    apply_result,
    grant_achievements,
    score_prediction,
)

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class SweepResult:
    processed: int = 0
    failed: int = 0


@dataclass
class _Award:
    points: int = 0
    granted: list[Achievement] = field(default_factory=list)


class PredictionProcessor:
    def __init__(
        self,
        repository: PredictionRepository,
        correlator: MatchCorrelator,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._settings = settings or get_settings()
        self._repo = repository
        self._correlator = correlator
        self._dispatcher = dispatcher
        self._rules = ScoringRules.from_settings(self._settings)
        self._sleep = sleep
        self._clock = clock

    async def resolve(self, prediction: Prediction, home_score: int, away_score: int) -> Optional[int]:
        """
        Score ``prediction`` against a final score and persist it.

        Returns the total awarded (base + bonus), or None when the prediction
        was already resolved.
        """
        if not prediction.is_pending:
            return None

        now = self._clock()
        score = score_prediction(
            prediction.predicted_home_score,
            prediction.predicted_away_score,
            home_score,
            away_score,
            self._rules,
        )
        resolved = prediction.model_copy(update={
            "result": PredictionResult(
                actual_home_score=home_score,
                actual_away_score=away_score,
                points=score.points,
                outcome=score.outcome,
                processed_at=now,
            )
        })
        award = _Award()

        def update_stats(stats: UserStats) -> None:
            award.points = apply_result(stats, score, self._rules, now)
            award.granted = grant_achievements(stats, now)

        if not await self._repo.save_resolution(resolved, update_stats):
            logger.info("prediction_already_resolved", prediction_id=prediction.id)
            return None

        PREDICTIONS_RESOLVED.labels(outcome=score.outcome.value).inc()
        logger.info(
            "prediction_resolved",
            prediction_id=prediction.id,
            user_id=prediction.user_id,
            match_id=prediction.match_id,
            outcome=score.outcome.value,
            points=award.points,
            achievements=[a.type for a in award.granted] or None,
        )
        await self._notify(resolved, award.points)
        return award.points

    async def _notify(self, prediction: Prediction, awarded: int) -> None:
        if self._dispatcher is None:
            return
        try:
            await self._dispatcher.dispatch(messages.prediction_result(prediction, awarded))
        except Exception as exc:
            logger.warning("prediction_notify_failed", prediction_id=prediction.id, error=str(exc))

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """One bounded pass over pending predictions old enough to have finished."""
        now = now or self._clock()
        cutoff = now - timedelta(hours=self._settings.prediction_min_age_h)
        pending = await self._repo.list_pending(cutoff, self._settings.prediction_batch_size)
        if not pending:
            logger.info("prediction_sweep_empty")
            return SweepResult()

        logger.info("prediction_sweep_started", pending=len(pending))
        processed = failed = 0
        for index, prediction in enumerate(pending):
            if index:
                await self._sleep(self._settings.prediction_item_delay_s)
            try:
                snapshot = await self._correlator.resolve(prediction)
                if snapshot is None:
                    failed += 1
                    continue
                if await self.resolve(prediction, snapshot.home_score, snapshot.away_score) is not None:
                    processed += 1
            except Exception as exc:
                failed += 1
                logger.error(
                    "prediction_processing_failed",
                    prediction_id=prediction.id,
                    error=str(exc),
                    exc_info=True,
                )

        PREDICTIONS_UNRESOLVED.inc(failed)
        logger.info("prediction_sweep_finished", processed=processed, failed=failed)
        return SweepResult(processed=processed, failed=failed)

    async def process_completed_matches(self, snapshots: Iterable[MatchSnapshot]) -> SweepResult:
        """Resolve predictions stored against these exact match ids using their final score."""
        processed = failed = 0
        for snapshot in snapshots:
            if not snapshot.is_finished:
                continue
            try:
                pending = await self._repo.list_pending_for_match(snapshot.id)
            except Exception as exc:
                logger.error("completed_match_lookup_failed", match_id=snapshot.id, error=str(exc))
                continue
            for prediction in pending:
                try:
                    if await self.resolve(prediction, snapshot.home_score, snapshot.away_score) is not None:
                        processed += 1
                except Exception as exc:
                    failed += 1
                    logger.error(
                        "prediction_processing_failed",
                        prediction_id=prediction.id,
                        error=str(exc),
                        exc_info=True,
                    )
        if processed or failed:
            logger.info("completed_matches_processed", processed=processed, failed=failed)
        return SweepResult(processed=processed, failed=failed)
