"""
Match Correlator.

Predictions are recorded against one provider's ids and names; results come
from another. A numeric id is tried against the fixture lookup first, then the
configured leagues' finished matches are scanned and matched by team name.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Sequence

from shared.config import LeagueConfig, Settings, get_settings
from shared.models.domain import MatchSnapshot, Prediction
from shared.utils.logging import get_logger

from ingest.providers.base import FixtureLookup, LeagueFetcher
from predictions.team_names import normalize_team_name, teams_match

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class MatchCorrelator:
    def __init__(
        self,
        league_fetcher: LeagueFetcher,
        fixture_lookup: Optional[FixtureLookup] = None,
        leagues: Optional[Sequence[LeagueConfig]] = None,
        settings: Optional[Settings] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        self._leagues = list(leagues if leagues is not None else self._settings.monitored_leagues)
        self._league_fetcher = league_fetcher
        self._fixtures = fixture_lookup
        self._sleep = sleep

    async def resolve(self, prediction: Prediction) -> Optional[MatchSnapshot]:
        """A finished snapshot for ``prediction``'s match, or None."""
        match_id = prediction.match_id
        if match_id.isdigit() and self._fixtures is not None:
            snapshot = await self._fixtures.fetch_fixture(match_id)
            if snapshot is not None and snapshot.is_finished:
                logger.debug("correlated_by_fixture_id", prediction_id=prediction.id, match_id=match_id)
                return snapshot

        return await self._scan_leagues(prediction)

    def _is_same_match(self, prediction: Prediction, snapshot: MatchSnapshot, home: str, away: str) -> bool:
        if snapshot.id == prediction.match_id:
            return True
        threshold = self._settings.team_similarity_threshold
        return teams_match(home, normalize_team_name(snapshot.home_team), threshold) and teams_match(
            away, normalize_team_name(snapshot.away_team), threshold
        )

    async def _scan_leagues(self, prediction: Prediction) -> Optional[MatchSnapshot]:
        home = normalize_team_name(prediction.home_team.name)
        away = normalize_team_name(prediction.away_team.name)

        for index, league in enumerate(self._leagues):
            if index:
                await self._sleep(self._settings.correlator_league_delay_s)
            snapshots = await self._league_fetcher.fetch_league(league)
            for snapshot in snapshots:
                if snapshot.is_finished and self._is_same_match(prediction, snapshot, home, away):
                    logger.debug(
                        "correlated_by_team_names",
                        prediction_id=prediction.id,
                        league=league.name,
                        match_id=snapshot.id,
                    )
                    return snapshot

        logger.info(
            "correlation_not_found",
            prediction_id=prediction.id,
            match_id=prediction.match_id,
            home=prediction.home_team.name,
            away=prediction.away_team.name,
        )
        return None
