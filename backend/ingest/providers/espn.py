"""
ESPN connector.
Secondary league feed read from ESPN's personalized scoreboard header, used for
competitions the primary feed does not cover. These matches carry no timeline.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from shared.config import LeagueConfig, Settings, get_settings
from shared.models.domain import MatchSnapshot
from shared.models.enums import MatchStatus
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

from ingest.providers.base import LeagueFetcher, as_text, dig, parse_datetime, safe_int

logger = get_logger(__name__)

PROVIDER_NAME = "espn"

_STATUS_MAP: dict[str, MatchStatus] = {
    "pre": MatchStatus.SCHEDULED,
    "in": MatchStatus.LIVE,
    "post": MatchStatus.FINISHED,
}


def _competitor(event: dict[str, Any], home_away: str) -> Optional[dict[str, Any]]:
    competitors = event.get("competitors")
    if not isinstance(competitors, list):
        return None
    return next(
        (c for c in competitors if isinstance(c, dict) and c.get("homeAway") == home_away),
        None,
    )


def normalize_event(event: dict[str, Any], league: LeagueConfig) -> Optional[MatchSnapshot]:
    status = _STATUS_MAP.get((as_text(event.get("status")) or "").lower())
    event_id = as_text(event.get("id"))
    if status is None or not event_id:
        return None

    home = _competitor(event, "home") or {}
    away = _competitor(event, "away") or {}
    status_type = dig(event, "fullStatus", "type")
    if not isinstance(status_type, dict):
        status_type = {}
    detailed = (as_text(status_type.get("description")) or as_text(event.get("summary")) or "").lower()

    return MatchSnapshot(
        id=event_id,
        home_team=as_text(home.get("displayName")) or as_text(home.get("name")) or "Home",
        away_team=as_text(away.get("displayName")) or as_text(away.get("name")) or "Away",
        home_team_id=as_text(home.get("id")) or "",
        away_team_id=as_text(away.get("id")) or "",
        home_score=safe_int(home.get("score")),
        away_score=safe_int(away.get("score")),
        status=status,
        league=league.name,
        league_id=league.id,
        kickoff=parse_datetime(event.get("date")),
        source=PROVIDER_NAME,
        is_half_time=status_type.get("name") == "STATUS_HALFTIME",
        detailed_status=detailed,
        has_timeline=False,
    )


class ESPNHeaderProvider(LeagueFetcher):
    """League fetcher for ESPN's ``sports[].leagues[].events[]`` header payload."""

    def __init__(
        self,
        http_client: Optional[ProviderHTTPClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        client = http_client or ProviderHTTPClient(
            provider_name=PROVIDER_NAME,
            headers={"Accept": "application/json"},
        )
        super().__init__(PROVIDER_NAME, client)

    async def fetch_league(self, league: LeagueConfig) -> list[MatchSnapshot]:
        params = {
            "sport": league.sport.lower(),
            "league": league.id,
            "lang": "pt",
            "region": "br",
            "contentorigin": "deportes",
            "tz": "America/Sao_Paulo",
        }
        try:
            resp = await self._http.get(self._settings.espn_scoreboard_url, params=params)
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "league_fetch_http_error",
                provider=PROVIDER_NAME,
                league=league.name,
                status=exc.response.status_code,
            )
            return []
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "league_fetch_failed", provider=PROVIDER_NAME, league=league.name, error=str(exc)
            )
            return []

        snapshots: list[MatchSnapshot] = []
        for sport in (data.get("sports") if isinstance(data, dict) else None) or []:
            for espn_league in dig(sport, "leagues") or []:
                for event in dig(espn_league, "events") or []:
                    if not isinstance(event, dict):
                        continue
                    try:
                        snapshot = normalize_event(event, league)
                    except ValidationError as exc:
                        logger.warning(
                            "game_skipped", provider=PROVIDER_NAME, league=league.name, error=str(exc)
                        )
                        continue
                    if snapshot is not None:
                        snapshots.append(snapshot)

        logger.debug("league_fetched", provider=PROVIDER_NAME, league=league.name, games=len(snapshots))
        return snapshots
