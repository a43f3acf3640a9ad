"""
API-Football connector.
Direct fixture lookup for predictions whose match reference is a numeric
API-Football id; used by the correlator before falling back to name matching.
"""
from __future__ import annotations

from typing import Optional

import httpx

from shared.config import Settings, get_settings
from shared.models.domain import MatchSnapshot
from shared.models.enums import MatchStatus
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

from ingest.providers.base import FixtureLookup, as_text, dig, parse_datetime, safe_int

logger = get_logger(__name__)

PROVIDER_NAME = "api_football"

_FINISHED = frozenset({"FT", "AET", "PEN"})
_LIVE = frozenset({"1H", "HT", "2H", "ET", "BT", "P", "LIVE", "INT", "SUSP"})


def map_fixture_status(short: str) -> MatchStatus:
    code = (short or "").upper()
    if code in _FINISHED:
        return MatchStatus.FINISHED
    if code in _LIVE:
        return MatchStatus.LIVE
    return MatchStatus.SCHEDULED


class APIFootballProvider(FixtureLookup):
    """``GET /fixtures?id=`` against api-sports.io."""

    def __init__(
        self,
        http_client: Optional[ProviderHTTPClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        host = httpx.URL(self._settings.api_football_base).host
        client = http_client or ProviderHTTPClient(
            provider_name=PROVIDER_NAME,
            base_url=self._settings.api_football_base,
            headers={
                "x-rapidapi-key": self._settings.api_football_key,
                "x-rapidapi-host": host,
            },
            rotate_user_agent=False,
        )
        super().__init__(PROVIDER_NAME, client)

    @property
    def enabled(self) -> bool:
        return bool(self._settings.api_football_key)

    async def fetch_fixture(self, fixture_id: str) -> Optional[MatchSnapshot]:
        if not self.enabled:
            return None
        try:
            resp = await self._http.get("/fixtures", params={"id": fixture_id})
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("fixture_lookup_failed", fixture_id=fixture_id, error=str(exc))
            return None

        fixture = dig(data, "response", 0)
        if not isinstance(fixture, dict):
            return None

        return MatchSnapshot(
            id=as_text(dig(fixture, "fixture", "id")) or fixture_id,
            home_team=as_text(dig(fixture, "teams", "home", "name")) or "Home",
            away_team=as_text(dig(fixture, "teams", "away", "name")) or "Away",
            home_team_id=as_text(dig(fixture, "teams", "home", "id")) or "",
            away_team_id=as_text(dig(fixture, "teams", "away", "id")) or "",
            home_score=safe_int(dig(fixture, "goals", "home")),
            away_score=safe_int(dig(fixture, "goals", "away")),
            status=map_fixture_status(as_text(dig(fixture, "fixture", "status", "short")) or ""),
            league=as_text(dig(fixture, "league", "name")) or "",
            league_id=as_text(dig(fixture, "league", "id")) or "",
            kickoff=parse_datetime(dig(fixture, "fixture", "date")),
            source=PROVIDER_NAME,
            has_timeline=False,
        )
