"""
MSN Sports connector.
Primary live feed: league game lists from ``livearoundtheleague`` and per-match
play-by-play from ``match/{id}/timeline``, normalized to canonical domain models.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from shared.config import LeagueConfig, Settings, get_settings
from shared.models.domain import MatchSnapshot, TimelineEvent
from shared.models.enums import EventKind, MatchStatus, Side
from shared.utils.http_client import ProviderHTTPClient
from shared.utils.logging import get_logger

from ingest.providers.base import (
    LeagueFetcher,
    TimelineFetcher,
    as_text,
    dig,
    parse_datetime,
    safe_int,
)

logger = get_logger(__name__)

PROVIDER_NAME = "msn"

_LIVE_CODES = frozenset({"inprogress", "inprogressbreak"})
_SCHEDULED_CODES = frozenset({"pre", "scheduled"})
_FINISHED_CODES = frozenset({"final", "post"})

_ACCEPT_LANGUAGE = "pt-BR,pt;q=0.8,en-US;q=0.5,en;q=0.3"


def map_msn_status(game_status: str, detailed_status: str) -> Optional[MatchStatus]:
    """
    Fold MSN's status vocabulary into the coarse enum.

    The short code and the verbose field disagree often enough that both are
    checked. Returns None for states we do not track (postponed, cancelled...).
    """
    code = (game_status or "").lower()
    detail = (detailed_status or "").lower()
    if code in _LIVE_CODES or "inprogress" in detail:
        return MatchStatus.LIVE
    if code in _FINISHED_CODES or "final" in detail:
        return MatchStatus.FINISHED
    if code in _SCHEDULED_CODES:
        return MatchStatus.SCHEDULED
    return None


def _team_name(participant: Any, fallback: str) -> str:
    return (
        as_text(dig(participant, "team", "shortName", "rawName"))
        or as_text(dig(participant, "team", "name", "rawName"))
        or fallback
    )


def _player_name(player: Any) -> Optional[str]:
    return as_text(dig(player, "name", "rawName")) or as_text(dig(player, "shortName", "rawName"))


def normalize_game(game: dict[str, Any], league: LeagueConfig) -> Optional[MatchSnapshot]:
    """Turn one raw MSN game into a snapshot; None when it is not tracked."""
    game_status = as_text(dig(game, "gameState", "gameStatus")) or ""
    detailed = (as_text(dig(game, "gameState", "detailedGameStatus")) or "").lower()
    status = map_msn_status(game_status, detailed)
    match_id = as_text(game.get("id")) or as_text(game.get("liveId"))
    if status is None or not match_id:
        return None

    home = dig(game, "participants", 0)
    away = dig(game, "participants", 1)
    return MatchSnapshot(
        id=match_id,
        home_team=_team_name(home, "Home"),
        away_team=_team_name(away, "Away"),
        home_team_id=as_text(dig(home, "team", "id")) or "",
        away_team_id=as_text(dig(away, "team", "id")) or "",
        home_score=safe_int(dig(home, "result", "score")),
        away_score=safe_int(dig(away, "result", "score")),
        status=status,
        league=league.name,
        league_id=league.id,
        kickoff=parse_datetime(game.get("startDateTime")),
        source=PROVIDER_NAME,
        is_half_time=game_status.lower() == "inprogressbreak" or "halftime" in detailed,
        detailed_status=detailed,
        has_timeline=True,
    )


def classify_event_kind(raw: dict[str, Any]) -> EventKind:
    """Map a raw timeline ``eventType`` (plus card sub-type) to an EventKind."""
    event_type = (as_text(raw.get("eventType")) or "").lower()
    card_type = (as_text(raw.get("cardType")) or "").lower()

    if event_type in ("card", "yellowcard"):
        if event_type == "yellowcard" or card_type == "yellow":
            return EventKind.YELLOW_CARD
        if "second" in card_type:
            return EventKind.SECOND_YELLOW
        if card_type == "red":
            return EventKind.RED_CARD
        return EventKind.UNRECOGNIZED
    if event_type == "redcard":
        if "second" in card_type or raw.get("isSecondYellow"):
            return EventKind.SECOND_YELLOW
        return EventKind.RED_CARD
    if event_type == "secondyellowcard":
        return EventKind.SECOND_YELLOW
    if event_type in ("penaltymissed", "penalty_missed"):
        return EventKind.PENALTY_MISSED
    if event_type in ("penaltysaved", "penalty_saved"):
        return EventKind.PENALTY_SAVED
    if event_type in ("var", "varreview"):
        return EventKind.VAR
    if event_type == "substitution":
        return EventKind.SUBSTITUTION
    if event_type in ("scorechange", "goal"):
        return EventKind.GOAL
    return EventKind.UNRECOGNIZED


def timeline_event_id(raw: dict[str, Any]) -> str:
    """Provider id when present, otherwise derived from type, clock and participant."""
    provider_id = as_text(raw.get("id"))
    if provider_id:
        return provider_id
    return f"{raw.get('eventType')}_{raw.get('clockTime')}_{raw.get('participantId')}"


def normalize_timeline_event(raw: dict[str, Any], snapshot: MatchSnapshot) -> TimelineEvent:
    kind = classify_event_kind(raw)
    minute = as_text(raw.get("clockTime")) or as_text(dig(raw, "gameTime", "gameMinute"))
    is_home = bool(snapshot.home_team_id) and snapshot.home_team_id in (
        as_text(raw.get("participantId")),
        as_text(raw.get("teamId")),
    )

    player_name = _player_name(raw.get("player")) or as_text(raw.get("athleteName"))
    secondary: Optional[str] = None
    detail: Optional[str] = None
    goal_type = (as_text(raw.get("goalType")) or "").lower()

    if kind == EventKind.SUBSTITUTION:
        player_name = _player_name(raw.get("playerOut")) or "Player"
        secondary = _player_name(raw.get("playerIn")) or "Player"
    elif kind == EventKind.VAR:
        detail = (as_text(raw.get("varDecision")) or as_text(raw.get("decision")) or "review").lower()
    elif kind in (EventKind.YELLOW_CARD, EventKind.RED_CARD, EventKind.SECOND_YELLOW):
        detail = (as_text(raw.get("cardType")) or "").lower() or None

    return TimelineEvent(
        id=timeline_event_id(raw),
        kind=kind,
        match_id=snapshot.id,
        raw_type=as_text(raw.get("eventType")) or "",
        minute=minute,
        side=Side.HOME if is_home else Side.AWAY,
        player_name=player_name,
        secondary_player_name=secondary,
        detail=detail,
        is_penalty=bool(raw.get("isPenalty")) or "penalty" in goal_type,
        is_own_goal=bool(raw.get("isOwnGoal")) or "own" in goal_type,
    )


class MSNSportsProvider(LeagueFetcher, TimelineFetcher):
    """League and timeline fetcher backed by the unofficial MSN Sports API."""

    def __init__(
        self,
        http_client: Optional[ProviderHTTPClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        client = http_client or ProviderHTTPClient(
            provider_name=PROVIDER_NAME,
            base_url=self._settings.msn_api_base,
            headers={"Accept": "*/*", "Accept-Language": _ACCEPT_LANGUAGE},
        )
        super().__init__(PROVIDER_NAME, client)

    def _base_params(self) -> dict[str, str]:
        return {
            "version": "1.0",
            "cm": self._settings.msn_locale,
            "scn": "ANON",
            "it": "web",
            "apikey": self._settings.msn_api_key,
            "activityId": str(uuid.uuid4()),
        }

    async def fetch_league(self, league: LeagueConfig) -> list[MatchSnapshot]:
        now = datetime.now(timezone.utc)
        params = {
            **self._base_params(),
            "id": league.id,
            "sport": league.sport,
            "datetime": now.strftime("%Y-%m-%dT%H:%M:%S"),
            "tzoffset": "0",
            "withleaguereco": "true",
            "ocid": "sports-league-landing",
        }
        try:
            resp = await self._http.get("/livearoundtheleague", params=params)
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

        # Leagues without games answer with an empty value list
        schedules = dig(data, "value", 0, "schedules")
        if not isinstance(schedules, list):
            return []

        snapshots: list[MatchSnapshot] = []
        for schedule in schedules:
            games = dig(schedule, "games")
            if not isinstance(games, list):
                continue
            for game in games:
                if not isinstance(game, dict):
                    continue
                try:
                    snapshot = normalize_game(game, league)
                except ValidationError as exc:
                    logger.warning("game_skipped", provider=PROVIDER_NAME, league=league.name, error=str(exc))
                    continue
                if snapshot is not None:
                    snapshots.append(snapshot)

        logger.debug("league_fetched", provider=PROVIDER_NAME, league=league.name, games=len(snapshots))
        return snapshots

    async def fetch_timeline(self, snapshot: MatchSnapshot) -> Optional[list[TimelineEvent]]:
        try:
            resp = await self._http.get(f"/match/{snapshot.id}/timeline", params=self._base_params())
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            # 404 is routine for matches without play-by-play coverage
            if exc.response.status_code != 404:
                logger.info(
                    "timeline_fetch_http_error",
                    match_id=snapshot.id,
                    status=exc.response.status_code,
                )
            return None
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("timeline_fetch_failed", match_id=snapshot.id, error=str(exc))
            return None

        raw_events = data.get("value") if isinstance(data, dict) else None
        if not isinstance(raw_events, list):
            return []
        events: list[TimelineEvent] = []
        for raw in raw_events:
            if not isinstance(raw, dict):
                continue
            try:
                events.append(normalize_timeline_event(raw, snapshot))
            except ValidationError as exc:
                logger.warning("timeline_event_skipped", match_id=snapshot.id, error=str(exc))
        return events
