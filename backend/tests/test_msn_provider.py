"""
Unit tests for MSN / ESPN / API-Football payload normalization and fetch behaviour.

Run: pytest backend/tests/test_msn_provider.py -v
"""
from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from shared.models.enums import EventKind, MatchStatus, Side
from shared.utils.http_client import ProviderHTTPClient
from ingest.providers.api_football import APIFootballProvider, map_fixture_status
from ingest.providers.base import as_text, dig, parse_datetime, safe_int
from ingest.providers.espn import ESPNHeaderProvider, normalize_event
from ingest.providers.msn import (
    MSNSportsProvider,
    classify_event_kind,
    map_msn_status,
    normalize_game,
    normalize_timeline_event,
    timeline_event_id,
)

from tests.fakes import LEAGUE_A, make_snapshot


def msn_game(**overrides: Any) -> dict[str, Any]:
    game = {
        "id": "SportsGame_123",
        "startDateTime": "2026-03-14T18:00:00Z",
        "gameState": {"gameStatus": "InProgress", "detailedGameStatus": "InProgress"},
        "participants": [
            {
                "team": {"id": "SportRadar_Soccer_Team_1963", "shortName": {"rawName": "Palmeiras"}},
                "result": {"score": "2"},
            },
            {
                "team": {"id": "SportRadar_Soccer_Team_1967", "name": {"rawName": "CR Flamengo"}},
                "result": {"score": "1"},
            },
        ],
    }
    game.update(overrides)
    return game


def client_for(handler: Callable[[httpx.Request], httpx.Response]) -> ProviderHTTPClient:
    return ProviderHTTPClient("test", base_url="https://feed.test", transport=httpx.MockTransport(handler))


# ── Payload helpers ─────────────────────────────────────────────────────

def test_dig_tolerates_missing_hops() -> None:
    payload = {"value": [{"schedules": [{"games": []}]}]}
    assert dig(payload, "value", 0, "schedules", 0, "games") == []
    assert dig(payload, "value", 3, "schedules") is None
    assert dig(payload, "value", "x") is None
    assert dig(None, "a") is None


@pytest.mark.parametrize(("raw", "expected"), [("3", 3), (2, 2), ("2.0", 2), ("", 0), (None, 0), ("abc", 0)])
def test_safe_int(raw, expected) -> None:
    assert safe_int(raw) == expected


def test_parse_datetime() -> None:
    assert parse_datetime("2026-03-14T18:00:00Z").utcoffset().total_seconds() == 0
    assert parse_datetime("not a date") is None
    assert parse_datetime(None) is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("Dudu", "Dudu"), (" 12 ", "12"), (7, "7"), ("", None), (None, None), (True, None), ({"rawName": "X"}, None), (["a"], None)],
)
def test_as_text(raw, expected) -> None:
    assert as_text(raw) == expected


# ── MSN status and game normalization ───────────────────────────────────

@pytest.mark.parametrize(
    ("code", "detail", "expected"),
    [
        ("InProgress", "", MatchStatus.LIVE),
        ("InProgressBreak", "halftime", MatchStatus.LIVE),
        ("", "InProgress-SecondHalf", MatchStatus.LIVE),
        ("Final", "", MatchStatus.FINISHED),
        ("Post", "", MatchStatus.FINISHED),
        ("PreGame", "Final", MatchStatus.FINISHED),
        ("Pre", "", MatchStatus.SCHEDULED),
        ("Scheduled", "", MatchStatus.SCHEDULED),
        ("Postponed", "", None),
    ],
)
def test_map_msn_status(code, detail, expected) -> None:
    assert map_msn_status(code, detail) == expected


def test_normalize_game() -> None:
    snapshot = normalize_game(msn_game(), LEAGUE_A)
    assert snapshot is not None
    assert snapshot.id == "SportsGame_123"
    assert (snapshot.home_team, snapshot.away_team) == ("Palmeiras", "CR Flamengo")
    assert (snapshot.home_score, snapshot.away_score) == (2, 1)
    assert snapshot.home_team_id == "SportRadar_Soccer_Team_1963"
    assert snapshot.status == MatchStatus.LIVE
    assert snapshot.league == LEAGUE_A.name
    assert snapshot.kickoff is not None
    assert not snapshot.is_half_time


def test_normalize_game_half_time_and_defaults() -> None:
    game = msn_game(gameState={"gameStatus": "InProgressBreak", "detailedGameStatus": "HalfTime"})
    game["participants"] = []
    snapshot = normalize_game(game, LEAGUE_A)
    assert snapshot.is_half_time
    assert (snapshot.home_team, snapshot.away_team) == ("Home", "Away")
    assert (snapshot.home_score, snapshot.away_score) == (0, 0)


def test_normalize_game_skips_untracked_states() -> None:
    assert normalize_game(msn_game(gameState={"gameStatus": "Cancelled"}), LEAGUE_A) is None
    assert normalize_game(msn_game(id=None), LEAGUE_A) is None


# ── Timeline normalization ──────────────────────────────────────────────

@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ({"eventType": "YellowCard"}, EventKind.YELLOW_CARD),
        ({"eventType": "Card", "cardType": "Yellow"}, EventKind.YELLOW_CARD),
        ({"eventType": "Card", "cardType": "Red"}, EventKind.RED_CARD),
        ({"eventType": "Card", "cardType": "SecondYellow"}, EventKind.SECOND_YELLOW),
        ({"eventType": "RedCard", "isSecondYellow": True}, EventKind.SECOND_YELLOW),
        ({"eventType": "PenaltyMissed"}, EventKind.PENALTY_MISSED),
        ({"eventType": "PenaltySaved"}, EventKind.PENALTY_SAVED),
        ({"eventType": "VAR"}, EventKind.VAR),
        ({"eventType": "Substitution"}, EventKind.SUBSTITUTION),
        ({"eventType": "ScoreChange"}, EventKind.GOAL),
        ({"eventType": "Corner"}, EventKind.UNRECOGNIZED),
        ({}, EventKind.UNRECOGNIZED),
    ],
)
def test_classify_event_kind(raw, expected) -> None:
    assert classify_event_kind(raw) == expected


def test_timeline_event_id_is_stable() -> None:
    assert timeline_event_id({"id": 77}) == "77"
    raw = {"eventType": "Card", "clockTime": "33", "participantId": "T1"}
    assert timeline_event_id(raw) == timeline_event_id(dict(raw)) == "Card_33_T1"


def test_normalize_substitution_and_side() -> None:
    snapshot = make_snapshot()
    event = normalize_timeline_event(
        {
            "id": "ev1",
            "eventType": "Substitution",
            "clockTime": "61",
            "participantId": snapshot.home_team_id,
            "playerOut": {"name": {"rawName": "Dudu"}},
            "playerIn": {"name": {"rawName": "Endrick"}},
        },
        snapshot,
    )
    assert event.kind == EventKind.SUBSTITUTION
    assert event.side == Side.HOME
    assert (event.player_name, event.secondary_player_name) == ("Dudu", "Endrick")
    assert event.minute == "61"


def test_normalize_var_decision_defaults_to_review() -> None:
    event = normalize_timeline_event({"id": "v", "eventType": "VAR", "teamId": "x"}, make_snapshot())
    assert event.detail == "review"
    assert event.side == Side.AWAY


def test_normalize_timeline_event_with_nested_fields_uses_placeholders() -> None:
    event = normalize_timeline_event(
        {
            "id": "c1",
            "eventType": "YellowCard",
            "clockTime": {"value": 30},
            "athleteName": {"rawName": "Gerson"},
            "cardType": {"kind": "yellow"},
        },
        make_snapshot(),
    )
    assert event.kind == EventKind.YELLOW_CARD
    assert event.player_name is None
    assert event.minute is None
    assert event.detail is None


# ── Fetching ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_fetch_league_normalizes_games(settings) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"value": [{"schedules": [
            {"games": [msn_game(), msn_game(id="g2", gameState={"gameStatus": "Postponed"}), "junk"]},
            {"games": None},
        ]}]})

    provider = MSNSportsProvider(http_client=client_for(handler), settings=settings)
    await provider.start()
    try:
        snapshots = await provider.fetch_league(LEAGUE_A)
    finally:
        await provider.close()

    assert [s.id for s in snapshots] == ["SportsGame_123"]
    params = requests[0].url.params
    assert requests[0].url.path.endswith("/livearoundtheleague")
    assert params["id"] == LEAGUE_A.id
    assert params["sport"] == "Soccer"
    assert "User-Agent" in requests[0].headers


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="<html>"),
        httpx.Response(200, json={"value": []}),
    ],
)
async def test_fetch_league_never_raises(settings, response: httpx.Response) -> None:
    provider = MSNSportsProvider(http_client=client_for(lambda _: response), settings=settings)
    await provider.start()
    try:
        assert await provider.fetch_league(LEAGUE_A) == []
    finally:
        await provider.close()


@pytest.mark.asyncio
async def test_fetch_timeline_missing_returns_none(settings) -> None:
    provider = MSNSportsProvider(
        http_client=client_for(lambda _: httpx.Response(404)), settings=settings
    )
    await provider.start()
    try:
        assert await provider.fetch_timeline(make_snapshot()) is None
    finally:
        await provider.close()


@pytest.mark.asyncio
async def test_fetch_timeline_parses_events(settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/match/match-1/timeline")
        return httpx.Response(200, json={"value": [
            {"id": "e1", "eventType": "YellowCard", "clockTime": "12", "player": {"name": {"rawName": "Gómez"}}},
            "junk",
        ]})

    provider = MSNSportsProvider(http_client=client_for(handler), settings=settings)
    await provider.start()
    try:
        events = await provider.fetch_timeline(make_snapshot())
    finally:
        await provider.close()

    assert [(e.id, e.kind, e.player_name) for e in events] == [("e1", EventKind.YELLOW_CARD, "Gómez")]


@pytest.mark.asyncio
async def test_fetch_timeline_keeps_good_events_beside_malformed_ones(settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"value": [
            {"id": "e1", "eventType": "RedCard", "athleteName": {"rawName": "X"}, "teamId": ["T"]},
            {"id": "e2", "eventType": "Substitution", "playerOut": "Dudu", "playerIn": {"name": 5}},
        ]})

    provider = MSNSportsProvider(http_client=client_for(handler), settings=settings)
    await provider.start()
    try:
        events = await provider.fetch_timeline(make_snapshot())
    finally:
        await provider.close()

    assert [(e.id, e.kind) for e in events] == [("e1", EventKind.RED_CARD), ("e2", EventKind.SUBSTITUTION)]
    assert events[0].player_name is None
    assert (events[1].player_name, events[1].secondary_player_name) == ("Player", "Player")


# ── Secondary feeds ─────────────────────────────────────────────────────

def test_espn_normalize_event() -> None:
    event = {
        "id": "401",
        "date": "2026-03-14T18:00Z",
        "status": "post",
        "fullStatus": {"type": {"name": "STATUS_FULL_TIME", "description": "Full Time"}},
        "competitors": [
            {"homeAway": "home", "id": "1", "displayName": "Botafogo", "score": "2"},
            {"homeAway": "away", "id": "2", "displayName": "Pachuca", "score": "1"},
        ],
    }
    snapshot = normalize_event(event, LEAGUE_A)
    assert snapshot is not None
    assert snapshot.status == MatchStatus.FINISHED
    assert (snapshot.home_team, snapshot.home_score, snapshot.away_score) == ("Botafogo", 2, 1)
    assert not snapshot.has_timeline


def test_espn_normalize_event_with_malformed_status_type() -> None:
    event = {
        "id": 402,
        "status": "in",
        "summary": "HT",
        "fullStatus": {"type": "STATUS_HALFTIME"},
        "competitors": [
            {"homeAway": "home", "displayName": {"short": "BOT"}, "score": "1"},
            {"homeAway": "away", "name": "Pachuca", "score": "0"},
        ],
    }
    snapshot = normalize_event(event, LEAGUE_A)
    assert snapshot is not None
    assert snapshot.id == "402"
    assert (snapshot.home_team, snapshot.away_team) == ("Home", "Pachuca")
    assert snapshot.detailed_status == "ht"
    assert not snapshot.is_half_time


@pytest.mark.parametrize(
    ("short", "expected"),
    [("FT", MatchStatus.FINISHED), ("AET", MatchStatus.FINISHED), ("1H", MatchStatus.LIVE), ("NS", MatchStatus.SCHEDULED)],
)
def test_api_football_status(short, expected) -> None:
    assert map_fixture_status(short) == expected


@pytest.mark.asyncio
async def test_api_football_disabled_without_key(settings) -> None:
    settings.api_football_key = ""
    provider = APIFootballProvider(
        http_client=client_for(lambda _: httpx.Response(500)), settings=settings
    )
    assert not provider.enabled
    assert await provider.fetch_fixture("123") is None


@pytest.mark.asyncio
async def test_espn_provider_reads_header_scoreboard(settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"sports": [{"leagues": [{"events": [{
            "id": "9",
            "date": "2026-03-14T18:00Z",
            "status": "in",
            "competitors": [
                {"homeAway": "home", "displayName": "A", "score": "0"},
                {"homeAway": "away", "displayName": "B", "score": "0"},
            ],
        }]}]}]})

    provider = ESPNHeaderProvider(http_client=client_for(handler), settings=settings)
    await provider.start()
    try:
        snapshots = await provider.fetch_league(LEAGUE_A)
    finally:
        await provider.close()
    assert [(s.id, s.status) for s in snapshots] == [("9", MatchStatus.LIVE)]
