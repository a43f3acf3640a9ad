"""
Abstract base classes for live-feed providers.
Defines the fetch contracts the scheduler and correlator depend on, plus the
defensive payload helpers every connector shares.
"""
from __future__ import annotations

import abc
from datetime import datetime
from typing import Any, Optional

from shared.config import LeagueConfig
from shared.models.domain import MatchSnapshot, TimelineEvent
from shared.utils.http_client import ProviderHTTPClient


def dig(obj: Any, *path: str | int) -> Any:
    """Walk nested dicts/lists; any missing or mistyped hop yields None."""
    current = obj
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        if current is None:
            return None
    return current


def safe_int(value: Any, default: int = 0) -> int:
    """Parse a score-like value, falling back to ``default`` on anything odd."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def as_text(value: Any) -> Optional[str]:
    """Scalar payload value as a non-empty string; None for containers, booleans and blanks."""
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    text = str(value).strip()
    return text or None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed); None when unparseable."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class BaseProvider(abc.ABC):
    """HTTP lifecycle shared by every connector."""

    def __init__(self, name: str, http_client: ProviderHTTPClient) -> None:
        self._name = name
        self._http = http_client

    @property
    def name(self) -> str:
        return self._name

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()


class LeagueFetcher(BaseProvider):
    """
    Fetches the current game list for one league.

    Implementations never raise: transport failures, non-success statuses and
    malformed payloads are logged and produce an empty list.
    """

    @abc.abstractmethod
    async def fetch_league(self, league: LeagueConfig) -> list[MatchSnapshot]:
        ...


class TimelineFetcher(BaseProvider):
    """
    Fetches play-by-play events for one in-progress match.

    Returns None when the feed is unavailable for this match and a (possibly
    empty) list otherwise. Never raises.
    """

    @abc.abstractmethod
    async def fetch_timeline(self, snapshot: MatchSnapshot) -> Optional[list[TimelineEvent]]:
        ...


class FixtureLookup(BaseProvider):
    """Direct lookup of one fixture by a numeric id. Never raises."""

    @abc.abstractmethod
    async def fetch_fixture(self, fixture_id: str) -> Optional[MatchSnapshot]:
        ...
