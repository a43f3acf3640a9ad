"""
Pydantic v2 domain models shared across the monitor, prediction and notification packages.
These are the canonical internal representations, not ORM models.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.models.enums import (
    AudienceKind,
    EventKind,
    MatchStatus,
    NotificationType,
    PredictionOutcome,
    Side,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Live feed ───────────────────────────────────────────────────────────
class MatchSnapshot(DomainModel):
    """One match as seen by one poll. Never persisted beyond the state cache."""
    id: str
    home_team: str = "Home"
    away_team: str = "Away"
    home_team_id: str = ""
    away_team_id: str = ""
    home_score: int = 0
    away_score: int = 0
    status: MatchStatus = MatchStatus.SCHEDULED
    league: str = ""
    league_id: str = ""
    kickoff: Optional[datetime] = None
    source: str = ""
    is_half_time: bool = False
    detailed_status: str = ""
    has_timeline: bool = True

    @property
    def is_live(self) -> bool:
        return self.status == MatchStatus.LIVE

    @property
    def is_finished(self) -> bool:
        return self.status == MatchStatus.FINISHED

    def team_name(self, side: Side) -> str:
        return self.home_team if side == Side.HOME else self.away_team

    def scoreline(self) -> str:
        return f"{self.home_team} {self.home_score} x {self.away_score} {self.away_team}"


class TimelineEvent(DomainModel):
    """A play-by-play occurrence; ``id`` is stable across polls."""
    id: str
    kind: EventKind
    match_id: str
    raw_type: str = ""
    minute: Optional[str] = None
    side: Side = Side.AWAY
    player_name: Optional[str] = None
    # Substitutions: player_name leaves, secondary_player_name comes on
    secondary_player_name: Optional[str] = None
    detail: Optional[str] = None
    is_penalty: bool = False
    is_own_goal: bool = False


# ── Predictions ─────────────────────────────────────────────────────────
class TeamInfo(DomainModel):
    name: str
    id: Optional[str] = None
    logo: Optional[str] = None


class PredictionResult(DomainModel):
    actual_home_score: Optional[int] = None
    actual_away_score: Optional[int] = None
    points: int = 0
    outcome: PredictionOutcome = PredictionOutcome.PENDING
    processed_at: Optional[datetime] = None


class Prediction(DomainModel):
    """A user's guess for one match; unique per (user_id, match_id)."""
    id: str
    user_id: str
    match_id: str
    home_team: TeamInfo
    away_team: TeamInfo
    competition: Optional[str] = None
    kickoff: datetime
    predicted_home_score: int = Field(ge=0, le=20)
    predicted_away_score: int = Field(ge=0, le=20)
    result: PredictionResult = Field(default_factory=PredictionResult)

    @property
    def is_pending(self) -> bool:
        return self.result.outcome == PredictionOutcome.PENDING


class PredictionCounts(DomainModel):
    total: int = 0
    exact: int = 0
    partial: int = 0
    result: int = 0
    miss: int = 0
    pending: int = 0


class Achievement(DomainModel):
    type: str
    name: str
    description: str
    icon: str = ""
    earned_at: datetime = Field(default_factory=utcnow)


class UserStats(DomainModel):
    user_id: str
    predictions: PredictionCounts = Field(default_factory=PredictionCounts)
    total_points: int = 0
    weekly_points: int = 0
    monthly_points: int = 0
    current_streak: int = 0
    best_streak: int = 0
    global_rank: Optional[int] = None
    weekly_rank: Optional[int] = None
    achievements: list[Achievement] = Field(default_factory=list)
    last_points_update: Optional[datetime] = None
    week_start: Optional[datetime] = None
    month_start: Optional[datetime] = None

    def has_achievement(self, achievement_type: str) -> bool:
        return any(a.type == achievement_type for a in self.achievements)


# ── Recipients ──────────────────────────────────────────────────────────
# Stored by the app in camelCase ({"msnId": ..., "favoritesOnly": ...})
class AppDocument(DomainModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, alias_generator=to_camel)


class FavoriteTeam(AppDocument):
    id: Optional[int] = None
    name: str = ""
    msn_id: Optional[str] = None


class NotificationPreferences(AppDocument):
    """Per-user delivery switches; everything is on unless the user turned it off."""
    favorites_only: bool = False
    match_start: bool = True
    goals: bool = True
    cards: bool = True
    var: bool = True
    substitutions: bool = True
    match_phases: bool = True

    def allows(self, notification_type: NotificationType) -> bool:
        switch = _PREFERENCE_SWITCH.get(notification_type)
        return True if switch is None else bool(getattr(self, switch))


_PREFERENCE_SWITCH: dict[NotificationType, str] = {
    NotificationType.MATCH_START: "match_start",
    NotificationType.GOAL: "goals",
    NotificationType.YELLOW_CARD: "cards",
    NotificationType.RED_CARD: "cards",
    NotificationType.PENALTY: "goals",
    NotificationType.VAR: "var",
    NotificationType.SUBSTITUTION: "substitutions",
    NotificationType.HALF_TIME: "match_phases",
    NotificationType.SECOND_HALF_START: "match_phases",
    NotificationType.MATCH_END: "match_phases",
}


class Recipient(DomainModel):
    user_id: str
    push_token: Optional[str] = None
    preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)
    favorite_teams: list[FavoriteTeam] = Field(default_factory=list)
    favorite_match_ids: list[str] = Field(default_factory=list)


# ── Notifications ───────────────────────────────────────────────────────
class Audience(DomainModel):
    kind: AudienceKind = AudienceKind.BROADCAST
    user_id: Optional[str] = None
    match_id: Optional[str] = None
    home_team_id: Optional[str] = None
    away_team_id: Optional[str] = None


class NotificationPayload(DomainModel):
    """Ephemeral message handed to the dispatcher; never persisted."""
    type: NotificationType
    title: str
    body: str
    data: dict[str, Any] = Field(default_factory=dict)
    audience: Audience = Field(default_factory=Audience)


class PushMessage(DomainModel):
    """One delivery unit in the shape the Expo push API accepts."""
    to: str
    title: str
    body: str
    data: dict[str, Any] = Field(default_factory=dict)
    sound: str = "default"
    priority: str = "high"
    channel_id: str = Field(default="match-alerts", serialization_alias="channelId")
