"""
NotificationPayload builders, one per transition type.

Every broadcast payload carries the match and team ids in ``data`` so the app
can deep-link and the dispatcher can apply favourite-team filters.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.models.domain import (
    Audience,
    MatchSnapshot,
    NotificationPayload,
    Prediction,
    TimelineEvent,
)
from shared.models.enums import (
    AudienceKind,
    EventKind,
    NotificationType,
    PredictionOutcome,
    Side,
    TransitionKind,
)

from monitor.detector import Transition

VAR_DECISIONS: dict[str, tuple[str, str]] = {
    # decision -> (title suffix, body template; {team} may be empty)
    "goal_confirmed": ("Goal Confirmed", "{team} goal confirmed after review"),
    "goal_disallowed": ("Goal Disallowed", "{team} goal disallowed after review"),
    "penalty_awarded": ("Penalty Awarded", "Penalty awarded to {team} after review"),
    "penalty_cancelled": ("Penalty Cancelled", "Penalty cancelled after VAR review"),
    "red_card": ("Red Card", "Red card for a {team} player after review"),
    "red_card_cancelled": ("Red Card Cancelled", "Red card cancelled after VAR review"),
}

_OUTCOME_COPY: dict[PredictionOutcome, tuple[str, str]] = {
    PredictionOutcome.EXACT: ("🎯", "Exact score!"),
    PredictionOutcome.PARTIAL: ("👏", "Right goal difference!"),
    PredictionOutcome.RESULT: ("✅", "Right result!"),
    PredictionOutcome.MISS: ("❌", "Not this time!"),
}


def _broadcast(
    notification_type: NotificationType,
    snapshot: MatchSnapshot,
    title: str,
    body: str,
    **extra: Any,
) -> NotificationPayload:
    data: dict[str, Any] = {
        "type": notification_type.value,
        "matchId": snapshot.id,
        "homeTeamId": snapshot.home_team_id,
        "awayTeamId": snapshot.away_team_id,
        "leagueId": snapshot.league_id or snapshot.league,
    }
    data.update({k: v for k, v in extra.items() if v is not None})
    return NotificationPayload(
        type=notification_type,
        title=title,
        body=body,
        data=data,
        audience=Audience(
            kind=AudienceKind.BROADCAST,
            match_id=snapshot.id,
            home_team_id=snapshot.home_team_id,
            away_team_id=snapshot.away_team_id,
        ),
    )


def _at_minute(minute: Optional[str]) -> str:
    return f" at {minute}'" if minute else ""


def match_started(snapshot: MatchSnapshot) -> NotificationPayload:
    body = f"{snapshot.home_team} vs {snapshot.away_team}\n{snapshot.league or 'Live'}"
    return _broadcast(NotificationType.MATCH_START, snapshot, "🟢 KICK-OFF!", body)


def goal(snapshot: MatchSnapshot, side: Side) -> NotificationPayload:
    scorer = snapshot.team_name(side)
    body = snapshot.scoreline()
    if snapshot.league:
        body += f"\n{snapshot.league}"
    return _broadcast(
        NotificationType.GOAL, snapshot, f"⚽ GOAL for {scorer}!", body, scorer=scorer, side=side.value
    )


def half_time(snapshot: MatchSnapshot) -> NotificationPayload:
    return _broadcast(NotificationType.HALF_TIME, snapshot, "⏸️ Half-time", snapshot.scoreline())


def second_half(snapshot: MatchSnapshot) -> NotificationPayload:
    return _broadcast(
        NotificationType.SECOND_HALF_START, snapshot, "▶️ Second half under way", snapshot.scoreline()
    )


def match_ended(snapshot: MatchSnapshot) -> NotificationPayload:
    body = snapshot.scoreline()
    if snapshot.league:
        body += f"\n{snapshot.league}"
    return _broadcast(NotificationType.MATCH_END, snapshot, "🏁 Full time", body)


def timeline_event(snapshot: MatchSnapshot, event: TimelineEvent) -> Optional[NotificationPayload]:
    """Payload for a card, penalty, VAR or substitution event; None for anything else."""
    team = snapshot.team_name(event.side)
    player = event.player_name or "Player"
    minute = _at_minute(event.minute)
    scoreline = snapshot.scoreline()
    common = {"teamName": team, "minute": event.minute, "eventId": event.id}

    if event.kind == EventKind.YELLOW_CARD:
        return _broadcast(
            NotificationType.YELLOW_CARD, snapshot, f"🟨 Yellow card - {team}",
            f"{player} booked{minute}\n{scoreline}", playerName=player, **common,
        )
    if event.kind in (EventKind.RED_CARD, EventKind.SECOND_YELLOW):
        second = event.kind == EventKind.SECOND_YELLOW
        title = f"🟨🟥 Second yellow - {team}" if second else f"🟥 Red card - {team}"
        body = f"{player} sent off{' (second yellow)' if second else ''}{minute}\n{scoreline}"
        return _broadcast(
            NotificationType.RED_CARD, snapshot, title, body,
            playerName=player, isSecondYellow=second, **common,
        )
    if event.kind == EventKind.PENALTY_MISSED:
        who = event.player_name or team
        return _broadcast(
            NotificationType.PENALTY, snapshot, f"❌ Penalty missed - {team}",
            f"{who} missed the penalty{minute}\n{scoreline}", result="missed", **common,
        )
    if event.kind == EventKind.PENALTY_SAVED:
        return _broadcast(
            NotificationType.PENALTY, snapshot, "🧤 Penalty saved!",
            f"Keeper saves the penalty taken by {team}{minute}\n{scoreline}", result="saved", **common,
        )
    if event.kind == EventKind.VAR:
        decision = event.detail or "review"
        suffix, template = VAR_DECISIONS.get(decision, ("Review", "VAR review in progress"))
        body = template.format(team=team).strip()
        return _broadcast(
            NotificationType.VAR, snapshot, f"📺 VAR - {suffix}",
            f"{body}{minute}\n{scoreline}", decision=decision, **common,
        )
    if event.kind == EventKind.SUBSTITUTION:
        player_in = event.secondary_player_name or "Player"
        return _broadcast(
            NotificationType.SUBSTITUTION, snapshot, f"🔄 Substitution - {team}",
            f"⬆️ {player_in}\n⬇️ {player}{minute}\n{scoreline}",
            playerOut=player, playerIn=player_in, **common,
        )
    return None


def for_transition(transition: Transition) -> Optional[NotificationPayload]:
    snapshot = transition.snapshot
    kind = transition.kind
    if kind == TransitionKind.MATCH_STARTED:
        return match_started(snapshot)
    if kind == TransitionKind.GOAL and transition.side is not None:
        return goal(snapshot, transition.side)
    if kind == TransitionKind.HALF_TIME:
        return half_time(snapshot)
    if kind == TransitionKind.SECOND_HALF:
        return second_half(snapshot)
    if kind == TransitionKind.MATCH_ENDED:
        return match_ended(snapshot)
    if kind == TransitionKind.TIMELINE and transition.event is not None:
        return timeline_event(snapshot, transition.event)
    return None


def prediction_result(prediction: Prediction, awarded: int) -> NotificationPayload:
    outcome = prediction.result.outcome
    emoji, text = _OUTCOME_COPY.get(outcome, ("", ""))
    title = f"{emoji} +{awarded} points!" if awarded > 0 else f"{emoji} {text}"
    body = (
        f"{text}\n{prediction.home_team.name} {prediction.result.actual_home_score}"
        f"x{prediction.result.actual_away_score} {prediction.away_team.name}"
    )
    return NotificationPayload(
        type=NotificationType.PREDICTION_RESULT,
        title=title,
        body=body,
        data={
            "type": NotificationType.PREDICTION_RESULT.value,
            "matchId": prediction.match_id,
            "points": awarded,
            "resultType": outcome.value,
        },
        audience=Audience(kind=AudienceKind.USER, user_id=prediction.user_id, match_id=prediction.match_id),
    )
