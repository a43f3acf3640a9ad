"""
Change Detector.

Diffs each fresh MatchSnapshot (and, for live matches, its timeline) against the
State Cache and reports the transitions worth notifying. The cache entry is
updated on every call whether or not anything fired.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from shared.config import Settings, get_settings
from shared.models.domain import MatchSnapshot, TimelineEvent
from shared.models.enums import EventKind, MatchStatus, Side, TransitionKind
from shared.utils.logging import get_logger
from shared.utils.metrics import STATE_CACHE_SIZE, TRANSITIONS_DETECTED

from monitor.state import StateCache, StateCacheEntry

logger = get_logger(__name__)

Clock = Callable[[], datetime]

# Minutes after kickoff in which a phase change is believable
HALF_TIME_WINDOW = (40, 65)
SECOND_HALF_WINDOW = (45, 75)
# Assumed elapsed minutes when the feed gives no kickoff time
_NO_KICKOFF_START = 0
_NO_KICKOFF_HALF_TIME = 45
_NO_KICKOFF_SECOND_HALF = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Transition:
    kind: TransitionKind
    snapshot: MatchSnapshot
    side: Optional[Side] = None
    event: Optional[TimelineEvent] = None


class ChangeDetector:
    def __init__(
        self,
        cache: StateCache,
        settings: Optional[Settings] = None,
        clock: Clock = _utcnow,
    ) -> None:
        self._cache = cache
        self._settings = settings or get_settings()
        self._clock = clock

    @property
    def cache(self) -> StateCache:
        return self._cache

    def _minutes_since_kickoff(self, snapshot: MatchSnapshot, default: int) -> int:
        if snapshot.kickoff is None:
            return default
        kickoff = snapshot.kickoff
        if kickoff.tzinfo is None:
            kickoff = kickoff.replace(tzinfo=timezone.utc)
        return int((self._clock() - kickoff) // timedelta(minutes=1))

    # ── Score-feed path ─────────────────────────────────────────────────
    def detect_match(self, snapshot: MatchSnapshot) -> list[Transition]:
        """Start, goal, half-time, second-half and end checks for one snapshot."""
        now = self._clock()
        first_sighting = self._cache.get(snapshot.id) is None
        entry = self._cache.entry(snapshot.id, now)
        if first_sighting and snapshot.is_live:
            entry.first_seen_live = True

        transitions: list[Transition] = []
        self._check_start(snapshot, entry, transitions)
        entry.last_status = snapshot.status

        if snapshot.is_live:
            self._check_goals(snapshot, entry, transitions)
            self._check_half_time(snapshot, entry, transitions)
            self._check_second_half(snapshot, entry, transitions)

        self._check_end(snapshot, entry, transitions)

        for t in transitions:
            TRANSITIONS_DETECTED.labels(kind=t.kind.value).inc()
        STATE_CACHE_SIZE.set(len(self._cache))
        return transitions

    def _check_start(
        self, snapshot: MatchSnapshot, entry: StateCacheEntry, out: list[Transition]
    ) -> None:
        previous = entry.last_status
        if not snapshot.is_live or entry.start_notified:
            return
        if previous not in (None, MatchStatus.SCHEDULED):
            return

        entry.start_notified = True
        if previous == MatchStatus.SCHEDULED:
            out.append(Transition(TransitionKind.MATCH_STARTED, snapshot))
            return

        # First seen already live: only a genuinely fresh kickoff is announced
        minutes = self._minutes_since_kickoff(snapshot, _NO_KICKOFF_START)
        detail = snapshot.detailed_status
        past_first_half = (
            snapshot.is_half_time
            or "halftime" in detail
            or "secondhalf" in detail
            or minutes > 45
        )
        fresh = (
            minutes <= self._settings.match_start_grace_min
            and snapshot.home_score == 0
            and snapshot.away_score == 0
            and not past_first_half
        )
        if fresh:
            out.append(Transition(TransitionKind.MATCH_STARTED, snapshot))
        else:
            logger.info(
                "match_start_suppressed",
                match_id=snapshot.id,
                minutes_since_kickoff=minutes,
                score=f"{snapshot.home_score}-{snapshot.away_score}",
            )

    def _check_goals(
        self, snapshot: MatchSnapshot, entry: StateCacheEntry, out: list[Transition]
    ) -> None:
        last_home, last_away = entry.last_home, entry.last_away
        if last_home is None or last_away is None:
            # First live sighting: adopt the current score without announcing it
            entry.notified_home = max(entry.notified_home, snapshot.home_score)
            entry.notified_away = max(entry.notified_away, snapshot.away_score)
        else:
            if snapshot.home_score > last_home and snapshot.home_score > entry.notified_home:
                out.append(Transition(TransitionKind.GOAL, snapshot, side=Side.HOME))
                entry.notified_home = snapshot.home_score
            if snapshot.away_score > last_away and snapshot.away_score > entry.notified_away:
                out.append(Transition(TransitionKind.GOAL, snapshot, side=Side.AWAY))
                entry.notified_away = snapshot.away_score

        entry.last_home = snapshot.home_score
        entry.last_away = snapshot.away_score

    def _check_half_time(
        self, snapshot: MatchSnapshot, entry: StateCacheEntry, out: list[Transition]
    ) -> None:
        if not snapshot.is_half_time or entry.half_time_notified:
            return
        entry.half_time_notified = True
        minutes = self._minutes_since_kickoff(snapshot, _NO_KICKOFF_HALF_TIME)
        low, high = HALF_TIME_WINDOW
        if low <= minutes <= high:
            out.append(Transition(TransitionKind.HALF_TIME, snapshot))
        else:
            logger.info("half_time_out_of_window", match_id=snapshot.id, minutes=minutes)

    def _check_second_half(
        self, snapshot: MatchSnapshot, entry: StateCacheEntry, out: list[Transition]
    ) -> None:
        if not entry.half_time_notified or snapshot.is_half_time or entry.second_half_notified:
            return
        entry.second_half_notified = True
        minutes = self._minutes_since_kickoff(snapshot, _NO_KICKOFF_SECOND_HALF)
        low, high = SECOND_HALF_WINDOW
        if low <= minutes <= high:
            out.append(Transition(TransitionKind.SECOND_HALF, snapshot))
        else:
            logger.info("second_half_out_of_window", match_id=snapshot.id, minutes=minutes)

    def _check_end(
        self, snapshot: MatchSnapshot, entry: StateCacheEntry, out: list[Transition]
    ) -> None:
        if not snapshot.is_finished or entry.end_notified:
            return
        entry.end_notified = True
        # A match never seen in progress by this process ends silently
        if entry.start_notified:
            out.append(Transition(TransitionKind.MATCH_ENDED, snapshot))

    # ── Timeline path ───────────────────────────────────────────────────
    def detect_timeline(
        self, snapshot: MatchSnapshot, events: list[TimelineEvent]
    ) -> list[Transition]:
        """
        Report timeline events not yet seen for this match.

        Goals are recorded but never reported here; the score check already
        covers them. When the match was first sighted mid-game, the first batch
        only primes the seen-set.
        """
        entry = self._cache.entry(snapshot.id, self._clock())
        priming = entry.first_seen_live and not entry.timeline_primed
        entry.timeline_primed = True

        transitions: list[Transition] = []
        for event in events:
            if event.id in entry.notified_events:
                continue
            entry.notified_events.add(event.id)
            if priming:
                continue

            if event.kind == EventKind.GOAL:
                logger.info(
                    "timeline_goal",
                    match_id=snapshot.id,
                    player=event.player_name,
                    team=snapshot.team_name(event.side),
                    penalty=event.is_penalty,
                    own_goal=event.is_own_goal,
                )
                continue
            if event.kind == EventKind.UNRECOGNIZED:
                logger.info(
                    "timeline_event_unrecognized",
                    match_id=snapshot.id,
                    event_id=event.id,
                    raw_type=event.raw_type,
                )
                continue

            transitions.append(Transition(TransitionKind.TIMELINE, snapshot, side=event.side, event=event))

        if priming and events:
            logger.info("timeline_primed", match_id=snapshot.id, events=len(events))
        for _ in transitions:
            TRANSITIONS_DETECTED.labels(kind=TransitionKind.TIMELINE.value).inc()
        return transitions
