"""
Unit tests for the adaptive interval and the monitor scheduler's jobs.

Run: pytest backend/tests/test_scheduler.py -v
"""
from __future__ import annotations

import asyncio
import random
from datetime import timedelta
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from shared.models.domain import Recipient, TimelineEvent
from shared.models.enums import EventKind, MatchStatus, NotificationType, Side
from notifications.dispatcher import NotificationDispatcher
from predictions.leaderboard import LeaderboardAggregator
from predictions.processor import PredictionProcessor
from scheduler.engine.polling import AdaptiveInterval, jitter
from scheduler.service import MonitorScheduler

from tests.fakes import (
    LEAGUE_A,
    LEAGUE_B,
    FakeDirectory,
    FakeGateway,
    FakeLeagueFetcher,
    FakeTimelineFetcher,
    InMemoryPredictionRepository,
    make_prediction,
    make_snapshot,
)


# ── Adaptive interval ───────────────────────────────────────────────────

def test_interval_starts_idle(settings) -> None:
    interval = AdaptiveInterval(settings)
    assert interval.current == settings.idle_poll_interval_s
    assert not interval.is_fast


def test_interval_switches_only_on_change(settings) -> None:
    interval = AdaptiveInterval(settings)
    assert interval.update(2)
    assert interval.current == settings.live_poll_interval_s
    assert interval.is_fast
    assert not interval.update(5)
    assert interval.update(0)
    assert interval.current == settings.idle_poll_interval_s
    assert not interval.update(0)


def test_jitter_stays_in_range() -> None:
    rng = random.Random(7)
    for _ in range(50):
        assert 0.8 <= jitter(0.8, 2.5, rng) <= 2.5
    assert jitter(1.0, 1.0) == 1.0


# ── Scheduler wiring ────────────────────────────────────────────────────

class Harness:
    def __init__(self, settings, sleep, clock, leagues=None, timelines=None) -> None:
        self.gateway = FakeGateway()
        self.directory = FakeDirectory([Recipient(user_id="user-1", push_token="ExponentPushToken[u1]")])
        self.dispatcher = NotificationDispatcher(self.directory, self.gateway, settings)
        self.repo = InMemoryPredictionRepository()
        self.leagues = leagues or FakeLeagueFetcher()
        self.timelines = timelines or FakeTimelineFetcher()
        self.processor = PredictionProcessor(
            self.repo, object(), self.dispatcher, settings, sleep=sleep, clock=clock  # type: ignore[arg-type]
        )
        self.scheduler = MonitorScheduler(
            league_fetcher=self.leagues,  # type: ignore[arg-type]
            timeline_fetcher=self.timelines,  # type: ignore[arg-type]
            dispatcher=self.dispatcher,
            processor=self.processor,
            leaderboard=LeaderboardAggregator(self.repo, clock),
            settings=settings,
            sleep=sleep,
            clock=clock,
            rng=random.Random(1),
        )

    def sent_types(self) -> list[str]:
        return [m.data["type"] for m in self.gateway.sent]


@pytest.mark.asyncio
async def test_live_tick_polls_every_league_and_adapts_interval(settings, sleep, clock) -> None:
    leagues = FakeLeagueFetcher({LEAGUE_A.id: [make_snapshot(status=MatchStatus.SCHEDULED)]})
    h = Harness(settings, sleep, clock, leagues=leagues)

    first = await h.scheduler.run_live_tick()
    assert leagues.calls == [LEAGUE_A.id, LEAGUE_B.id]
    assert (first.matches, first.live) == (1, 0)
    assert first.interval_s == settings.idle_poll_interval_s
    # One jitter pause per league
    assert len(sleep.calls) == 2

    leagues.by_league[LEAGUE_A.id] = [make_snapshot()]
    second = await h.scheduler.run_live_tick()
    assert second.live == 1
    assert second.interval_s == settings.live_poll_interval_s
    assert h.sent_types() == [NotificationType.MATCH_START.value]


@pytest.mark.asyncio
async def test_live_tick_survives_failing_league(settings, sleep, clock) -> None:
    leagues = FakeLeagueFetcher({
        LEAGUE_A.id: RuntimeError("feed down"),
        LEAGUE_B.id: [make_snapshot("b1", status=MatchStatus.SCHEDULED)],
    })
    h = Harness(settings, sleep, clock, leagues=leagues)

    result = await h.scheduler.run_live_tick()
    assert result.matches == 1
    assert h.scheduler.cache.get("b1") is not None


@pytest.mark.asyncio
async def test_live_tick_dispatches_goals_and_timeline_events(settings, sleep, clock) -> None:
    yellow = TimelineEvent(id="e1", kind=EventKind.YELLOW_CARD, match_id="match-1", minute="20",
                           side=Side.AWAY, player_name="Gerson")
    leagues = FakeLeagueFetcher({LEAGUE_A.id: [make_snapshot(status=MatchStatus.SCHEDULED)]})
    timelines = FakeTimelineFetcher({"match-1": []})
    h = Harness(settings, sleep, clock, leagues=leagues, timelines=timelines)

    await h.scheduler.run_live_tick()
    leagues.by_league[LEAGUE_A.id] = [make_snapshot()]
    await h.scheduler.run_live_tick()
    leagues.by_league[LEAGUE_A.id] = [make_snapshot(home=1)]
    timelines.by_match["match-1"] = [yellow]
    await h.scheduler.run_live_tick()

    assert h.sent_types() == [
        NotificationType.MATCH_START.value,
        NotificationType.GOAL.value,
        NotificationType.YELLOW_CARD.value,
    ]
    # Scheduled snapshots never hit the timeline endpoint
    assert timelines.calls == ["match-1", "match-1"]


@pytest.mark.asyncio
async def test_matches_without_timeline_are_not_fetched(settings, sleep, clock) -> None:
    leagues = FakeLeagueFetcher({LEAGUE_A.id: [make_snapshot(has_timeline=False)]})
    timelines = FakeTimelineFetcher()
    h = Harness(settings, sleep, clock, leagues=leagues, timelines=timelines)

    await h.scheduler.run_live_tick()
    assert timelines.calls == []


@pytest.mark.asyncio
async def test_match_end_resolves_predictions_in_background(settings, sleep, clock) -> None:
    leagues = FakeLeagueFetcher({LEAGUE_A.id: [make_snapshot(status=MatchStatus.SCHEDULED)]})
    h = Harness(settings, sleep, clock, leagues=leagues)
    h.repo.add(make_prediction(match_id="match-1", home=2, away=1))

    await h.scheduler.run_live_tick()
    leagues.by_league[LEAGUE_A.id] = [make_snapshot()]
    await h.scheduler.run_live_tick()
    leagues.by_league[LEAGUE_A.id] = [make_snapshot(status=MatchStatus.FINISHED, home=2, away=1)]
    await h.scheduler.run_live_tick()

    # Let the spawned resolution task run
    for _ in range(20):
        await asyncio.sleep(0)

    prediction = next(iter(h.repo.predictions.values()))
    assert not prediction.is_pending
    assert NotificationType.MATCH_END.value in h.sent_types()
    assert NotificationType.PREDICTION_RESULT.value in h.sent_types()


@pytest.mark.asyncio
async def test_dispatch_failure_does_not_abort_tick(settings, sleep, clock) -> None:
    leagues = FakeLeagueFetcher({LEAGUE_A.id: [
        make_snapshot("a", status=MatchStatus.SCHEDULED),
        make_snapshot("b", status=MatchStatus.SCHEDULED),
    ]})
    h = Harness(settings, sleep, clock, leagues=leagues)
    await h.scheduler.run_live_tick()

    h.dispatcher.dispatch = AsyncMock(side_effect=RuntimeError("push down"))  # type: ignore[method-assign]
    leagues.by_league[LEAGUE_A.id] = [make_snapshot("a"), make_snapshot("b")]
    result = await h.scheduler.run_live_tick()

    assert result.transitions == 2
    assert h.dispatcher.dispatch.await_count == 2


@pytest.mark.asyncio
async def test_timeline_failure_keeps_score_notifications(settings, sleep, clock) -> None:
    leagues = FakeLeagueFetcher({LEAGUE_A.id: [make_snapshot(status=MatchStatus.SCHEDULED)]})
    timelines = FakeTimelineFetcher({"match-1": RuntimeError("timeline down")})
    h = Harness(settings, sleep, clock, leagues=leagues, timelines=timelines)

    await h.scheduler.run_live_tick()
    leagues.by_league[LEAGUE_A.id] = [make_snapshot()]
    await h.scheduler.run_live_tick()
    leagues.by_league[LEAGUE_A.id] = [make_snapshot(home=1)]
    result = await h.scheduler.run_live_tick()
    timelines.by_match["match-1"] = []
    await h.scheduler.run_live_tick()

    assert result.transitions == 1
    assert h.sent_types() == [NotificationType.MATCH_START.value, NotificationType.GOAL.value]


@pytest.mark.asyncio
async def test_cache_reset_job(settings, sleep, clock) -> None:
    leagues = FakeLeagueFetcher({LEAGUE_A.id: [make_snapshot("a"), make_snapshot("b")]})
    h = Harness(settings, sleep, clock, leagues=leagues)
    await h.scheduler.run_live_tick()

    assert await h.scheduler.run_cache_reset() == 2
    assert len(h.scheduler.cache) == 0


class ResetDuringSleep:
    """Fires the cache reset from inside the n-th pause of a tick."""

    def __init__(self, on_call: int) -> None:
        self.on_call = on_call
        self.calls = 0
        self.scheduler: Optional[MonitorScheduler] = None
        self.reset: Optional[asyncio.Task[int]] = None

    async def __call__(self, delay: float) -> None:
        self.calls += 1
        if self.calls == self.on_call:
            self.reset = asyncio.create_task(self.scheduler.run_cache_reset())  # type: ignore[union-attr]
            for _ in range(3):
                await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_cache_reset_waits_for_running_tick(settings, clock) -> None:
    subs = [
        TimelineEvent(id=f"sub-{n}", kind=EventKind.SUBSTITUTION, match_id="match-1", minute=str(50 + n),
                      side=Side.HOME, player_name="Out", secondary_player_name="In")
        for n in range(3)
    ]
    # Two league pauses, then the timeline pause
    sleep = ResetDuringSleep(on_call=3)
    leagues = FakeLeagueFetcher({LEAGUE_A.id: [make_snapshot(home=1, away=1, kickoff=clock() - timedelta(hours=1))]})
    timelines = FakeTimelineFetcher({"match-1": subs})
    h = Harness(settings, sleep, clock, leagues=leagues, timelines=timelines)
    sleep.scheduler = h.scheduler

    await h.scheduler.run_live_tick()
    assert sleep.reset is not None
    assert await sleep.reset == 1
    assert h.sent_types() == []

    # Re-sighted mid-game after the reset: primed again, nothing replayed
    await h.scheduler.run_live_tick()
    assert h.sent_types() == []
    assert len(h.scheduler.cache) == 1


def test_status_counts_started_matches(settings, sleep, clock) -> None:
    h = Harness(settings, sleep, clock)
    entry = h.scheduler.cache.entry("m1", clock())
    entry.start_notified = True
    h.scheduler.cache.entry("m2", clock())

    status = h.scheduler.status()
    assert (status["tracked_matches"], status["notified_starts"]) == (2, 1)
    assert not status["running"]


@pytest.mark.asyncio
async def test_failing_job_is_contained(settings, sleep, clock) -> None:
    h = Harness(settings, sleep, clock)

    async def explode() -> None:
        raise RuntimeError("boom")

    await h.scheduler._run_job("explode", explode)


@pytest.mark.asyncio
async def test_start_and_stop(settings, clock) -> None:
    async def idle(_: float) -> None:
        await asyncio.sleep(0)

    h = Harness(settings, idle, clock)
    h.scheduler.start()
    h.scheduler.start()
    assert h.scheduler.running
    for _ in range(10):
        await asyncio.sleep(0)
    await h.scheduler.stop()

    status = h.scheduler.status()
    assert not status["running"]
    assert status["tick_count"] >= 1
