"""
Monitor scheduler.

Owns the State Cache and the four independent timers: the adaptive live-score
tick, the pending-prediction sweep, the periodic cache reset and the
leaderboard recompute. Each timer's runs never overlap and a failing run is
logged and retried on the next cycle.
"""
from __future__ import annotations

import asyncio
import random
import signal
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Coroutine, Optional

from shared.config import LeagueConfig, Settings, get_settings
from shared.models.domain import MatchSnapshot
from shared.models.enums import TransitionKind
from shared.utils.database import DatabaseManager
from shared.utils.health_server import start_health_server
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import (
    JOB_DURATION,
    JOB_ERRORS,
    LIVE_MATCHES,
    STATE_CACHE_SIZE,
    atrack_latency,
    start_metrics_server,
)

from ingest.providers.api_football import APIFootballProvider
from ingest.providers.base import LeagueFetcher, TimelineFetcher
from ingest.providers.espn import ESPNHeaderProvider
from ingest.providers.msn import MSNSportsProvider
from monitor.detector import ChangeDetector, Transition
from monitor.state import StateCache
from notifications import messages
from notifications.dispatcher import NotificationDispatcher
from notifications.gateway import ExpoPushGateway
from notifications.recipients import SQLUserDirectory
from predictions.correlator import MatchCorrelator
from predictions.leaderboard import LeaderboardAggregator, LeaderboardSummary
from predictions.processor import PredictionProcessor, SweepResult
from predictions.repository import SQLPredictionRepository
from scheduler.engine.polling import AdaptiveInterval, jitter

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TickResult:
    matches: int
    live: int
    transitions: int
    interval_s: float


class MonitorScheduler:
    def __init__(
        self,
        league_fetcher: LeagueFetcher,
        timeline_fetcher: Optional[TimelineFetcher],
        dispatcher: NotificationDispatcher,
        processor: PredictionProcessor,
        leaderboard: LeaderboardAggregator,
        secondary_fetcher: Optional[LeagueFetcher] = None,
        settings: Optional[Settings] = None,
        cache: Optional[StateCache] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._leagues = league_fetcher
        self._timelines = timeline_fetcher
        self._secondary = secondary_fetcher
        self._dispatcher = dispatcher
        self._processor = processor
        self._leaderboard = leaderboard
        self._cache = cache if cache is not None else StateCache()
        self._detector = ChangeDetector(self._cache, self._settings, clock)
        self._interval = AdaptiveInterval(self._settings)
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()

        # Held for a whole live tick and by the cache reset
        self._cache_lock = asyncio.Lock()
        self._tasks: list[asyncio.Task[None]] = []
        self._background: set[asyncio.Task[Any]] = set()
        self._running = False
        self._started_at: Optional[datetime] = None
        self._last_tick_at: Optional[datetime] = None
        self._tick_count = 0

    @property
    def cache(self) -> StateCache:
        return self._cache

    @property
    def interval(self) -> AdaptiveInterval:
        return self._interval

    @property
    def running(self) -> bool:
        return self._running

    # ── Jobs ────────────────────────────────────────────────────────────
    async def _fetch_all(self) -> list[MatchSnapshot]:
        s = self._settings
        plan: list[tuple[LeagueFetcher, LeagueConfig]] = [(self._leagues, lg) for lg in s.monitored_leagues]
        if self._secondary is not None:
            plan.extend((self._secondary, lg) for lg in s.espn_leagues)

        snapshots: list[MatchSnapshot] = []
        for fetcher, league in plan:
            await self._sleep(jitter(s.league_jitter_min_s, s.league_jitter_max_s, self._rng))
            try:
                snapshots.extend(await fetcher.fetch_league(league))
            except Exception as exc:
                logger.warning("league_fetch_failed", league=league.name, provider=fetcher.name, error=str(exc))
        return snapshots

    async def _notify(self, transition: Transition) -> None:
        payload = messages.for_transition(transition)
        if payload is None:
            return
        try:
            await self._dispatcher.dispatch(payload)
        except Exception as exc:
            logger.error(
                "notification_dispatch_failed",
                type=payload.type.value,
                match_id=transition.snapshot.id,
                error=str(exc),
            )

    async def _deliver(self, transitions: list[Transition], ended: list[MatchSnapshot]) -> None:
        for transition in transitions:
            await self._notify(transition)
            if transition.kind == TransitionKind.MATCH_ENDED:
                ended.append(transition.snapshot)

    async def _process_timeline(self, snapshot: MatchSnapshot) -> list[Transition]:
        if self._timelines is None or not snapshot.has_timeline:
            return []
        s = self._settings
        await self._sleep(jitter(s.timeline_jitter_min_s, s.timeline_jitter_max_s, self._rng))
        try:
            events = await self._timelines.fetch_timeline(snapshot)
            if events is None:
                return []
            return self._detector.detect_timeline(snapshot, events)
        except Exception as exc:
            logger.error("timeline_processing_failed", match_id=snapshot.id, error=str(exc), exc_info=True)
            return []

    async def run_live_tick(self) -> TickResult:
        async with self._cache_lock:
            return await self._live_tick()

    async def _live_tick(self) -> TickResult:
        self._tick_count += 1
        self._last_tick_at = self._clock()
        snapshots = await self._fetch_all()
        live_count = sum(1 for s in snapshots if s.is_live)
        LIVE_MATCHES.set(live_count)

        fired = 0
        ended: list[MatchSnapshot] = []
        for snapshot in snapshots:
            try:
                transitions = self._detector.detect_match(snapshot)
            except Exception as exc:
                logger.error("match_processing_failed", match_id=snapshot.id, error=str(exc), exc_info=True)
                continue
            # Score transitions go out before the timeline round-trip
            await self._deliver(transitions, ended)
            fired += len(transitions)
            if snapshot.is_live:
                timeline = await self._process_timeline(snapshot)
                await self._deliver(timeline, ended)
                fired += len(timeline)

        if ended:
            self._spawn(self._processor.process_completed_matches(ended), "completed_matches")

        self._interval.update(live_count)
        logger.info(
            "live_tick_finished",
            tick=self._tick_count,
            matches=len(snapshots),
            live=live_count,
            transitions=fired,
            next_in_s=self._interval.current,
        )
        return TickResult(len(snapshots), live_count, fired, self._interval.current)

    async def run_prediction_sweep(self) -> SweepResult:
        return await self._processor.sweep(self._clock())

    async def run_cache_reset(self) -> int:
        """Purge the State Cache between live ticks, never during one."""
        async with self._cache_lock:
            purged = self._cache.reset()
        STATE_CACHE_SIZE.set(0)
        logger.info("state_cache_reset", purged=purged)
        return purged

    async def run_leaderboard(self) -> LeaderboardSummary:
        await self._leaderboard.roll_periods(self._clock())
        return await self._leaderboard.recompute()

    # ── Timers ──────────────────────────────────────────────────────────
    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("background_task_failed", task=task.get_name(), error=str(task.exception()))

    async def _run_job(self, name: str, job: Callable[[], Awaitable[Any]]) -> None:
        try:
            async with atrack_latency(JOB_DURATION, job=name):
                await job()
        except Exception as exc:
            JOB_ERRORS.labels(job=name).inc()
            logger.error("scheduler_job_failed", job=name, error=str(exc), exc_info=True)

    async def _live_loop(self, start_delay: float) -> None:
        await self._sleep(start_delay)
        while True:
            await self._run_job("live_tick", self.run_live_tick)
            # Re-read every cycle so an interval change applies to the very next wait
            await self._sleep(self._interval.current)

    async def _periodic(
        self,
        name: str,
        job: Callable[[], Awaitable[Any]],
        every_s: float,
        first_delay_s: float,
    ) -> None:
        await self._sleep(first_delay_s)
        while True:
            await self._run_job(name, job)
            await self._sleep(every_s)

    def start(self) -> None:
        """Arm all four timers after a short randomized delay."""
        if self._running:
            return
        s = self._settings
        self._running = True
        self._started_at = self._clock()
        delay = jitter(s.startup_delay_min_s, s.startup_delay_max_s, self._rng)
        self._tasks = [
            asyncio.create_task(self._live_loop(delay), name="live_tick"),
            asyncio.create_task(
                self._periodic(
                    "prediction_sweep",
                    self.run_prediction_sweep,
                    s.prediction_sweep_interval_s,
                    delay + s.prediction_sweep_initial_delay_s,
                ),
                name="prediction_sweep",
            ),
            asyncio.create_task(
                self._periodic(
                    "cache_reset",
                    self.run_cache_reset,
                    s.cache_reset_interval_s,
                    delay + s.cache_reset_interval_s,
                ),
                name="cache_reset",
            ),
            asyncio.create_task(
                self._periodic(
                    "leaderboard",
                    self.run_leaderboard,
                    s.leaderboard_interval_s,
                    delay + s.leaderboard_interval_s,
                ),
                name="leaderboard",
            ),
        ]
        logger.info("monitor_scheduler_started", start_delay_s=round(delay, 2), leagues=len(s.monitored_leagues))

    async def stop(self) -> None:
        """Cancel every timer and any in-flight background resolution."""
        pending = [*self._tasks, *self._background]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        self._background.clear()
        self._running = False
        logger.info("monitor_scheduler_stopped", ticks=self._tick_count)

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "last_tick_at": self._last_tick_at.isoformat() if self._last_tick_at else None,
            "tick_count": self._tick_count,
            "interval_s": self._interval.current,
            "tracked_matches": len(self._cache),
            "notified_starts": self._cache.started_count(),
        }


async def main() -> None:
    """Monitor service entrypoint."""
    settings = get_settings()
    setup_logging("monitor")
    start_metrics_server()

    db = DatabaseManager(settings)
    await db.connect()

    msn = MSNSportsProvider(settings=settings)
    espn = ESPNHeaderProvider(settings=settings)
    api_football = APIFootballProvider(settings=settings)
    gateway = ExpoPushGateway(settings=settings)
    clients = (msn, espn, api_football, gateway)
    for client in clients:
        await client.start()

    dispatcher = NotificationDispatcher(SQLUserDirectory(db), gateway, settings)
    repository = SQLPredictionRepository(db)
    processor = PredictionProcessor(
        repository,
        MatchCorrelator(msn, api_football, settings=settings),
        dispatcher,
        settings,
    )
    scheduler = MonitorScheduler(
        league_fetcher=msn,
        timeline_fetcher=msn,
        dispatcher=dispatcher,
        processor=processor,
        leaderboard=LeaderboardAggregator(repository),
        secondary_fetcher=espn,
        settings=settings,
    )

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    start_health_server("monitor", scheduler.status)
    scheduler.start()
    logger.info("monitor_service_started", instance_id=settings.instance_id)

    try:
        await shutdown.wait()
    finally:
        await scheduler.stop()
        for client in clients:
            await client.close()
        await db.disconnect()
        logger.info("monitor_service_stopped")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
