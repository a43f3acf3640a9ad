"""
Adaptive polling policy for the live-score loop.
The delay between ticks is short while any match is live and long otherwise.
"""
from __future__ import annotations

import random
from typing import Optional

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger
from shared.utils.metrics import POLL_INTERVAL

logger = get_logger(__name__)


class AdaptiveInterval:
    """
    Two-level interval driven by the live-match count of the previous tick.

    ``update`` returns True only when the interval actually changed; setting
    the same interval again is a no-op.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._live_s = self._settings.live_poll_interval_s
        self._idle_s = self._settings.idle_poll_interval_s
        self._current = self._idle_s
        POLL_INTERVAL.set(self._current)

    @property
    def current(self) -> float:
        return self._current

    @property
    def is_fast(self) -> bool:
        return self._current == self._live_s

    def update(self, live_count: int) -> bool:
        target = self._live_s if live_count > 0 else self._idle_s
        if target == self._current:
            return False
        previous, self._current = self._current, target
        POLL_INTERVAL.set(target)
        logger.info(
            "poll_interval_changed",
            previous_s=previous,
            interval_s=target,
            live_matches=live_count,
        )
        return True


def jitter(low: float, high: float, rng: Optional[random.Random] = None) -> float:
    """Uniform delay in [low, high] used between outbound requests."""
    if high <= low:
        return max(0.0, low)
    return (rng or random).uniform(low, high)
