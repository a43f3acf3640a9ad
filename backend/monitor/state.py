"""
In-memory State Cache.

Owned by the scheduler and handed to the change detector. Only the live-poll
tick's call chain and the scheduler's reset mutate it, under one lock; the
health thread reads counts from a copied view.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional

from shared.models.enums import MatchStatus


@dataclass
class StateCacheEntry:
    """Everything remembered about one match between polls."""
    match_id: str
    first_seen_at: datetime
    last_status: Optional[MatchStatus] = None
    last_home: Optional[int] = None
    last_away: Optional[int] = None
    # Highest score per side already announced
    notified_home: int = 0
    notified_away: int = 0
    notified_events: set[str] = field(default_factory=set)
    start_notified: bool = False
    half_time_notified: bool = False
    second_half_notified: bool = False
    end_notified: bool = False
    first_seen_live: bool = False
    timeline_primed: bool = False


class StateCache:
    def __init__(self) -> None:
        self._entries: dict[str, StateCacheEntry] = {}

    def get(self, match_id: str) -> Optional[StateCacheEntry]:
        return self._entries.get(match_id)

    def entry(self, match_id: str, now: datetime) -> StateCacheEntry:
        """Return the entry for ``match_id``, creating it on first sighting."""
        existing = self._entries.get(match_id)
        if existing is None:
            existing = StateCacheEntry(match_id=match_id, first_seen_at=now)
            self._entries[match_id] = existing
        return existing

    def reset(self) -> int:
        """Drop every entry; returns how many were purged."""
        purged = len(self._entries)
        self._entries.clear()
        return purged

    def started_count(self) -> int:
        return sum(1 for e in list(self._entries.values()) if e.start_notified)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[StateCacheEntry]:
        return iter(self._entries.values())
