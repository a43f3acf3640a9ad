"""Domain enumerations for the match monitor."""
from __future__ import annotations

from enum import Enum


class MatchStatus(str, Enum):
    """Coarse status every provider vocabulary is folded into."""
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINISHED = "finished"


class Side(str, Enum):
    HOME = "home"
    AWAY = "away"


class EventKind(str, Enum):
    """Timeline event kinds; anything else lands in UNRECOGNIZED."""
    GOAL = "goal"
    YELLOW_CARD = "yellow_card"
    RED_CARD = "red_card"
    SECOND_YELLOW = "second_yellow"
    PENALTY_MISSED = "penalty_missed"
    PENALTY_SAVED = "penalty_saved"
    VAR = "var"
    SUBSTITUTION = "substitution"
    UNRECOGNIZED = "unrecognized"


class TransitionKind(str, Enum):
    MATCH_STARTED = "match_started"
    GOAL = "goal"
    HALF_TIME = "half_time"
    SECOND_HALF = "second_half"
    MATCH_ENDED = "match_ended"
    TIMELINE = "timeline"


class PredictionOutcome(str, Enum):
    PENDING = "pending"
    EXACT = "exact"
    PARTIAL = "partial"
    RESULT = "result"
    MISS = "miss"


class NotificationType(str, Enum):
    """Type tag carried in the push payload's structured data."""
    MATCH_START = "match_start"
    GOAL = "goal"
    YELLOW_CARD = "yellow_card"
    RED_CARD = "red_card"
    PENALTY = "penalty"
    VAR = "var"
    SUBSTITUTION = "substitution"
    HALF_TIME = "half_time"
    SECOND_HALF_START = "second_half_start"
    MATCH_END = "match_end"
    PREDICTION_RESULT = "prediction_result"


class AudienceKind(str, Enum):
    BROADCAST = "broadcast"
    USER = "user"
