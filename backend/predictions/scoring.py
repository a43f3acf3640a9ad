"""
Scoring Engine.

``score_prediction`` is a pure function of the guessed and actual scores.
``apply_result`` folds one outcome into a user's running stats (counters,
points, streak, bonus) and ``grant_achievements`` appends any newly earned
badges. Period roll-over for weekly/monthly sums also lives here.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from shared.config import Settings, get_settings
from shared.models.domain import Achievement, UserStats
from shared.models.enums import PredictionOutcome


@dataclass(frozen=True)
class ScoringRules:
    exact: int = 10
    goal_difference: int = 5
    outcome: int = 3
    streak_threshold: int = 3
    streak_bonus: int = 2

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ScoringRules":
        s = settings or get_settings()
        return cls(
            exact=s.points_exact,
            goal_difference=s.points_goal_difference,
            outcome=s.points_outcome,
            streak_threshold=s.streak_threshold,
            streak_bonus=s.streak_bonus,
        )


DEFAULT_RULES = ScoringRules()


@dataclass(frozen=True)
class ScoreResult:
    points: int
    outcome: PredictionOutcome


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def score_prediction(
    predicted_home: int,
    predicted_away: int,
    actual_home: int,
    actual_away: int,
    rules: ScoringRules = DEFAULT_RULES,
) -> ScoreResult:
    """First matching tier wins: exact, goal difference, outcome, miss."""
    if predicted_home == actual_home and predicted_away == actual_away:
        return ScoreResult(rules.exact, PredictionOutcome.EXACT)
    predicted_margin = predicted_home - predicted_away
    actual_margin = actual_home - actual_away
    if predicted_margin == actual_margin:
        return ScoreResult(rules.goal_difference, PredictionOutcome.PARTIAL)
    if _sign(predicted_margin) == _sign(actual_margin):
        return ScoreResult(rules.outcome, PredictionOutcome.RESULT)
    return ScoreResult(0, PredictionOutcome.MISS)


def apply_result(
    stats: UserStats,
    result: ScoreResult,
    rules: ScoringRules = DEFAULT_RULES,
    now: Optional[datetime] = None,
) -> int:
    """
    Apply one resolved prediction to ``stats`` in place.

    Returns the total awarded (base + streak bonus). The bonus is decided by
    the base award being positive, not by the outcome class.
    """
    counts = stats.predictions
    outcome = result.outcome
    if outcome == PredictionOutcome.EXACT:
        counts.exact += 1
    elif outcome == PredictionOutcome.PARTIAL:
        counts.partial += 1
    elif outcome == PredictionOutcome.RESULT:
        counts.result += 1
    else:
        counts.miss += 1
    counts.total += 1
    counts.pending = max(0, counts.pending - 1)

    if outcome == PredictionOutcome.MISS:
        stats.current_streak = 0
    else:
        stats.current_streak += 1
        stats.best_streak = max(stats.best_streak, stats.current_streak)

    awarded = result.points
    if result.points > 0 and stats.current_streak >= rules.streak_threshold:
        awarded += rules.streak_bonus

    stats.total_points += awarded
    stats.weekly_points += awarded
    stats.monthly_points += awarded
    stats.last_points_update = now or datetime.now(timezone.utc)
    return awarded


# ── Achievements ────────────────────────────────────────────────────────
@dataclass(frozen=True)
class AchievementRule:
    type: str
    name: str
    description: str
    icon: str
    earned: Callable[[UserStats], bool]


ACHIEVEMENT_RULES: tuple[AchievementRule, ...] = (
    AchievementRule("first_prediction", "First Prediction", "Made your first prediction", "🎯",
                    lambda s: s.predictions.total >= 1),
    AchievementRule("first_exact", "Spot On", "Got your first exact score", "🎉",
                    lambda s: s.predictions.exact >= 1),
    AchievementRule("10_predictions", "Regular", "Made 10 predictions", "📊",
                    lambda s: s.predictions.total >= 10),
    AchievementRule("50_predictions", "Veteran", "Made 50 predictions", "🏅",
                    lambda s: s.predictions.total >= 50),
    AchievementRule("5_streak", "On Fire", "5 correct predictions in a row", "🔥",
                    lambda s: s.current_streak >= 5),
    AchievementRule("10_streak", "Unstoppable", "10 correct predictions in a row", "⚡",
                    lambda s: s.current_streak >= 10),
    AchievementRule("100_points", "Centurion", "Reached 100 points", "💯",
                    lambda s: s.total_points >= 100),
    AchievementRule("500_points", "Legend", "Reached 500 points", "👑",
                    lambda s: s.total_points >= 500),
)


def grant_achievements(stats: UserStats, now: Optional[datetime] = None) -> list[Achievement]:
    """Append each newly earned achievement once; returns the ones granted now."""
    earned_at = now or datetime.now(timezone.utc)
    granted: list[Achievement] = []
    for rule in ACHIEVEMENT_RULES:
        if stats.has_achievement(rule.type) or not rule.earned(stats):
            continue
        achievement = Achievement(
            type=rule.type,
            name=rule.name,
            description=rule.description,
            icon=rule.icon,
            earned_at=earned_at,
        )
        stats.achievements.append(achievement)
        granted.append(achievement)
    return granted


# ── Period roll-over ────────────────────────────────────────────────────
def week_start(moment: datetime) -> datetime:
    """Midnight UTC on the Monday of ``moment``'s ISO week."""
    moment = moment.astimezone(timezone.utc)
    monday = moment.date().toordinal() - moment.weekday()
    return datetime.fromordinal(monday).replace(tzinfo=timezone.utc)


def month_start(moment: datetime) -> datetime:
    moment = moment.astimezone(timezone.utc)
    return datetime(moment.year, moment.month, 1, tzinfo=timezone.utc)


def roll_periods(stats: UserStats, now: datetime) -> bool:
    """
    Zero weekly/monthly points when ``now`` falls in a later week/month than
    the stored period start. Returns True when anything changed.
    """
    changed = False
    current_week = week_start(now)
    if stats.week_start is None or week_start(stats.week_start) != current_week:
        if stats.week_start is not None:
            stats.weekly_points = 0
        stats.week_start = current_week
        changed = True

    current_month = month_start(now)
    if stats.month_start is None or month_start(stats.month_start) != current_month:
        if stats.month_start is not None:
            stats.monthly_points = 0
        stats.month_start = current_month
        changed = True
    return changed
