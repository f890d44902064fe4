"""
Reward Rules

Decide which XP_REWARDS sources an event earns. Every function here is pure:
the orchestrator feeds it the ledger it read inside the user's transaction,
so "already awarded" checks and the award itself see the same state.

Rules:
- Status change: talking -> dating, dating -> exclusive, anything ->
  graveyard (clean breakup), graveyard -> anything else (second chance)
- Red flag: "Critical" severity earns the early-warning reward
- Performance: simp index below the low threshold, intimacy of 8 or more
- Improvement: simp index down by 100+, intimacy up by 2+
- Weekly bonus: timeline events on 3+ distinct days of the last 7, once per
  calendar week (weeks start on Sunday)

Performance and improvement rewards are granted at most once per
relationship per calendar month. All calendar math uses the account timezone.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from simp_tracker import config
from simp_tracker.exceptions import ValidationError
from simp_tracker.gamification.streak_system import activity_date_for
from simp_tracker.gamification.xp_rewards import get_xp_for_source
from simp_tracker.models.progression import XPTransaction
from simp_tracker.models.relationship import RelationshipStatus

TIMELINE_SOURCE = "timeline_event_added"
WEEKLY_BONUS_SOURCE = "weekly_update_bonus"
WEEKLY_BONUS_MIN_DAYS = 3
WEEKLY_BONUS_WINDOW_DAYS = 7

HIGH_INTIMACY_SCORE = 8
SIMP_INDEX_IMPROVEMENT = 100
INTIMACY_IMPROVEMENT = 2

CRITICAL_SEVERITY = "critical"


@dataclass(frozen=True)
class Award:
    """One ledger entry the orchestrator should write"""
    source: str
    amount: int
    metadata: Optional[Dict[str, Any]] = None
    monthly: bool = False  # once per relationship per calendar month

    @classmethod
    def for_source(cls, source: str, metadata: Optional[Dict[str, Any]] = None, monthly: bool = False) -> "Award":
        return cls(source=source, amount=get_xp_for_source(source), metadata=metadata, monthly=monthly)


def parse_status(value: Union[RelationshipStatus, str], field: str) -> RelationshipStatus:
    """Status enum from an enum or a case-insensitive name"""
    try:
        return RelationshipStatus(value.lower() if isinstance(value, str) else value)
    except ValueError:
        raise ValidationError(
            f"Unknown relationship status: {value!r}",
            field=field,
            value=value,
            operation="status_change_source"
        )


def status_change_source(
    old_status: Union[RelationshipStatus, str],
    new_status: Union[RelationshipStatus, str],
) -> Optional[str]:
    """
    Reward source for a status transition, or None if it earns nothing

    Moving to "complicated" earns nothing, as does keeping the same status.
    """
    old = parse_status(old_status, "old_status")
    new = parse_status(new_status, "new_status")

    if old == new:
        return None
    if old == RelationshipStatus.TALKING and new == RelationshipStatus.DATING:
        return "status_talking_to_dating"
    if old == RelationshipStatus.DATING and new == RelationshipStatus.EXCLUSIVE:
        return "status_dating_to_exclusive"
    if new == RelationshipStatus.COMPLICATED:
        return None
    if new == RelationshipStatus.GRAVEYARD:
        return "clean_breakup"
    if old == RelationshipStatus.GRAVEYARD:
        return "second_chance"
    return None


def red_flag_source(severity: str) -> str:
    """Critical red flags earn more than ordinary ones"""
    if severity and severity.strip().lower() == CRITICAL_SEVERITY:
        return "critical_red_flag_early"
    return "red_flag_documented"


def performance_awards(
    simp_index: Optional[float] = None,
    intimacy_score: Optional[int] = None,
    low_simp_threshold: int = config.LOW_SIMP_INDEX_THRESHOLD,
) -> List[Award]:
    """Awards for a relationship's current numbers (zero index means no data yet)"""
    awards = []
    if simp_index is not None and 0 < simp_index < low_simp_threshold:
        awards.append(Award.for_source("low_simp_index", {"simp_index": simp_index}, monthly=True))
    if intimacy_score is not None and intimacy_score >= HIGH_INTIMACY_SCORE:
        awards.append(Award.for_source("high_intimacy", {"intimacy_score": intimacy_score}, monthly=True))
    return awards


def improvement_awards(
    old_simp_index: Optional[float] = None,
    new_simp_index: Optional[float] = None,
    old_intimacy: Optional[int] = None,
    new_intimacy: Optional[int] = None,
) -> List[Award]:
    """Awards for a before/after change of one relationship"""
    awards = []
    if (
        old_simp_index is not None
        and new_simp_index is not None
        and old_simp_index - new_simp_index >= SIMP_INDEX_IMPROVEMENT
    ):
        awards.append(Award.for_source(
            "simp_index_improved",
            {"old_simp_index": old_simp_index, "new_simp_index": new_simp_index},
            monthly=True,
        ))
    if (
        old_intimacy is not None
        and new_intimacy is not None
        and new_intimacy - old_intimacy >= INTIMACY_IMPROVEMENT
    ):
        awards.append(Award.for_source(
            "intimacy_improved",
            {"old_intimacy": old_intimacy, "new_intimacy": new_intimacy},
            monthly=True,
        ))
    return awards


def week_start(day: date) -> date:
    """Sunday on or before day"""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def awarded_this_month(
    transactions: Iterable[XPTransaction],
    source: str,
    relationship_id: Optional[str],
    activity_date: date,
    tz_name: str,
) -> bool:
    """True if source was already granted for this relationship in activity_date's month"""
    month_start = activity_date.replace(day=1)
    return any(
        t.source == source
        and t.relationship_id == relationship_id
        and activity_date_for(t.created_at, tz_name) >= month_start
        for t in transactions
    )


def weekly_bonus_due(transactions: Iterable[XPTransaction], activity_date: date, tz_name: str) -> bool:
    """
    Check the weekly update bonus against the ledger

    Expects the ledger to already contain the triggering timeline event.
    """
    window_start = activity_date - timedelta(days=WEEKLY_BONUS_WINDOW_DAYS - 1)
    current_week = week_start(activity_date)
    event_days = set()

    for t in transactions:
        day = activity_date_for(t.created_at, tz_name)
        if t.source == WEEKLY_BONUS_SOURCE and day >= current_week:
            return False
        if t.source == TIMELINE_SOURCE and window_start <= day <= activity_date:
            event_days.add(day)

    return len(event_days) >= WEEKLY_BONUS_MIN_DAYS
