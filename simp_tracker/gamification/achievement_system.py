"""
Achievement System

Rule engine that unlocks achievements when an aggregate snapshot of a
user's state satisfies their criteria.

Criteria are generic {metric, operator, value} rules:
- metric: a ProgressionSnapshot field (total_xp, level, streak_count, ...)
  or a parameterised count (source_count:<source>, status_count:<status>)
- operator: gte / lte / eq / exists

Features:
- Idempotent per (user, achievement): unlocks go through
  insert_unlock_if_absent, so a lost race is a no-op, not a double unlock
- Only achievements unlocked by the current call are returned, most
  significant (priority) first
- Progress tracking for locked achievements
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging

from simp_tracker import config
from simp_tracker.db.stores import ProgressionStore
from simp_tracker.gamification.relationship_scorer import round_for_display, simp_index
from simp_tracker.models.achievement import Achievement, AchievementCriteria
from simp_tracker.models.progression import UserProgress, XPTransaction
from simp_tracker.models.relationship import Relationship, RelationshipStatus

logger = logging.getLogger(__name__)


# ============================================
# Operators
# ============================================

def gte(value, target) -> bool:
    return value is not None and value >= target


def lte(value, target) -> bool:
    return value is not None and value <= target


def eq(value, target) -> bool:
    return value is not None and value == target


def exists(value, target=None) -> bool:
    return value is not None


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "gte": gte,
    "lte": lte,
    "eq": eq,
    "exists": exists,
}


# ============================================
# Snapshot
# ============================================

@dataclass(frozen=True)
class ProgressionSnapshot:
    """Aggregate facts achievement criteria are evaluated against"""
    user_id: str
    total_xp: int = 0
    level: int = 1
    streak_count: int = 0
    best_streak: int = 0
    transaction_count: int = 0
    relationship_count: int = 0
    active_relationship_count: int = 0
    financial_total: float = 0
    time_total: float = 0
    max_intimacy: int = 0
    low_simp_count: int = 0
    source_counts: Dict[str, int] = field(default_factory=dict)
    status_counts: Dict[str, int] = field(default_factory=dict)

    def metric(self, name: str) -> Optional[Any]:
        """Resolve a criteria metric; None when the metric is unknown"""
        prefix, _, argument = name.partition(":")

        if argument:
            if prefix == "source_count":
                return self.source_counts.get(argument, 0)
            if prefix == "status_count":
                return self.status_counts.get(argument, 0)
            return None

        if name in ("source_counts", "status_counts", "user_id"):
            return None
        return getattr(self, name, None)


def build_snapshot(
    user: UserProgress,
    transactions: Iterable[XPTransaction],
    relationships: Iterable[Relationship],
    low_simp_threshold: int = config.LOW_SIMP_INDEX_THRESHOLD,
) -> ProgressionSnapshot:
    """
    Aggregate a user's progress, ledger and relationships

    low_simp_count counts non-graveyard relationships with a rounded simp
    index strictly between 0 and low_simp_threshold.
    """
    transactions = list(transactions)
    relationships = list(relationships)
    active = [r for r in relationships if r.status != RelationshipStatus.GRAVEYARD]

    low_simp_count = 0
    for r in active:
        index = round_for_display(simp_index(r.financial_total, r.time_total, r.intimacy_score))
        if 0 < index < low_simp_threshold:
            low_simp_count += 1

    return ProgressionSnapshot(
        user_id=user.user_id,
        total_xp=user.total_xp,
        level=user.level,
        streak_count=user.streak.streak_count,
        best_streak=user.streak.best_streak,
        transaction_count=len(transactions),
        relationship_count=len(relationships),
        active_relationship_count=len(active),
        financial_total=sum(r.financial_total for r in relationships),
        time_total=sum(r.time_total for r in relationships),
        max_intimacy=max((r.intimacy_score for r in relationships), default=0),
        low_simp_count=low_simp_count,
        source_counts=dict(Counter(t.source for t in transactions)),
        status_counts=dict(Counter(r.status.value for r in relationships)),
    )


def criteria_met(criteria: AchievementCriteria, snapshot: ProgressionSnapshot) -> bool:
    """Evaluate one criteria rule against a snapshot"""
    operator_fn = OPERATORS.get(criteria.operator)
    if operator_fn is None:
        logger.warning(f"Unknown achievement operator {criteria.operator!r}, treating as locked")
        return False

    value = snapshot.metric(criteria.metric)
    if value is None and criteria.operator != "exists":
        logger.warning(f"Unknown achievement metric {criteria.metric!r}, treating as locked")
        return False

    return operator_fn(value, criteria.value)


# ============================================
# Evaluator
# ============================================

class AchievementEvaluator:
    """Checks and unlocks achievements for a user"""

    def __init__(self, store: ProgressionStore):
        self.store = store

    async def evaluate(self, user_id: str, snapshot: ProgressionSnapshot) -> List[Achievement]:
        """
        Unlock every achievement whose criteria the snapshot satisfies

        Args:
            user_id: Account ID
            snapshot: Aggregate state (see build_snapshot)

        Returns:
            Achievements unlocked by this call only, ordered by priority
            (highest first), ties in definition order
        """
        definitions = await self.store.list_definitions()
        unlocked_keys = {r.achievement_key for r in await self.store.list_unlocked(user_id)}

        newly_unlocked: List[tuple[int, Achievement]] = []

        for position, achievement in enumerate(definitions):
            # Skip if already unlocked
            if achievement.key in unlocked_keys:
                continue

            if not criteria_met(achievement.criteria, snapshot):
                continue

            record = await self.store.insert_unlock_if_absent(user_id, achievement.key)
            if record is None:
                # Someone else unlocked it first
                logger.debug(f"Achievement {achievement.key} already unlocked for user {user_id}")
                continue

            newly_unlocked.append((position, achievement))
            logger.info(
                f"User {user_id} unlocked achievement: {achievement.key} "
                f"({achievement.name}) +{achievement.xp_reward} XP"
            )

        newly_unlocked.sort(key=lambda item: (-item[1].priority, item[0]))
        return [achievement for _, achievement in newly_unlocked]

    async def get_user_achievements(self, user_id: str) -> Dict[str, Any]:
        """
        Get user's unlocked achievements

        Returns:
            {
                'unlocked': [{'achievement': Achievement, 'unlocked_at': datetime}],
                'total_unlocked': int,
                'total_achievements': int,
                'total_xp_from_achievements': int
            }
        """
        definitions = {a.key: a for a in await self.store.list_definitions()}
        records = await self.store.list_unlocked(user_id)

        unlocked = [
            {"achievement": definitions[r.achievement_key], "unlocked_at": r.unlocked_at}
            for r in records if r.achievement_key in definitions
        ]
        # Most recent first
        unlocked.sort(key=lambda x: x["unlocked_at"], reverse=True)

        return {
            "unlocked": unlocked,
            "total_unlocked": len(unlocked),
            "total_achievements": len(definitions),
            "total_xp_from_achievements": sum(u["achievement"].xp_reward for u in unlocked),
        }

    async def progress(self, user_id: str, snapshot: ProgressionSnapshot) -> List[Dict[str, Any]]:
        """
        Progress toward each locked achievement, closest to completion first

        Returns:
            [{'achievement': Achievement, 'current': Any, 'required': Any, 'percentage': int}]
        """
        unlocked_keys = {r.achievement_key for r in await self.store.list_unlocked(user_id)}
        locked = []

        for achievement in await self.store.list_definitions():
            if achievement.key in unlocked_keys:
                continue

            current = snapshot.metric(achievement.criteria.metric)
            required = achievement.criteria.value
            locked.append({
                "achievement": achievement,
                "current": current,
                "required": required,
                "percentage": _percentage(achievement.criteria, current, criteria_met(achievement.criteria, snapshot)),
            })

        locked.sort(key=lambda x: x["percentage"], reverse=True)
        return locked


def _percentage(criteria: AchievementCriteria, current: Any, met: bool) -> int:
    if met:
        return 100
    if criteria.operator != "gte" or not isinstance(current, (int, float)):
        return 0
    required = criteria.value
    if not required:
        return 100
    return max(0, min(100, int(current / required * 100)))

