"""
Progression Orchestrator

Single entry point for activity that earns XP, and the only path that
mutates progression state. One award runs as one per-user store transaction:

1. Read the user's current total_xp, streak and ledger
2. Drop rewards already granted in their dedupe window
3. Append to the XP ledger (plus the weekly bonus for timeline events)
4. Register activity for the event's calendar day
5. Aggregate state and evaluate achievements; unlock rewards are appended
   to the ledger and achievements re-evaluated until nothing new unlocks
6. Compare before/after totals for a level-up

Either every write lands or none does. Write conflicts retry the whole unit
with backoff; other store failures propagate unchanged.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

from simp_tracker import config
from simp_tracker.db.stores import ProgressionStore
from simp_tracker.gamification.achievement_system import AchievementEvaluator, build_snapshot
from simp_tracker.gamification.leveling import LevelTable
from simp_tracker.gamification.reward_rules import (
    TIMELINE_SOURCE,
    WEEKLY_BONUS_SOURCE,
    Award,
    awarded_this_month,
    improvement_awards,
    parse_status,
    performance_awards,
    red_flag_source,
    status_change_source,
    weekly_bonus_due,
)
from simp_tracker.gamification.streak_system import StreakTracker, activity_date_for, advance_streak
from simp_tracker.gamification.xp_ledger import XPLedger, validate_amount
from simp_tracker.gamification.xp_rewards import ACHIEVEMENT_SOURCE, get_xp_for_source
from simp_tracker.models.achievement import Achievement
from simp_tracker.models.progression import ProgressionResult, StreakState, XPTransaction
from simp_tracker.models.relationship import RelationshipStatus
from simp_tracker.resilience.metrics import (
    record_achievement_unlocked,
    record_level_up,
    record_xp_awarded,
)
from simp_tracker.resilience.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class ProgressionOrchestrator:
    """Façade over ledger, leveling, streaks and achievements"""

    def __init__(
        self,
        store: ProgressionStore,
        levels: Optional[LevelTable] = None,
        max_retries: int = config.CONFLICT_MAX_RETRIES,
        retry_base_delay: float = config.RETRY_BASE_DELAY,
        low_simp_threshold: int = config.LOW_SIMP_INDEX_THRESHOLD,
    ):
        self.store = store
        self.levels = levels or LevelTable.from_config()
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.low_simp_threshold = low_simp_threshold

    # ------------------------------------------------------------------
    # Awards
    # ------------------------------------------------------------------

    async def award_xp(
        self,
        user_id: str,
        amount: int,
        source: str,
        *,
        occurred_at: Optional[datetime] = None,
        relationship_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ProgressionResult:
        """
        Award XP and bring level, streak and achievements up to date

        A timeline_event_added award also grants the weekly update bonus
        when it completes a third distinct day within the last seven.

        Args:
            user_id: Account ID
            amount: Positive integer XP amount
            source: Activity tag
            occurred_at: Event time (defaults to now); its calendar day drives the streak
            relationship_id: Related partner, if any
            metadata: Free-form context stored on the ledger entry

        Returns:
            ProgressionResult with level_up, streak_count and new_achievements

        Raises:
            ValidationError: bad amount, unknown account timezone or
                out-of-order event date (nothing written)
            NotFoundError: unknown user
            ConflictError: write conflicts persisted past the retry budget
            StoreError: store I/O failure (nothing written)
        """
        validate_amount(amount, user_id)
        award = Award(source=source, amount=amount, metadata=metadata)
        return await self._award(user_id, [award], occurred_at, relationship_id)

    async def award_for_source(self, user_id: str, source: str, **kwargs: Any) -> ProgressionResult:
        """Award the XP_REWARDS amount for source"""
        return await self.award_xp(user_id, get_xp_for_source(source), source, **kwargs)

    async def award_timeline_event(
        self,
        user_id: str,
        relationship_id: str,
        event_type: str,
        *,
        occurred_at: Optional[datetime] = None,
    ) -> ProgressionResult:
        """Award a logged timeline event (weekly bonus included when due)"""
        return await self.award_for_source(
            user_id,
            TIMELINE_SOURCE,
            occurred_at=occurred_at,
            relationship_id=relationship_id,
            metadata={"event_type": event_type},
        )

    async def award_status_change(
        self,
        user_id: str,
        relationship_id: str,
        old_status: Union[RelationshipStatus, str],
        new_status: Union[RelationshipStatus, str],
        *,
        occurred_at: Optional[datetime] = None,
    ) -> Optional[ProgressionResult]:
        """
        Award a relationship status transition

        Returns:
            ProgressionResult, or None when the transition earns nothing
            (nothing is written and the streak is untouched)

        Raises:
            ValidationError: unknown status
        """
        source = status_change_source(old_status, new_status)
        if source is None:
            logger.debug(f"Status change {old_status} -> {new_status} for user {user_id} earns no XP")
            return None

        return await self.award_for_source(
            user_id,
            source,
            occurred_at=occurred_at,
            relationship_id=relationship_id,
            metadata={
                "old_status": parse_status(old_status, "old_status").value,
                "new_status": parse_status(new_status, "new_status").value,
            },
        )

    async def award_red_flag(
        self,
        user_id: str,
        relationship_id: str,
        severity: str,
        *,
        occurred_at: Optional[datetime] = None,
    ) -> ProgressionResult:
        """Award a documented red flag; "Critical" severity earns the early-warning reward"""
        return await self.award_for_source(
            user_id,
            red_flag_source(severity),
            occurred_at=occurred_at,
            relationship_id=relationship_id,
            metadata={"severity": severity},
        )

    async def check_performance_rewards(
        self,
        user_id: str,
        relationship_id: str,
        *,
        simp_index: Optional[float] = None,
        intimacy_score: Optional[int] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Optional[ProgressionResult]:
        """
        Award low_simp_index / high_intimacy for a relationship's current numbers

        Each reward is granted at most once per relationship per calendar month.

        Returns:
            ProgressionResult, or None when no reward is due
        """
        awards = performance_awards(simp_index, intimacy_score, self.low_simp_threshold)
        return await self._award(user_id, awards, occurred_at, relationship_id)

    async def check_improvement_rewards(
        self,
        user_id: str,
        relationship_id: str,
        *,
        old_simp_index: Optional[float] = None,
        new_simp_index: Optional[float] = None,
        old_intimacy: Optional[int] = None,
        new_intimacy: Optional[int] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Optional[ProgressionResult]:
        """
        Award simp_index_improved / intimacy_improved for a before/after edit

        Each reward is granted at most once per relationship per calendar month.

        Returns:
            ProgressionResult, or None when no reward is due
        """
        awards = improvement_awards(old_simp_index, new_simp_index, old_intimacy, new_intimacy)
        return await self._award(user_id, awards, occurred_at, relationship_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_user_progress(self, user_id: str) -> Dict[str, Any]:
        """
        Get user's current XP, level and streak

        Returns:
            {
                'user_id': str,
                'total_xp': int,
                'level': int,
                'xp_in_current_level': int,
                'xp_to_next_level': int | None,
                'is_max_level': bool,
                'streak_count': int,
                'best_streak': int
            }
        """
        user = await self.store.get_user(user_id)
        progress = self.levels.progress(user.total_xp)

        return {
            "user_id": user_id,
            "total_xp": user.total_xp,
            "level": progress.level,
            "xp_in_current_level": progress.xp_in_current_level,
            "xp_to_next_level": progress.xp_to_next_level,
            "is_max_level": progress.is_max_level,
            "streak_count": user.streak.streak_count,
            "best_streak": user.streak.best_streak,
        }

    async def get_history(self, user_id: str) -> List[XPTransaction]:
        """XP transactions, most recent first"""
        return await XPLedger(self.store, self.levels).history(user_id)

    async def get_xp_earned(self, user_id: str, start: datetime, end: Optional[datetime] = None) -> int:
        return await XPLedger(self.store, self.levels).earned_between(user_id, start, end)

    async def reconcile(self, user_id: str) -> bool:
        """Check that the ledger sum matches the stored total_xp"""
        return await XPLedger(self.store, self.levels).reconcile(user_id)

    async def get_streak(self, user_id: str) -> StreakState:
        return await StreakTracker(self.store).get_streak(user_id)

    async def get_user_achievements(self, user_id: str) -> Dict[str, Any]:
        return await AchievementEvaluator(self.store).get_user_achievements(user_id)

    async def get_achievement_progress(self, user_id: str) -> List[Dict[str, Any]]:
        """Progress toward each locked achievement, closest to completion first"""
        user = await self.store.get_user(user_id)
        snapshot = build_snapshot(
            user,
            await self.store.list_transactions(user_id),
            await self.store.list_relationships(user_id),
            low_simp_threshold=self.low_simp_threshold,
        )
        return await AchievementEvaluator(self.store).progress(user_id, snapshot)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _award(
        self,
        user_id: str,
        awards: Sequence[Award],
        occurred_at: Optional[datetime],
        relationship_id: Optional[str],
    ) -> Optional[ProgressionResult]:
        if not awards:
            return None
        occurred_at = occurred_at or datetime.now(timezone.utc)

        result = await retry_with_backoff(
            self._award_once,
            user_id,
            list(awards),
            occurred_at,
            relationship_id,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
        )
        if result is None:
            logger.debug(f"No reward due for user {user_id}: {[a.source for a in awards]} already granted")
            return None

        for transaction in result.transactions:
            record_xp_awarded(transaction.source, transaction.amount)
        for achievement in result.new_achievements:
            record_achievement_unlocked(achievement.key)
        if result.level_up:
            record_level_up()
            logger.info(
                f"User {user_id} leveled up from {result.level_up.old_level} "
                f"to {result.level_up.new_level}!"
            )

        logger.info(
            f"Progression processed for user {user_id}: "
            f"sources={[t.source for t in result.transactions]}, "
            f"xp={sum(t.amount for t in result.transactions)}, total={result.total_xp}, "
            f"streak={result.streak_count}, achievements={len(result.new_achievements)}"
        )
        return result

    async def _award_once(
        self,
        user_id: str,
        awards: List[Award],
        occurred_at: datetime,
        relationship_id: Optional[str],
    ) -> Optional[ProgressionResult]:
        async with self.store.transaction(user_id) as session:
            ledger = XPLedger(session, self.levels)
            streaks = StreakTracker(session)
            evaluator = AchievementEvaluator(session)

            before = await session.get_user(user_id)
            activity_date = activity_date_for(occurred_at, before.timezone)
            history = await session.list_transactions(user_id)

            due = [
                a for a in awards
                if not (a.monthly and awarded_this_month(
                    history, a.source, relationship_id, activity_date, before.timezone
                ))
            ]
            if not due:
                return None

            # Out-of-order dates must fail before the ledger is touched
            advance_streak(before.streak, activity_date, user_id=user_id)

            transactions: List[XPTransaction] = []
            for award in due:
                transactions.append(
                    await ledger.append(
                        user_id,
                        award.amount,
                        award.source,
                        relationship_id=relationship_id,
                        metadata=award.metadata,
                        occurred_at=occurred_at,
                    )
                )

            if any(a.source == TIMELINE_SOURCE for a in due) and weekly_bonus_due(
                await session.list_transactions(user_id), activity_date, before.timezone
            ):
                transactions.append(
                    await ledger.append(
                        user_id,
                        get_xp_for_source(WEEKLY_BONUS_SOURCE),
                        WEEKLY_BONUS_SOURCE,
                        occurred_at=occurred_at,
                    )
                )

            streak_count = await streaks.register_activity(user_id, activity_date)

            definitions = await session.list_definitions()
            relationships = await session.list_relationships(user_id)
            new_achievements: List[Achievement] = []

            # Each round unlocks at least one new achievement or stops
            while True:
                user = await session.get_user(user_id)
                snapshot = build_snapshot(
                    user, await session.list_transactions(user_id), relationships, self.low_simp_threshold
                )
                unlocked = await evaluator.evaluate(user_id, snapshot)
                if not unlocked:
                    break

                new_achievements.extend(unlocked)
                rewarded = [a for a in unlocked if a.xp_reward > 0]
                if not rewarded:
                    break

                for achievement in rewarded:
                    transactions.append(
                        await ledger.append(
                            user_id,
                            achievement.xp_reward,
                            ACHIEVEMENT_SOURCE,
                            metadata={"achievement_key": achievement.key},
                            occurred_at=occurred_at,
                        )
                    )

            after = await session.get_user(user_id)

        position = {a.key: i for i, a in enumerate(definitions)}
        new_achievements.sort(key=lambda a: (-a.priority, position.get(a.key, len(position))))

        return ProgressionResult(
            level_up=self.levels.detect_level_up(before.total_xp, after.total_xp),
            streak_count=streak_count,
            new_achievements=new_achievements,
            transactions=transactions,
            total_xp=after.total_xp,
            level=after.level,
        )
