"""
Streak Tracking System

Counts consecutive calendar days with at least one qualifying activity.

Logic (delta = activity_date - last_activity_date, in whole days):
- No prior activity: streak starts at 1
- delta == 0: already counted today, no change
- delta == 1: streak continues (+1)
- delta > 1: streak broken, reset to 1
- delta < 0: out-of-order event, rejected

Days are calendar dates in the account's reference timezone, not instants,
so any number of same-day calls leaves the streak untouched.
"""

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from simp_tracker.db.stores import ProgressionStore
from simp_tracker.exceptions import ValidationError
from simp_tracker.models.progression import StreakState

logger = logging.getLogger(__name__)


def advance_streak(state: StreakState, activity_date: date, user_id: Optional[str] = None) -> StreakState:
    """
    Apply one day of activity to a streak

    Returns:
        The new StreakState (the same object when nothing changes)

    Raises:
        ValidationError: activity_date is before the last recorded activity
    """
    last_date = state.last_activity_date

    # First activity
    if last_date is None:
        return StreakState(
            streak_count=1,
            last_activity_date=activity_date,
            best_streak=max(state.best_streak, 1),
        )

    delta = (activity_date - last_date).days

    if delta < 0:
        raise ValidationError(
            message=f"Activity date {activity_date} is before last activity {last_date}",
            field="activity_date",
            value=activity_date.isoformat(),
            user_id=user_id,
            operation="register_activity"
        )

    # Already counted today
    if delta == 0:
        return state

    if delta == 1:
        new_count = state.streak_count + 1
    else:
        logger.info(
            f"Streak broken for user {user_id}. "
            f"Was {state.streak_count}, gap was {delta} days"
        )
        new_count = 1

    return StreakState(
        streak_count=new_count,
        last_activity_date=activity_date,
        best_streak=max(state.best_streak, new_count),
    )


def activity_date_for(occurred_at: datetime, tz_name: str) -> date:
    """
    Calendar date of an instant in the given IANA timezone

    Naive datetimes are taken as UTC.

    Raises:
        ValidationError: tz_name is not a known IANA zone
    """
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise ValidationError(
            f"Unknown timezone: {tz_name}",
            field="timezone",
            value=tz_name,
            cause=e,
        )

    if occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=timezone.utc)
    return occurred_at.astimezone(zone).date()


class StreakTracker:
    """Streak registration over a progression store"""

    def __init__(self, store: ProgressionStore):
        self.store = store

    async def register_activity(self, user_id: str, activity_date: date) -> int:
        """
        Register activity for a calendar day

        Args:
            user_id: Account ID
            activity_date: Calendar date of the activity

        Returns:
            Current streak count after registration

        Raises:
            ValidationError: out-of-order date (state unchanged)
            NotFoundError: unknown user
        """
        async with self.store.transaction(user_id) as session:
            user = await session.get_user(user_id)
            new_state = advance_streak(user.streak, activity_date, user_id=user_id)

            if new_state == user.streak:
                return user.streak.streak_count

            await session.update_progress(
                user_id,
                total_xp=user.total_xp,
                level=user.level,
                streak=new_state,
                expected_total_xp=user.total_xp,
            )

        logger.info(
            f"Updated streak for user {user_id}: "
            f"{user.streak.streak_count} → {new_state.streak_count} days"
        )
        return new_state.streak_count

    async def get_streak(self, user_id: str) -> StreakState:
        user = await self.store.get_user(user_id)
        return user.streak
