"""Unit tests for streak tracking"""
import pydantic
import pytest
from datetime import date, datetime, timedelta, timezone

from simp_tracker.exceptions import ValidationError
from simp_tracker.gamification.streak_system import (
    StreakTracker,
    activity_date_for,
    advance_streak,
)
from simp_tracker.models.progression import StreakState, UserProgress


class TestAdvanceStreak:
    """Pure streak transitions"""

    def test_first_activity_starts_streak(self, today):
        state = advance_streak(StreakState(), today)
        assert state.streak_count == 1
        assert state.last_activity_date == today
        assert state.best_streak == 1

    def test_same_day_is_unchanged(self, today):
        state = StreakState(streak_count=3, last_activity_date=today, best_streak=3)
        assert advance_streak(state, today) is state

    def test_next_day_continues(self, today):
        state = StreakState(streak_count=3, last_activity_date=today, best_streak=3)
        new_state = advance_streak(state, today + timedelta(days=1))
        assert new_state.streak_count == 4
        assert new_state.best_streak == 4

    def test_gap_resets_to_one(self, today):
        state = StreakState(streak_count=7, last_activity_date=today, best_streak=7)
        new_state = advance_streak(state, today + timedelta(days=3))
        assert new_state.streak_count == 1
        assert new_state.best_streak == 7

    def test_out_of_order_rejected(self, today):
        state = StreakState(streak_count=2, last_activity_date=today, best_streak=2)
        with pytest.raises(ValidationError):
            advance_streak(state, today - timedelta(days=1))


class TestActivityDate:
    """Instant -> calendar day"""

    def test_uses_account_timezone(self):
        occurred_at = datetime(2024, 6, 15, 2, 0, tzinfo=timezone.utc)
        assert activity_date_for(occurred_at, "UTC") == date(2024, 6, 15)
        assert activity_date_for(occurred_at, "America/New_York") == date(2024, 6, 14)

    def test_naive_is_utc(self):
        assert activity_date_for(datetime(2024, 6, 15, 23, 30), "UTC") == date(2024, 6, 15)

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError) as exc_info:
            activity_date_for(datetime(2024, 6, 15, tzinfo=timezone.utc), "Mars/Olympus")
        assert exc_info.value.field == "timezone"


class TestUserTimezone:

    def test_known_zone_accepted(self):
        assert UserProgress(user_id="u", timezone="Europe/Berlin").timezone == "Europe/Berlin"

    @pytest.mark.parametrize("zone", ["Mars/Olympus", "../etc/passwd"])
    def test_unknown_zone_rejected(self, zone):
        with pytest.raises(pydantic.ValidationError):
            UserProgress(user_id="u", timezone=zone)


class TestStreakTracker:
    """Streak registration against the store"""

    @pytest.mark.asyncio
    async def test_same_day_counts_once(self, store, test_user_id, today):
        """N registrations on one date increment at most once"""
        tracker = StreakTracker(store)

        counts = [await tracker.register_activity(test_user_id, today) for _ in range(5)]

        assert counts == [1, 1, 1, 1, 1]
        assert (await tracker.get_streak(test_user_id)).streak_count == 1

    @pytest.mark.asyncio
    async def test_consecutive_days(self, store, test_user_id, today):
        tracker = StreakTracker(store)

        for offset in range(4):
            count = await tracker.register_activity(test_user_id, today + timedelta(days=offset))

        assert count == 4
        streak = await tracker.get_streak(test_user_id)
        assert streak.best_streak == 4
        assert streak.last_activity_date == today + timedelta(days=3)

    @pytest.mark.asyncio
    async def test_broken_streak_keeps_best(self, store, test_user_id, today):
        tracker = StreakTracker(store)
        await tracker.register_activity(test_user_id, today)
        await tracker.register_activity(test_user_id, today + timedelta(days=1))

        count = await tracker.register_activity(test_user_id, today + timedelta(days=5))

        assert count == 1
        assert (await tracker.get_streak(test_user_id)).best_streak == 2

    @pytest.mark.asyncio
    async def test_out_of_order_leaves_state(self, store, test_user_id, today):
        tracker = StreakTracker(store)
        await tracker.register_activity(test_user_id, today)

        with pytest.raises(ValidationError):
            await tracker.register_activity(test_user_id, today - timedelta(days=2))

        streak = await tracker.get_streak(test_user_id)
        assert streak.streak_count == 1
        assert streak.last_activity_date == today

    @pytest.mark.asyncio
    async def test_does_not_touch_xp(self, store, test_user_id, today):
        store.add_user(test_user_id, total_xp=1500, level=2)
        tracker = StreakTracker(store)

        await tracker.register_activity(test_user_id, today)

        user = await store.get_user(test_user_id)
        assert user.total_xp == 1500
        assert user.level == 2
