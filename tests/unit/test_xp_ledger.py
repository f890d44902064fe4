"""Unit tests for the XP ledger"""
import asyncio
import pytest
from datetime import datetime, timedelta, timezone

from simp_tracker.exceptions import NotFoundError, ValidationError
from simp_tracker.gamification.xp_ledger import XPLedger
from simp_tracker.models.progression import StreakState


@pytest.fixture
def ledger(store, levels):
    return XPLedger(store, levels)


class TestAppend:

    @pytest.mark.asyncio
    async def test_append_updates_total_and_level(self, ledger, store, test_user_id):
        """Appending moves total_xp and derived level together"""
        transaction = await ledger.append(test_user_id, 1200, "partner_added", relationship_id="rel-1")

        user = await store.get_user(test_user_id)
        assert user.total_xp == 1200
        assert user.level == 2
        assert transaction.amount == 1200
        assert transaction.source == "partner_added"
        assert transaction.relationship_id == "rel-1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -10, 2.5, True, "10"])
    async def test_rejects_invalid_amounts(self, ledger, store, test_user_id, amount):
        """Invalid amounts are rejected before any write"""
        with pytest.raises(ValidationError):
            await ledger.append(test_user_id, amount, "partner_added")

        user = await store.get_user(test_user_id)
        assert user.total_xp == 0
        assert await store.list_transactions(test_user_id) == []

    @pytest.mark.asyncio
    async def test_rejects_empty_source(self, ledger, test_user_id):
        with pytest.raises(ValidationError):
            await ledger.append(test_user_id, 10, "")

    @pytest.mark.asyncio
    async def test_unknown_user(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.append("nobody", 10, "partner_added")

    @pytest.mark.asyncio
    async def test_sum_matches_total_after_every_append(self, ledger, store, test_user_id):
        """sum(ledger) == total_xp at every point"""
        for amount in [5, 10, 250, 1, 999]:
            await ledger.append(test_user_id, amount, "timeline_event_added")
            transactions = await store.list_transactions(test_user_id)
            user = await store.get_user(test_user_id)
            assert sum(t.amount for t in transactions) == user.total_xp

    @pytest.mark.asyncio
    async def test_concurrent_appends_lose_nothing(self, ledger, store, test_user_id):
        """Concurrent appends for one user are serialized"""
        await asyncio.gather(*[
            ledger.append(test_user_id, 5, "sticky_note_created") for _ in range(20)
        ])

        user = await store.get_user(test_user_id)
        assert user.total_xp == 100
        assert len(await store.list_transactions(test_user_id)) == 20

    @pytest.mark.asyncio
    async def test_append_keeps_streak(self, ledger, store, test_user_id, today):
        streak = StreakState(streak_count=4, last_activity_date=today, best_streak=6)
        store.add_user(test_user_id, streak=streak)

        await ledger.append(test_user_id, 10, "partner_info_updated")

        user = await store.get_user(test_user_id)
        assert user.streak == streak


class TestQueries:

    @pytest.mark.asyncio
    async def test_history_most_recent_first(self, ledger, test_user_id):
        await ledger.append(test_user_id, 10, "first")
        await ledger.append(test_user_id, 20, "second")
        await ledger.append(test_user_id, 30, "third")

        history = await ledger.history(test_user_id)
        assert [t.source for t in history] == ["third", "second", "first"]

    @pytest.mark.asyncio
    async def test_history_empty(self, ledger, test_user_id):
        assert await ledger.history(test_user_id) == []

    @pytest.mark.asyncio
    async def test_earned_between(self, ledger, test_user_id, now):
        await ledger.append(test_user_id, 10, "old", occurred_at=now - timedelta(days=10))
        await ledger.append(test_user_id, 20, "recent", occurred_at=now - timedelta(days=2))
        await ledger.append(test_user_id, 40, "today", occurred_at=now)

        assert await ledger.earned_between(test_user_id, now - timedelta(days=7)) == 60
        assert await ledger.earned_between(
            test_user_id, now - timedelta(days=7), now - timedelta(days=1)
        ) == 20

    @pytest.mark.asyncio
    async def test_reconcile_consistent(self, ledger, test_user_id):
        await ledger.append(test_user_id, 75, "second_chance")
        assert await ledger.reconcile(test_user_id) is True

    @pytest.mark.asyncio
    async def test_reconcile_detects_drift(self, ledger, store, test_user_id):
        await ledger.append(test_user_id, 75, "second_chance")
        store.add_user(test_user_id, total_xp=500)

        assert await ledger.reconcile(test_user_id) is False
