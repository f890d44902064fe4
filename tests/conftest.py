"""Global test fixtures and utilities for simp-tracker tests"""
import pytest
from datetime import date, datetime, timezone

from simp_tracker.db.memory_store import InMemoryProgressionStore
from simp_tracker.gamification.achievement_catalog import DEFAULT_ACHIEVEMENTS
from simp_tracker.gamification.leveling import LevelTable
from simp_tracker.models.achievement import Achievement, AchievementCriteria, AchievementTier
from simp_tracker.models.relationship import Relationship, RelationshipStatus


# ============================================================================
# Clock Fixtures
# ============================================================================

@pytest.fixture
def now():
    """Fixed reference time"""
    return datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def today():
    return date(2024, 6, 15)


# ============================================================================
# User Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


# ============================================================================
# Leveling Fixtures
# ============================================================================

@pytest.fixture
def levels():
    """Default table: 10 levels, 1000 XP apart"""
    return LevelTable([0, 1000, 2000, 3000, 4000, 5000, 6000, 7000, 8000, 9000])


@pytest.fixture
def small_levels():
    """Short table used by level-up tests"""
    return LevelTable([0, 100, 250, 500])


# ============================================================================
# Achievement Fixtures
# ============================================================================

def make_achievement(key, metric, value, tier=AchievementTier.BRONZE, xp_reward=0, operator="gte", priority=None):
    """Build an Achievement with id == key"""
    return Achievement(
        id=key,
        key=key,
        name=key.replace("_", " ").title(),
        criteria=AchievementCriteria(metric=metric, operator=operator, value=value),
        tier=tier,
        priority=priority,
        xp_reward=xp_reward,
    )


@pytest.fixture
def streak_achievements():
    """Two streak milestones without XP rewards"""
    return [
        make_achievement("streak_3", "streak_count", 3),
        make_achievement("streak_5", "streak_count", 5, tier=AchievementTier.SILVER),
    ]


# ============================================================================
# Relationship Fixtures
# ============================================================================

def make_relationship(rel_id="rel-1", user_id="user-123", **fields):
    fields.setdefault("last_updated_at", datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc))
    return Relationship(id=rel_id, user_id=user_id, **fields)


@pytest.fixture
def relationships(test_user_id):
    return [
        make_relationship(
            "rel-1", test_user_id, nickname="Alex", status=RelationshipStatus.DATING,
            financial_total=100, time_total=5, intimacy_score=4,
        ),
        make_relationship(
            "rel-2", test_user_id, nickname="Sam", status=RelationshipStatus.EXCLUSIVE,
            financial_total=2000, time_total=50, intimacy_score=2,
        ),
    ]


# ============================================================================
# Store Fixtures
# ============================================================================

@pytest.fixture
def store(test_user_id):
    """In-memory store with one fresh user and no achievements"""
    store = InMemoryProgressionStore()
    store.add_user(test_user_id)
    return store


@pytest.fixture
def catalog_store(test_user_id):
    """In-memory store seeded with the default achievement catalog"""
    store = InMemoryProgressionStore(definitions=DEFAULT_ACHIEVEMENTS)
    store.add_user(test_user_id)
    return store


@pytest.fixture
def achievement_factory():
    return make_achievement


@pytest.fixture
def relationship_factory():
    return make_relationship
