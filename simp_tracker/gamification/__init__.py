"""
Gamification system for simp-tracker

Provides XP, reward rules, levels, streaks, achievements and relationship scoring
"""

from simp_tracker.gamification.achievement_catalog import DEFAULT_ACHIEVEMENTS
from simp_tracker.gamification.achievement_system import (
    AchievementEvaluator,
    ProgressionSnapshot,
    build_snapshot,
    criteria_met,
)
from simp_tracker.gamification.leveling import LevelTable
from simp_tracker.gamification.progression import ProgressionOrchestrator
from simp_tracker.gamification.relationship_scorer import (
    DecayThresholds,
    RelationshipScorer,
    decay_level,
    simp_index,
)
from simp_tracker.gamification.reward_rules import (
    Award,
    improvement_awards,
    performance_awards,
    red_flag_source,
    status_change_source,
    weekly_bonus_due,
)
from simp_tracker.gamification.streak_system import StreakTracker, activity_date_for, advance_streak
from simp_tracker.gamification.xp_ledger import XPLedger
from simp_tracker.gamification.xp_rewards import XP_REWARDS, get_xp_for_source

__all__ = [
    "DEFAULT_ACHIEVEMENTS",
    "AchievementEvaluator",
    "ProgressionSnapshot",
    "build_snapshot",
    "criteria_met",
    "LevelTable",
    "ProgressionOrchestrator",
    "DecayThresholds",
    "RelationshipScorer",
    "decay_level",
    "simp_index",
    "Award",
    "improvement_awards",
    "performance_awards",
    "red_flag_source",
    "status_change_source",
    "weekly_bonus_due",
    "StreakTracker",
    "activity_date_for",
    "advance_streak",
    "XPLedger",
    "XP_REWARDS",
    "get_xp_for_source",
]
