"""Unit tests for the leveling calculator"""
import pytest

from simp_tracker.exceptions import ConfigurationError
from simp_tracker.gamification.leveling import LevelTable


class TestLevelFor:
    """XP -> level mapping"""

    def test_zero_xp_is_level_one(self, levels):
        assert levels.level_for(0) == 1

    def test_negative_xp_is_level_one(self, levels):
        assert levels.level_for(-50) == 1

    def test_threshold_boundaries(self, levels):
        assert levels.level_for(999) == 1
        assert levels.level_for(1000) == 2
        assert levels.level_for(1001) == 2
        assert levels.level_for(8999) == 9
        assert levels.level_for(9000) == 10

    def test_capped_at_max_level(self, levels):
        assert levels.max_level == 10
        assert levels.level_for(1_000_000) == 10

    def test_level_never_decreases_as_xp_grows(self, small_levels):
        previous = small_levels.level_for(0)
        for xp in range(0, 700, 7):
            level = small_levels.level_for(xp)
            assert level >= previous
            previous = level


class TestDetectLevelUp:
    """Level-up detection"""

    def test_crossing_threshold(self, levels):
        result = levels.detect_level_up(900, 1100)
        assert result is not None
        assert result.old_level == 1
        assert result.new_level == 2
        assert result.xp_gained == 200

    def test_crossing_several_levels(self, small_levels):
        result = small_levels.detect_level_up(50, 600)
        assert result.old_level == 1
        assert result.new_level == 4

    def test_staying_below_threshold(self, levels):
        assert levels.detect_level_up(100, 999) is None

    def test_same_total(self, levels):
        assert levels.detect_level_up(1500, 1500) is None


class TestProgress:
    """Progress inside a level"""

    def test_mid_level(self, levels):
        progress = levels.progress(1500)
        assert progress.level == 2
        assert progress.xp_in_current_level == 500
        assert progress.xp_to_next_level == 500
        assert progress.is_max_level is False

    def test_fresh_user(self, levels):
        progress = levels.progress(0)
        assert progress.level == 1
        assert progress.xp_in_current_level == 0
        assert progress.xp_to_next_level == 1000

    def test_max_level(self, levels):
        progress = levels.progress(9500)
        assert progress.level == 10
        assert progress.xp_in_current_level == 500
        assert progress.xp_to_next_level is None
        assert progress.is_max_level is True


class TestTableValidation:
    """Threshold table must be a valid monotonic table"""

    def test_must_start_at_zero(self):
        with pytest.raises(ConfigurationError):
            LevelTable([100, 200])

    def test_must_not_be_empty(self):
        with pytest.raises(ConfigurationError):
            LevelTable([])

    def test_must_be_strictly_increasing(self):
        with pytest.raises(ConfigurationError):
            LevelTable([0, 100, 100, 300])

    def test_threshold_lookup(self, small_levels):
        assert small_levels.threshold(1) == 0
        assert small_levels.threshold(3) == 250
