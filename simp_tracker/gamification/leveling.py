"""
Leveling Calculator

Maps cumulative XP to a level through a threshold table.

T(n) is the total XP needed to reach level n:
- T(1) is always 0
- every threshold is strictly greater than the previous one
- the number of thresholds is the max level; XP beyond the last
  threshold never raises the level further

Default table (LEVEL_THRESHOLDS): 10 levels, 1000 XP per level.
"""

from bisect import bisect_right
from typing import Iterable, Optional
import logging

from simp_tracker import config
from simp_tracker.exceptions import ConfigurationError
from simp_tracker.models.progression import LevelProgress, LevelUpResult

logger = logging.getLogger(__name__)


class LevelTable:
    """Monotonic XP threshold table"""

    def __init__(self, thresholds: Iterable[int]):
        thresholds = tuple(thresholds)

        if not thresholds or thresholds[0] != 0:
            raise ConfigurationError(
                message=f"Level table must start at 0 XP, got {thresholds[:1]}",
                config_key="LEVEL_THRESHOLDS"
            )

        for previous, current in zip(thresholds, thresholds[1:]):
            if current <= previous:
                raise ConfigurationError(
                    message=f"Level thresholds must be strictly increasing ({previous} -> {current})",
                    config_key="LEVEL_THRESHOLDS"
                )

        self.thresholds = thresholds

    @classmethod
    def from_config(cls) -> "LevelTable":
        return cls(config.parse_thresholds(config.LEVEL_THRESHOLDS))

    @property
    def max_level(self) -> int:
        return len(self.thresholds)

    def threshold(self, level: int) -> int:
        """Total XP required to reach level (1-indexed)"""
        return self.thresholds[level - 1]

    def level_for(self, total_xp: int) -> int:
        """Greatest level n such that T(n) <= total_xp"""
        if total_xp <= 0:
            return 1
        return bisect_right(self.thresholds, total_xp)

    def detect_level_up(self, old_xp: int, new_xp: int) -> Optional[LevelUpResult]:
        """
        Compare the levels of two XP totals

        Returns:
            LevelUpResult when the levels differ, otherwise None.
            Purely informational; nothing is written.
        """
        old_level = self.level_for(old_xp)
        new_level = self.level_for(new_xp)

        if old_level == new_level:
            return None

        return LevelUpResult(
            old_level=old_level,
            new_level=new_level,
            xp_gained=new_xp - old_xp,
        )

    def progress(self, total_xp: int) -> LevelProgress:
        """
        Position of total_xp inside its level

        Returns:
            LevelProgress with xp_in_current_level and xp_to_next_level
            (None once the max level is reached)
        """
        level = self.level_for(total_xp)
        xp_in_level = max(total_xp, 0) - self.threshold(level)

        if level >= self.max_level:
            return LevelProgress(
                level=level,
                xp_in_current_level=xp_in_level,
                xp_to_next_level=None,
                is_max_level=True,
            )

        return LevelProgress(
            level=level,
            xp_in_current_level=xp_in_level,
            xp_to_next_level=self.threshold(level + 1) - max(total_xp, 0),
        )
