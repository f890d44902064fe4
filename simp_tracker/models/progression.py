"""Progression models: users, XP ledger entries, streaks, level results"""
from datetime import date, datetime, timezone
from typing import Any, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from simp_tracker import config
from simp_tracker.models.achievement import Achievement


class StreakState(BaseModel):
    """Consecutive-day activity state for one user"""
    model_config = ConfigDict(frozen=True)

    streak_count: int = Field(default=0, ge=0)
    last_activity_date: Optional[date] = None
    best_streak: int = Field(default=0, ge=0)


class UserProgress(BaseModel):
    """Progression fields of an account"""
    user_id: str
    total_xp: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)
    streak: StreakState = Field(default_factory=StreakState)
    timezone: str = config.REFERENCE_TIMEZONE

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Account timezone must be a known IANA zone"""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError, OSError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def streak_count(self) -> int:
        return self.streak.streak_count


class XPTransaction(BaseModel):
    """Immutable XP ledger entry"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    amount: int = Field(gt=0)
    source: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    relationship_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class LevelUpResult(BaseModel):
    """Informational level change between two XP totals"""
    old_level: int
    new_level: int
    xp_gained: int


class LevelProgress(BaseModel):
    """Where a total sits inside the level table"""
    level: int
    xp_in_current_level: int
    xp_to_next_level: Optional[int] = None  # None at max level
    is_max_level: bool = False


class ProgressionResult(BaseModel):
    """Consolidated outcome of one XP-earning event"""
    level_up: Optional[LevelUpResult] = None
    streak_count: int
    new_achievements: list[Achievement] = Field(default_factory=list)
    transactions: list[XPTransaction] = Field(default_factory=list)
    total_xp: int
    level: int

    @property
    def leveled_up(self) -> bool:
        return self.level_up is not None
