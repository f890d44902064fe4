"""Achievement models for gamification"""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any
from datetime import datetime, timezone


class AchievementTier(str, Enum):
    """Achievement tiers/difficulty levels"""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


# Default priority per tier (higher shows first)
TIER_PRIORITY = {
    AchievementTier.BRONZE: 10,
    AchievementTier.SILVER: 20,
    AchievementTier.GOLD: 30,
    AchievementTier.PLATINUM: 40,
}


class AchievementCriteria(BaseModel):
    """Unlock rule: compare a snapshot metric against a target"""
    model_config = ConfigDict(frozen=True)

    metric: str  # e.g. "streak_count", "source_count:peer_validation"
    operator: str = "gte"
    value: Any = None


class Achievement(BaseModel):
    """Achievement definition"""
    model_config = ConfigDict(frozen=True)

    id: str
    key: str
    name: str
    description: str = ""
    criteria: AchievementCriteria
    tier: AchievementTier = AchievementTier.BRONZE
    priority: int = 0
    xp_reward: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _default_priority(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("priority") is None:
            tier = AchievementTier(data.get("tier", AchievementTier.BRONZE))
            data = {**data, "priority": TIER_PRIORITY[tier]}
        return data


class UnlockRecord(BaseModel):
    """User's unlocked achievement"""
    model_config = ConfigDict(frozen=True)

    user_id: str
    achievement_key: str
    unlocked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
