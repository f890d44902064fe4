"""Relationship (tracked partner) models"""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class RelationshipStatus(str, Enum):
    """Where a relationship currently stands"""
    TALKING = "talking"
    DATING = "dating"
    COMPLICATED = "complicated"
    SIGNED = "signed"
    EXCLUSIVE = "exclusive"
    GRAVEYARD = "graveyard"


class DecayLevel(str, Enum):
    """Staleness bucket, ordered from fresh to abandoned"""
    ACTIVE = "active"
    RUST = "rust"
    COBWEB = "cobweb"

    @property
    def rank(self) -> int:
        return _DECAY_ORDER.index(self)


_DECAY_ORDER = [DecayLevel.ACTIVE, DecayLevel.RUST, DecayLevel.COBWEB]


class Relationship(BaseModel):
    """Tracked partner attributes used for scoring"""
    id: str
    user_id: str
    nickname: str = ""
    status: RelationshipStatus = RelationshipStatus.TALKING
    financial_total: float = Field(default=0, ge=0, allow_inf_nan=False)  # money spent
    time_total: float = Field(default=0, ge=0, allow_inf_nan=False)  # hours invested
    intimacy_score: int = Field(default=1, ge=0, le=10)  # 1-10, 0 = unrated
    last_updated_at: datetime


class RelationshipScore(BaseModel):
    """Derived, never persisted"""
    relationship_id: Optional[str] = None
    simp_index: int
    raw_simp_index: float
    decay_level: DecayLevel
    days_since_update: int
    high_risk: bool = False
