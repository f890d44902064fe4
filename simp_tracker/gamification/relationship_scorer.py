"""
Relationship Scorer

Read-path scoring for tracked relationships:
- Simp Index: (money spent + hours invested * 20) / intimacy score
- Decay level: active / rust / cobweb by days since the last update
- High risk: simp index above SIMP_INDEX_THRESHOLD

Scores are pure functions of the relationship's current attributes and are
recomputed on every read; nothing is cached or written back.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Mapping, Optional, Union
import logging

import pydantic

from simp_tracker import config
from simp_tracker.db.stores import RelationshipStore
from simp_tracker.exceptions import ConfigurationError, ValidationError
from simp_tracker.models.relationship import DecayLevel, Relationship, RelationshipScore

logger = logging.getLogger(__name__)

# One hour of time invested weighs as much as this much money
HOUR_WEIGHT = 20


@dataclass(frozen=True)
class DecayThresholds:
    """Day boundaries between decay buckets"""
    rust_after_days: int = config.DECAY_RUST_AFTER_DAYS
    cobweb_after_days: int = config.DECAY_COBWEB_AFTER_DAYS

    def __post_init__(self):
        if self.rust_after_days <= 0 or self.cobweb_after_days <= self.rust_after_days:
            raise ConfigurationError(
                message=(
                    f"Decay thresholds must satisfy 0 < rust ({self.rust_after_days}) "
                    f"< cobweb ({self.cobweb_after_days})"
                ),
                config_key="DECAY_COBWEB_AFTER_DAYS"
            )


def simp_index(financial_total: float, time_total: float, intimacy_score: float) -> float:
    """Raw simp index; intimacy below 1 is clamped to 1"""
    return (financial_total + time_total * HOUR_WEIGHT) / max(intimacy_score, 1)


def round_for_display(value: float) -> int:
    """Round half away from zero (45.5 -> 46)"""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def days_since(last_updated_at: datetime, now: datetime) -> int:
    """Whole days elapsed; future timestamps count as 0"""
    if last_updated_at.tzinfo is None:
        last_updated_at = last_updated_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max((now - last_updated_at).days, 0)


def decay_level(
    last_updated_at: datetime,
    now: datetime,
    thresholds: DecayThresholds = DecayThresholds()
) -> DecayLevel:
    """Classify staleness; non-decreasing as elapsed time grows"""
    elapsed = days_since(last_updated_at, now)

    if elapsed >= thresholds.cobweb_after_days:
        return DecayLevel.COBWEB
    if elapsed >= thresholds.rust_after_days:
        return DecayLevel.RUST
    return DecayLevel.ACTIVE


class RelationshipScorer:
    """Stateless scorer; safe to share across concurrent requests"""

    def __init__(
        self,
        thresholds: Optional[DecayThresholds] = None,
        high_risk_threshold: int = config.SIMP_INDEX_THRESHOLD,
        store: Optional[RelationshipStore] = None,
    ):
        self.thresholds = thresholds or DecayThresholds()
        self.high_risk_threshold = high_risk_threshold
        self.store = store

    def score(
        self,
        relationship: Union[Relationship, Mapping[str, Any]],
        now: Optional[datetime] = None
    ) -> RelationshipScore:
        """
        Score one relationship

        Args:
            relationship: Relationship model or raw attribute mapping
            now: Reference time for decay (defaults to current UTC time)

        Returns:
            RelationshipScore with simp_index, decay_level and high_risk

        Raises:
            ValidationError: malformed attributes
        """
        if not isinstance(relationship, Relationship):
            relationship = self._parse(relationship)

        now = now or datetime.now(timezone.utc)
        raw = simp_index(
            relationship.financial_total,
            relationship.time_total,
            relationship.intimacy_score,
        )
        rounded = round_for_display(raw)

        return RelationshipScore(
            relationship_id=relationship.id,
            simp_index=rounded,
            raw_simp_index=raw,
            decay_level=decay_level(relationship.last_updated_at, now, self.thresholds),
            days_since_update=days_since(relationship.last_updated_at, now),
            high_risk=rounded > self.high_risk_threshold,
        )

    async def score_by_id(self, relationship_id: str, now: Optional[datetime] = None) -> RelationshipScore:
        """Load and score a relationship (NotFoundError if unknown)"""
        relationship = await self._require_store().get_relationship(relationship_id)
        return self.score(relationship, now=now)

    async def score_all(self, user_id: str, now: Optional[datetime] = None) -> List[RelationshipScore]:
        """Score every relationship of a user, highest simp index first"""
        relationships = await self._require_store().list_relationships(user_id)
        scores = [self.score(r, now=now) for r in relationships]
        scores.sort(key=lambda s: s.raw_simp_index, reverse=True)
        return scores

    def _require_store(self) -> RelationshipStore:
        if self.store is None:
            raise ConfigurationError("RelationshipScorer has no relationship store configured")
        return self.store

    @staticmethod
    def _parse(raw: Mapping[str, Any]) -> Relationship:
        try:
            return Relationship.model_validate(dict(raw))
        except pydantic.ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or None
            raise ValidationError(
                message=f"Malformed relationship attributes: {first['msg']}",
                field=field,
                value=first.get("input"),
                operation="score_relationship",
                cause=e
            )
