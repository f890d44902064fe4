"""Unit tests for relationship scoring"""
import pytest
from datetime import datetime, timedelta, timezone

from simp_tracker.db.memory_store import InMemoryProgressionStore
from simp_tracker.exceptions import ConfigurationError, NotFoundError, ValidationError
from simp_tracker.gamification.relationship_scorer import (
    DecayThresholds,
    RelationshipScorer,
    days_since,
    decay_level,
    round_for_display,
    simp_index,
)
from simp_tracker.models.relationship import DecayLevel


class TestSimpIndex:
    """Simp index formula"""

    def test_whole_number(self):
        assert round_for_display(simp_index(45, 3, 3)) == 35

    def test_rounds_to_nearest(self):
        raw = simp_index(120, 10, 7)
        assert raw == pytest.approx(45.71, abs=0.01)
        assert round_for_display(raw) == 46

    def test_half_rounds_up(self):
        assert round_for_display(45.5) == 46
        assert round_for_display(44.5) == 45

    def test_zero_intimacy_clamped(self):
        assert simp_index(100, 0, 0) == 100

    def test_no_investment(self):
        assert simp_index(0, 0, 5) == 0


class TestDecayLevel:
    """Staleness buckets"""

    def test_buckets_with_default_thresholds(self, now):
        thresholds = DecayThresholds(rust_after_days=14, cobweb_after_days=30)

        assert decay_level(now, now, thresholds) == DecayLevel.ACTIVE
        assert decay_level(now - timedelta(days=13), now, thresholds) == DecayLevel.ACTIVE
        assert decay_level(now - timedelta(days=14), now, thresholds) == DecayLevel.RUST
        assert decay_level(now - timedelta(days=29), now, thresholds) == DecayLevel.RUST
        assert decay_level(now - timedelta(days=30), now, thresholds) == DecayLevel.COBWEB

    def test_monotonic_in_elapsed_time(self, now):
        """active -> rust -> cobweb, never backwards"""
        thresholds = DecayThresholds(rust_after_days=3, cobweb_after_days=9)
        previous = DecayLevel.ACTIVE

        for days in range(0, 40):
            level = decay_level(now - timedelta(days=days), now, thresholds)
            assert level.rank >= previous.rank
            previous = level

        assert previous == DecayLevel.COBWEB

    def test_future_timestamp_is_active(self, now):
        assert days_since(now + timedelta(days=2), now) == 0
        assert decay_level(now + timedelta(days=2), now) == DecayLevel.ACTIVE

    def test_naive_timestamps_are_utc(self, now):
        naive = datetime(2024, 6, 1, 12, 0)
        assert days_since(naive, now) == 14

    def test_invalid_thresholds(self):
        with pytest.raises(ConfigurationError):
            DecayThresholds(rust_after_days=30, cobweb_after_days=14)
        with pytest.raises(ConfigurationError):
            DecayThresholds(rust_after_days=0, cobweb_after_days=14)


class TestRelationshipScorer:
    """Scorer over models, mappings and stores"""

    def test_score_model(self, relationship_factory, now):
        relationship = relationship_factory(
            financial_total=45, time_total=3, intimacy_score=3,
            last_updated_at=now - timedelta(days=20),
        )
        score = RelationshipScorer(thresholds=DecayThresholds(14, 30)).score(relationship, now=now)

        assert score.relationship_id == "rel-1"
        assert score.simp_index == 35
        assert score.decay_level == DecayLevel.RUST
        assert score.days_since_update == 20
        assert score.high_risk is False

    def test_score_mapping(self, now):
        score = RelationshipScorer().score(
            {
                "id": "rel-9",
                "user_id": "user-123",
                "financial_total": 120,
                "time_total": 10,
                "intimacy_score": 7,
                "last_updated_at": now,
            },
            now=now,
        )
        assert score.simp_index == 46
        assert score.decay_level == DecayLevel.ACTIVE

    def test_high_risk_above_threshold(self, relationship_factory, now):
        relationship = relationship_factory(financial_total=1000, time_total=10, intimacy_score=2)
        score = RelationshipScorer(high_risk_threshold=500).score(relationship, now=now)

        assert score.simp_index == 600
        assert score.high_risk is True

    def test_pure_and_repeatable(self, relationship_factory, now):
        relationship = relationship_factory(financial_total=80, time_total=2, intimacy_score=3)
        scorer = RelationshipScorer()

        assert scorer.score(relationship, now=now) == scorer.score(relationship, now=now)

    @pytest.mark.parametrize("attributes", [
        {"financial_total": -10},
        {"financial_total": "lots"},
        {"financial_total": float("inf")},
        {"time_total": float("inf")},
        {"time_total": float("nan")},
        {"intimacy_score": 11},
        {"last_updated_at": "yesterday-ish"},
    ])
    def test_malformed_attributes(self, attributes, now):
        raw = {
            "id": "rel-bad",
            "user_id": "user-123",
            "financial_total": 10,
            "time_total": 1,
            "intimacy_score": 5,
            "last_updated_at": now,
        }
        raw.update(attributes)

        with pytest.raises(ValidationError):
            RelationshipScorer().score(raw, now=now)

    def test_missing_attribute(self):
        with pytest.raises(ValidationError):
            RelationshipScorer().score({"id": "rel-bad", "user_id": "user-123"})

    @pytest.mark.asyncio
    async def test_score_by_id(self, relationships, now):
        store = InMemoryProgressionStore(relationships=relationships)
        scorer = RelationshipScorer(store=store)

        score = await scorer.score_by_id("rel-2", now=now)

        # (2000 + 50 * 20) / 2
        assert score.simp_index == 1500
        assert score.high_risk is True

    @pytest.mark.asyncio
    async def test_score_by_unknown_id(self, now):
        scorer = RelationshipScorer(store=InMemoryProgressionStore())
        with pytest.raises(NotFoundError):
            await scorer.score_by_id("missing", now=now)

    @pytest.mark.asyncio
    async def test_score_all_sorted(self, relationships, test_user_id, now):
        store = InMemoryProgressionStore(relationships=relationships)
        scores = await RelationshipScorer(store=store).score_all(test_user_id, now=now)

        assert [s.relationship_id for s in scores] == ["rel-2", "rel-1"]

    @pytest.mark.asyncio
    async def test_store_required_for_lookups(self):
        with pytest.raises(ConfigurationError):
            await RelationshipScorer().score_all("user-123")
