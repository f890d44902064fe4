"""
Service Container - Dependency Injection Container

Wires a progression store and configuration into the engine's components.
Components are lazy-loaded on first access. Ledger, streak and achievement
state is reached only through the progression orchestrator, which owns every
write; the scorer is read-only. The container is owned by the caller
(one per application or test); there is no global instance.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from simp_tracker import config
from simp_tracker.db.stores import ProgressionStore
from simp_tracker.gamification.relationship_scorer import DecayThresholds

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Dependency injection container for progression components.

    The store is injected; level table and decay thresholds default to the
    configured values.
    """

    # Infrastructure dependencies (injected)
    store: ProgressionStore
    level_thresholds: Optional[tuple] = None
    decay_thresholds: Optional[DecayThresholds] = None
    high_risk_threshold: int = config.SIMP_INDEX_THRESHOLD

    # Components (lazy-loaded via properties)
    _levels: Optional[object] = field(default=None, init=False, repr=False)
    _scorer: Optional[object] = field(default=None, init=False, repr=False)
    _progression: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def levels(self):
        """Get LevelTable instance (lazy-loaded)"""
        if self._levels is None:
            from simp_tracker.gamification.leveling import LevelTable
            if self.level_thresholds is None:
                self._levels = LevelTable.from_config()
            else:
                self._levels = LevelTable(self.level_thresholds)
            logger.debug("LevelTable instantiated")
        return self._levels

    @property
    def scorer(self):
        """Get RelationshipScorer instance (lazy-loaded)"""
        if self._scorer is None:
            from simp_tracker.gamification.relationship_scorer import RelationshipScorer
            self._scorer = RelationshipScorer(
                thresholds=self.decay_thresholds,
                high_risk_threshold=self.high_risk_threshold,
                store=self.store
            )
            logger.debug("RelationshipScorer instantiated")
        return self._scorer

    @property
    def progression(self):
        """Get ProgressionOrchestrator instance (lazy-loaded)"""
        if self._progression is None:
            from simp_tracker.gamification.progression import ProgressionOrchestrator
            self._progression = ProgressionOrchestrator(self.store, levels=self.levels)
            logger.debug("ProgressionOrchestrator instantiated")
        return self._progression
