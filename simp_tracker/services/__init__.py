"""
Service Layer Package

Wiring between a progression store and the engine components:
- ServiceContainer: lazily builds ledger, level table, streak tracker,
  relationship scorer, achievement evaluator and progression orchestrator
"""

from simp_tracker.services.container import ServiceContainer

__all__ = [
    "ServiceContainer",
]
