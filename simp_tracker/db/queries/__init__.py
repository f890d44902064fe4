"""
Database queries

Module organization:
- progression.py: schema, PostgreSQL implementation of the progression store
"""

from simp_tracker.db.queries.progression import (
    SCHEMA,
    PostgresProgressionStore,
    PostgresSession,
    init_schema,
    seed_achievements,
)

__all__ = [
    "SCHEMA",
    "PostgresProgressionStore",
    "PostgresSession",
    "init_schema",
    "seed_achievements",
]
