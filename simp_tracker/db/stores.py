"""
Store interfaces the progression engine depends on

The engine never talks to a database directly. Everything goes through
these narrow protocols, so the same code runs against PostgreSQL
(simp_tracker.db.queries.progression) or the in-memory store used in tests
(simp_tracker.db.memory_store).
"""
from typing import AsyncContextManager, Optional, Protocol

from simp_tracker.models.achievement import Achievement, UnlockRecord
from simp_tracker.models.progression import StreakState, UserProgress, XPTransaction
from simp_tracker.models.relationship import Relationship


class UserStore(Protocol):
    async def get_user(self, user_id: str) -> UserProgress:
        """Raises NotFoundError for unknown users"""
        ...

    async def update_progress(
        self,
        user_id: str,
        total_xp: int,
        level: int,
        streak: StreakState,
        expected_total_xp: Optional[int] = None,
    ) -> UserProgress:
        """
        Atomically replace the progression fields of one user.

        When expected_total_xp is given the write is a compare-and-set and
        raises ConflictError if the stored total has moved on.
        """
        ...


class LedgerStore(Protocol):
    async def append_transaction(self, transaction: XPTransaction) -> XPTransaction:
        ...

    async def list_transactions(self, user_id: str) -> list[XPTransaction]:
        """Most recent first"""
        ...


class AchievementStore(Protocol):
    async def list_definitions(self) -> list[Achievement]:
        """Definition order is significant (tie-break for unlock ordering)"""
        ...

    async def list_unlocked(self, user_id: str) -> list[UnlockRecord]:
        ...

    async def insert_unlock_if_absent(self, user_id: str, achievement_key: str) -> Optional[UnlockRecord]:
        """Returns the new record, or None if the pair was already unlocked"""
        ...


class RelationshipStore(Protocol):
    async def get_relationship(self, relationship_id: str) -> Relationship:
        """Raises NotFoundError for unknown relationships"""
        ...

    async def list_relationships(self, user_id: str) -> list[Relationship]:
        ...


class ProgressionSession(UserStore, LedgerStore, AchievementStore, RelationshipStore, Protocol):
    """All store operations, bound to one open transaction"""

    def transaction(self, user_id: str) -> AsyncContextManager["ProgressionSession"]:
        """Nested use reuses the already open transaction"""
        ...


class ProgressionStore(ProgressionSession, Protocol):
    def transaction(self, user_id: str) -> AsyncContextManager[ProgressionSession]:
        """
        Open an all-or-nothing unit of work with single-writer semantics for
        user_id. Any exception rolls back every write made through the
        yielded session.
        """
        ...
