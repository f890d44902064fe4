"""
In-memory progression store

Implements every store protocol in simp_tracker.db.stores without a
database. Used by the test suite and for local runs. Transactions are
per-user: an asyncio.Lock serializes writers for the same user, and any
exception inside the block restores that user's ledger, progress and unlock
records to what they were when the block started.
"""

import asyncio
import logging
import weakref
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

from simp_tracker.exceptions import ConflictError, NotFoundError
from simp_tracker.models.achievement import Achievement, UnlockRecord
from simp_tracker.models.progression import StreakState, UserProgress, XPTransaction
from simp_tracker.models.relationship import Relationship

logger = logging.getLogger(__name__)


class InMemoryProgressionStore:
    """Dict-backed store, one instance per application or test"""

    def __init__(
        self,
        definitions: Optional[Iterable[Achievement]] = None,
        relationships: Optional[Iterable[Relationship]] = None,
    ):
        self._users: dict[str, UserProgress] = {}
        self._transactions: dict[str, list[XPTransaction]] = defaultdict(list)
        self._definitions: list[Achievement] = list(definitions or [])
        self._unlocks: dict[tuple[str, str], UnlockRecord] = {}
        self._relationships: dict[str, Relationship] = {r.id: r for r in relationships or []}
        # Entries drop out once no transaction holds or awaits the lock
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    # ------------------------------------------------------------------
    # Seeding helpers (not part of the store protocols)
    # ------------------------------------------------------------------

    def add_user(self, user_id: str, **fields) -> UserProgress:
        user = UserProgress(user_id=user_id, **fields)
        self._users[user_id] = user
        return user

    def add_relationship(self, relationship: Relationship) -> None:
        self._relationships[relationship.id] = relationship

    def add_definition(self, achievement: Achievement) -> None:
        self._definitions.append(achievement)

    # ------------------------------------------------------------------
    # UserStore
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> UserProgress:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError(
                message=f"No progress record for user {user_id}",
                record_type="User",
                record_id=user_id,
                operation="get_user"
            )
        return user

    async def update_progress(
        self,
        user_id: str,
        total_xp: int,
        level: int,
        streak: StreakState,
        expected_total_xp: Optional[int] = None,
    ) -> UserProgress:
        current = await self.get_user(user_id)
        if expected_total_xp is not None and current.total_xp != expected_total_xp:
            raise ConflictError(
                message=f"total_xp for user {user_id} is {current.total_xp}, expected {expected_total_xp}",
                user_id=user_id,
                operation="update_progress"
            )

        updated = current.model_copy(update={"total_xp": total_xp, "level": level, "streak": streak})
        self._users[user_id] = updated
        return updated

    # ------------------------------------------------------------------
    # LedgerStore
    # ------------------------------------------------------------------

    async def append_transaction(self, transaction: XPTransaction) -> XPTransaction:
        self._transactions[transaction.user_id].append(transaction)
        logger.debug(f"Stored XP transaction {transaction.id} for user {transaction.user_id}")
        return transaction

    async def list_transactions(self, user_id: str) -> list[XPTransaction]:
        return list(reversed(self._transactions.get(user_id, [])))

    # ------------------------------------------------------------------
    # AchievementStore
    # ------------------------------------------------------------------

    async def list_definitions(self) -> list[Achievement]:
        return list(self._definitions)

    async def list_unlocked(self, user_id: str) -> list[UnlockRecord]:
        return [record for (uid, _), record in self._unlocks.items() if uid == user_id]

    async def insert_unlock_if_absent(self, user_id: str, achievement_key: str) -> Optional[UnlockRecord]:
        key = (user_id, achievement_key)
        if key in self._unlocks:
            return None
        record = UnlockRecord(user_id=user_id, achievement_key=achievement_key)
        self._unlocks[key] = record
        return record

    # ------------------------------------------------------------------
    # RelationshipStore
    # ------------------------------------------------------------------

    async def get_relationship(self, relationship_id: str) -> Relationship:
        relationship = self._relationships.get(relationship_id)
        if relationship is None:
            raise NotFoundError(
                message=f"Relationship {relationship_id} does not exist",
                record_type="Relationship",
                record_id=relationship_id,
                operation="get_relationship"
            )
        return relationship

    async def list_relationships(self, user_id: str) -> list[Relationship]:
        return [r for r in self._relationships.values() if r.user_id == user_id]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def _snapshot(self, user_id: str) -> tuple:
        return (
            self._users.get(user_id),
            list(self._transactions.get(user_id, [])),
            {k: v for k, v in self._unlocks.items() if k[0] == user_id},
        )

    def _restore(self, user_id: str, snapshot: tuple) -> None:
        user, transactions, unlocks = snapshot
        if user is None:
            self._users.pop(user_id, None)
        else:
            self._users[user_id] = user
        self._transactions[user_id] = transactions
        for key in [k for k in self._unlocks if k[0] == user_id]:
            del self._unlocks[key]
        self._unlocks.update(unlocks)

    @asynccontextmanager
    async def transaction(self, user_id: str) -> AsyncIterator["_BoundSession"]:
        async with self._lock_for(user_id):
            snapshot = self._snapshot(user_id)
            try:
                yield _BoundSession(self)
            except BaseException:
                self._restore(user_id, snapshot)
                logger.debug(f"Rolled back in-memory transaction for user {user_id}")
                raise


class _BoundSession:
    """Session handed out inside InMemoryProgressionStore.transaction()"""

    def __init__(self, store: InMemoryProgressionStore):
        self._store = store

    def __getattr__(self, name):
        return getattr(self._store, name)

    @asynccontextmanager
    async def transaction(self, user_id: str) -> AsyncIterator["_BoundSession"]:
        yield self
