"""Progression database queries (PostgreSQL)"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

import psycopg
import pydantic
from psycopg.types.json import Jsonb

from simp_tracker.db.connection import Database, db
from simp_tracker.exceptions import ConflictError, NotFoundError, ValidationError, wrap_store_exception
from simp_tracker.models.achievement import Achievement, AchievementCriteria, UnlockRecord
from simp_tracker.models.progression import StreakState, UserProgress, XPTransaction
from simp_tracker.models.relationship import Relationship

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS user_progress (
    user_id TEXT PRIMARY KEY,
    total_xp BIGINT NOT NULL DEFAULT 0 CHECK (total_xp >= 0),
    level INTEGER NOT NULL DEFAULT 1 CHECK (level >= 1),
    streak_count INTEGER NOT NULL DEFAULT 0,
    last_activity_date DATE,
    best_streak INTEGER NOT NULL DEFAULT 0,
    timezone TEXT NOT NULL DEFAULT 'UTC',
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS xp_transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES user_progress (user_id),
    amount INTEGER NOT NULL CHECK (amount > 0),
    source TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    relationship_id TEXT,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    seq BIGSERIAL
);

CREATE INDEX IF NOT EXISTS idx_xp_transactions_user ON xp_transactions (user_id, seq DESC);

CREATE TABLE IF NOT EXISTS achievements (
    id TEXT PRIMARY KEY,
    key TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    metric TEXT NOT NULL,
    operator TEXT NOT NULL DEFAULT 'gte',
    value JSONB,
    tier TEXT NOT NULL DEFAULT 'bronze',
    priority INTEGER NOT NULL DEFAULT 0,
    xp_reward INTEGER NOT NULL DEFAULT 0 CHECK (xp_reward >= 0),
    position INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS user_achievements (
    user_id TEXT NOT NULL REFERENCES user_progress (user_id),
    achievement_key TEXT NOT NULL REFERENCES achievements (key),
    unlocked_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (user_id, achievement_key)
);

CREATE TABLE IF NOT EXISTS relationships (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    nickname TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'talking',
    financial_total DOUBLE PRECISION NOT NULL DEFAULT 0,
    time_total DOUBLE PRECISION NOT NULL DEFAULT 0,
    intimacy_score INTEGER NOT NULL DEFAULT 1,
    last_updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_relationships_user ON relationships (user_id);
"""


async def init_schema(database: Database = db) -> None:
    """Create progression tables if they do not exist"""
    async with database.connection() as conn:
        await conn.execute(SCHEMA)
    logger.info("Progression schema ready")


async def seed_achievements(definitions: Iterable[Achievement], database: Database = db) -> None:
    """Insert or refresh achievement definitions, keeping their order"""
    async with database.connection() as conn:
        async with conn.cursor() as cur:
            for position, a in enumerate(definitions):
                await cur.execute(
                    """
                    INSERT INTO achievements
                        (id, key, name, description, metric, operator, value, tier, priority, xp_reward, position)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (key) DO UPDATE SET
                        name = EXCLUDED.name,
                        description = EXCLUDED.description,
                        metric = EXCLUDED.metric,
                        operator = EXCLUDED.operator,
                        value = EXCLUDED.value,
                        tier = EXCLUDED.tier,
                        priority = EXCLUDED.priority,
                        xp_reward = EXCLUDED.xp_reward,
                        position = EXCLUDED.position
                    """,
                    (
                        a.id, a.key, a.name, a.description,
                        a.criteria.metric, a.criteria.operator, Jsonb(a.criteria.value),
                        a.tier.value, a.priority, a.xp_reward, position,
                    )
                )
    logger.info("Seeded achievement definitions")


# ==========================================
# Row mapping
# ==========================================

def _user_from_row(row: dict) -> UserProgress:
    try:
        return UserProgress(
            user_id=row["user_id"],
            total_xp=row["total_xp"],
            level=row["level"],
            streak=StreakState(
                streak_count=row["streak_count"],
                last_activity_date=row["last_activity_date"],
                best_streak=row["best_streak"],
            ),
            timezone=row["timezone"],
        )
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        raise ValidationError(
            message=f"Invalid progress record for user {row['user_id']}: {first['msg']}",
            field=".".join(str(part) for part in first["loc"]) or None,
            value=first.get("input"),
            user_id=row["user_id"],
            operation="get_user",
            cause=e
        )


def _achievement_from_row(row: dict) -> Achievement:
    return Achievement(
        id=row["id"],
        key=row["key"],
        name=row["name"],
        description=row["description"],
        criteria=AchievementCriteria(metric=row["metric"], operator=row["operator"], value=row["value"]),
        tier=row["tier"],
        priority=row["priority"],
        xp_reward=row["xp_reward"],
    )


# ==========================================
# Session (one open connection)
# ==========================================

class PostgresSession:
    """All store operations on one connection, inside its open transaction"""

    def __init__(self, conn: psycopg.AsyncConnection):
        self.conn = conn

    @asynccontextmanager
    async def transaction(self, user_id: str) -> AsyncIterator["PostgresSession"]:
        yield self

    async def lock_user(self, user_id: str) -> None:
        """Row lock held until the surrounding transaction ends"""
        try:
            await self.conn.execute(
                "SELECT user_id FROM user_progress WHERE user_id = %s FOR UPDATE",
                (user_id,)
            )
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="lock_user", user_id=user_id) from e

    # UserStore

    async def get_user(self, user_id: str) -> UserProgress:
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT user_id, total_xp, level, streak_count, last_activity_date, best_streak, timezone
                    FROM user_progress
                    WHERE user_id = %s
                    """,
                    (user_id,)
                )
                row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="get_user", user_id=user_id) from e

        if not row:
            raise NotFoundError(
                message=f"No progress record for user {user_id}",
                record_type="User",
                record_id=user_id,
                operation="get_user"
            )
        return _user_from_row(row)

    async def update_progress(
        self,
        user_id: str,
        total_xp: int,
        level: int,
        streak: StreakState,
        expected_total_xp: Optional[int] = None,
    ) -> UserProgress:
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE user_progress
                    SET total_xp = %s,
                        level = %s,
                        streak_count = %s,
                        last_activity_date = %s,
                        best_streak = %s,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE user_id = %s
                      AND (%s::bigint IS NULL OR total_xp = %s::bigint)
                    RETURNING user_id, total_xp, level, streak_count, last_activity_date, best_streak, timezone
                    """,
                    (
                        total_xp, level,
                        streak.streak_count, streak.last_activity_date, streak.best_streak,
                        user_id, expected_total_xp, expected_total_xp,
                    )
                )
                row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="update_progress", user_id=user_id) from e

        if row:
            return _user_from_row(row)

        # Either the user is missing (NotFoundError) or the total moved on
        current = await self.get_user(user_id)
        raise ConflictError(
            message=f"total_xp for user {user_id} is {current.total_xp}, expected {expected_total_xp}",
            user_id=user_id,
            operation="update_progress"
        )

    # LedgerStore

    async def append_transaction(self, transaction: XPTransaction) -> XPTransaction:
        try:
            await self.conn.execute(
                """
                INSERT INTO xp_transactions (id, user_id, amount, source, created_at, relationship_id, metadata)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    transaction.id, transaction.user_id, transaction.amount, transaction.source,
                    transaction.created_at, transaction.relationship_id, Jsonb(transaction.metadata),
                )
            )
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="append_transaction", user_id=transaction.user_id) from e
        return transaction

    async def list_transactions(self, user_id: str) -> list[XPTransaction]:
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT id, user_id, amount, source, created_at, relationship_id, metadata
                    FROM xp_transactions
                    WHERE user_id = %s
                    ORDER BY seq DESC
                    """,
                    (user_id,)
                )
                rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="list_transactions", user_id=user_id) from e
        return [XPTransaction(**row) for row in rows]

    # AchievementStore

    async def list_definitions(self) -> list[Achievement]:
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT id, key, name, description, metric, operator, value, tier, priority, xp_reward
                    FROM achievements
                    ORDER BY position, key
                    """
                )
                rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="list_definitions") from e
        return [_achievement_from_row(row) for row in rows]

    async def list_unlocked(self, user_id: str) -> list[UnlockRecord]:
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT user_id, achievement_key, unlocked_at
                    FROM user_achievements
                    WHERE user_id = %s
                    ORDER BY unlocked_at DESC
                    """,
                    (user_id,)
                )
                rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="list_unlocked", user_id=user_id) from e
        return [UnlockRecord(**row) for row in rows]

    async def insert_unlock_if_absent(self, user_id: str, achievement_key: str) -> Optional[UnlockRecord]:
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO user_achievements (user_id, achievement_key)
                    VALUES (%s, %s)
                    ON CONFLICT (user_id, achievement_key) DO NOTHING
                    RETURNING user_id, achievement_key, unlocked_at
                    """,
                    (user_id, achievement_key)
                )
                row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_store_exception(
                e, operation="insert_unlock", user_id=user_id, context={"achievement_key": achievement_key}
            ) from e
        return UnlockRecord(**row) if row else None

    # RelationshipStore

    async def get_relationship(self, relationship_id: str) -> Relationship:
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT id, user_id, nickname, status, financial_total, time_total, intimacy_score, last_updated_at
                    FROM relationships
                    WHERE id = %s
                    """,
                    (relationship_id,)
                )
                row = await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="get_relationship") from e

        if not row:
            raise NotFoundError(
                message=f"Relationship {relationship_id} does not exist",
                record_type="Relationship",
                record_id=relationship_id,
                operation="get_relationship"
            )
        return Relationship(**row)

    async def list_relationships(self, user_id: str) -> list[Relationship]:
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT id, user_id, nickname, status, financial_total, time_total, intimacy_score, last_updated_at
                    FROM relationships
                    WHERE user_id = %s
                    ORDER BY last_updated_at DESC
                    """,
                    (user_id,)
                )
                rows = await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="list_relationships", user_id=user_id) from e
        return [Relationship(**row) for row in rows]


# ==========================================
# Store (pool-backed)
# ==========================================

class PostgresProgressionStore:
    """
    Progression store on a psycopg connection pool

    transaction(user_id) opens a database transaction and locks the user's
    progress row with SELECT ... FOR UPDATE, so concurrent writers for the
    same user queue behind each other. Reads outside a transaction use a
    short-lived connection each.
    """

    def __init__(self, database: Database = db):
        self.database = database

    @asynccontextmanager
    async def transaction(self, user_id: str) -> AsyncIterator[PostgresSession]:
        try:
            async with self.database.connection() as conn:
                async with conn.transaction():
                    session = PostgresSession(conn)
                    await session.lock_user(user_id)
                    yield session
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="transaction", user_id=user_id) from e

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[PostgresSession]:
        try:
            async with self.database.connection() as conn:
                yield PostgresSession(conn)
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation=operation) from e

    async def get_user(self, user_id: str) -> UserProgress:
        async with self._session("get_user") as session:
            return await session.get_user(user_id)

    async def update_progress(
        self,
        user_id: str,
        total_xp: int,
        level: int,
        streak: StreakState,
        expected_total_xp: Optional[int] = None,
    ) -> UserProgress:
        async with self.transaction(user_id) as session:
            return await session.update_progress(user_id, total_xp, level, streak, expected_total_xp)

    async def append_transaction(self, transaction: XPTransaction) -> XPTransaction:
        async with self._session("append_transaction") as session:
            return await session.append_transaction(transaction)

    async def list_transactions(self, user_id: str) -> list[XPTransaction]:
        async with self._session("list_transactions") as session:
            return await session.list_transactions(user_id)

    async def list_definitions(self) -> list[Achievement]:
        async with self._session("list_definitions") as session:
            return await session.list_definitions()

    async def list_unlocked(self, user_id: str) -> list[UnlockRecord]:
        async with self._session("list_unlocked") as session:
            return await session.list_unlocked(user_id)

    async def insert_unlock_if_absent(self, user_id: str, achievement_key: str) -> Optional[UnlockRecord]:
        async with self._session("insert_unlock") as session:
            return await session.insert_unlock_if_absent(user_id, achievement_key)

    async def get_relationship(self, relationship_id: str) -> Relationship:
        async with self._session("get_relationship") as session:
            return await session.get_relationship(relationship_id)

    async def list_relationships(self, user_id: str) -> list[Relationship]:
        async with self._session("list_relationships") as session:
            return await session.list_relationships(user_id)
