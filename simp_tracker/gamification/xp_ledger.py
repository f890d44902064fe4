"""
XP Ledger

Append-only record of point-earning events. Every append writes one
immutable XPTransaction and moves the user's total_xp (and derived level)
forward by the same amount inside a single store transaction, so the sum of
a user's ledger always equals their total_xp.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from simp_tracker.db.stores import ProgressionStore
from simp_tracker.exceptions import ValidationError
from simp_tracker.gamification.leveling import LevelTable
from simp_tracker.models.progression import XPTransaction

logger = logging.getLogger(__name__)


def validate_amount(amount: int, user_id: Optional[str] = None) -> None:
    """Reject anything but a positive integer XP amount"""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(
            message="XP amount must be a positive integer",
            field="amount",
            value=amount,
            user_id=user_id,
            operation="append_xp"
        )


class XPLedger:
    """Ledger operations over a progression store"""

    def __init__(self, store: ProgressionStore, levels: LevelTable):
        self.store = store
        self.levels = levels

    async def append(
        self,
        user_id: str,
        amount: int,
        source: str,
        *,
        relationship_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        occurred_at: Optional[datetime] = None,
    ) -> XPTransaction:
        """
        Record an XP award

        Args:
            user_id: Account ID
            amount: Positive integer XP amount
            source: Activity tag (partner_added, timeline_event_added, ...)
            relationship_id: Related partner, if any
            metadata: Free-form context stored with the entry
            occurred_at: Event time (defaults to now)

        Returns:
            The stored XPTransaction

        Raises:
            ValidationError: amount is not a positive integer (nothing written)
            NotFoundError: unknown user
        """
        validate_amount(amount, user_id)
        if not source:
            raise ValidationError(
                message="XP source is required",
                field="source",
                value=source,
                user_id=user_id,
                operation="append_xp"
            )

        async with self.store.transaction(user_id) as session:
            user = await session.get_user(user_id)

            transaction = XPTransaction(
                user_id=user_id,
                amount=amount,
                source=source,
                created_at=occurred_at or datetime.now(timezone.utc),
                relationship_id=relationship_id,
                metadata=metadata or {},
            )
            await session.append_transaction(transaction)

            new_total = user.total_xp + amount
            await session.update_progress(
                user_id,
                total_xp=new_total,
                level=self.levels.level_for(new_total),
                streak=user.streak,
                expected_total_xp=user.total_xp,
            )

        logger.info(f"Appended {amount} XP to user {user_id} for {source}. Total: {new_total} XP")
        return transaction

    async def history(self, user_id: str) -> List[XPTransaction]:
        """
        All XP transactions for a user, most recent first

        Returns a fully materialized list; calling again re-reads the store.
        """
        return list(await self.store.list_transactions(user_id))

    async def earned_between(
        self,
        user_id: str,
        start: datetime,
        end: Optional[datetime] = None
    ) -> int:
        """XP earned with start <= created_at (<= end, if given)"""
        transactions = await self.store.list_transactions(user_id)
        return sum(
            t.amount for t in transactions
            if t.created_at >= start and (end is None or t.created_at <= end)
        )

    async def reconcile(self, user_id: str) -> bool:
        """Check that the ledger sum matches the stored total_xp"""
        user = await self.store.get_user(user_id)
        ledger_total = sum(t.amount for t in await self.store.list_transactions(user_id))

        if ledger_total != user.total_xp:
            logger.error(
                f"XP ledger mismatch for user {user_id}: "
                f"ledger={ledger_total}, total_xp={user.total_xp}"
            )
            return False
        return True
