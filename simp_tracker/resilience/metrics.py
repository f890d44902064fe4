"""Prometheus metrics for the progression engine

Counters for XP awards, level-ups, achievement unlocks and conflict retries.
Recording a metric never raises into the caller.
"""

import logging
from prometheus_client import Counter

logger = logging.getLogger(__name__)

# Labels: source (partner_added, achievement_unlocked, ...)
xp_awarded_total = Counter(
    'simp_tracker_xp_awarded_total',
    'Total XP awarded',
    ['source']
)

level_ups_total = Counter(
    'simp_tracker_level_ups_total',
    'Total number of level-ups'
)

# Labels: achievement (achievement key)
achievements_unlocked_total = Counter(
    'simp_tracker_achievements_unlocked_total',
    'Total number of achievement unlocks',
    ['achievement']
)

# Labels: operation (function being retried)
conflict_retries_total = Counter(
    'simp_tracker_conflict_retries_total',
    'Total number of retries after a store write conflict',
    ['operation']
)


def record_xp_awarded(source: str, amount: int) -> None:
    """Record XP added to the ledger"""
    try:
        xp_awarded_total.labels(source=source).inc(amount)
    except Exception as e:
        logger.error(f"Failed to record XP metric: {e}")


def record_level_up() -> None:
    try:
        level_ups_total.inc()
    except Exception as e:
        logger.error(f"Failed to record level-up metric: {e}")


def record_achievement_unlocked(achievement_key: str) -> None:
    try:
        achievements_unlocked_total.labels(achievement=achievement_key).inc()
    except Exception as e:
        logger.error(f"Failed to record achievement metric: {e}")


def record_retry(operation: str) -> None:
    """Record a conflict retry attempt"""
    try:
        conflict_retries_total.labels(operation=operation).inc()
        logger.debug(f"[METRICS] Conflict retry recorded for {operation}")
    except Exception as e:
        logger.error(f"Failed to record retry metric: {e}")
