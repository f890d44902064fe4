"""Resilience patterns for store access

This module provides conflict retry logic with backoff and metrics
collection for the progression engine.
"""

from simp_tracker.resilience.retry import retry_with_backoff, with_retry
from simp_tracker.resilience.metrics import (
    record_xp_awarded,
    record_level_up,
    record_achievement_unlocked,
    record_retry,
)

__all__ = [
    # Retry
    "retry_with_backoff",
    "with_retry",
    # Metrics
    "record_xp_awarded",
    "record_level_up",
    "record_achievement_unlocked",
    "record_retry",
]
