"""
XP reward table

XP granted per activity source. Only positive rewards: progression XP is
monotonic, so penalties are not part of this table.
"""

from simp_tracker.exceptions import ValidationError

XP_REWARDS = {
    # Milestones
    "status_talking_to_dating": 50,
    "status_dating_to_exclusive": 150,
    "clean_breakup": 40,
    "second_chance": 75,
    "partner_added": 25,
    # Consistency
    "timeline_event_added": 10,
    "weekly_update_bonus": 30,
    "decay_cleanup": 20,
    "complete_profile": 50,
    "partner_info_updated": 10,
    "partner_photo_added": 15,
    # Social
    "sticky_note_created": 5,
    "peer_validation": 15,
    "poke_decayed_node": 8,
    "red_flag_help": 12,
    # Performance
    "low_simp_index": 100,
    "high_intimacy": 80,
    "balanced_dating": 200,
    "simp_index_improved": 50,
    "intimacy_improved": 25,
    # Red flags
    "red_flag_documented": 15,
    "critical_red_flag_early": 60,
    "toxic_relationship_ended": 120,
}

# Ledger source used for achievement unlock bonuses
ACHIEVEMENT_SOURCE = "achievement_unlocked"


def get_xp_for_source(source: str) -> int:
    """
    XP amount for an activity source

    Raises:
        ValidationError: source has no reward
    """
    try:
        return XP_REWARDS[source]
    except KeyError:
        raise ValidationError(
            message=f"No XP reward defined for {source!r}",
            field="source",
            value=source,
            operation="get_xp_for_source"
        )
