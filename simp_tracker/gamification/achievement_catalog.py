"""Default achievement definitions"""
from simp_tracker.models.achievement import Achievement, AchievementCriteria, AchievementTier


def _achievement(key, name, description, metric, value, tier, xp_reward, operator="gte"):
    return Achievement(
        id=key,
        key=key,
        name=name,
        description=description,
        criteria=AchievementCriteria(metric=metric, operator=operator, value=value),
        tier=tier,
        xp_reward=xp_reward,
    )


DEFAULT_ACHIEVEMENTS = [
    _achievement(
        "first_partner", "First Steps", "Add your first partner to the system",
        "relationship_count", 1, AchievementTier.BRONZE, 50,
    ),
    _achievement(
        "five_partners", "Player Status", "Reach 5 partners in your system",
        "relationship_count", 5, AchievementTier.SILVER, 200,
    ),
    _achievement(
        "ten_partners", "Casanova", "Reach 10 partners in your system",
        "relationship_count", 10, AchievementTier.GOLD, 500,
    ),
    _achievement(
        "first_exclusive", "Commitment Issues Solved", "Get your first exclusive relationship",
        "status_count:exclusive", 1, AchievementTier.SILVER, 150,
    ),
    _achievement(
        "low_simp_master", "Efficiency Expert", "Maintain Simp Index under 100 on 3 different partners",
        "low_simp_count", 3, AchievementTier.GOLD, 300,
    ),
    _achievement(
        "intimacy_champion", "Intimacy Champion", "Reach intimacy score of 10 with a partner",
        "max_intimacy", 10, AchievementTier.GOLD, 250,
    ),
    _achievement(
        "data_enthusiast", "Data Enthusiast", "Log 50 timeline events",
        "source_count:timeline_event_added", 50, AchievementTier.SILVER, 200,
    ),
    _achievement(
        "weekly_warrior", "Weekly Warrior", "Earn the weekly update bonus 4 times",
        "source_count:weekly_update_bonus", 4, AchievementTier.SILVER, 150,
    ),
    _achievement(
        "streak_legend", "Streak Legend", "Maintain a 30-day activity streak",
        "streak_count", 30, AchievementTier.PLATINUM, 500,
    ),
    _achievement(
        "red_flag_detector", "Red Flag Detector", "Document 10 red flags",
        "source_count:red_flag_documented", 10, AchievementTier.SILVER, 150,
    ),
    _achievement(
        "graveyard_reaper", "Graveyard Reaper", "Move 5 partners to the graveyard",
        "status_count:graveyard", 5, AchievementTier.BRONZE, 100,
    ),
    _achievement(
        "phoenix", "Phoenix", "Successfully revive a relationship from the graveyard",
        "source_count:second_chance", 1, AchievementTier.SILVER, 200,
    ),
    _achievement(
        "social_butterfly", "Social Butterfly", "Create 20 sticky notes/roasts",
        "source_count:sticky_note_created", 20, AchievementTier.BRONZE, 100,
    ),
    _achievement(
        "validator", "The Validator", "Validate 10 peer actions",
        "source_count:peer_validation", 10, AchievementTier.SILVER, 150,
    ),
    _achievement(
        "level_10", "Veteran", "Reach Level 10",
        "level", 10, AchievementTier.PLATINUM, 1000,
    ),
]
