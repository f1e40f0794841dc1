"""
Level Calculator

Maps lifetime earned energy to a level and a display title.

Leveling Curve:
- Flat: every level costs ENERGY_PER_LEVEL (200 E)
- Level n starts at (n - 1) * 200 E
- Capped at MAX_LEVEL (999)

Titles change at milestone levels:
  1 Rookie, 5 Apprentice, 10 Adventurer, 25 Challenger, 50 Veteran,
  100 Expert, 200 Master, 300 Hero, 500 Legendary Hero, 999 Deity

Spending energy on guardians never lowers the level: only total_earned counts.
"""

from typing import Dict, List, Optional
import logging

from guardian_engine import config
from guardian_engine.exceptions import ValidationError
from guardian_engine.models.results import LevelInfo

logger = logging.getLogger(__name__)

LEVEL_MILESTONES: List[Dict[str, any]] = [
    {"level": 1, "title": "Rookie", "icon": "🌱", "description": "The adventure begins", "color": "#94a3b8"},
    {"level": 5, "title": "Apprentice", "icon": "🔰", "description": "Growing step by step", "color": "#22c55e"},
    {"level": 10, "title": "Adventurer", "icon": "⚔️", "description": "A true adventurer", "color": "#3b82f6"},
    {"level": 25, "title": "Challenger", "icon": "🎯", "description": "Unafraid of a challenge", "color": "#8b5cf6"},
    {"level": 50, "title": "Veteran", "icon": "🛡️", "description": "Seasoned and capable", "color": "#f59e0b"},
    {"level": 100, "title": "Expert", "icon": "⭐", "description": "Broke through the 100 wall", "color": "#ef4444"},
    {"level": 200, "title": "Master", "icon": "👑", "description": "A true master", "color": "#ec4899"},
    {"level": 300, "title": "Hero", "icon": "🦸", "description": "On the road to legend", "color": "#14b8a6"},
    {"level": 500, "title": "Legendary Hero", "icon": "🌟", "description": "Name carved into legend", "color": "#fbbf24"},
    {"level": 999, "title": "Deity", "icon": "✨", "description": "The ultimate being", "color": "#a855f7"},
]


def _check_milestones(milestones: List[Dict[str, any]]) -> None:
    levels = [m["level"] for m in milestones]
    if not levels or levels[0] != 1:
        raise ValueError("level milestones must start at level 1")
    if levels != sorted(set(levels)):
        raise ValueError("level milestones must be strictly ascending")


_check_milestones(LEVEL_MILESTONES)


def get_milestone(level: int) -> Dict[str, any]:
    """Milestone whose range contains the level"""
    current = LEVEL_MILESTONES[0]
    for milestone in LEVEL_MILESTONES:
        if level >= milestone["level"]:
            current = milestone
        else:
            break
    return current


def get_level_title(level: int) -> str:
    """Display title for a level (e.g. 7 -> 'Apprentice')"""
    return get_milestone(level)["title"]


def get_next_milestone(level: int) -> Optional[Dict[str, any]]:
    """Next title milestone above the level, or None at the top"""
    return next((m for m in LEVEL_MILESTONES if m["level"] > level), None)


def calculate_level(total_earned: int) -> LevelInfo:
    """
    Calculate level info from lifetime earned energy

    Args:
        total_earned: Lifetime earned energy (never decreases)

    Returns:
        LevelInfo with level, title, progress within the level and
        energy still needed for the next level

    Raises:
        ValidationError: If total_earned is negative
    """
    if total_earned < 0:
        raise ValidationError(
            message="total_earned must not be negative",
            field="total_earned",
            value=total_earned
        )

    per_level = config.ENERGY_PER_LEVEL
    level = min(total_earned // per_level + 1, config.MAX_LEVEL)
    milestone = get_milestone(level)

    if level >= config.MAX_LEVEL:
        return LevelInfo(
            level=level,
            title=milestone["title"],
            icon=milestone["icon"],
            color=milestone["color"],
            energy_into_level=total_earned - (level - 1) * per_level,
            energy_to_next_level=0,
            progress=100.0,
            is_max_level=True,
        )

    level_start = (level - 1) * per_level
    into_level = total_earned - level_start

    return LevelInfo(
        level=level,
        title=milestone["title"],
        icon=milestone["icon"],
        color=milestone["color"],
        energy_into_level=into_level,
        energy_to_next_level=per_level - into_level,
        progress=round(into_level / per_level * 100, 1),
    )


def get_energy_to_next_level(total_earned: int) -> int:
    """Energy still needed to reach the next level (0 at max level)"""
    return calculate_level(total_earned).energy_to_next_level


def get_energy_for_level(level: int) -> int:
    """Lifetime energy at which a level starts"""
    if level < 1:
        raise ValidationError(message="level must be at least 1", field="level", value=level)
    return (min(level, config.MAX_LEVEL) - 1) * config.ENERGY_PER_LEVEL


def format_level_message(info: LevelInfo, previous_level: Optional[int] = None) -> str:
    """Short display line for a level, announcing a level-up when there was one"""
    if previous_level is not None and info.level > previous_level:
        message = f"🎉 LEVEL UP! Level {previous_level} → {info.level}"
        if get_level_title(previous_level) != info.title:
            message += f"\n{info.icon} New title: {info.title}"
        return message

    if info.is_max_level:
        return f"{info.icon} Level {info.level} {info.title} (max level)"
    return (
        f"{info.icon} Level {info.level} {info.title} "
        f"({info.progress:.0f}%, {info.energy_to_next_level} E to next level)"
    )
