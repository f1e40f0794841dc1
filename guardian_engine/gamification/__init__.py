"""
Gamification engine for the reporting dashboard

This module turns daily KPI reports into a guardian meta-game:
- Streak tracking over consecutive reporting days
- Energy grants (daily, streak, performance and weekly bonuses)
- Levels derived from lifetime energy
- Guardian catalog, unlocks and evolution by invested energy
- Daily energy history ledger and summaries
- Advisory anomaly flags for admin review

Everything here is synchronous and free of storage access, except
record_energy_history which writes through an open ProfileTransaction.
"""

from guardian_engine.gamification.streak_system import advance_streak, get_streak_warning
from guardian_engine.gamification.energy_system import EnergyRules, get_streak_bonus, grant_energy
from guardian_engine.gamification.level_system import calculate_level, get_level_title
from guardian_engine.gamification.guardian_registry import (
    GuardianRegistry,
    can_unlock_guardian,
    get_registry,
)
from guardian_engine.gamification.guardian_progression import (
    create_new_profile,
    invest_energy,
    set_active_guardian,
    unlock_guardian,
)
from guardian_engine.gamification.anomaly_detection import AnomalyThresholds, detect_anomalies
from guardian_engine.gamification.energy_history import (
    build_energy_history_record,
    calculate_history_summary,
    record_energy_history,
)

__all__ = [
    "advance_streak",
    "get_streak_warning",
    "EnergyRules",
    "get_streak_bonus",
    "grant_energy",
    "calculate_level",
    "get_level_title",
    "GuardianRegistry",
    "can_unlock_guardian",
    "get_registry",
    "create_new_profile",
    "invest_energy",
    "set_active_guardian",
    "unlock_guardian",
    "AnomalyThresholds",
    "detect_anomalies",
    "build_energy_history_record",
    "calculate_history_summary",
    "record_energy_history",
]
