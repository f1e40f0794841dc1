"""Result models returned by engine operations"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from guardian_engine.models.energy import EnergyBreakdown, EnergyHistoryRecord, UserStreakData
from guardian_engine.models.guardian import GuardianMemory, UserGuardianProfile
from guardian_engine.models.report import AnomalyFlags


class StreakAdvance(BaseModel):
    next: UserStreakData
    streak_day: int
    is_new_record: bool = False
    is_broken: bool = False


class StreakUrgency(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class StreakWarning(BaseModel):
    should_warn: bool = False
    urgency: Optional[StreakUrgency] = None
    message: str = ""
    hours_remaining: Optional[float] = None


class StreakBadge(BaseModel):
    id: str
    name: str
    days: int
    icon: str
    rarity: str
    description: str


class LevelInfo(BaseModel):
    level: int
    title: str
    icon: str
    color: str
    energy_into_level: int = 0
    energy_to_next_level: int = 0
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    is_max_level: bool = False


class UnlockEligibility(BaseModel):
    can_unlock: bool
    reason: Optional[str] = None
    energy_cost: int = 0


class UnlockResult(BaseModel):
    success: bool
    profile: UserGuardianProfile
    guardian_id: str
    energy_spent: int = 0
    reason: Optional[str] = None


class InvestmentResult(BaseModel):
    profile: UserGuardianProfile
    guardian_id: str
    requested: int
    actual_invested: int
    previous_stage: int
    new_stage: int
    evolved: bool = False
    memory_entry: Optional[GuardianMemory] = None


class ReportOutcome(BaseModel):
    """Everything that changed because of one report submission"""
    user_id: str
    accepted: bool
    duplicate: bool = False
    is_modification: bool = False
    streak: StreakAdvance
    breakdown: EnergyBreakdown
    energy_granted: int = 0
    record: Optional[EnergyHistoryRecord] = None
    previous_level: int
    new_level: int
    leveled_up: bool = False
    messages: list[str] = Field(default_factory=list)


class AnomalyReview(BaseModel):
    user_id: str
    flags: AnomalyFlags
    current_energy: int
    current_stage: int
    reports_reviewed: int
