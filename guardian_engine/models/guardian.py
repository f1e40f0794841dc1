"""Guardian catalog and per-user guardian models"""
from enum import Enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from guardian_engine.models.energy import UserEnergyData, UserStreakData
from guardian_engine.utils.datetime_helpers import now_utc

GuardianId = str

# Stage at which a guardian's ability switches on
ABILITY_ACTIVE_STAGE = 3


class GuardianAttribute(str, Enum):
    """Guardian attributes; each has one starter and one advanced guardian"""
    POWER = "power"
    BEAUTY = "beauty"
    CYBER = "cyber"


class GuardianPersonality(str, Enum):
    HOT = "hot"
    CHEERFUL = "cheerful"
    GENTLE = "gentle"
    MYSTERIOUS = "mysterious"
    LOGICAL = "logical"
    COSMIC = "cosmic"


class AbilityEffect(str, Enum):
    ENERGY_BOOST = "energy_boost"
    STREAK_BONUS = "streak_bonus"
    STREAK_GRACE = "streak_grace"
    LUCKY_BOOST = "lucky_boost"
    COST_REDUCE = "cost_reduce"
    WEEKEND_BONUS = "weekend_bonus"


class GuardianAbility(BaseModel):
    """Descriptive ability data shown once a guardian matures"""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    effect_type: AbilityEffect
    effect_value: float


class UnlockCondition(BaseModel):
    """
    What a user must have to unlock a guardian

    initial_free waives energy_cost when the user owns no guardian yet.
    """
    model_config = ConfigDict(frozen=True)

    energy_cost: int = Field(default=0, ge=0)
    prerequisite_guardian_id: Optional[GuardianId] = None
    prerequisite_stage: int = Field(default=0, ge=0, le=4)
    initial_free: bool = False


class GuardianDefinition(BaseModel):
    """Static catalog entry"""
    model_config = ConfigDict(frozen=True)

    id: GuardianId
    name: str
    reading: str
    attribute: GuardianAttribute
    tier: int = Field(..., ge=1, le=2)
    personality: GuardianPersonality
    description: str
    ability: GuardianAbility
    unlock_condition: UnlockCondition


class EvolutionStageDefinition(BaseModel):
    """Cumulative invested energy needed to reach a stage"""
    model_config = ConfigDict(frozen=True)

    stage: int = Field(..., ge=0, le=4)
    name: str
    description: str
    required_energy: int = Field(..., ge=0)
    aura_intensity: int = Field(..., ge=0, le=100)


class GuardianMemory(BaseModel):
    """Audit entry appended whenever a guardian evolves"""
    model_config = ConfigDict(frozen=True)

    from_stage: int = Field(..., ge=0, le=4)
    to_stage: int = Field(..., ge=0, le=4)
    timestamp: datetime
    invested_at_transition: int = Field(..., ge=0)

    @model_validator(mode="after")
    def check_forward(self) -> "GuardianMemory":
        if self.to_stage <= self.from_stage:
            raise ValueError("evolution must move to a higher stage")
        return self


class GuardianInstance(BaseModel):
    """
    A user's copy of a guardian

    Only invested_energy is stored. The stage depends on the stage table in
    use and is read through GuardianRegistry.current_stage; a "stage" key in
    stored data is ignored.
    """
    guardian_id: GuardianId
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    invested_energy: int = Field(default=0, ge=0)
    memory: list[GuardianMemory] = Field(default_factory=list)
    nickname: Optional[str] = None

    @model_validator(mode="after")
    def check_locked_is_empty(self) -> "GuardianInstance":
        if not self.unlocked and (self.invested_energy or self.memory):
            raise ValueError("a locked guardian cannot hold invested energy or memories")
        return self


class UserGuardianProfile(BaseModel):
    """Everything the engine persists per user"""
    user_id: str = Field(..., min_length=1)
    energy: UserEnergyData = Field(default_factory=UserEnergyData)
    streak: UserStreakData = Field(default_factory=UserStreakData)
    guardians: dict[GuardianId, GuardianInstance] = Field(default_factory=dict)
    active_guardian_id: Optional[GuardianId] = None
    registered_at: datetime = Field(default_factory=now_utc)

    @model_validator(mode="after")
    def check_guardians(self) -> "UserGuardianProfile":
        for key, instance in self.guardians.items():
            if key != instance.guardian_id:
                raise ValueError(f"guardian stored under {key!r} has id {instance.guardian_id!r}")
        if self.active_guardian_id is not None:
            active = self.guardians.get(self.active_guardian_id)
            if active is None or not active.unlocked:
                raise ValueError("active_guardian_id must reference an unlocked guardian")
        return self

    def unlocked_guardians(self) -> list[GuardianInstance]:
        return [g for g in self.guardians.values() if g.unlocked]

    def is_unlocked(self, guardian_id: GuardianId) -> bool:
        instance = self.guardians.get(guardian_id)
        return instance is not None and instance.unlocked
