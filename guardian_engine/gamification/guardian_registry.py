"""
Guardian Registry

Static catalog of collectible guardians and the shared evolution stage table.

Catalog (one starter and one advanced guardian per attribute):
- power:  horyu (T1)  -> shishimaru (T2)
- beauty: hanase (T1) -> shiroko (T2)
- cyber:  kitama (T1) -> hoshimaru (T2)

Unlock rules:
- Tier 1: 200 E, the user's first guardian is free
- Tier 2: 500 E, same-attribute tier 1 guardian grown to stage 2 or more

Evolution stages (cumulative invested energy):
  0 Egg (0) -> 1 Hatchling (30) -> 2 Juvenile (150) -> 3 Mature (600) -> 4 Ultimate (2000)

The registry is read-only after construction and validates its own
invariants, so a broken catalog fails at startup rather than mid-request.
"""

from bisect import bisect_right
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging

from guardian_engine.exceptions import CatalogError, UnknownGuardianError, ValidationError
from guardian_engine.models.guardian import (
    ABILITY_ACTIVE_STAGE,
    AbilityEffect,
    EvolutionStageDefinition,
    GuardianAbility,
    GuardianAttribute,
    GuardianDefinition,
    GuardianId,
    GuardianPersonality,
    UnlockCondition,
    UserGuardianProfile,
)
from guardian_engine.models.results import UnlockEligibility

logger = logging.getLogger(__name__)

TIER1_UNLOCK_COST = 200
TIER2_UNLOCK_COST = 500
TIER2_PREREQUISITE_STAGE = 2

GUARDIANS: Tuple[GuardianDefinition, ...] = (
    # Power
    GuardianDefinition(
        id="horyu",
        name="Fire Dragon",
        reading="horyu",
        attribute=GuardianAttribute.POWER,
        tier=1,
        personality=GuardianPersonality.HOT,
        description="An eastern dragon of passion and victory. Its burning soul pushes your challenges forward.",
        ability=GuardianAbility(
            name="Scorching Will",
            description="+15% energy from reports",
            effect_type=AbilityEffect.ENERGY_BOOST,
            effect_value=0.15,
        ),
        unlock_condition=UnlockCondition(energy_cost=TIER1_UNLOCK_COST, initial_free=True),
    ),
    GuardianDefinition(
        id="shishimaru",
        name="Shishimaru",
        reading="shishimaru",
        attribute=GuardianAttribute.POWER,
        tier=2,
        personality=GuardianPersonality.CHEERFUL,
        description="A sacred lion full of energy. Mischievous, but always on your side.",
        ability=GuardianAbility(
            name="Lion's Blessing",
            description="Streak bonus multiplier +0.2",
            effect_type=AbilityEffect.STREAK_BONUS,
            effect_value=0.2,
        ),
        unlock_condition=UnlockCondition(
            energy_cost=TIER2_UNLOCK_COST,
            prerequisite_guardian_id="horyu",
            prerequisite_stage=TIER2_PREREQUISITE_STAGE,
        ),
    ),
    # Beauty
    GuardianDefinition(
        id="hanase",
        name="Flower Spirit",
        reading="hanase",
        attribute=GuardianAttribute.BEAUTY,
        tier=1,
        personality=GuardianPersonality.GENTLE,
        description="A spirit of flowers. Gently watches over your growth while soothing your heart.",
        ability=GuardianAbility(
            name="Healing Bloom",
            description="Streak grace period +12 hours",
            effect_type=AbilityEffect.STREAK_GRACE,
            effect_value=12,
        ),
        unlock_condition=UnlockCondition(energy_cost=TIER1_UNLOCK_COST, initial_free=True),
    ),
    GuardianDefinition(
        id="shiroko",
        name="White Fox",
        reading="shiroko",
        attribute=GuardianAttribute.BEAUTY,
        tier=2,
        personality=GuardianPersonality.MYSTERIOUS,
        description="A mysterious nine-tailed white fox with a strange power that draws in good fortune.",
        ability=GuardianAbility(
            name="Fox Illusion",
            description="Lucky bonus chance 5% -> 10%",
            effect_type=AbilityEffect.LUCKY_BOOST,
            effect_value=0.10,
        ),
        unlock_condition=UnlockCondition(
            energy_cost=TIER2_UNLOCK_COST,
            prerequisite_guardian_id="hanase",
            prerequisite_stage=TIER2_PREREQUISITE_STAGE,
        ),
    ),
    # Cyber
    GuardianDefinition(
        id="kitama",
        name="Machine Orb",
        reading="kitama",
        attribute=GuardianAttribute.CYBER,
        tier=1,
        personality=GuardianPersonality.LOGICAL,
        description="A retro clockwork guardian. Supports you logically and efficiently.",
        ability=GuardianAbility(
            name="Efficiency Engine",
            description="-15% energy needed to evolve",
            effect_type=AbilityEffect.COST_REDUCE,
            effect_value=0.15,
        ),
        unlock_condition=UnlockCondition(energy_cost=TIER1_UNLOCK_COST, initial_free=True),
    ),
    GuardianDefinition(
        id="hoshimaru",
        name="Hoshimaru",
        reading="hoshimaru",
        attribute=GuardianAttribute.CYBER,
        tier=2,
        personality=GuardianPersonality.COSMIC,
        description="A being clad in cosmic mystery. Guided by the stars, it shows great power on special days.",
        ability=GuardianAbility(
            name="Starlight Guidance",
            description="2.5x energy for weekend reports",
            effect_type=AbilityEffect.WEEKEND_BONUS,
            effect_value=2.5,
        ),
        unlock_condition=UnlockCondition(
            energy_cost=TIER2_UNLOCK_COST,
            prerequisite_guardian_id="kitama",
            prerequisite_stage=TIER2_PREREQUISITE_STAGE,
        ),
    ),
)

# Fast growth curve: visible change within the first three days
EVOLUTION_STAGES: Tuple[EvolutionStageDefinition, ...] = (
    EvolutionStageDefinition(stage=0, name="Egg", description="Still asleep",
                             required_energy=0, aura_intensity=0),
    EvolutionStageDefinition(stage=1, name="Hatchling", description="Just awakened",
                             required_energy=30, aura_intensity=20),
    EvolutionStageDefinition(stage=2, name="Juvenile", description="Power beginning to bud",
                             required_energy=150, aura_intensity=50),
    EvolutionStageDefinition(stage=3, name="Mature", description="Complete form, ability awakened",
                             required_energy=600, aura_intensity=80),
    EvolutionStageDefinition(stage=4, name="Ultimate", description="The strongest form. A legend",
                             required_energy=2000, aura_intensity=100),
)


class GuardianRegistry:
    """
    Read-only guardian catalog and stage table

    Raises CatalogError on construction if the data breaks an ordering or
    prerequisite invariant.
    """

    def __init__(
        self,
        guardians: Iterable[GuardianDefinition] = GUARDIANS,
        stages: Iterable[EvolutionStageDefinition] = EVOLUTION_STAGES
    ):
        guardians = list(guardians)
        by_id: Dict[GuardianId, GuardianDefinition] = {}
        for guardian in guardians:
            if guardian.id in by_id:
                raise CatalogError(f"Duplicate guardian id: {guardian.id}", config_key="guardians")
            by_id[guardian.id] = guardian

        self._guardians: Mapping[GuardianId, GuardianDefinition] = MappingProxyType(by_id)
        self._stages: Tuple[EvolutionStageDefinition, ...] = tuple(sorted(stages, key=lambda s: s.stage))
        self._thresholds: Tuple[int, ...] = tuple(s.required_energy for s in self._stages)

        self._validate_stages()
        self._validate_guardians()

    @classmethod
    def with_thresholds(cls, thresholds: Sequence[int]) -> "GuardianRegistry":
        """Default catalog with a different stage threshold table"""
        if len(thresholds) != len(EVOLUTION_STAGES):
            raise CatalogError(
                f"Expected {len(EVOLUTION_STAGES)} stage thresholds, got {len(thresholds)}",
                config_key="evolution_stages"
            )
        stages = [
            stage.model_copy(update={"required_energy": threshold})
            for stage, threshold in zip(EVOLUTION_STAGES, thresholds)
        ]
        return cls(GUARDIANS, stages)

    def _validate_stages(self) -> None:
        if not self._stages:
            raise CatalogError("Stage table is empty", config_key="evolution_stages")

        numbers = [s.stage for s in self._stages]
        if numbers != list(range(len(numbers))):
            raise CatalogError("Stages must be numbered 0..n without gaps", config_key="evolution_stages")
        if self._thresholds[0] != 0:
            raise CatalogError("Stage 0 must require no energy", config_key="evolution_stages")

        for lower, upper in zip(self._stages, self._stages[1:]):
            if upper.required_energy <= lower.required_energy:
                raise CatalogError(
                    f"Stage {upper.stage} threshold must exceed stage {lower.stage}",
                    config_key="evolution_stages"
                )
            if upper.aura_intensity < lower.aura_intensity:
                raise CatalogError(
                    f"Stage {upper.stage} aura must not be weaker than stage {lower.stage}",
                    config_key="evolution_stages"
                )

    def _validate_guardians(self) -> None:
        for guardian in self._guardians.values():
            condition = guardian.unlock_condition
            prerequisite_id = condition.prerequisite_guardian_id

            if prerequisite_id is None:
                if guardian.tier > 1:
                    raise CatalogError(
                        f"Tier {guardian.tier} guardian {guardian.id} needs a prerequisite",
                        config_key="guardians"
                    )
                continue

            prerequisite = self._guardians.get(prerequisite_id)
            if prerequisite is None:
                raise CatalogError(
                    f"Guardian {guardian.id} requires unknown guardian {prerequisite_id}",
                    config_key="guardians"
                )
            if prerequisite.attribute != guardian.attribute:
                raise CatalogError(
                    f"Guardian {guardian.id} requires {prerequisite_id} of a different attribute",
                    config_key="guardians"
                )
            if prerequisite.tier >= guardian.tier:
                raise CatalogError(
                    f"Guardian {guardian.id} requires {prerequisite_id} of the same or higher tier",
                    config_key="guardians"
                )
            if condition.prerequisite_stage > self.max_stage:
                raise CatalogError(
                    f"Guardian {guardian.id} requires stage {condition.prerequisite_stage}, "
                    f"table ends at {self.max_stage}",
                    config_key="guardians"
                )

    @property
    def guardians(self) -> Mapping[GuardianId, GuardianDefinition]:
        return self._guardians

    @property
    def stages(self) -> Tuple[EvolutionStageDefinition, ...]:
        return self._stages

    @property
    def max_stage(self) -> int:
        return self._stages[-1].stage

    def get_guardian(self, guardian_id: GuardianId) -> GuardianDefinition:
        guardian = self._guardians.get(guardian_id)
        if guardian is None:
            raise UnknownGuardianError(guardian_id)
        return guardian

    def get_stage(self, stage: int) -> EvolutionStageDefinition:
        if not 0 <= stage <= self.max_stage:
            raise ValidationError(message=f"Unknown stage: {stage}", field="stage", value=stage)
        return self._stages[stage]

    def current_stage(self, invested_energy: int) -> int:
        """Highest stage whose threshold the invested energy has reached"""
        if invested_energy < 0:
            raise ValidationError(
                message="invested_energy must not be negative",
                field="invested_energy",
                value=invested_energy
            )
        return bisect_right(self._thresholds, invested_energy) - 1

    def ability_active(self, invested_energy: int) -> bool:
        return self.current_stage(invested_energy) >= ABILITY_ACTIVE_STAGE


@lru_cache(maxsize=1)
def get_registry() -> GuardianRegistry:
    """Process-wide default registry, built on first use"""
    registry = GuardianRegistry()
    logger.info(
        f"Guardian registry loaded: {len(registry.guardians)} guardians, "
        f"{len(registry.stages)} stages"
    )
    return registry


def get_guardians_by_tier(tier: int, registry: Optional[GuardianRegistry] = None) -> List[GuardianDefinition]:
    registry = registry or get_registry()
    return [g for g in registry.guardians.values() if g.tier == tier]


def get_guardians_by_attribute(
    attribute: GuardianAttribute,
    registry: Optional[GuardianRegistry] = None
) -> List[GuardianDefinition]:
    registry = registry or get_registry()
    return [g for g in registry.guardians.values() if g.attribute == attribute]


def get_unlock_cost(
    guardian_id: GuardianId,
    profile: UserGuardianProfile,
    registry: Optional[GuardianRegistry] = None
) -> int:
    """Energy the user would pay right now; 0 for a free first guardian"""
    registry = registry or get_registry()
    condition = registry.get_guardian(guardian_id).unlock_condition
    if condition.initial_free and not profile.unlocked_guardians():
        return 0
    return condition.energy_cost


def can_unlock_guardian(
    guardian_id: GuardianId,
    profile: UserGuardianProfile,
    registry: Optional[GuardianRegistry] = None
) -> UnlockEligibility:
    """
    Check whether a user may unlock a guardian now

    Args:
        guardian_id: Guardian to unlock
        profile: User's current profile
        registry: Catalog to check against (default registry if omitted)

    Returns:
        UnlockEligibility; a refusal carries the reason

    Raises:
        UnknownGuardianError: If the guardian is not in the catalog
    """
    registry = registry or get_registry()
    guardian = registry.get_guardian(guardian_id)
    condition = guardian.unlock_condition
    cost = get_unlock_cost(guardian_id, profile, registry)

    if profile.is_unlocked(guardian_id):
        return UnlockEligibility(can_unlock=False, reason="Already unlocked", energy_cost=cost)

    if condition.prerequisite_guardian_id:
        prerequisite = registry.get_guardian(condition.prerequisite_guardian_id)
        instance = profile.guardians.get(prerequisite.id)

        if instance is None or not instance.unlocked:
            return UnlockEligibility(
                can_unlock=False,
                reason=f"Unlock {prerequisite.name} first",
                energy_cost=cost,
            )

        prerequisite_stage = registry.current_stage(instance.invested_energy)
        if prerequisite_stage < condition.prerequisite_stage:
            stage_name = registry.get_stage(condition.prerequisite_stage).name
            return UnlockEligibility(
                can_unlock=False,
                reason=f"Grow {prerequisite.name} to {stage_name} (stage {condition.prerequisite_stage}) first",
                energy_cost=cost,
            )

    if profile.energy.current < cost:
        return UnlockEligibility(
            can_unlock=False,
            reason=f"Not enough energy ({cost} needed, {profile.energy.current} available)",
            energy_cost=cost,
        )

    return UnlockEligibility(can_unlock=True, energy_cost=cost)


def get_energy_to_next_stage(
    invested_energy: int,
    registry: Optional[GuardianRegistry] = None
) -> Optional[Dict[str, int]]:
    """
    Energy still needed for the next evolution

    Returns:
        {'next_stage', 'required', 'current', 'remaining'} or None at the final stage
    """
    registry = registry or get_registry()
    stage = registry.current_stage(invested_energy)
    if stage >= registry.max_stage:
        return None

    required = registry.get_stage(stage + 1).required_energy
    return {
        "next_stage": stage + 1,
        "required": required,
        "current": invested_energy,
        "remaining": required - invested_energy,
    }


def get_aura_level(invested_energy: int, registry: Optional[GuardianRegistry] = None) -> int:
    """
    Aura intensity 0-100, interpolated between the current and next stage

    Gives a sense of growth between evolutions. The final stage is always 100.
    """
    registry = registry or get_registry()
    stage = registry.current_stage(invested_energy)
    if stage >= registry.max_stage:
        return 100

    current = registry.get_stage(stage)
    upcoming = registry.get_stage(stage + 1)
    progress = (invested_energy - current.required_energy) / (upcoming.required_energy - current.required_energy)
    aura = current.aura_intensity + (upcoming.aura_intensity - current.aura_intensity) * progress
    return min(100, round(aura))
