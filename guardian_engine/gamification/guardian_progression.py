"""
Guardian Progression

State transitions on a user's guardian collection:
- Invest spendable energy into a guardian (evolves it when a threshold is crossed)
- Unlock a guardian (atomic: cost and unlock happen together or not at all)
- Switch the active guardian

All functions take a profile and return a new one; the input profile is
never mutated.
"""

from datetime import datetime
from typing import Dict, Optional
import logging
import math

from guardian_engine.exceptions import GuardianNotUnlockedError, ValidationError
from guardian_engine.gamification.energy_system import EnergyRules, estimate_daily_energy
from guardian_engine.gamification.guardian_registry import (
    GuardianRegistry,
    can_unlock_guardian,
    get_registry,
)
from guardian_engine.models.guardian import (
    GuardianId,
    GuardianInstance,
    GuardianMemory,
    UserGuardianProfile,
)
from guardian_engine.models.results import InvestmentResult, UnlockResult
from guardian_engine.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)


def create_new_profile(user_id: str, now: Optional[datetime] = None) -> UserGuardianProfile:
    """Empty profile for a newly registered user"""
    return UserGuardianProfile(user_id=user_id, registered_at=now or now_utc())


def invest_energy(
    profile: UserGuardianProfile,
    guardian_id: GuardianId,
    amount: int,
    *,
    registry: Optional[GuardianRegistry] = None,
    now: Optional[datetime] = None
) -> InvestmentResult:
    """
    Move spendable energy into a guardian

    The amount is clamped to the user's spendable energy, so the balance
    never goes negative. Lifetime earned energy (and therefore the level) is
    untouched.

    Args:
        profile: User's current profile
        guardian_id: Guardian receiving the energy
        amount: Requested amount
        registry: Catalog and stage table (default registry if omitted)
        now: Timestamp for the memory entry

    Returns:
        InvestmentResult with the new profile and evolution details

    Raises:
        ValidationError: If amount is negative
        UnknownGuardianError: If the guardian is not in the catalog
        GuardianNotUnlockedError: If the user has not unlocked the guardian
    """
    registry = registry or get_registry()

    if amount < 0:
        raise ValidationError(
            message="Investment amount must not be negative",
            field="amount",
            value=amount,
            user_id=profile.user_id
        )

    registry.get_guardian(guardian_id)
    if not profile.is_unlocked(guardian_id):
        raise GuardianNotUnlockedError(guardian_id, user_id=profile.user_id)

    updated = profile.model_copy(deep=True)
    instance = updated.guardians[guardian_id]

    actual = min(amount, updated.energy.current)
    previous_stage = registry.current_stage(instance.invested_energy)
    new_invested = instance.invested_energy + actual
    new_stage = registry.current_stage(new_invested)

    memory_entry = None
    memory = list(instance.memory)
    if new_stage > previous_stage:
        memory_entry = GuardianMemory(
            from_stage=previous_stage,
            to_stage=new_stage,
            timestamp=now or now_utc(),
            invested_at_transition=new_invested,
        )
        memory.append(memory_entry)

    updated.guardians[guardian_id] = instance.model_copy(
        update={"invested_energy": new_invested, "memory": memory}
    )
    updated.energy = updated.energy.model_copy(update={"current": updated.energy.current - actual})

    if actual < amount:
        logger.debug(f"Investment for {profile.user_id} clamped from {amount} to {actual}")

    if memory_entry:
        logger.info(
            f"Guardian {guardian_id} of {profile.user_id} evolved "
            f"{previous_stage} -> {new_stage} at {new_invested} E"
        )
    elif actual:
        logger.info(f"User {profile.user_id} invested {actual} E in {guardian_id}")

    return InvestmentResult(
        profile=updated,
        guardian_id=guardian_id,
        requested=amount,
        actual_invested=actual,
        previous_stage=previous_stage,
        new_stage=new_stage,
        evolved=memory_entry is not None,
        memory_entry=memory_entry,
    )


def unlock_guardian(
    profile: UserGuardianProfile,
    guardian_id: GuardianId,
    *,
    registry: Optional[GuardianRegistry] = None,
    now: Optional[datetime] = None
) -> UnlockResult:
    """
    Unlock a guardian, paying its cost

    The user's first unlocked guardian becomes the active one.

    Returns:
        UnlockResult; on refusal success=False, the profile is unchanged and
        reason says why

    Raises:
        UnknownGuardianError: If the guardian is not in the catalog
    """
    registry = registry or get_registry()
    eligibility = can_unlock_guardian(guardian_id, profile, registry)

    if not eligibility.can_unlock:
        logger.debug(f"Unlock of {guardian_id} refused for {profile.user_id}: {eligibility.reason}")
        return UnlockResult(
            success=False,
            profile=profile.model_copy(deep=True),
            guardian_id=guardian_id,
            reason=eligibility.reason,
        )

    cost = eligibility.energy_cost
    updated = profile.model_copy(deep=True)
    updated.guardians[guardian_id] = GuardianInstance(
        guardian_id=guardian_id,
        unlocked=True,
        unlocked_at=now or now_utc(),
    )
    updated.energy = updated.energy.model_copy(update={"current": updated.energy.current - cost})
    if updated.active_guardian_id is None:
        updated.active_guardian_id = guardian_id

    logger.info(f"User {profile.user_id} unlocked {guardian_id} for {cost} E")

    return UnlockResult(
        success=True,
        profile=updated,
        guardian_id=guardian_id,
        energy_spent=cost,
    )


def set_active_guardian(
    profile: UserGuardianProfile,
    guardian_id: GuardianId,
    *,
    registry: Optional[GuardianRegistry] = None
) -> UserGuardianProfile:
    """
    Make an unlocked guardian the active one (free)

    Raises:
        UnknownGuardianError: If the guardian is not in the catalog
        GuardianNotUnlockedError: If the user has not unlocked the guardian
    """
    registry = registry or get_registry()
    registry.get_guardian(guardian_id)

    if not profile.is_unlocked(guardian_id):
        raise GuardianNotUnlockedError(guardian_id, user_id=profile.user_id)

    updated = profile.model_copy(deep=True)
    updated.active_guardian_id = guardian_id
    return updated


def estimate_days_to_next_evolution(
    instance: GuardianInstance,
    profile: UserGuardianProfile,
    *,
    registry: Optional[GuardianRegistry] = None,
    rules: Optional[EnergyRules] = None
) -> Optional[int]:
    """
    Rough number of daily reports until the guardian can evolve

    Counts the user's unspent energy as already available and assumes a
    plain daily report at the current streak.

    Returns:
        Days (0 if enough energy is already on hand), or None at the final stage
    """
    registry = registry or get_registry()
    stage = registry.current_stage(instance.invested_energy)
    if stage >= registry.max_stage:
        return None

    required = registry.get_stage(stage + 1).required_energy
    remaining = required - instance.invested_energy - profile.energy.current
    if remaining <= 0:
        return 0

    daily = estimate_daily_energy(profile.streak.current_streak, rules)
    return math.ceil(remaining / daily)


def get_collection_progress(
    profile: UserGuardianProfile,
    registry: Optional[GuardianRegistry] = None
) -> Dict[str, any]:
    """
    Summary over the user's unlocked guardians

    Returns:
        {
            'unlocked_count': int,
            'total_count': int,
            'total_invested_energy': int,
            'average_stage': float,
            'max_stage_reached': int
        }
    """
    registry = registry or get_registry()
    unlocked = profile.unlocked_guardians()
    stages = [registry.current_stage(g.invested_energy) for g in unlocked]

    return {
        "unlocked_count": len(unlocked),
        "total_count": len(registry.guardians),
        "total_invested_energy": sum(g.invested_energy for g in unlocked),
        "average_stage": round(sum(stages) / len(stages), 2) if stages else 0.0,
        "max_stage_reached": max(stages, default=0),
    }


def format_investment_message(result: InvestmentResult, registry: Optional[GuardianRegistry] = None) -> str:
    """User-facing line for an investment"""
    registry = registry or get_registry()
    guardian = registry.get_guardian(result.guardian_id)

    if result.evolved:
        stage_name = registry.get_stage(result.new_stage).name
        return f"🎉 {guardian.name} evolved into {stage_name}!"
    if result.actual_invested == 0:
        return f"No energy available to invest in {guardian.name}"
    return f"Invested {result.actual_invested} E in {guardian.name}"
